"""Buttplug protocol link over WebSocket.

ButtplugLink implements RemoteLink against an Intiface / Buttplug server
speaking protocol message version 3.

Features:
- websockets client connection with a background reader task
- orjson encoding; every frame is a JSON array of {MessageType: body}
- Request/response matching by message Id (server events use Id 0)
- Automatic Ping at half the server's MaxPingTime
- Support for both sync and async event callbacks

Example:
    link = ButtplugLink("my-host")
    await link.connect("ws://127.0.0.1:12345/buttplug")
    for device in link.list_devices():
        await link.send_vibrate(device, 0.3)
    await link.disconnect()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

import orjson
import websockets

from .exceptions import DeviceCommandError, LinkError, LinkResponseError, LinkTimeoutError
from .link import VIBRATE_ACTUATOR, Device, invoke_callback

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

    from .link import (
        ConnectedCallback,
        DeviceAddedCallback,
        DeviceRemovedCallback,
        DisconnectCallback,
    )

_LOGGER = logging.getLogger(__name__)

# Protocol configuration
MESSAGE_VERSION = 3
SYSTEM_MESSAGE_ID = 0  # Id used by the server for unsolicited events
RESPONSE_TIMEOUT = 10.0  # seconds to wait for a response
DEFAULT_CLIENT_NAME = "pytactile"


class ButtplugLink:
    """WebSocket connection to a Buttplug server."""

    def __init__(
        self,
        client_name: str = DEFAULT_CLIENT_NAME,
        response_timeout: float = RESPONSE_TIMEOUT,
    ) -> None:
        """Initialize the link.

        Args:
            client_name: Name announced to the server
            response_timeout: Seconds to wait for each response (default: 10)
        """
        self._client_name = client_name
        self._response_timeout = response_timeout

        # Connection state
        self._ws: ClientConnection | None = None
        self._connected = False
        self._server_name: str | None = None
        self._max_ping_time = 0

        # Message ID counter and requests waiting for their reply
        self._message_id = 0
        self._pending: dict[int, asyncio.Future[tuple[str, dict[str, Any]]]] = {}

        self._devices: dict[int, Device] = {}

        # Callbacks (support both sync and async)
        self._connected_callback: ConnectedCallback | None = None
        self._device_added_callback: DeviceAddedCallback | None = None
        self._device_removed_callback: DeviceRemovedCallback | None = None
        self._disconnect_callback: DisconnectCallback | None = None

        # Background tasks
        self._reader_task: asyncio.Task[None] | None = None
        self._ping_task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return (
            f"ButtplugLink(client={self._client_name!r}, server={self._server_name!r}, "
            f"connected={self.connected})"
        )

    @property
    def connected(self) -> bool:
        """Return True if connected."""
        return self._connected and self._ws is not None

    @property
    def server_name(self) -> str | None:
        """Return the name the server announced during the handshake."""
        return self._server_name

    def set_connected_callback(self, callback: ConnectedCallback | None) -> None:
        """Set callback fired after the handshake completes."""
        self._connected_callback = callback

    def set_device_added_callback(self, callback: DeviceAddedCallback | None) -> None:
        """Set callback for DeviceAdded events and the initial device list."""
        self._device_added_callback = callback

    def set_device_removed_callback(self, callback: DeviceRemovedCallback | None) -> None:
        """Set callback for DeviceRemoved events."""
        self._device_removed_callback = callback

    def set_disconnect_callback(self, callback: DisconnectCallback | None) -> None:
        """Set callback fired when an established connection is lost."""
        self._disconnect_callback = callback

    def list_devices(self) -> list[Device]:
        """Return the devices the server currently reports."""
        return list(self._devices.values())

    async def connect(self, uri: str) -> None:
        """Open the WebSocket and run the handshake.

        Raises:
            LinkError: If the connection or handshake fails.
            LinkResponseError: If the server rejects the handshake.
        """
        if self.connected:
            return

        try:
            self._ws = await websockets.connect(uri, open_timeout=self._response_timeout)
        except TimeoutError as err:
            raise LinkTimeoutError(f"Connection to {uri} timed out") from err
        except (OSError, websockets.exceptions.WebSocketException) as err:
            raise LinkError(f"Failed to connect to {uri}: {err}") from err

        self._message_id = 0
        self._pending.clear()
        self._devices.clear()
        self._reader_task = asyncio.create_task(self._reader_loop())

        try:
            info = await self._request(
                "RequestServerInfo",
                expect="ServerInfo",
                ClientName=self._client_name,
                MessageVersion=MESSAGE_VERSION,
            )
            self._server_name = info.get("ServerName")
            self._max_ping_time = int(info.get("MaxPingTime", 0))

            device_list = await self._request("RequestDeviceList", expect="DeviceList")
        except BaseException:
            await self.disconnect()
            raise

        self._connected = True
        _LOGGER.debug("Connected to %s at %s", self._server_name, uri)

        if self._max_ping_time > 0:
            self._ping_task = asyncio.create_task(self._ping_loop(self._max_ping_time / 2000))

        for entry in device_list.get("Devices", []):
            await self._add_device(entry)

        await invoke_callback(self._connected_callback)

    async def disconnect(self) -> None:
        """Close the connection gracefully."""
        self._connected = False

        current = asyncio.current_task()
        for task in (self._reader_task, self._ping_task):
            if task and not task.done() and task is not current:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._reader_task = None
        self._ping_task = None

        self._fail_pending(LinkError("Connection closed"))

        if self._ws:
            ws = self._ws
            self._ws = None
            with contextlib.suppress(Exception):
                await ws.close()

        self._devices.clear()
        _LOGGER.debug("Disconnected from server")

    async def start_scanning(self) -> None:
        """Ask the server to scan for devices."""
        await self._request("StartScanning")

    async def stop_all_devices(self) -> None:
        """Stop every device on the server."""
        await self._request("StopAllDevices")

    async def send_vibrate(self, device: Device, intensity: float) -> None:
        """Set every vibrator of device to intensity.

        Raises:
            ValueError: If intensity is outside 0.0 to 1.0.
            DeviceCommandError: If the device cannot vibrate or the server rejects the command.
            LinkError: If the link is down.
        """
        if not 0.0 <= intensity <= 1.0:
            raise ValueError(f"Intensity must be between 0.0 and 1.0, got {intensity}")

        features = device.vibrators
        if not features:
            raise DeviceCommandError(f"{device.name} has no vibrators")

        scalars = [
            {"Index": index, "Scalar": intensity, "ActuatorType": VIBRATE_ACTUATOR}
            for index in features
        ]
        try:
            await self._request("ScalarCmd", DeviceIndex=device.index, Scalars=scalars)
        except LinkResponseError as err:
            raise DeviceCommandError(f"{device.name}: {err.message or err}") from err

    def _fail_pending(self, exc: Exception) -> None:
        """Fail requests still waiting for a reply."""
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()

    def _next_message_id(self) -> int:
        """Generate the next message ID (0 is reserved for the server)."""
        self._message_id += 1
        return self._message_id

    async def _write_message(self, message_type: str, body: dict[str, Any]) -> None:
        """Send one message to the server.

        Raises:
            LinkError: If the connection is closed or the write fails.
        """
        if not self._ws:
            raise LinkError("Not connected")

        try:
            await self._ws.send(orjson.dumps([{message_type: body}]).decode())
        except (OSError, websockets.exceptions.ConnectionClosed) as err:
            raise LinkError(f"Write failed: {err}") from err

    async def _request(
        self,
        message_type: str,
        expect: str = "Ok",
        request_timeout: float | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        """Send a request and wait for the matching reply.

        Args:
            message_type: Buttplug message type, e.g. "StartScanning"
            expect: Message type of a successful reply
            request_timeout: Override response timeout
            **fields: Additional fields of the message body

        Returns:
            The body of the reply.

        Raises:
            LinkError: If not connected, the connection drops or the reply is unexpected.
            LinkTimeoutError: If no reply arrives in time.
            LinkResponseError: If the server replies with an Error message.
        """
        message_id = self._next_message_id()
        future: asyncio.Future[tuple[str, dict[str, Any]]] = (
            asyncio.get_running_loop().create_future()
        )
        self._pending[message_id] = future

        effective_timeout = (
            request_timeout if request_timeout is not None else self._response_timeout
        )

        try:
            await self._write_message(message_type, {"Id": message_id, **fields})
            _LOGGER.debug("Sent %s (ID: %d)", message_type, message_id)

            async with asyncio.timeout(effective_timeout):
                reply_type, body = await future
        except TimeoutError as err:
            _LOGGER.error("Request %s timed out after %ss", message_type, effective_timeout)
            raise LinkTimeoutError(f"{message_type} timed out") from err
        finally:
            self._pending.pop(message_id, None)

        if reply_type == "Error":
            raise LinkResponseError(int(body.get("ErrorCode", 0)), body.get("ErrorMessage", ""))
        if reply_type != expect:
            raise LinkError(f"Unexpected reply to {message_type}: {reply_type}")
        return body

    async def _reader_loop(self) -> None:
        """Background task that reads every frame from the server.

        Replies are handed to the request waiting on their Id, events with
        Id 0 are dispatched to the callbacks.
        """
        ws = self._ws
        if ws is None:
            return

        _LOGGER.debug("Reader loop started")
        try:
            async for frame in ws:
                await self._dispatch(frame)
            err = LinkError("Connection closed by server")
        except websockets.exceptions.ConnectionClosed as exc:
            err = LinkError(f"Connection closed: {exc}")
        except asyncio.CancelledError:
            _LOGGER.debug("Reader loop cancelled")
            return
        except Exception as exc:
            _LOGGER.exception("Unexpected error in reader loop: %s", exc)
            err = LinkError(f"Reader failed: {exc}")

        await self._handle_connection_lost(err)

    async def _dispatch(self, frame: str | bytes) -> None:
        try:
            messages = orjson.loads(frame)
        except orjson.JSONDecodeError as err:
            _LOGGER.error("Invalid JSON received: %s", err)
            return

        if not isinstance(messages, list):
            _LOGGER.debug("Ignoring frame that is not a message array")
            return

        for message in messages:
            if not isinstance(message, dict) or len(message) != 1:
                _LOGGER.debug("Ignoring malformed message: %s", message)
                continue

            ((message_type, body),) = message.items()
            if not isinstance(body, dict):
                _LOGGER.warning("Ignoring %s with a non-object body", message_type)
                continue

            message_id = body.get("Id", SYSTEM_MESSAGE_ID)

            if message_id == SYSTEM_MESSAGE_ID:
                try:
                    await self._handle_event(message_type, body)
                except (KeyError, TypeError, ValueError, AttributeError) as err:
                    _LOGGER.warning("Ignoring malformed %s event: %r", message_type, err)
                continue

            future = self._pending.get(message_id)
            if future is not None and not future.done():
                future.set_result((message_type, body))
            else:
                _LOGGER.debug("Received unsolicited %s (ID: %s)", message_type, message_id)

    async def _handle_event(self, message_type: str, body: dict[str, Any]) -> None:
        if message_type == "DeviceAdded":
            await self._add_device(body)
        elif message_type == "DeviceRemoved":
            index = int(body["DeviceIndex"])
            self._devices.pop(index, None)
            await invoke_callback(self._device_removed_callback, index)
        elif message_type == "ScanningFinished":
            _LOGGER.debug("Server finished scanning")
        elif message_type == "Error":
            _LOGGER.error("Server error: %s", body.get("ErrorMessage"))
        else:
            _LOGGER.debug("Received unknown message type: %s", message_type)

    async def _add_device(self, entry: dict[str, Any]) -> None:
        index = int(entry["DeviceIndex"])
        scalar_features = entry.get("DeviceMessages", {}).get("ScalarCmd", [])
        device = Device(
            index=index,
            name=entry.get("DeviceDisplayName") or entry.get("DeviceName") or f"Device {index}",
            actuators=tuple(feature.get("ActuatorType", "") for feature in scalar_features),
        )
        self._devices[index] = device
        await invoke_callback(self._device_added_callback, device)

    async def _ping_loop(self, interval: float) -> None:
        """Send Ping often enough to keep the server from dropping us."""
        try:
            while self.connected:
                await asyncio.sleep(interval)

                if not self.connected:
                    break

                try:
                    await self._request("Ping", request_timeout=interval)
                except (LinkError, LinkResponseError) as err:
                    _LOGGER.warning("Ping failed: %s", err)
                    await self._handle_connection_lost(err)
                    break

        except asyncio.CancelledError:
            _LOGGER.debug("Ping task cancelled")

    async def _handle_connection_lost(self, exc: Exception | None) -> None:
        """Tear down and report a connection that dropped after the handshake."""
        if not self._connected:
            # Dropped during the handshake; connect() cleans up
            self._fail_pending(exc or LinkError("Connection closed"))
            return

        await self.disconnect()

        if self._disconnect_callback:
            self._disconnect_callback(exc)
