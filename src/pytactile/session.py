"""Process-wide session wiring the link, manager, router and commands.

The host builds exactly one TactileSession at startup and calls setup()
and shutdown() from its own lifecycle hooks.

Example:
    async def main():
        async with TactileSession(LinkConfig(port=12345)) as session:
            await session.manager.wait_connected(timeout=30)
            for message in await session.vibrate():
                print(message)

    asyncio.run(main())
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .buttplug import DEFAULT_CLIENT_NAME, ButtplugLink
from .commands import VibrateCommand
from .config import LinkConfig
from .exceptions import LinkError, LinkResponseError
from .manager import ConnectionManager
from .patterns import WAKEY, PatternPlayer
from .router import DeviceEventRouter
from .vibration import DeviceVibrationManager

if TYPE_CHECKING:
    from .link import RemoteLink
    from .patterns import Pattern
    from .scheduler import AttemptScheduler

_LOGGER = logging.getLogger(__name__)


class TactileSession:
    """Owns every component for the lifetime of the host process."""

    def __init__(
        self,
        config: LinkConfig | str | None = None,
        link: RemoteLink | None = None,
        client_name: str = DEFAULT_CLIENT_NAME,
        scheduler: AttemptScheduler | None = None,
        welcome_pattern: Pattern = WAKEY,
    ) -> None:
        """Initialize the session.

        Args:
            config: Server address, or a URI string (default: LinkConfig())
            link: Link to use (default: a ButtplugLink named client_name)
            client_name: Name announced to the server by the default link
            scheduler: Timer for connect attempts (default: AttemptScheduler)
            welcome_pattern: Pattern played on every newly discovered device

        Raises:
            ConfigurationError: If the server address is invalid.
        """
        self._link: RemoteLink = link if link is not None else ButtplugLink(client_name)
        self._manager = ConnectionManager(self._link, config, scheduler=scheduler)
        self._vibrations = DeviceVibrationManager(self._link)
        self._player = PatternPlayer(self._vibrations, welcome_pattern)
        self._vibrate_command = VibrateCommand(self._manager, self._vibrations)
        self._router: DeviceEventRouter | None = None

    def __repr__(self) -> str:
        return f"TactileSession(manager={self._manager!r})"

    @property
    def link(self) -> RemoteLink:
        """Return the link to the device server."""
        return self._link

    @property
    def manager(self) -> ConnectionManager:
        """Return the connection manager."""
        return self._manager

    @property
    def vibrations(self) -> DeviceVibrationManager:
        """Return the per-device command serializer."""
        return self._vibrations

    @property
    def router(self) -> DeviceEventRouter | None:
        """Return the device event router (None before setup())."""
        return self._router

    async def setup(self) -> None:
        """Wire link events and start connecting in the background."""
        self._router = DeviceEventRouter(self._player, self._vibrations)

        self._link.set_connected_callback(self._on_link_connected)
        self._link.set_device_added_callback(self._router.device_added)
        self._link.set_device_removed_callback(self._router.device_removed)
        self._link.set_disconnect_callback(self._manager.handle_link_lost)

        self._manager.connect()

    async def shutdown(self) -> None:
        """Stop reconnecting, stop every device and close the link."""
        await self._manager.shutdown()

        if self._router is not None:
            await self._router.close()

        if self._link.connected:
            try:
                await self._link.stop_all_devices()
                _LOGGER.info("Stopped all devices.")
            except (LinkError, LinkResponseError) as err:
                _LOGGER.error("Failed to stop devices: %s", err)

        await self._link.disconnect()
        _LOGGER.info("Disconnected from device server.")

    async def vibrate(self) -> list[str]:
        """Run the vibrate command and return the messages for the user."""
        return await self._vibrate_command.execute()

    async def __aenter__(self) -> TactileSession:
        """Async context manager entry."""
        await self.setup()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.shutdown()

    async def _on_link_connected(self) -> None:
        _LOGGER.info("Device server connected.")
        try:
            await self._link.start_scanning()
        except (LinkError, LinkResponseError) as err:
            _LOGGER.error("Failed to start scanning for devices: %s", err)
