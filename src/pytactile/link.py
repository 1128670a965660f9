"""Remote link abstraction.

The connection manager, router and commands only talk to the device server
through the RemoteLink protocol defined here. Any object with these methods
can be used, which keeps the wire format out of the connection lifecycle.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    # Callback types (sync or async)
    ConnectedCallback = Callable[[], None | Awaitable[None]]
    DeviceAddedCallback = Callable[["Device"], None | Awaitable[None]]
    DeviceRemovedCallback = Callable[[int], None | Awaitable[None]]
    DisconnectCallback = Callable[[Exception | None], None]

VIBRATE_ACTUATOR = "Vibrate"


@dataclass(frozen=True)
class Device:
    """A device reported by the server.

    Attributes:
        index: Server assigned device id
        name: Display name
        actuators: Actuator type of each scalar feature, in feature order
    """

    index: int
    name: str
    actuators: tuple[str, ...] = (VIBRATE_ACTUATOR,)

    def __repr__(self) -> str:
        return f"Device(index={self.index}, name={self.name!r})"

    @property
    def vibrators(self) -> list[int]:
        """Return the feature indexes that accept vibrate commands."""
        return [i for i, kind in enumerate(self.actuators) if kind == VIBRATE_ACTUATOR]


@runtime_checkable
class RemoteLink(Protocol):
    """Duplex channel to the device server."""

    @property
    def connected(self) -> bool:
        """Return True while the server connection is usable."""
        ...

    async def connect(self, uri: str) -> None:
        """Open the connection, raising on any failure."""
        ...

    async def disconnect(self) -> None:
        """Close the connection."""
        ...

    async def start_scanning(self) -> None:
        """Ask the server to look for new devices."""
        ...

    async def stop_all_devices(self) -> None:
        """Stop every device the server controls."""
        ...

    def list_devices(self) -> list[Device]:
        """Return the devices currently reported by the server."""
        ...

    async def send_vibrate(self, device: Device, intensity: float) -> None:
        """Vibrate a device at an intensity between 0.0 and 1.0."""
        ...

    def set_connected_callback(self, callback: ConnectedCallback | None) -> None:
        """Set callback fired after a connection is established."""
        ...

    def set_device_added_callback(self, callback: DeviceAddedCallback | None) -> None:
        """Set callback fired when the server reports a new device."""
        ...

    def set_device_removed_callback(self, callback: DeviceRemovedCallback | None) -> None:
        """Set callback fired with the id of a device the server dropped."""
        ...

    def set_disconnect_callback(self, callback: DisconnectCallback | None) -> None:
        """Set callback fired when an established connection is lost."""
        ...


async def invoke_callback(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a callback, awaiting it when it is a coroutine function."""
    if callback is None:
        return

    if inspect.iscoroutinefunction(callback):
        await callback(*args)
    else:
        callback(*args)
