"""Per-device command serialization.

Commands sent to the same device never overlap: each device index has its
own asyncio.Lock, taken for a single command or held across a whole
pattern. Commands for different devices run independently.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from .exceptions import DeviceCommandError, TactileError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .link import Device, RemoteLink

_LOGGER = logging.getLogger(__name__)


class DeviceVibrationManager:
    """Serializes vibration commands per device."""

    def __init__(self, link: RemoteLink) -> None:
        self._link = link
        self._locks: dict[int, asyncio.Lock] = {}

    def __repr__(self) -> str:
        return f"DeviceVibrationManager(devices={sorted(self._locks)})"

    def _lock(self, index: int) -> asyncio.Lock:
        lock = self._locks.get(index)
        if lock is None:
            lock = self._locks[index] = asyncio.Lock()
        return lock

    def busy(self, device: Device) -> bool:
        """Return True if a command or pattern holds the device."""
        lock = self._locks.get(device.index)
        return lock is not None and lock.locked()

    @contextlib.asynccontextmanager
    async def reserve(self, device: Device) -> AsyncIterator[DeviceChannel]:
        """Hold the device for a sequence of commands.

        Example:
            async with vibrations.reserve(device) as channel:
                await channel.vibrate(0.5)
                await asyncio.sleep(0.2)
                await channel.vibrate(0.0)
        """
        async with self._lock(device.index):
            yield DeviceChannel(self._link, device)

    async def vibrate(self, device: Device, intensity: float) -> None:
        """Send a single vibrate command, waiting for the device to be free.

        Raises:
            DeviceCommandError: If the link rejects the command.
        """
        async with self.reserve(device) as channel:
            await channel.vibrate(intensity)

    def forget(self, index: int) -> None:
        """Drop the lock of a device the server removed."""
        self._locks.pop(index, None)


class DeviceChannel:
    """Exclusive command access to one device, handed out by reserve()."""

    def __init__(self, link: RemoteLink, device: Device) -> None:
        self._link = link
        self._device = device

    @property
    def device(self) -> Device:
        """Return the reserved device."""
        return self._device

    async def vibrate(self, intensity: float) -> None:
        """Vibrate the device.

        Raises:
            DeviceCommandError: If the link rejects the command.
        """
        try:
            await self._link.send_vibrate(self._device, intensity)
        except DeviceCommandError:
            raise
        except (TactileError, OSError, TimeoutError, ValueError) as err:
            raise DeviceCommandError(f"{self._device.name}: {err}") from err
        _LOGGER.debug("Vibrate %.2f sent to %s", intensity, self._device.name)
