"""Dispatch of device presence events."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .link import Device
    from .patterns import PatternPlayer
    from .vibration import DeviceVibrationManager

_LOGGER = logging.getLogger(__name__)


class DeviceEventRouter:
    """Forwards device-added events to the pattern player.

    Each new device gets its own task so a playing pattern never delays the
    next notification. Notifications may arrive on any thread; they are
    moved onto the router's event loop before anything else happens.
    """

    def __init__(
        self,
        player: PatternPlayer,
        vibrations: DeviceVibrationManager,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            player: Player started for every new device
            vibrations: Per-device locks, released when a device goes away
            loop: Loop to run patterns on (default: the running loop)
        """
        self._player = player
        self._vibrations = vibrations
        self._loop = loop or asyncio.get_running_loop()
        self._tasks: set[asyncio.Task[bool]] = set()

    def __repr__(self) -> str:
        return f"DeviceEventRouter(active={len(self._tasks)})"

    @property
    def active(self) -> int:
        """Return the number of patterns still playing."""
        return len(self._tasks)

    def device_added(self, device: Device) -> None:
        """Handle a new device reported by the link."""
        _LOGGER.info("New device added: %s", device.name)
        if self._on_loop():
            self._spawn(device)
        else:
            self._loop.call_soon_threadsafe(self._spawn, device)

    def device_removed(self, index: int) -> None:
        """Handle a device the link dropped."""
        _LOGGER.info("Device removed: %d", index)
        if self._on_loop():
            self._vibrations.forget(index)
        else:
            self._loop.call_soon_threadsafe(self._vibrations.forget, index)

    async def close(self) -> None:
        """Cancel patterns that are still playing."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def _on_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _spawn(self, device: Device) -> None:
        task = self._loop.create_task(self._player.play(device))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
