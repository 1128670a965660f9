"""Timed vibration patterns.

A pattern is a fixed list of (intensity, hold) steps. The PatternPlayer
plays one against a device while holding that device, so nothing else is
sent to it until the pattern finishes or aborts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import DeviceCommandError

if TYPE_CHECKING:
    from .link import Device
    from .vibration import DeviceChannel, DeviceVibrationManager

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternStep:
    """Set the device to an intensity and hold it for duration_ms."""

    intensity: float
    duration_ms: int


@dataclass(frozen=True)
class Pattern:
    """A named sequence of steps."""

    name: str
    steps: tuple[PatternStep, ...]

    @property
    def duration_ms(self) -> int:
        """Return the total length of the pattern."""
        return sum(step.duration_ms for step in self.steps)


# Two short low buzzes, played when a device is first discovered
WAKEY = Pattern(
    "wakey",
    (
        PatternStep(0.1, 100),
        PatternStep(0.0, 100),
    )
    * 2,
)


class PatternPlayer:
    """Plays a pattern on one device at a time per device."""

    def __init__(self, vibrations: DeviceVibrationManager, pattern: Pattern = WAKEY) -> None:
        self._vibrations = vibrations
        self._pattern = pattern

    @property
    def pattern(self) -> Pattern:
        """Return the pattern this player plays."""
        return self._pattern

    async def play(self, device: Device) -> bool:
        """Play the pattern on device.

        A failing step aborts the rest of the pattern and the device is sent a
        best-effort stop; the failure is logged and not raised. Cancellation
        stops the device before propagating.

        Returns:
            True if every step was played.
        """
        async with self._vibrations.reserve(device) as channel:
            try:
                for step in self._pattern.steps:
                    await channel.vibrate(step.intensity)
                    await asyncio.sleep(step.duration_ms / 1000)
            except DeviceCommandError as err:
                _LOGGER.warning("Error playing %s pattern: %s", self._pattern.name, err)
                await self._stop(channel)
                return False
            except Exception as err:
                _LOGGER.warning(
                    "Unexpected error playing %s pattern on %s: %r",
                    self._pattern.name,
                    device.name,
                    err,
                )
                await self._stop(channel)
                return False
            except asyncio.CancelledError:
                _LOGGER.warning("%s pattern cancelled on %s", self._pattern.name, device.name)
                await self._stop(channel)
                raise

        _LOGGER.debug("Played %s pattern on %s", self._pattern.name, device.name)
        return True

    async def _stop(self, channel: DeviceChannel) -> None:
        try:
            await channel.vibrate(0.0)
        except Exception as err:
            _LOGGER.debug("Could not stop %s: %s", channel.device.name, err)
