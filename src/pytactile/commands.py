"""Host facing commands.

Commands never raise. Whatever happens is reported back as a list of
messages the host can show to the user who ran the command.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .manager import ConnectionManager
    from .vibration import DeviceVibrationManager

_LOGGER = logging.getLogger(__name__)

VIBRATE_INTENSITY = 0.3

MSG_NOT_CONNECTED = (
    "Not connected to Intiface server. Please wait for connection to be established."
)
MSG_NO_DEVICES = "No devices found. Make sure your devices are connected and scanning is enabled."
MSG_DEVICE_ERROR = "An error occurred while trying to vibrate the device: {error}"


class VibrateCommand:
    """Send a slight vibration to every device the server reports."""

    name = "vibrate"
    description = "Sends a slight vibration to every connected device."

    def __init__(
        self,
        manager: ConnectionManager,
        vibrations: DeviceVibrationManager,
        intensity: float = VIBRATE_INTENSITY,
    ) -> None:
        self._manager = manager
        self._vibrations = vibrations
        self._intensity = intensity

    def __repr__(self) -> str:
        return f"VibrateCommand(intensity={self._intensity})"

    async def execute(self) -> list[str]:
        """Run the command.

        Returns:
            Messages for the user; empty when every device was vibrated.
        """
        if not self._manager.is_connected:
            return [MSG_NOT_CONNECTED]

        try:
            devices = self._manager.link.list_devices()
        except Exception as err:
            _LOGGER.warning("Could not list devices: %s", err)
            return [MSG_DEVICE_ERROR.format(error=err)]

        if not devices:
            return [MSG_NO_DEVICES]

        messages: list[str] = []
        for device in devices:
            try:
                await self._vibrations.vibrate(device, self._intensity)
            except Exception as err:
                _LOGGER.warning("Vibrate failed on %s: %s", device.name, err)
                messages.append(MSG_DEVICE_ERROR.format(error=err))
        return messages
