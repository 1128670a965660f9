"""Exception classes for pytactile."""

from __future__ import annotations


class TactileError(Exception):
    """Base exception for all pytactile errors."""


class LinkError(TactileError):
    """Raised when the link to the device server cannot be used."""


class LinkTimeoutError(LinkError):
    """Raised when the device server does not answer in time."""


class LinkResponseError(TactileError):
    """Raised when the device server answers a request with an Error message."""

    def __init__(self, code: int, message: str = "") -> None:
        """Initialize with the server error code and message.

        Args:
            code: Buttplug error code (0 unknown, 1 init, 2 ping, 3 msg, 4 device)
            message: Human readable error from the server
        """
        self.code = code
        self.message = message
        super().__init__(f"Server error {code}: {message}" if message else f"Server error {code}")


class DeviceCommandError(TactileError):
    """Raised when a command cannot be delivered to a device."""


class ConfigurationError(TactileError, ValueError):
    """Raised synchronously when the server address is invalid."""
