"""pytactile - keep a host process connected to an Intiface / Buttplug server.

This library keeps a persistent WebSocket connection to a device-control
server alive with capped exponential backoff, greets newly discovered
devices with a short vibration pattern, and offers a single "vibrate"
command to the host.

Example usage:
    ```python
    import asyncio
    from pytactile import LinkConfig, TactileSession

    async def main():
        session = TactileSession(LinkConfig(host="127.0.0.1", port=12345))
        await session.setup()

        if await session.manager.wait_connected(timeout=30):
            for message in await session.vibrate():
                print(message)

        await session.shutdown()

    asyncio.run(main())
    ```
"""

from .backoff import (
    BACKOFF_MULTIPLIER,
    INITIAL_RETRY_DELAY_MS,
    MAX_RETRY_DELAY_MS,
    retry_delay,
)
from .buttplug import ButtplugLink
from .commands import VibrateCommand
from .config import DEFAULT_PORT, LinkConfig
from .exceptions import (
    ConfigurationError,
    DeviceCommandError,
    LinkError,
    LinkResponseError,
    LinkTimeoutError,
    TactileError,
)
from .link import Device, RemoteLink
from .manager import AttemptResult, ConnectionManager, ConnectionMetrics, ConnectionState
from .patterns import WAKEY, Pattern, PatternPlayer, PatternStep
from .router import DeviceEventRouter
from .scheduler import AttemptScheduler
from .session import TactileSession
from .vibration import DeviceVibrationManager

__version__ = "1.0.0"

__all__ = [
    # Version
    "__version__",
    # Session and lifecycle
    "TactileSession",
    "ConnectionManager",
    "ConnectionState",
    "ConnectionMetrics",
    "AttemptResult",
    "AttemptScheduler",
    # Backoff
    "retry_delay",
    "INITIAL_RETRY_DELAY_MS",
    "MAX_RETRY_DELAY_MS",
    "BACKOFF_MULTIPLIER",
    # Configuration
    "LinkConfig",
    "DEFAULT_PORT",
    # Link
    "RemoteLink",
    "Device",
    "ButtplugLink",
    # Devices
    "DeviceEventRouter",
    "DeviceVibrationManager",
    "Pattern",
    "PatternPlayer",
    "PatternStep",
    "WAKEY",
    # Commands
    "VibrateCommand",
    # Exceptions
    "TactileError",
    "LinkError",
    "LinkTimeoutError",
    "LinkResponseError",
    "DeviceCommandError",
    "ConfigurationError",
]
