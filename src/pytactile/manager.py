"""Connection lifecycle management for the device server link.

ConnectionManager owns the RemoteLink for the lifetime of the process. It
keeps a three-state machine (DISCONNECTED, CONNECTING, CONNECTED), retries
failed connects with capped exponential backoff, and reconnects when the
link reports that an established connection dropped.

All methods must be called from the event loop thread; the loop serializes
every transition. The `state` and `is_connected` properties are plain
attribute reads and may be polled from any thread.

Example:
    link = ButtplugLink("my-host")
    manager = ConnectionManager(link, LinkConfig(port=12345))
    manager.connect()
    await manager.wait_connected(timeout=10)
    ...
    await manager.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .backoff import retry_delay
from .config import LinkConfig
from .exceptions import LinkTimeoutError
from .scheduler import SHUTDOWN_TIMEOUT, AttemptScheduler

if TYPE_CHECKING:
    from collections.abc import Callable

    from .link import RemoteLink

_LOGGER = logging.getLogger(__name__)


class ConnectionState(Enum):
    """State of the server connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class AttemptResult:
    """Outcome of a single connect attempt.

    Attributes:
        attempt: 1-based attempt number within the current connect cycle
        error: The failure, or None if the link connected
        retry_delay: Milliseconds to wait before the next attempt (0 on success)
    """

    attempt: int
    error: BaseException | None = None
    retry_delay: int = 0

    @property
    def succeeded(self) -> bool:
        """Return True if the attempt connected."""
        return self.error is None


@dataclass
class ConnectionMetrics:
    """Tracks connection metrics for observability."""

    attempts: int = 0
    successful_connects: int = 0
    failed_attempts: int = 0
    reconnects: int = 0

    def to_dict(self) -> dict[str, int]:
        """Return metrics as a dictionary."""
        return asdict(self)

    def __repr__(self) -> str:
        return (
            f"ConnectionMetrics(attempts={self.attempts}, "
            f"connects={self.successful_connects}, failed={self.failed_attempts})"
        )


class ConnectionManager:
    """Keeps the link to the device server connected."""

    def __init__(
        self,
        link: RemoteLink,
        config: LinkConfig | str | None = None,
        scheduler: AttemptScheduler | None = None,
        backoff: Callable[[int], int] = retry_delay,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
    ) -> None:
        """Initialize the manager.

        Args:
            link: The link to manage; owned by the manager from now on
            config: Server address, or a URI string (default: LinkConfig())
            scheduler: Timer used for attempts (default: a new AttemptScheduler)
            backoff: Maps a failed attempt number to a retry delay in ms
            shutdown_timeout: Seconds an in-flight attempt may run after shutdown()

        Raises:
            ConfigurationError: If the server address is invalid.
        """
        if isinstance(config, str):
            config = LinkConfig.from_uri(config)

        self._link = link
        self._config = config or LinkConfig()
        self._scheduler = scheduler or AttemptScheduler()
        self._backoff = backoff
        self._shutdown_timeout = shutdown_timeout

        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        # Bumped on every new attempt; results of older attempts are dropped.
        self._generation = 0
        self._closed = False
        self._connected_event = asyncio.Event()

        self._metrics = ConnectionMetrics()

    def __repr__(self) -> str:
        return (
            f"ConnectionManager(uri={self.uri!r}, state={self._state.value}, "
            f"attempts={self._attempts})"
        )

    @property
    def link(self) -> RemoteLink:
        """Return the managed link."""
        return self._link

    @property
    def config(self) -> LinkConfig:
        """Return the server configuration."""
        return self._config

    @property
    def uri(self) -> str:
        """Return the server URI."""
        return self._config.uri

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._state

    @property
    def attempts(self) -> int:
        """Return the attempt counter of the current connect cycle."""
        return self._attempts

    @property
    def is_connected(self) -> bool:
        """Return True if connected."""
        return self._state is ConnectionState.CONNECTED

    @property
    def closed(self) -> bool:
        """Return True once shutdown() has been called."""
        return self._closed

    @property
    def metrics(self) -> ConnectionMetrics:
        """Return connection metrics."""
        return self._metrics

    def connect(self) -> None:
        """Start connecting in the background.

        Returns immediately. Does nothing if a connection is already
        established or being attempted.
        """
        if self._closed:
            _LOGGER.warning("Connection manager is shut down. Ignoring connect request.")
            return

        if self._state is not ConnectionState.DISCONNECTED:
            _LOGGER.warning("Connection already active or in progress. Ignoring connect request.")
            return

        self._attempts = 0
        self._schedule(0)

    def reconnect(self) -> None:
        """Drop the current state and connect again immediately.

        Cancels any attempt that is armed or in flight.
        """
        if self._closed:
            _LOGGER.warning("Connection manager is shut down. Ignoring reconnect request.")
            return

        _LOGGER.warning("Initiating reconnection to %s", self.uri)
        self._metrics.reconnects += 1
        self._scheduler.cancel()
        self._set_state(ConnectionState.DISCONNECTED)
        self._attempts = 0
        self._schedule(0)

    def handle_link_lost(self, exc: Exception | None) -> None:
        """Handle the link reporting that its connection dropped."""
        if self._closed:
            return

        if self._state is not ConnectionState.CONNECTED:
            # A pending attempt already owns recovery
            _LOGGER.debug("Link lost while %s: %s", self._state.value, exc)
            return

        _LOGGER.warning("Connection lost to %s: %s", self.uri, exc)
        self.reconnect()

    async def wait_connected(self, timeout: float | None = None) -> bool:
        """Wait until connected.

        Args:
            timeout: Seconds to wait, or None to wait forever

        Returns:
            True if connected, False if the timeout expired.
        """
        if self.is_connected:
            return True

        try:
            async with asyncio.timeout(timeout):
                await self._connected_event.wait()
        except TimeoutError:
            return False
        return self.is_connected

    async def shutdown(self) -> None:
        """Stop all connect activity.

        An armed retry timer is cancelled. An attempt already in flight may
        finish within the shutdown timeout but its outcome is ignored. No
        attempt is scheduled after this returns.
        """
        _LOGGER.info("Shutting down connection manager for %s", self.uri)
        self._closed = True
        self._generation += 1

        await self._scheduler.shutdown(self._shutdown_timeout)

        self._set_state(ConnectionState.DISCONNECTED)

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        if state is ConnectionState.CONNECTED:
            self._connected_event.set()
        else:
            self._connected_event.clear()

    def _schedule(self, delay_ms: int) -> None:
        """Move to CONNECTING and arm the next attempt."""
        self._generation += 1
        generation = self._generation
        self._set_state(ConnectionState.CONNECTING)

        if not self._scheduler.schedule(delay_ms, lambda: self._run_attempt(generation)):
            self._set_state(ConnectionState.DISCONNECTED)

    async def _run_attempt(self, generation: int) -> None:
        """Run one attempt and apply its outcome."""
        result = await self._attempt()

        if generation != self._generation or self._closed:
            _LOGGER.debug("Discarding outcome of superseded attempt %d", result.attempt)
            return

        if result.succeeded:
            self._attempts = 0
            self._metrics.successful_connects += 1
            self._set_state(ConnectionState.CONNECTED)
            _LOGGER.info("Successfully connected to %s", self.uri)
            self.on_connected()
            return

        self._metrics.failed_attempts += 1
        self._set_state(ConnectionState.DISCONNECTED)
        _LOGGER.error(
            "Failed to connect to %s: %s (attempt %d)",
            self.uri,
            result.error,
            result.attempt,
        )
        self.on_retrying(result.retry_delay)
        self._schedule(result.retry_delay)

    async def _attempt(self) -> AttemptResult:
        """Call the link once and report what happened."""
        self._attempts += 1
        attempt = self._attempts
        self._metrics.attempts += 1

        _LOGGER.info("Attempting to connect to %s (attempt %d)...", self.uri, attempt)

        error: BaseException
        try:
            async with asyncio.timeout(self._config.connect_timeout):
                await self._link.connect(self.uri)
        except TimeoutError:
            error = LinkTimeoutError(f"Connection to {self.uri} timed out")
        except asyncio.CancelledError as err:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            # Cancelled inside the link, not by us
            error = err
        except Exception as err:
            error = err
        else:
            return AttemptResult(attempt)

        return AttemptResult(attempt, error, self._backoff(attempt))

    # Override these methods or assign callables to handle events
    def on_connected(self) -> None:
        """Called after each successful connect. Override or replace to handle."""

    def on_retrying(self, delay_ms: int) -> None:
        """Called before a retry is armed. Override or replace to handle."""
        _LOGGER.info("Retrying in %ds", delay_ms // 1000)
