"""Pytest fixtures for pytactile tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pytactile import AttemptScheduler, Device, DeviceCommandError, LinkConfig
from pytactile.link import invoke_callback


class FakeLink:
    """In-memory RemoteLink.

    Connect attempts pop failures from `errors`; the first `hangs` attempts
    never return. Devices whose index is in `failing` reject commands.
    """

    def __init__(self) -> None:
        self.errors: list[BaseException] = []
        self.hangs = 0
        self.connect_gate: asyncio.Event | None = None
        self.connect_calls: list[str] = []

        self.devices: list[Device] = []
        self.failing: set[int] = set()
        self.sent: list[tuple[int, float]] = []
        self.scanning = False
        self.stopped = False

        self._connected = False
        self.connected_callback: Any = None
        self.device_added_callback: Any = None
        self.device_removed_callback: Any = None
        self.disconnect_callback: Any = None

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self, uri: str) -> None:
        self.connect_calls.append(uri)
        if len(self.connect_calls) <= self.hangs:
            await asyncio.Event().wait()
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        self._connected = True
        await invoke_callback(self.connected_callback)

    async def disconnect(self) -> None:
        self._connected = False

    async def start_scanning(self) -> None:
        self.scanning = True

    async def stop_all_devices(self) -> None:
        self.stopped = True

    def list_devices(self) -> list[Device]:
        return list(self.devices)

    async def send_vibrate(self, device: Device, intensity: float) -> None:
        if device.index in self.failing:
            raise DeviceCommandError(f"{device.name} is unreachable")
        self.sent.append((device.index, intensity))

    def set_connected_callback(self, callback: Any) -> None:
        self.connected_callback = callback

    def set_device_added_callback(self, callback: Any) -> None:
        self.device_added_callback = callback

    def set_device_removed_callback(self, callback: Any) -> None:
        self.device_removed_callback = callback

    def set_disconnect_callback(self, callback: Any) -> None:
        self.disconnect_callback = callback

    def drop(self, exc: Exception | None = None) -> None:
        """Simulate the server dropping an established connection."""
        self._connected = False
        if self.disconnect_callback:
            self.disconnect_callback(exc)


class SpyScheduler(AttemptScheduler):
    """Records every requested delay and fires jobs without waiting."""

    def __init__(self) -> None:
        super().__init__()
        self.delays: list[int] = []

    def schedule(self, delay_ms, job):  # type: ignore[no-untyped-def]
        if self.closed:
            return False
        self.delays.append(delay_ms)
        return super().schedule(0, job)


@pytest.fixture
def link() -> FakeLink:
    """Create a FakeLink that connects on the first attempt."""
    return FakeLink()


@pytest.fixture
def spy_scheduler() -> SpyScheduler:
    """Create a scheduler that records delays."""
    return SpyScheduler()


@pytest.fixture
def config() -> LinkConfig:
    """Return a local server configuration."""
    return LinkConfig(host="127.0.0.1", port=12345)


@pytest.fixture
def devices() -> list[Device]:
    """Return three single-vibrator devices."""
    return [
        Device(0, "Lush"),
        Device(1, "Hush"),
        Device(2, "Edge", ("Vibrate", "Vibrate")),
    ]
