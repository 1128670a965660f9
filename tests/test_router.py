"""Tests for device event dispatch."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from pytactile import DeviceEventRouter


class TestDeviceEventRouter:
    """Tests for DeviceEventRouter."""

    @pytest.fixture
    def player(self):
        """Create a mock pattern player."""
        player = MagicMock()
        player.play = AsyncMock(return_value=True)
        return player

    @pytest.fixture
    def vibrations(self):
        """Create a mock vibration manager."""
        return MagicMock()

    @pytest.fixture
    async def router(self, player, vibrations):
        """Create a router bound to the running loop."""
        router = DeviceEventRouter(player, vibrations)
        yield router
        await router.close()

    async def test_device_added_plays_pattern(self, router, player, devices):
        """Test a new device gets the welcome pattern."""
        router.device_added(devices[0])
        await asyncio.sleep(0.01)

        player.play.assert_awaited_once_with(devices[0])

    async def test_device_added_does_not_block(self, router, player, devices):
        """Test notifications return while patterns are still playing."""
        gate = asyncio.Event()

        async def slow_play(device):
            await gate.wait()
            return True

        player.play = AsyncMock(side_effect=slow_play)

        router.device_added(devices[0])
        router.device_added(devices[1])
        await asyncio.sleep(0.01)

        assert router.active == 2
        assert player.play.await_count == 2

        gate.set()
        await asyncio.sleep(0.01)
        assert router.active == 0

    async def test_device_added_from_other_thread(self, router, player, devices):
        """Test notifications delivered off the loop are handled."""
        await asyncio.to_thread(router.device_added, devices[2])
        await asyncio.sleep(0.01)

        player.play.assert_awaited_once_with(devices[2])

    async def test_device_removed_forgets_device(self, router, vibrations):
        """Test a removed device's lock is released."""
        router.device_removed(7)

        vibrations.forget.assert_called_once_with(7)
        assert router.active == 0

    async def test_device_removed_from_other_thread(self, router, vibrations):
        """Test removals delivered off the loop are handled."""
        await asyncio.to_thread(router.device_removed, 3)
        await asyncio.sleep(0.01)

        vibrations.forget.assert_called_once_with(3)

    async def test_close_cancels_patterns(self, router, player, devices):
        """Test close cancels patterns still playing."""
        async def endless_play(device):
            await asyncio.sleep(10)
            return True

        player.play = AsyncMock(side_effect=endless_play)

        router.device_added(devices[0])
        await asyncio.sleep(0.01)
        assert router.active == 1

        await router.close()

        assert router.active == 0

    async def test_repr(self, router):
        """Test repr representation."""
        assert "DeviceEventRouter" in repr(router)
