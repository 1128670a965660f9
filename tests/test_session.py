"""Tests for the process-wide session."""

import asyncio

import pytest

from pytactile import (
    ButtplugLink,
    ConfigurationError,
    ConnectionState,
    Device,
    Pattern,
    PatternStep,
    TactileSession,
)
from pytactile.commands import MSG_NOT_CONNECTED
from tests.mock_server import MockButtplugServer

BLIP = Pattern("blip", (PatternStep(0.5, 1), PatternStep(0.0, 1)))


class TestTactileSession:
    """Tests for TactileSession with a fake link."""

    @pytest.fixture
    async def session(self, link, config, spy_scheduler):
        """Create a session that has been set up."""
        session = TactileSession(config, link=link, scheduler=spy_scheduler, welcome_pattern=BLIP)
        await session.setup()
        yield session
        await session.shutdown()

    def test_default_link(self):
        """Test a ButtplugLink is created when none is given."""
        session = TactileSession()

        assert isinstance(session.link, ButtplugLink)
        assert session.router is None
        assert "TactileSession" in repr(session)

    def test_invalid_address(self):
        """Test a bad address fails at construction."""
        with pytest.raises(ConfigurationError):
            TactileSession("ws://:0/buttplug")

    async def test_setup_connects_and_scans(self, session, link):
        """Test setup connects and starts scanning once connected."""
        assert await session.manager.wait_connected(timeout=1) is True
        assert link.scanning is True
        assert session.router is not None

    async def test_new_device_gets_welcome_pattern(self, session, link):
        """Test a device pushed by the link is greeted."""
        await session.manager.wait_connected(timeout=1)

        link.device_added_callback(Device(4, "Hush"))
        await asyncio.sleep(0.05)

        assert link.sent == [(4, 0.5), (4, 0.0)]

    async def test_device_removed_is_routed(self, session, link):
        """Test a device removal reaches the vibration manager."""
        await session.manager.wait_connected(timeout=1)
        await session.vibrations.vibrate(Device(4, "Hush"), 0.2)

        link.device_removed_callback(4)

        assert "4" not in repr(session.vibrations)

    async def test_link_drop_reconnects(self, session, link):
        """Test a dropped link is reconnected."""
        await session.manager.wait_connected(timeout=1)

        link.drop(ConnectionResetError("reset"))

        assert session.manager.state is ConnectionState.CONNECTING
        assert await session.manager.wait_connected(timeout=1) is True
        assert len(link.connect_calls) == 2

    async def test_vibrate(self, session, link):
        """Test the vibrate command through the session."""
        await session.manager.wait_connected(timeout=1)
        link.devices = [Device(0, "Lush"), Device(1, "Hush")]

        assert await session.vibrate() == []
        assert link.sent == [(0, 0.3), (1, 0.3)]

    async def test_vibrate_before_connected(self, link, config, spy_scheduler):
        """Test vibrate reports the missing connection."""
        link.connect_gate = asyncio.Event()
        session = TactileSession(config, link=link, scheduler=spy_scheduler)
        await session.setup()

        assert await session.vibrate() == [MSG_NOT_CONNECTED]
        assert link.sent == []

        link.connect_gate.set()
        await session.shutdown()

    async def test_shutdown(self, link, config, spy_scheduler):
        """Test shutdown stops devices, disconnects and stops retrying."""
        session = TactileSession(config, link=link, scheduler=spy_scheduler)
        await session.setup()
        await session.manager.wait_connected(timeout=1)

        await session.shutdown()

        assert link.stopped is True
        assert link.connected is False
        assert session.manager.is_connected is False
        assert session.manager.closed is True

    async def test_context_manager(self, link, config, spy_scheduler):
        """Test the session as an async context manager."""
        async with TactileSession(config, link=link, scheduler=spy_scheduler) as session:
            assert await session.manager.wait_connected(timeout=1) is True

        assert session.manager.closed is True


class TestTactileSessionIntegration:
    """Integration tests for TactileSession against the mock server."""

    @pytest.fixture
    async def server(self):
        """Create and start mock server."""
        async with MockButtplugServer() as server:
            server.add_device(0, "Lush")
            yield server

    async def test_end_to_end(self, server):
        """Test connect, greet, vibrate and shut down."""
        async with TactileSession(server.uri, welcome_pattern=BLIP) as session:
            assert await session.manager.wait_connected(timeout=5) is True
            assert server.scanning is True

            # Initial device greeted with the welcome pattern
            await asyncio.sleep(0.1)
            assert server.scalar_commands[:2] == [(0, [(0, 0.5)]), (0, [(0, 0.0)])]

            assert await session.vibrate() == []
            assert server.scalar_commands[-1] == (0, [(0, 0.3)])

        assert server.stopped == 1

    async def test_recovers_from_server_drop(self, server):
        """Test the session reconnects after the server drops it."""
        async with TactileSession(server.uri, welcome_pattern=BLIP) as session:
            assert await session.manager.wait_connected(timeout=5) is True

            await server.drop_clients()
            await asyncio.sleep(0.2)

            assert await session.manager.wait_connected(timeout=5) is True
            assert session.manager.metrics.reconnects == 1
            assert session.link.connected is True
