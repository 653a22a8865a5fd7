"""Tests for MonitorSession and the session-level operations."""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from fakes import FakeProbe, client_factory
from mosquitto_monitor.config import MonitorConfig
from mosquitto_monitor.exceptions import ControlNotConfiguredError
from mosquitto_monitor.monitor.session import (
    MonitorSession,
    force_health_check,
    get_current_record,
    request_control,
    start_session,
    stop_session,
)
from mosquitto_monitor.publish.sinks import CollectingSink
from mosquitto_monitor.stats import topics
from mosquitto_monitor.stats.feed import FeedState, StatsFeed
from mosquitto_monitor.stats.retry import ReconnectPolicy
from mosquitto_monitor.supervisor.systemctl import CommandResult
from mosquitto_monitor.types import HostStats


def fake_components(running: bool = True, **overrides):
    systemctl = MagicMock()
    systemctl.run = AsyncMock(return_value=CommandResult(returncode=0))
    systemctl.is_active = AsyncMock(return_value=running)
    host_collector = MagicMock()
    host_collector.collect = AsyncMock(return_value=HostStats(connection_count=1))
    components = {
        "port_probe": FakeProbe(running),
        "handshake_probe": FakeProbe(running),
        "supervisor_probe": FakeProbe(running),
        "feed": StatsFeed(
            "localhost",
            1883,
            reconnect=ReconnectPolicy(enabled=False),
            client_factory=client_factory(
                messages=[(topics.CLIENTS_CONNECTED, b"2")], hold_open=True
            ),
        ),
        "systemctl": systemctl,
        "host_collector": host_collector,
    }
    components.update(overrides)
    return components


class TestSessionWiring:
    """Components built from config."""

    def test_defaults_from_config(self, config):
        session = MonitorSession(config)

        assert session.port_probe.port == config.broker_port
        assert session.handshake_probe.host == "localhost"
        assert session.supervisor_probe is not None
        assert session.feed is not None
        assert session.scheduler.interval == config.interval_seconds

    def test_optional_parts_disabled(self):
        config = MonitorConfig(use_systemd_control=False, use_sys_topics=False)

        session = MonitorSession(config)

        assert session.supervisor_probe is None
        assert session.feed is None
        assert session.scheduler.stats_source is None


class TestSessionLifecycle:
    """start/stop and the record."""

    @pytest.mark.asyncio
    async def test_start_runs_immediate_cycle(self, config):
        sink = CollectingSink()
        session = await start_session(config, sink, **fake_components())

        await asyncio.sleep(0.05)
        record = get_current_record(session)

        assert session.running is True
        assert record.status.running is True
        assert session.feed.state is not FeedState.DISCONNECTED
        assert "system.mqtt.broker.status.running" in sink.paths()

        stop_session(session)

    @pytest.mark.asyncio
    async def test_disabled_session_does_nothing(self, caplog):
        caplog.set_level("INFO")
        config = MonitorConfig(enabled=False)
        components = fake_components()

        session = await start_session(config, **components)
        await asyncio.sleep(0.01)

        assert session.running is False
        assert components["port_probe"].calls == 0
        assert "disabled" in caplog.text

    @pytest.mark.asyncio
    async def test_stop_twice(self, config):
        components = fake_components()
        session = await start_session(config, **components)
        await asyncio.sleep(0.01)

        stop_session(session)
        stop_session(session)
        stop_session(None)

        assert session.running is False
        assert components["feed"].state is FeedState.DISCONNECTED
        assert dict(components["feed"].snapshot()) == {}

    @pytest.mark.asyncio
    async def test_in_flight_cycle_discarded_on_stop(self, config):
        session = MonitorSession(
            config, **fake_components(port_probe=FakeProbe(True, delay=0.05))
        )
        initial = session.current_record

        check = asyncio.create_task(session.force_health_check())
        await asyncio.sleep(0.01)
        session.stop()

        assert await check is initial
        assert session.current_record is initial

    @pytest.mark.asyncio
    async def test_wait_returns_after_stop(self, config):
        session = await start_session(config, **fake_components())

        asyncio.get_running_loop().call_later(0.05, session.stop)
        await asyncio.wait_for(session.wait(), timeout=1.0)


class TestSessionOperations:
    """forceHealthCheck, requestControl and status."""

    @pytest.mark.asyncio
    async def test_force_health_check(self, config):
        session = MonitorSession(config, **fake_components(running=False))

        record = await force_health_check(session)

        assert record.status.running is False
        assert session.current_record is record

    @pytest.mark.asyncio
    async def test_request_control_and_verification(self, config):
        components = fake_components()
        session = MonitorSession(config, **components)

        outcome = await request_control(session, "restart")
        await session.dispatcher.wait_for_verification()

        assert outcome.succeeded is True
        assert session.scheduler.cycle_count == 1
        assert session.current_record.status.running is True

    @pytest.mark.asyncio
    async def test_request_control_without_session(self):
        with pytest.raises(ControlNotConfiguredError):
            await request_control(None, "start")

    @pytest.mark.asyncio
    async def test_status_document(self, config):
        session = MonitorSession(config, **fake_components())
        await session.force_health_check()

        status = session.status()

        assert status["status"]["running"] is True
        assert status["config"]["serviceName"] == "mosquitto"
        assert "connectionHealth" in status
