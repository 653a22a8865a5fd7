"""Tests for HealthScheduler cycles, serialization and failure handling."""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from fakes import FailingSink, FakeProbe, FakeStatsSource
from mosquitto_monitor.monitor.scheduler import HealthScheduler
from mosquitto_monitor.publish.publisher import StatusPublisher
from mosquitto_monitor.publish.sinks import CollectingSink
from mosquitto_monitor.types import ConnectionMethod, HostStats


class ExplodingProbe:
    async def check(self) -> bool:
        raise RuntimeError("probe exploded")


def make_scheduler(**overrides) -> HealthScheduler:
    params = {
        "port_probe": FakeProbe(True),
        "handshake_probe": FakeProbe(True),
        "interval_seconds": 5.0,
    }
    params.update(overrides)
    return HealthScheduler(**params)


class TestHealthCycle:
    """Tests for a single cycle."""

    @pytest.mark.asyncio
    async def test_initial_record_is_not_running(self):
        scheduler = make_scheduler()

        assert scheduler.current_record.status.running is False
        assert scheduler.current_record.status.reachable is False

    @pytest.mark.asyncio
    async def test_cycle_runs_all_probes(self):
        port, handshake, supervisor = FakeProbe(True), FakeProbe(False), FakeProbe(True)
        scheduler = make_scheduler(
            port_probe=port, handshake_probe=handshake, supervisor_probe=supervisor
        )

        record = await scheduler.run_cycle()

        assert (port.calls, handshake.calls, supervisor.calls) == (1, 1, 1)
        assert record is scheduler.current_record
        assert record.status.running is True
        assert record.status.connection_method is ConnectionMethod.SUPERVISOR

    @pytest.mark.asyncio
    async def test_probes_run_concurrently(self):
        scheduler = make_scheduler(
            port_probe=FakeProbe(True, delay=0.1),
            handshake_probe=FakeProbe(True, delay=0.1),
            supervisor_probe=FakeProbe(True, delay=0.1),
        )
        loop = asyncio.get_running_loop()

        started = loop.time()
        await scheduler.run_cycle()

        assert loop.time() - started < 0.25

    @pytest.mark.asyncio
    async def test_stats_pulled_only_when_running(self, sys_snapshot):
        source = FakeStatsSource(sys_snapshot)
        host = MagicMock()
        host.collect = AsyncMock(return_value=HostStats(connection_count=2))
        scheduler = make_scheduler(
            port_probe=FakeProbe(False),
            handshake_probe=FakeProbe(False),
            stats_source=source,
            host_collector=host,
        )

        record = await scheduler.run_cycle()

        assert record.derived_stats is None
        assert source.calls == 0
        host.collect.assert_not_awaited()

        scheduler.port_probe = FakeProbe(True)
        record = await scheduler.run_cycle()

        assert record.derived_stats is not None
        assert record.derived_stats.clients_connected == 3
        assert record.connection_count == 2
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_exception_degrades_record(self, sys_snapshot, caplog):
        scheduler = make_scheduler(stats_source=FakeStatsSource(sys_snapshot))
        await scheduler.run_cycle()
        assert scheduler.current_record.status.running is True

        scheduler.handshake_probe = ExplodingProbe()
        record = await scheduler.run_cycle()

        assert record.status.running is False
        assert record.status.reachable is False
        assert record.status.error == "probe exploded"
        assert record.derived_stats is None
        assert "Error checking Mosquitto status" in caplog.text

    @pytest.mark.asyncio
    async def test_record_replaced_wholesale(self):
        scheduler = make_scheduler()

        first = await scheduler.run_cycle()
        second = await scheduler.run_cycle()

        assert first is not second
        assert scheduler.current_record is second
        assert scheduler.cycle_count == 2

    @pytest.mark.asyncio
    async def test_transition_callback(self):
        transitions = []
        scheduler = make_scheduler(on_transition=transitions.append)

        await scheduler.run_cycle()
        scheduler.port_probe = FakeProbe(False)
        scheduler.handshake_probe = FakeProbe(False)
        await scheduler.run_cycle()

        assert [t.event for t in transitions] == ["stopped"]

    @pytest.mark.asyncio
    async def test_failing_transition_callback_is_logged(self, caplog):
        sink = CollectingSink()
        callback = MagicMock(side_effect=RuntimeError("listener broke"))
        scheduler = make_scheduler(
            on_transition=callback, publisher=StatusPublisher(sink)
        )

        await scheduler.run_cycle()
        scheduler.port_probe = FakeProbe(False)
        scheduler.handshake_probe = FakeProbe(False)
        stopped = await scheduler.run_cycle()
        await asyncio.sleep(0.01)

        assert scheduler.current_record is stopped
        assert stopped.status.running is False
        assert "Transition callback failed: listener broke" in caplog.text
        assert "system.mqtt.broker.status.running" in sink.paths()

        scheduler.port_probe = FakeProbe(True)
        scheduler.handshake_probe = FakeProbe(True)
        restarted = await scheduler.run_cycle()

        assert restarted.status.running is True
        assert scheduler.cycle_count == 3
        assert callback.call_count == 2


class TestPublishing:
    """Publishing is fire-and-forget."""

    @pytest.mark.asyncio
    async def test_record_published(self):
        sink = CollectingSink()
        scheduler = make_scheduler(publisher=StatusPublisher(sink))

        await scheduler.run_cycle()
        await asyncio.sleep(0.01)

        assert "system.mqtt.broker.status.running" in sink.paths()

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_cycle(self):
        sink = FailingSink()
        scheduler = make_scheduler(publisher=StatusPublisher(sink))

        record = await scheduler.run_cycle()
        await asyncio.sleep(0.01)

        assert record.status.running is True
        assert sink.attempts > 0
        assert scheduler.current_record is record


class TestSerialization:
    """Two cycles of one scheduler never overlap."""

    @pytest.mark.asyncio
    async def test_tick_skipped_while_cycle_running(self):
        port = FakeProbe(True, delay=0.1)
        scheduler = make_scheduler(port_probe=port)

        forced = asyncio.create_task(scheduler.run_cycle())
        await asyncio.sleep(0.01)

        assert scheduler.busy is True
        assert await scheduler.tick() is None

        await forced
        assert port.calls == 1

    @pytest.mark.asyncio
    async def test_forced_cycles_wait_their_turn(self):
        port = FakeProbe(True, delay=0.05)
        scheduler = make_scheduler(port_probe=port)
        active = 0
        peak = 0
        inner = port.check

        async def tracked() -> bool:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            try:
                return await inner()
            finally:
                active -= 1

        port.check = tracked

        results = await asyncio.gather(*(scheduler.run_cycle() for _ in range(3)))

        assert all(r is not None for r in results)
        assert peak == 1
        assert port.calls == 3


class TestRunLoop:
    """Tests for the periodic loop and stop()."""

    @pytest.mark.asyncio
    async def test_immediate_first_cycle(self):
        scheduler = make_scheduler(interval_seconds=60.0)

        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.05)

        assert scheduler.cycle_count == 1

        scheduler.stop()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_result_discarded_after_stop(self):
        scheduler = make_scheduler(port_probe=FakeProbe(True, delay=0.05))
        initial = scheduler.current_record

        cycle = asyncio.create_task(scheduler.run_cycle())
        await asyncio.sleep(0.01)
        scheduler.stop()

        assert await cycle is None
        assert scheduler.current_record is initial

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        scheduler = make_scheduler()

        scheduler.stop()
        scheduler.stop()

        assert scheduler.stopped is True
        assert await scheduler.run_cycle() is None
