"""
HealthScheduler: periodic multi-probe health cycle.

One cycle:
1. Run the port, handshake and (optional) supervisor probes concurrently
2. If the broker is running, pull the $SYS snapshot and host statistics
3. Reconcile everything into a new CombinedBrokerRecord
4. Replace the stored record and hand it to the publisher without waiting

Cycles of one scheduler never overlap. Timer ticks that find a cycle in
progress are skipped; forced and verification cycles wait their turn.
Any exception inside a cycle degrades the record to a failed state; it
never escapes the cycle.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from mosquitto_monitor.monitor.reconciler import StatusReconciler
from mosquitto_monitor.protocols import ProbeProtocol, StatsSourceProtocol
from mosquitto_monitor.publish.publisher import StatusPublisher
from mosquitto_monitor.stats.host import HostStatsCollector
from mosquitto_monitor.types import (
    CombinedBrokerRecord,
    HostStats,
    ProbeResult,
    StatsSnapshot,
    StatusTransition,
    utcnow,
)

logger = logging.getLogger(__name__)


class HealthScheduler:
    """
    Runs health cycles on a fixed interval until stopped.

    Example:
        scheduler = HealthScheduler(
            port_probe=PortProbe("localhost", 1883),
            handshake_probe=HandshakeProbe("localhost", 1883),
            interval_seconds=30.0,
        )
        task = asyncio.create_task(scheduler.run())
        ...
        record = await scheduler.run_cycle()  # out-of-band check
        scheduler.stop()
    """

    def __init__(
        self,
        port_probe: ProbeProtocol,
        handshake_probe: ProbeProtocol,
        supervisor_probe: ProbeProtocol | None = None,
        stats_source: StatsSourceProtocol | None = None,
        host_collector: HostStatsCollector | None = None,
        reconciler: StatusReconciler | None = None,
        publisher: StatusPublisher | None = None,
        interval_seconds: float = 30.0,
        on_transition: Callable[[StatusTransition], None] | None = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            port_probe: TCP reachability probe
            handshake_probe: MQTT connect/acknowledge probe
            supervisor_probe: systemd probe, None when systemd is not used
            stats_source: $SYS snapshot provider, None when the feed is off
            host_collector: Host statistics collector, None when disabled
            reconciler: Reconciler (a fresh one by default)
            publisher: Publisher receiving each record, None to skip publishing
            interval_seconds: Seconds between timer ticks
            on_transition: Called with each running-state transition; errors it
                raises are logged
        """
        self.port_probe = port_probe
        self.handshake_probe = handshake_probe
        self.supervisor_probe = supervisor_probe
        self.stats_source = stats_source
        self.host_collector = host_collector
        self.reconciler = reconciler or StatusReconciler()
        self.publisher = publisher
        self.interval = interval_seconds
        self.on_transition = on_transition

        self._lock = asyncio.Lock()
        self._shutdown = asyncio.Event()
        self._stopped = False
        self._record = CombinedBrokerRecord.initial()
        self._cycle_count = 0

    @property
    def current_record(self) -> CombinedBrokerRecord:
        """Most recent record (possibly stale). Never blocks."""
        return self._record

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def run(self) -> None:
        """
        Tick immediately, then every `interval` seconds until stop().

        The interval is measured from the start of one tick to the start of
        the next; a tick that overruns the interval is followed immediately
        by the next one.
        """
        loop = asyncio.get_running_loop()
        logger.debug("Health scheduler starting (interval: %ss)", self.interval)

        while not self._shutdown.is_set():
            started = loop.time()
            await self.tick()

            remaining = max(0.0, self.interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass  # Normal timeout, next tick

        logger.debug("Health scheduler stopped")

    async def tick(self) -> CombinedBrokerRecord | None:
        """Timer-driven cycle; skipped if another cycle is still running."""
        if self._lock.locked():
            logger.debug("Health check already in progress, skipping tick")
            return None
        return await self.run_cycle()

    async def run_cycle(self) -> CombinedBrokerRecord | None:
        """
        Run one cycle, waiting for any cycle in progress to finish first.

        Returns:
            The new record, or None if the scheduler was stopped before the
            cycle completed (the result is discarded).
        """
        async with self._lock:
            if self._stopped:
                return None
            return await self._cycle()

    def stop(self) -> None:
        """
        Stop ticking and discard the result of any cycle still in flight.

        Synchronous and idempotent. In-flight probes are not awaited.
        """
        self._stopped = True
        self._shutdown.set()
        if self.publisher is not None:
            self.publisher.cancel_pending()

    async def _cycle(self) -> CombinedBrokerRecord | None:
        checked_at = utcnow()

        try:
            probe = await self._probe(checked_at)
            logger.debug(
                "Probe results: port=%s handshake=%s supervisor=%s",
                probe.port_open,
                probe.handshake_ok,
                probe.supervisor_active,
            )

            snapshot: StatsSnapshot | None = None
            host: HostStats | None = None
            if probe.running:
                if self.stats_source is not None:
                    snapshot = self.stats_source.snapshot()
                if self.host_collector is not None:
                    host = await self.host_collector.collect()

            record = self.reconciler.reconcile(probe, snapshot, host)
        except Exception as e:
            logger.error("Error checking Mosquitto status: %s", e)
            record = self.reconciler.failed(str(e), checked_at)

        if self._stopped:
            logger.debug("Scheduler stopped during cycle, discarding result")
            return None

        self._record = record
        self._cycle_count += 1

        transition = self.reconciler.last_transition
        if transition is not None and self.on_transition is not None:
            try:
                self.on_transition(transition)
            except Exception as e:
                logger.error("Transition callback failed: %s", e)

        if self.publisher is not None:
            self.publisher.publish_in_background(record)

        return record

    async def _probe(self, checked_at: datetime) -> ProbeResult:
        checks = [self.port_probe.check(), self.handshake_probe.check()]
        if self.supervisor_probe is not None:
            checks.append(self.supervisor_probe.check())

        results = await asyncio.gather(*checks)

        return ProbeResult(
            port_open=bool(results[0]),
            handshake_ok=bool(results[1]),
            supervisor_active=bool(results[2]) if len(results) > 2 else None,
            checked_at=checked_at,
        )
