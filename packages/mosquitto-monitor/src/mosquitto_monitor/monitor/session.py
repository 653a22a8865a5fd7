"""
MonitorSession: one monitoring session for one broker.

Wires probes, the $SYS feed, host statistics, the reconciler, the
scheduler, the dispatcher and the publisher together from a MonitorConfig,
and exposes the session operations:

    session = await start_session(config, sink=ConsoleSink())
    record = get_current_record(session)
    record = await force_health_check(session)
    outcome = await request_control(session, "restart")
    stop_session(session)

Every collaborator can be injected, which is how the tests replace the
network probes and systemctl with fakes.
"""

import asyncio
import logging
from typing import Any

from mosquitto_monitor.config import MonitorConfig
from mosquitto_monitor.control.dispatcher import ControlDispatcher
from mosquitto_monitor.exceptions import ControlNotConfiguredError
from mosquitto_monitor.monitor.reconciler import StatusReconciler
from mosquitto_monitor.monitor.scheduler import HealthScheduler
from mosquitto_monitor.probes.handshake import HandshakeProbe
from mosquitto_monitor.probes.port import PortProbe
from mosquitto_monitor.probes.supervisor import SupervisorProbe
from mosquitto_monitor.protocols import MeasurementSinkProtocol, ProbeProtocol
from mosquitto_monitor.publish.publisher import StatusPublisher
from mosquitto_monitor.stats.feed import StatsFeed
from mosquitto_monitor.stats.host import HostStatsCollector
from mosquitto_monitor.stats.retry import ReconnectPolicy
from mosquitto_monitor.supervisor.systemctl import SystemctlClient
from mosquitto_monitor.types import (
    CombinedBrokerRecord,
    ConnectionHealth,
    ControlAction,
    ControlMethod,
    ControlOutcome,
    StatusTransition,
)

logger = logging.getLogger(__name__)


class MonitorSession:
    """
    Handle for one running monitor.

    Attributes:
        config: Session configuration
        scheduler: Health cycle scheduler
        dispatcher: Control request dispatcher
        feed: $SYS statistics feed, None when $SYS monitoring is off
        transitions: Running-state transitions seen so far
    """

    def __init__(
        self,
        config: MonitorConfig,
        sink: MeasurementSinkProtocol | None = None,
        *,
        port_probe: ProbeProtocol | None = None,
        handshake_probe: ProbeProtocol | None = None,
        supervisor_probe: ProbeProtocol | None = None,
        feed: StatsFeed | None = None,
        host_collector: HostStatsCollector | None = None,
        systemctl: SystemctlClient | None = None,
    ) -> None:
        self.config = config
        host, port = config.broker_host, config.broker_port

        self.port_probe = port_probe or PortProbe(
            host, port, timeout_ms=config.port_timeout_ms
        )
        self.handshake_probe = handshake_probe or HandshakeProbe(
            host,
            port,
            source_label=config.source_label,
            timeout_ms=config.handshake_timeout_ms,
        )

        self.systemctl = systemctl or SystemctlClient()
        if supervisor_probe is None and config.use_systemd_control:
            supervisor_probe = SupervisorProbe(
                config.service_name,
                client=self.systemctl,
                timeout=config.supervisor_timeout_s,
            )
        self.supervisor_probe = supervisor_probe

        if feed is None and config.use_sys_topics:
            feed = StatsFeed(
                host,
                port,
                source_label=config.source_label,
                reconnect=ReconnectPolicy(
                    enabled=config.stats_reconnect,
                    min_wait_seconds=config.stats_reconnect_min_s,
                    max_wait_seconds=config.stats_reconnect_max_s,
                ),
            )
        self.feed = feed

        if host_collector is None and config.enable_statistics:
            host_collector = HostStatsCollector(port, config.log_path)

        self.transitions: list[StatusTransition] = []
        self.publisher = StatusPublisher(sink)
        self.scheduler = HealthScheduler(
            port_probe=self.port_probe,
            handshake_probe=self.handshake_probe,
            supervisor_probe=self.supervisor_probe,
            stats_source=self.feed,
            host_collector=host_collector,
            reconciler=StatusReconciler(),
            publisher=self.publisher,
            interval_seconds=config.interval_seconds,
            on_transition=self.transitions.append,
        )
        self.dispatcher = ControlDispatcher(
            config, systemctl=self.systemctl, verify=self.scheduler.run_cycle
        )

        self._timer_task: asyncio.Task[None] | None = None
        self._started = False
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    @property
    def current_record(self) -> CombinedBrokerRecord:
        """Most recent record (possibly stale). Never blocks."""
        return self.scheduler.current_record

    @property
    def connection_health(self) -> ConnectionHealth:
        health = getattr(self.handshake_probe, "health", None)
        return health if isinstance(health, ConnectionHealth) else ConnectionHealth()

    async def start(self) -> None:
        """
        Start the $SYS feed and the periodic health cycle.

        The first cycle runs immediately. Does nothing when the session is
        disabled, already started or already stopped.
        """
        if not self.config.enabled:
            logger.info("Mosquitto monitoring disabled")
            return
        if self._started or self._stopped:
            return

        self._started = True
        logger.info(
            "Starting Mosquitto monitor for %s:%s (interval: %ss)",
            self.config.broker_host,
            self.config.broker_port,
            self.config.interval_seconds,
        )

        if self.feed is not None:
            self.feed.start()

        self._timer_task = asyncio.create_task(
            self.scheduler.run(), name="mosquitto-health-scheduler"
        )

    def stop(self) -> None:
        """
        Halt the timer, close the $SYS subscription and drop in-flight work.

        Synchronous and idempotent; nothing is awaited. Results of cycles
        still in flight are discarded.
        """
        if self._stopped:
            return
        self._stopped = True

        self.scheduler.stop()
        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = None

        if self.feed is not None:
            self.feed.stop()
        self.dispatcher.cancel_verifications()
        if self._started:
            logger.info("Mosquitto monitor stopped")

    async def wait(self) -> None:
        """Wait until the health scheduler exits (after stop())."""
        task = self._timer_task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass  # stop() cancelled the scheduler

    async def force_health_check(self) -> CombinedBrokerRecord:
        """
        Run one out-of-band cycle and return its record.

        Waits for a cycle already in progress. On a stopped session the
        last stored record is returned.
        """
        record = await self.scheduler.run_cycle()
        return record if record is not None else self.current_record

    async def request_control(
        self,
        action: ControlAction | str,
        method: ControlMethod | str = ControlMethod.AUTO,
    ) -> ControlOutcome:
        return await self.dispatcher.dispatch(action, method)

    def status(self) -> dict[str, Any]:
        """Status document: record, config block and handshake diagnostics."""
        data = self.current_record.to_dict()
        data["config"] = self.config.summary()
        data["connectionHealth"] = self.connection_health.to_dict()
        return data


async def start_session(
    config: MonitorConfig,
    sink: MeasurementSinkProtocol | None = None,
    **components: Any,
) -> MonitorSession:
    """Build a session from config and start it."""
    session = MonitorSession(config, sink, **components)
    await session.start()
    return session


def stop_session(session: MonitorSession | None) -> None:
    """Stop a session. Safe on None and on an already-stopped session."""
    if session is not None:
        session.stop()


def get_current_record(session: MonitorSession) -> CombinedBrokerRecord:
    return session.current_record


async def request_control(
    session: MonitorSession | None,
    action: ControlAction | str,
    method: ControlMethod | str = ControlMethod.AUTO,
) -> ControlOutcome:
    """
    Run a control request on a session.

    Raises:
        ControlNotConfiguredError: If there is no session
        ControlMethodUnsupportedError: If the action or method is not usable
    """
    if session is None:
        raise ControlNotConfiguredError()
    return await session.request_control(action, method)


async def force_health_check(session: MonitorSession) -> CombinedBrokerRecord:
    return await session.force_health_check()
