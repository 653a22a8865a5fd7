"""
StatusReconciler: merges probe results and $SYS statistics into one record.

Merge rules for one cycle:
1. running = handshake_ok OR port_open
2. reachable = port_open
3. connection_method: protocol if the handshake succeeded, else supervisor
   if systemd reports active, else port
4. active_state: "active" if systemd reports active, else "connected" if
   the handshake succeeded, else "inactive"
5. uptime comes from the $SYS snapshot only, never measured here
6. a change of `running` against the previous cycle is a transition
7. an absent or empty snapshot leaves derived_stats as None
8. a failed cycle produces running=False, reachable=False with the error
"""

import logging
from collections.abc import Mapping
from datetime import datetime

from mosquitto_monitor.exceptions import ReconciliationError
from mosquitto_monitor.stats import topics
from mosquitto_monitor.types import (
    BrokerStatus,
    CombinedBrokerRecord,
    ConnectionMethod,
    DerivedStats,
    HostStats,
    ProbeResult,
    StatsSnapshot,
    StatusTransition,
    utcnow,
)

logger = logging.getLogger(__name__)


class StatusReconciler:
    """
    Builds CombinedBrokerRecord instances and tracks running-state transitions.

    One reconciler belongs to one monitoring session; it remembers only the
    previous cycle's `running` flag.

    Attributes:
        last_transition: Transition detected by the most recent call, or None
    """

    def __init__(self) -> None:
        self._previous_running: bool | None = None
        self.last_transition: StatusTransition | None = None

    def reconcile(
        self,
        probe: ProbeResult,
        snapshot: StatsSnapshot | None = None,
        host: HostStats | None = None,
        now: datetime | None = None,
    ) -> CombinedBrokerRecord:
        """
        Merge one cycle's signals into a record.

        Args:
            probe: Probe results of this cycle
            snapshot: $SYS snapshot, or None when not pulled
            host: Host-side statistics, or None when not collected
            now: Record timestamp (defaults to the current time)

        Returns:
            A new CombinedBrokerRecord.

        Raises:
            ReconciliationError: If the inputs have the wrong shape
        """
        if not isinstance(probe, ProbeResult):
            raise ReconciliationError(
                f"Expected ProbeResult, got {type(probe).__name__}"
            )
        if snapshot is not None and not isinstance(snapshot, Mapping):
            raise ReconciliationError(
                f"Expected stats mapping, got {type(snapshot).__name__}"
            )

        running = probe.handshake_ok or probe.port_open

        if snapshot:
            derived = extract_derived_stats(snapshot)
            uptime = _uptime(snapshot)
        else:
            derived = None
            uptime = None
            logger.debug("No $SYS statistics available for this cycle")

        status = BrokerStatus(
            running=running,
            reachable=probe.port_open,
            last_checked_at=probe.checked_at,
            connection_method=select_connection_method(probe),
            uptime_seconds=uptime,
            active_state=select_active_state(probe),
        )

        self._note_transition(running, probe.checked_at)

        return CombinedBrokerRecord(
            status=status,
            last_updated_at=now or utcnow(),
            derived_stats=derived,
            connection_count=host.connection_count if host else 0,
            approximate_log_size_bytes=host.log_size_bytes if host else None,
        )

    def failed(self, error: str, checked_at: datetime) -> CombinedBrokerRecord:
        """
        Record for a cycle that raised.

        Never carries over anything from earlier cycles: the broker is
        reported as not running and not reachable, with the error text.
        """
        status = BrokerStatus(
            running=False,
            reachable=False,
            last_checked_at=checked_at,
            error=error,
        )
        self._note_transition(False, checked_at)
        return CombinedBrokerRecord(status=status, last_updated_at=utcnow())

    def _note_transition(self, running: bool, at: datetime) -> None:
        previous = self._previous_running
        self._previous_running = running

        if previous is None or previous == running:
            self.last_transition = None
            return

        self.last_transition = StatusTransition(
            previous_running=previous, running=running, at=at
        )
        logger.info("Mosquitto broker %s", self.last_transition.event)


def select_connection_method(probe: ProbeResult) -> ConnectionMethod:
    """Strongest positive signal, in priority order protocol > supervisor > port."""
    if probe.handshake_ok:
        return ConnectionMethod.PROTOCOL
    if probe.supervisor_active:
        return ConnectionMethod.SUPERVISOR
    return ConnectionMethod.PORT


def select_active_state(probe: ProbeResult) -> str:
    if probe.supervisor_active:
        return "active"
    if probe.handshake_ok:
        return "connected"
    return "inactive"


def extract_derived_stats(snapshot: StatsSnapshot) -> DerivedStats:
    """
    Build DerivedStats from a $SYS snapshot.

    Missing metrics default to 0 ("unknown" for the version).
    """
    return DerivedStats(
        uptime=float(_number(snapshot, topics.UPTIME)),
        version=str(snapshot.get(topics.VERSION) or "unknown"),
        clients_connected=int(_number(snapshot, topics.CLIENTS_CONNECTED)),
        clients_total=int(_number(snapshot, topics.CLIENTS_TOTAL)),
        messages_received=int(_number(snapshot, topics.MESSAGES_RECEIVED)),
        messages_sent=int(_number(snapshot, topics.MESSAGES_SENT)),
        bytes_received=int(_number(snapshot, topics.BYTES_RECEIVED)),
        bytes_sent=int(_number(snapshot, topics.BYTES_SENT)),
        subscriptions_count=int(_number(snapshot, topics.SUBSCRIPTIONS_COUNT)),
        retained_messages=int(_number(snapshot, topics.RETAINED_MESSAGES_COUNT)),
        stored_messages=int(_number(snapshot, topics.STORED_MESSAGES_COUNT)),
        publish_dropped=int(_number(snapshot, topics.PUBLISH_DROPPED)),
        publish_received=int(_number(snapshot, topics.PUBLISH_RECEIVED)),
    )


def _number(snapshot: StatsSnapshot, key: str) -> int | float:
    value = snapshot.get(key)
    # bool is an int subclass; never treat it as a counter
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return 0


def _uptime(snapshot: StatsSnapshot) -> float | None:
    if topics.UPTIME not in snapshot:
        return None
    return float(_number(snapshot, topics.UPTIME))
