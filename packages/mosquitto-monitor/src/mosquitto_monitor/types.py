"""
Data types for broker status, statistics and control outcomes.

All record types are frozen dataclasses. A health cycle never patches a
record field by field; it builds a new one and swaps the reference, so a
concurrent reader always sees a complete record.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

MetricValue = int | float | str
"""Value of a single broker self-metric: integer counter, float gauge or text."""

StatsSnapshot = Mapping[str, MetricValue]
"""Latest value per $SYS topic."""

MeasurementValue = bool | int | float | str


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class ConnectionMethod(Enum):
    """Signal that established the broker status in a cycle."""

    PROTOCOL = "protocol"
    SUPERVISOR = "supervisor"
    PORT = "port"


class ControlAction(Enum):
    """Lifecycle action that can be requested for the broker."""

    START = "start"
    STOP = "stop"
    RESTART = "restart"
    RELOAD = "reload"

    @property
    def past_tense(self) -> str:
        return {
            ControlAction.START: "started",
            ControlAction.STOP: "stopped",
            ControlAction.RESTART: "restarted",
            ControlAction.RELOAD: "reloaded",
        }[self]


class ControlMethod(Enum):
    """How a control request is carried out."""

    AUTO = "auto"
    SUPERVISOR = "supervisor"
    PROTOCOL = "protocol"


@dataclass(frozen=True)
class BrokerStatus:
    """
    Reconciled liveness of the broker for one health cycle.

    Attributes:
        running: True iff the MQTT handshake or the port probe succeeded
            in the most recent cycle
        reachable: True iff the broker port accepted a TCP connection
        last_checked_at: When the cycle that produced this status started
        connection_method: Strongest signal that was positive
            (protocol > supervisor > port)
        pid: Broker process id, if known
        uptime_seconds: Broker-reported uptime from $SYS, if available
        active_state: "active" (systemd), "connected" (MQTT) or "inactive"
        error: Human-readable error when the cycle failed
    """

    running: bool
    reachable: bool
    last_checked_at: datetime
    connection_method: ConnectionMethod = ConnectionMethod.PROTOCOL
    pid: int | None = None
    uptime_seconds: float | None = None
    active_state: str | None = None
    error: str | None = None

    @classmethod
    def initial(cls, at: datetime | None = None) -> "BrokerStatus":
        """Unknown/not-running status used before the first cycle completes."""
        return cls(running=False, reachable=False, last_checked_at=at or utcnow())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "running": self.running,
            "reachable": self.reachable,
            "pid": self.pid,
            "uptime": self.uptime_seconds,
            "lastCheck": _iso(self.last_checked_at),
            "connectionMethod": self.connection_method.value,
        }
        if self.active_state is not None:
            data["activeState"] = self.active_state
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of the probes of one health cycle. Discarded after reconciling."""

    port_open: bool
    handshake_ok: bool
    supervisor_active: bool | None
    checked_at: datetime

    @property
    def running(self) -> bool:
        return self.handshake_ok or self.port_open


@dataclass(frozen=True)
class DerivedStats:
    """
    Broker statistics derived from the $SYS snapshot.

    Absent metrics default to zero (or "unknown" for the version) rather
    than being omitted.
    """

    uptime: float = 0.0
    version: str = "unknown"
    clients_connected: int = 0
    clients_total: int = 0
    messages_received: int = 0
    messages_sent: int = 0
    bytes_received: int = 0
    bytes_sent: int = 0
    subscriptions_count: int = 0
    retained_messages: int = 0
    stored_messages: int = 0
    publish_dropped: int = 0
    publish_received: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "uptime": self.uptime,
            "version": self.version,
            "clientsConnected": self.clients_connected,
            "clientsTotal": self.clients_total,
            "messagesReceived": self.messages_received,
            "messagesSent": self.messages_sent,
            "bytesReceived": self.bytes_received,
            "bytesSent": self.bytes_sent,
            "subscriptionsCount": self.subscriptions_count,
            "retainedMessages": self.retained_messages,
            "storedMessages": self.stored_messages,
            "publishDropped": self.publish_dropped,
            "publishReceived": self.publish_received,
        }


@dataclass(frozen=True)
class HostStats:
    """Statistics gathered on the broker host rather than from the broker."""

    connection_count: int = 0
    log_size_bytes: int | None = None


@dataclass(frozen=True)
class CombinedBrokerRecord:
    """
    Unit published downstream: status plus statistics for one cycle.

    Attributes:
        status: Reconciled broker status
        last_updated_at: When this record was built
        derived_stats: $SYS statistics, or None when no statistics were
            available (distinct from a present record full of zeros)
        connection_count: Established client connections on the broker port
        approximate_log_size_bytes: Size of the broker log file, if readable
    """

    status: BrokerStatus
    last_updated_at: datetime
    derived_stats: DerivedStats | None = None
    connection_count: int = 0
    approximate_log_size_bytes: int | None = None

    @classmethod
    def initial(cls) -> "CombinedBrokerRecord":
        now = utcnow()
        return cls(status=BrokerStatus.initial(now), last_updated_at=now)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.to_dict(),
            "connectionCount": self.connection_count,
            "logSize": self.approximate_log_size_bytes,
            "lastUpdated": _iso(self.last_updated_at),
        }
        if self.derived_stats is not None:
            data["sysStats"] = self.derived_stats.to_dict()
        return data


@dataclass(frozen=True)
class ControlOutcome:
    """Result of one control request. Not retained by the session."""

    succeeded: bool
    method_used: ControlMethod
    message: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.succeeded,
            "method": self.method_used.value,
            "message": self.message,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ConnectionHealth:
    """Diagnostics from the most recent MQTT handshake probe."""

    connected: bool = False
    last_checked_at: datetime | None = None
    connected_at: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "lastCheck": _iso(self.last_checked_at),
            "connectedAt": _iso(self.connected_at),
            "error": self.error,
        }


@dataclass(frozen=True)
class StatusTransition:
    """Change of the running flag between two consecutive cycles."""

    previous_running: bool
    running: bool
    at: datetime

    @property
    def event(self) -> str:
        return "started" if self.running else "stopped"


@dataclass(frozen=True)
class Measurement:
    """
    One timestamped value emitted to the measurement sink.

    Attributes:
        path: Dotted path (e.g., "system.mqtt.broker.status.running")
        value: Boolean, numeric or string value
        timestamp: Cycle timestamp the value belongs to
        unit: Optional unit (e.g., "s", "B")
        description: Optional human-readable description
    """

    path: str
    value: MeasurementValue
    timestamp: datetime
    unit: str | None = None
    description: str | None = None
