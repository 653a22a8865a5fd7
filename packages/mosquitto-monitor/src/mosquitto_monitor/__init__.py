"""
Mosquitto Monitor

Health monitoring, statistics aggregation and lifecycle control for a
Mosquitto MQTT broker:

- Probes: TCP port, MQTT handshake and systemd activation checks
- Stats: passive $SYS feed and host-side statistics
- Monitor: reconciliation, the periodic health cycle and the session API
- Control: systemd-backed start/stop/restart/reload with verification
- Publish: measurements to console, HTTP delta or in-memory sinks
"""

__version__ = "0.1.0"

# Re-export public types for convenient imports
from mosquitto_monitor.config import MonitorConfig
from mosquitto_monitor.exceptions import (
    ControlMethodUnsupportedError,
    ControlNotConfiguredError,
    FeedSubscriptionError,
    MonitorError,
    ReconciliationError,
)
from mosquitto_monitor.monitor import (
    MonitorSession,
    force_health_check,
    get_current_record,
    request_control,
    start_session,
    stop_session,
)
from mosquitto_monitor.types import (
    BrokerStatus,
    CombinedBrokerRecord,
    ConnectionMethod,
    ControlAction,
    ControlMethod,
    ControlOutcome,
    DerivedStats,
)

__all__ = [
    "__version__",
    # Configuration
    "MonitorConfig",
    # Session operations
    "MonitorSession",
    "start_session",
    "stop_session",
    "get_current_record",
    "request_control",
    "force_health_check",
    # Data types
    "BrokerStatus",
    "CombinedBrokerRecord",
    "ConnectionMethod",
    "ControlAction",
    "ControlMethod",
    "ControlOutcome",
    "DerivedStats",
    # Errors
    "MonitorError",
    "ControlNotConfiguredError",
    "ControlMethodUnsupportedError",
    "FeedSubscriptionError",
    "ReconciliationError",
]
