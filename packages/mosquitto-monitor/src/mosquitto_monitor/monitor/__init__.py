"""Health cycle, status reconciliation and the monitoring session."""

from mosquitto_monitor.monitor.reconciler import StatusReconciler
from mosquitto_monitor.monitor.scheduler import HealthScheduler
from mosquitto_monitor.monitor.session import (
    MonitorSession,
    force_health_check,
    get_current_record,
    request_control,
    start_session,
    stop_session,
)

__all__ = [
    "HealthScheduler",
    "MonitorSession",
    "StatusReconciler",
    "force_health_check",
    "get_current_record",
    "request_control",
    "start_session",
    "stop_session",
]
