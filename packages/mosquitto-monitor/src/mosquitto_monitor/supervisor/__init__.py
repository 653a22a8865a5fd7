"""systemd integration: service-name validation and systemctl commands."""

from mosquitto_monitor.supervisor.systemctl import (
    CommandResult,
    SystemctlClient,
    classify_failure,
)
from mosquitto_monitor.supervisor.validation import ServiceNameValidator

__all__ = [
    "CommandResult",
    "ServiceNameValidator",
    "SystemctlClient",
    "classify_failure",
]
