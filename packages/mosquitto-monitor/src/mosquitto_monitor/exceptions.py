"""
Exception classes for the monitoring session and control surface.

Probe timeouts, probe connection errors and supervisor query failures have
no exception class here: probes collapse them to False and never raise.

Per project patterns:
- Inherit from a single base carrying a machine-readable code
- Store context data in attributes for error handling
- Include descriptive message with relevant details
"""


class MonitorError(Exception):
    """
    Base error for the broker monitor.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_CONFIGURED")
    """

    code = "MONITOR_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(message)


class ControlNotConfiguredError(MonitorError):
    """Raised when a control request arrives without session configuration."""

    code = "NOT_CONFIGURED"

    def __init__(self, message: str = "Monitor session not configured") -> None:
        super().__init__(message)


class ControlMethodUnsupportedError(MonitorError):
    """
    Raised when a control request names an unknown action or method, or
    asks for a strategy that is switched off.

    Attributes:
        method: The requested method or action value
    """

    code = "UNSUPPORTED_METHOD"

    def __init__(self, method: str, reason: str | None = None) -> None:
        self.method = method
        message = f"Unsupported control method: {method}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class FeedSubscriptionError(MonitorError):
    """
    Raised inside the stats feed when subscribing to $SYS topics fails.

    Caught and logged by the feed; the feed drops back to Disconnected.
    """

    code = "SUBSCRIPTION_FAILED"


class ReconciliationError(MonitorError):
    """
    Raised when the reconciler receives inconsistent input.

    Caught at the health cycle boundary, which degrades the record to an
    explicit failed state.
    """

    code = "RECONCILIATION_FAILED"
