"""
Protocol definitions for the pieces a health cycle is assembled from.

The scheduler only depends on these protocols, so probes, the stats source
and the measurement sink can be swapped (for another broker, or for fakes
in tests) without touching the cycle logic.

Key protocols:
- ProbeProtocol: bounded, exception-free check returning a boolean
- StatsSourceProtocol: read-only access to the latest $SYS snapshot
- MeasurementSinkProtocol: downstream consumer of published measurements
"""

from typing import Protocol, runtime_checkable

from mosquitto_monitor.types import Measurement, StatsSnapshot


@runtime_checkable
class ProbeProtocol(Protocol):
    """
    Protocol for probes.

    A probe reduces a network or system condition to a boolean. It carries
    its own timeout and must always resolve: timeouts and errors become
    False, never an exception.
    """

    async def check(self) -> bool:
        """
        Run the probe once.

        Returns:
            True if the checked condition holds, False on failure or timeout.
        """
        ...


@runtime_checkable
class StatsSourceProtocol(Protocol):
    """
    Protocol for the broker statistics source.

    The source owns its snapshot exclusively; callers only receive
    point-in-time copies.
    """

    def snapshot(self) -> StatsSnapshot:
        """
        Return the current snapshot without blocking.

        Returns:
            Mapping of $SYS topic to its most recently received value.
            Empty when nothing has been received yet.
        """
        ...


@runtime_checkable
class MeasurementSinkProtocol(Protocol):
    """
    Protocol for downstream measurement consumers.

    Publishing is fire-and-forget from the monitor's point of view; the
    publisher logs failures and carries on. Sinks must be safe to call
    repeatedly with the same measurement.
    """

    async def publish(self, measurement: Measurement) -> None:
        """
        Deliver one measurement.

        Args:
            measurement: The timestamped value to deliver.
        """
        ...
