"""Downstream publishing of reconciled broker status."""

from mosquitto_monitor.publish.publisher import StatusPublisher, build_measurements
from mosquitto_monitor.publish.sinks import (
    CollectingSink,
    ConsoleSink,
    DeltaHttpSink,
    to_delta,
)

__all__ = [
    "CollectingSink",
    "ConsoleSink",
    "DeltaHttpSink",
    "StatusPublisher",
    "build_measurements",
    "to_delta",
]
