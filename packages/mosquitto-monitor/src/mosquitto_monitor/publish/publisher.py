"""
StatusPublisher: turns a CombinedBrokerRecord into measurements.

Always emitted: status.running, status.reachable, status.lastCheck and
connections.count. Uptime, log size and each $SYS statistic are emitted
only when the record carries them.

Publishing is fire-and-forget: sink failures are logged, never raised, and
publish_in_background() lets the health cycle move on without waiting.
"""

import asyncio
import logging

from mosquitto_monitor.protocols import MeasurementSinkProtocol
from mosquitto_monitor.types import CombinedBrokerRecord, Measurement

logger = logging.getLogger(__name__)

BASE_PATH = "system.mqtt.broker"

# (DerivedStats attribute, path suffix, unit, description)
_STATS_FIELDS: tuple[tuple[str, str, str | None, str], ...] = (
    ("clients_connected", "clientsConnected", None, "Connected clients"),
    ("clients_total", "clientsTotal", None, "Total clients"),
    ("messages_received", "messagesReceived", None, "Messages received"),
    ("messages_sent", "messagesSent", None, "Messages sent"),
    ("bytes_received", "bytesReceived", "B", "Bytes received"),
    ("bytes_sent", "bytesSent", "B", "Bytes sent"),
    ("subscriptions_count", "subscriptionsCount", None, "Active subscriptions"),
    ("retained_messages", "retainedMessages", None, "Retained messages"),
    ("stored_messages", "storedMessages", None, "Stored messages"),
    ("publish_dropped", "publishDropped", None, "Dropped publish messages"),
    ("publish_received", "publishReceived", None, "Received publish messages"),
    ("version", "version", None, "Broker version"),
)


def build_measurements(record: CombinedBrokerRecord) -> list[Measurement]:
    """
    Convert a record into an ordered list of measurements.

    All measurements share the cycle timestamp (status.last_checked_at).
    """
    status = record.status
    ts = status.last_checked_at

    measurements = [
        Measurement(f"{BASE_PATH}.status.running", status.running, ts,
                    description="Broker running status"),
        Measurement(f"{BASE_PATH}.status.reachable", status.reachable, ts,
                    description="Broker reachable status"),
        Measurement(f"{BASE_PATH}.status.lastCheck", status.last_checked_at.isoformat(), ts,
                    description="Last status check"),
        Measurement(f"{BASE_PATH}.connections.count", record.connection_count, ts,
                    description="Connection count"),
    ]

    if status.uptime_seconds is not None:
        measurements.append(
            Measurement(f"{BASE_PATH}.status.uptime", status.uptime_seconds, ts,
                        unit="s", description="Broker uptime")
        )

    if record.approximate_log_size_bytes is not None:
        measurements.append(
            Measurement(f"{BASE_PATH}.status.logSize", record.approximate_log_size_bytes, ts,
                        unit="B", description="Broker log file size")
        )

    if record.derived_stats is not None:
        stats = record.derived_stats
        for attr, suffix, unit, description in _STATS_FIELDS:
            measurements.append(
                Measurement(f"{BASE_PATH}.stats.{suffix}", getattr(stats, attr), ts,
                            unit=unit, description=description)
            )

    return measurements


def summarize(record: CombinedBrokerRecord) -> str:
    """One-line status summary, e.g. "Mosquitto: Running (3 connections)"."""
    status_text = "Running" if record.status.running else "Stopped"
    connections = (
        f" ({record.connection_count} connections)" if record.connection_count > 0 else ""
    )
    return f"Mosquitto: {status_text}{connections}"


class StatusPublisher:
    """
    Emits measurements for each reconciled record to a sink.

    Example:
        publisher = StatusPublisher(ConsoleSink())
        await publisher.publish(record)               # wait for delivery
        publisher.publish_in_background(record)       # fire-and-forget
    """

    def __init__(self, sink: MeasurementSinkProtocol | None = None) -> None:
        self.sink = sink
        self._pending: set[asyncio.Task[int]] = set()

    async def publish(self, record: CombinedBrokerRecord) -> int:
        """
        Deliver all measurements for a record.

        Returns:
            Number of measurements the sink accepted. Never raises for
            sink failures; each failure is logged and skipped.
        """
        delivered = 0
        if self.sink is not None:
            for measurement in build_measurements(record):
                try:
                    await self.sink.publish(measurement)
                    delivered += 1
                except Exception as e:
                    logger.error("Error publishing %s: %s", measurement.path, e)

        logger.info(summarize(record))
        return delivered

    def publish_in_background(self, record: CombinedBrokerRecord) -> asyncio.Task[int]:
        """Schedule publish() without awaiting it."""
        task = asyncio.create_task(self.publish(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
