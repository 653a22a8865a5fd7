"""
Mosquitto $SYS topic table and value coercion.

Every metric the feed subscribes to is listed here together with the kind
its payload is coerced to. The kind is resolved from the topic name once,
when the feed is set up, not per message.

Coercion rules:
- counting/volume topics (clients, counts, received, sent, dropped) become
  integers, 0 when the payload has no leading integer
- the uptime topic becomes a float, 0.0 when unparseable
  (Mosquitto publishes "12345 seconds")
- everything else (e.g., the version string) is kept as text
"""

import re
from enum import Enum

from mosquitto_monitor.types import MetricValue

UPTIME = "$SYS/broker/uptime"
VERSION = "$SYS/broker/version"
CLIENTS_CONNECTED = "$SYS/broker/clients/connected"
CLIENTS_TOTAL = "$SYS/broker/clients/total"
MESSAGES_RECEIVED = "$SYS/broker/messages/received"
MESSAGES_SENT = "$SYS/broker/messages/sent"
BYTES_RECEIVED = "$SYS/broker/bytes/received"
BYTES_SENT = "$SYS/broker/bytes/sent"
SUBSCRIPTIONS_COUNT = "$SYS/broker/subscriptions/count"
RETAINED_MESSAGES_COUNT = "$SYS/broker/retained messages/count"
STORED_MESSAGES_COUNT = "$SYS/broker/stored messages/count"
PUBLISH_DROPPED = "$SYS/broker/publish/dropped"
PUBLISH_RECEIVED = "$SYS/broker/publish/received"

SYS_TOPICS: tuple[str, ...] = (
    UPTIME,
    VERSION,
    CLIENTS_CONNECTED,
    CLIENTS_TOTAL,
    MESSAGES_RECEIVED,
    MESSAGES_SENT,
    BYTES_RECEIVED,
    BYTES_SENT,
    SUBSCRIPTIONS_COUNT,
    RETAINED_MESSAGES_COUNT,
    STORED_MESSAGES_COUNT,
    PUBLISH_DROPPED,
    PUBLISH_RECEIVED,
)

_COUNTING_MARKERS = ("/count", "/received", "/sent", "/dropped", "/clients/")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class MetricKind(Enum):
    """Type a $SYS payload is coerced to."""

    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"


def classify_topic(topic: str) -> MetricKind:
    """
    Determine the metric kind for a topic name.

    Args:
        topic: Full $SYS topic (e.g., "$SYS/broker/clients/connected")

    Returns:
        INTEGER for counting/volume topics, FLOAT for uptime, TEXT otherwise.
    """
    if any(marker in topic for marker in _COUNTING_MARKERS):
        return MetricKind.INTEGER
    if "/uptime" in topic:
        return MetricKind.FLOAT
    return MetricKind.TEXT


def coerce(kind: MetricKind, raw: str) -> MetricValue:
    """
    Convert a raw payload to the value stored in the snapshot.

    Parsing takes the leading number and ignores trailing text, so
    "12345 seconds" is 12345.0 and "42" is 42.

    Args:
        kind: Kind resolved for the topic
        raw: Decoded payload text

    Returns:
        int, float or the raw string depending on kind.
    """
    if kind is MetricKind.INTEGER:
        match = _LEADING_INT.match(raw)
        return int(match.group(1)) if match else 0
    if kind is MetricKind.FLOAT:
        match = _LEADING_FLOAT.match(raw)
        return float(match.group(1)) if match else 0.0
    return raw


def build_kind_table(topics: tuple[str, ...] = SYS_TOPICS) -> dict[str, MetricKind]:
    """Resolve the kind of every subscribed topic once."""
    return {topic: classify_topic(topic) for topic in topics}
