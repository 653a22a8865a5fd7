"""
Passive $SYS statistics feed.

StatsFeed keeps one long-lived MQTT session subscribed to the broker's
self-metrics topics and stores the latest value per topic.

State machine:
    DISCONNECTED -> CONNECTING -> SUBSCRIBED -> (RECEIVING <-> IDLE)
    CONNECTING -> DISCONNECTED on error

The snapshot is owned by the feed. Each message produces a new immutable
mapping that replaces the previous one, so snapshot() is a non-blocking
point-in-time read and readers never see a half-applied update.
"""

import asyncio
import logging
import time
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable

import aiomqtt

from mosquitto_monitor.exceptions import FeedSubscriptionError
from mosquitto_monitor.stats.retry import ReconnectPolicy
from mosquitto_monitor.stats.topics import SYS_TOPICS, build_kind_table, coerce
from mosquitto_monitor.types import StatsSnapshot, utcnow

logger = logging.getLogger(__name__)

_EMPTY: StatsSnapshot = MappingProxyType({})


class FeedState(Enum):
    """Lifecycle state of the stats feed."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RECEIVING = "receiving"
    IDLE = "idle"


class StatsFeed:
    """
    Long-lived subscription to Mosquitto's $SYS topics.

    Runs as an independent asyncio task (start()/stop()). Out-of-order or
    duplicate deliveries are accepted as they come: the last write wins.

    Example:
        feed = StatsFeed("localhost", 1883)
        feed.start()
        ...
        uptime = feed.snapshot().get("$SYS/broker/uptime")
        feed.stop()
    """

    def __init__(
        self,
        host: str,
        port: int,
        source_label: str = "mosquitto-monitor",
        topics: tuple[str, ...] = SYS_TOPICS,
        reconnect: ReconnectPolicy | None = None,
        idle_after: float = 60.0,
        client_factory: Callable[..., Any] = aiomqtt.Client,
    ) -> None:
        """
        Initialize the feed. Nothing connects until start().

        Args:
            host: Broker hostname
            port: Broker port
            source_label: Prefix of the feed's MQTT client id
            topics: $SYS topics to subscribe to
            reconnect: Reconnection policy, None for the default backoff
            idle_after: Seconds without messages before RECEIVING reads as IDLE
            client_factory: Callable building an aiomqtt.Client-compatible client
        """
        self.host = host
        self.port = port
        self.identifier = f"{source_label}-sys-monitor"
        self.idle_after = idle_after
        self._kinds = build_kind_table(topics)
        self._reconnect = reconnect or ReconnectPolicy()
        self._client_factory = client_factory

        self._snapshot: StatsSnapshot = _EMPTY
        self._phase = FeedState.DISCONNECTED
        self._last_message_monotonic: float | None = None
        self.last_updated_at: datetime | None = None

        self._attempt = 0
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def state(self) -> FeedState:
        if (
            self._phase is FeedState.RECEIVING
            and self._last_message_monotonic is not None
            and time.monotonic() - self._last_message_monotonic > self.idle_after
        ):
            return FeedState.IDLE
        return self._phase

    @property
    def topics(self) -> list[str]:
        return list(self._kinds)

    def snapshot(self) -> StatsSnapshot:
        """Return the current point-in-time snapshot (never blocks)."""
        return self._snapshot

    # -------------------------------------------------------------------------
    # Write side
    # -------------------------------------------------------------------------

    def ingest(self, topic: str, payload: Any) -> None:
        """
        Apply one inbound message to the snapshot.

        Args:
            topic: Topic the message arrived on
            payload: Raw payload (bytes, str, number or None)
        """
        kind = self._kinds.get(topic)
        if kind is None:
            logger.debug("Ignoring message on unexpected topic %s", topic)
            return

        raw = _decode(payload)
        value = coerce(kind, raw)
        logger.debug("$SYS message received: %s = %s (parsed: %r)", topic, raw, value)

        updated = dict(self._snapshot)
        updated[topic] = value
        self._snapshot = MappingProxyType(updated)

        self._phase = FeedState.RECEIVING
        self._last_message_monotonic = time.monotonic()
        self.last_updated_at = utcnow()

    def _reset(self) -> None:
        self._snapshot = _EMPTY
        self._phase = FeedState.DISCONNECTED
        self._last_message_monotonic = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> asyncio.Task[None]:
        """Start the subscription loop as a background task."""
        if self._task is not None and not self._task.done():
            return self._task
        self._stop.clear()
        self._task = asyncio.create_task(self.run(), name=f"stats-feed-{self.identifier}")
        return self._task

    def stop(self) -> None:
        """
        Halt the feed and drop the snapshot.

        Synchronous and idempotent: cancels the subscription task (closing
        the MQTT session as it unwinds) without waiting for it.
        """
        self._stop.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._reset()

    async def run(self) -> None:
        """
        Subscription loop; returns after stop() or when reconnecting gives up.

        Each session that ends (broker closed the connection, network error,
        subscription failure) clears the snapshot. Reconnection follows the
        ReconnectPolicy; the failure counter resets after every successful
        subscription.
        """
        self._attempt = 0
        logger.debug("Initializing $SYS topics monitoring for %s:%s", self.host, self.port)

        while not self._stop.is_set():
            self._phase = FeedState.CONNECTING
            try:
                await self._session()
                logger.debug("$SYS topics monitoring disconnected")
            except FeedSubscriptionError as e:
                logger.error("%s", e)
            except (aiomqtt.MqttError, OSError) as e:
                logger.error("$SYS topics monitoring error: %s", e)
            finally:
                self._reset()

            if self._stop.is_set() or not self._reconnect.should_retry(self._attempt):
                break

            delay = self._reconnect.delay(self._attempt)
            self._attempt += 1
            logger.info("Reconnecting $SYS feed in %.1fs (attempt %d)", delay, self._attempt)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass  # Backoff elapsed, reconnect

        logger.debug("$SYS feed loop finished")

    async def _session(self) -> None:
        client = self._client_factory(
            hostname=self.host,
            port=self.port,
            identifier=self.identifier,
            clean_session=True,
        )
        async with client:
            logger.debug("Connected to $SYS topics for statistics monitoring")
            try:
                await client.subscribe([(topic, 0) for topic in self._kinds])
            except aiomqtt.MqttError as e:
                raise FeedSubscriptionError(f"Failed to subscribe to $SYS topics: {e}") from e

            self._phase = FeedState.SUBSCRIBED
            self._attempt = 0
            logger.debug("Subscribed to %d $SYS topics", len(self._kinds))

            async for message in client.messages:
                self.ingest(message.topic.value, message.payload)


def _decode(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, (bytes, bytearray)):
        return payload.decode("utf-8", errors="replace")
    return str(payload)
