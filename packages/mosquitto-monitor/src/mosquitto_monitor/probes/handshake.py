"""
MQTT handshake probe.

Confirms the broker accepts MQTT sessions, independent of whether the TCP
port is open: a CONNACK must arrive before the timeout. Each check uses a
fresh, disposable client id so it never collides with the long-lived $SYS
subscription, and never reconnects.
"""

import asyncio
import logging
import uuid
from typing import Any, Callable

import aiomqtt

from mosquitto_monitor.types import ConnectionHealth, utcnow

logger = logging.getLogger(__name__)

DEFAULT_HANDSHAKE_TIMEOUT_MS = 5000
DEFAULT_GRACE_MS = 1000

ClientFactory = Callable[..., Any]


class HandshakeProbe:
    """
    Opens and immediately closes an MQTT session.

    Besides the boolean result, every check replaces the `health` record
    (connected flag, timestamps, last error) for diagnostics.

    The result resolves exactly once per check: once the timeout has fired
    the check has returned False, and a CONNACK arriving later cannot turn
    it into a success or mark the health record connected. A connection
    that was never acknowledged is closed before the check returns.

    Attributes:
        host: Broker hostname
        port: Broker port
        source_label: Prefix for the disposable client id
    """

    def __init__(
        self,
        host: str,
        port: int,
        source_label: str = "mosquitto-monitor",
        timeout_ms: int = DEFAULT_HANDSHAKE_TIMEOUT_MS,
        grace_ms: int = DEFAULT_GRACE_MS,
        client_factory: ClientFactory = aiomqtt.Client,
    ) -> None:
        self.host = host
        self.port = port
        self.source_label = source_label
        self.timeout = timeout_ms / 1000
        self.grace = grace_ms / 1000
        self._client_factory = client_factory
        self._health = ConnectionHealth()

    @property
    def health(self) -> ConnectionHealth:
        """Diagnostics from the most recent check."""
        return self._health

    def _identifier(self) -> str:
        return f"{self.source_label}-health-check-{uuid.uuid4().hex[:12]}"

    async def check(self) -> bool:
        """
        Run one connect/acknowledge exchange.

        The client enforces `timeout` on the CONNACK wait itself; the outer
        guard adds `grace` on top so a client that never gives up still
        resolves.

        Returns:
            True only if the broker acknowledged the connection before the
            timeout; False on any connect error or timeout.
        """
        checked_at = utcnow()
        client = self._client_factory(
            hostname=self.host,
            port=self.port,
            identifier=self._identifier(),
            timeout=self.timeout,
            clean_session=True,
        )

        try:
            await asyncio.wait_for(self._connect(client), timeout=self.timeout + self.grace)
        except asyncio.TimeoutError:
            error = f"MQTT connect timed out after {self.timeout:g}s"
            self._health = ConnectionHealth(
                connected=False, last_checked_at=checked_at, error=error
            )
            logger.debug("Handshake with %s:%s failed: %s", self.host, self.port, error)
            return False
        except (aiomqtt.MqttError, OSError) as e:
            self._health = ConnectionHealth(
                connected=False, last_checked_at=checked_at, error=str(e)
            )
            logger.debug("Handshake with %s:%s failed: %s", self.host, self.port, e)
            return False

        self._health = ConnectionHealth(
            connected=True, last_checked_at=checked_at, connected_at=utcnow()
        )
        return True

    @staticmethod
    async def _connect(client: Any) -> None:
        # Entering waits for CONNACK; leaving disconnects
        entered = False
        try:
            await client.__aenter__()
            entered = True
        finally:
            if not entered:
                _abandon(client)
        await client.__aexit__(None, None, None)


def _abandon(client: Any) -> None:
    """
    Close the socket of a client whose connect failed or was cancelled.

    aiomqtt resets its own state when the CONNACK wait fails but leaves the
    paho socket open, and a cancelled connect never reaches __aexit__.
    Queuing a DISCONNECT makes paho close the socket once it is written.
    """
    paho = getattr(client, "_client", None)
    if paho is None or paho.socket() is None:
        return
    paho.disconnect()
    logger.debug("Closed unacknowledged MQTT connection")
