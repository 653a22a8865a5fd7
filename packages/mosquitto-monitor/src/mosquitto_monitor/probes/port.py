"""TCP reachability probe for the broker port."""

import asyncio
import logging

logger = logging.getLogger(__name__)

DEFAULT_PORT_TIMEOUT_MS = 3000


class PortProbe:
    """
    Checks that a TCP connection to host:port completes within a timeout.

    Opens one socket per check and closes it immediately. Every outcome
    (refused, unreachable, DNS failure, timeout) collapses to a boolean;
    check() never raises for network conditions.

    Example:
        probe = PortProbe("localhost", 1883)
        if await probe.check():
            print("port open")
    """

    def __init__(
        self,
        host: str,
        port: int,
        timeout_ms: int = DEFAULT_PORT_TIMEOUT_MS,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout_ms / 1000

    async def check(self) -> bool:
        """
        Attempt one TCP connection.

        Returns:
            True if the connection was established before the timeout,
            False on any connection error or timeout.
        """
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.debug("Port %s:%s timed out after %ss", self.host, self.port, self.timeout)
            return False
        except OSError as e:
            logger.debug("Port %s:%s closed: %s", self.host, self.port, e)
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass  # Peer reset during close; the connect itself succeeded
        return True
