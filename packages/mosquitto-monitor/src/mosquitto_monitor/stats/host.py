"""Host-side broker statistics: established connections and log size."""

import asyncio
import logging
from pathlib import Path

from mosquitto_monitor.types import HostStats

logger = logging.getLogger(__name__)


class HostStatsCollector:
    """
    Collects statistics from the broker host rather than the broker.

    - connection_count: established TCP connections on the broker port,
      counted from `ss -Htn state established` (argument array, no shell)
    - log_size_bytes: size of the broker log file, if it exists

    Both are best-effort: failures yield 0 / None and are logged at debug.
    """

    def __init__(self, port: int, log_path: Path, timeout: float = 5.0) -> None:
        self.port = port
        self.log_path = Path(log_path)
        self.timeout = timeout

    async def collect(self) -> HostStats:
        connection_count = await self.count_connections()
        log_size = self.log_size()
        logger.debug("Connection count: %d, log size: %s", connection_count, log_size)
        return HostStats(connection_count=connection_count, log_size_bytes=log_size)

    async def count_connections(self) -> int:
        """Count established connections whose local port is the broker port."""
        try:
            proc = await asyncio.create_subprocess_exec(
                "ss",
                "-Htn",
                "state",
                "established",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug("Could not run ss: %s", e)
            return 0

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.debug("ss timed out after %ss", self.timeout)
            return 0

        if proc.returncode != 0:
            return 0
        return count_established(stdout.decode("utf-8", errors="replace"), self.port)

    def log_size(self) -> int | None:
        """Size of the broker log in bytes, None if missing or unreadable."""
        try:
            return self.log_path.stat().st_size
        except FileNotFoundError:
            logger.debug("Log file not found: %s", self.log_path)
        except OSError as e:
            logger.debug("Could not access log file: %s", e)
        return None


def count_established(ss_output: str, port: int) -> int:
    """
    Count `ss` lines whose local address ends in the given port.

    With a state filter ss omits the State column, so the local address is
    the first field containing a colon (after Recv-Q and Send-Q).

    Args:
        ss_output: Output of `ss -Htn state established`
        port: Broker port

    Returns:
        Number of matching connections.
    """
    suffix = str(port)
    count = 0
    for line in ss_output.splitlines():
        local = next((field for field in line.split() if ":" in field), None)
        if local is not None and local.rsplit(":", 1)[1] == suffix:
            count += 1
    return count
