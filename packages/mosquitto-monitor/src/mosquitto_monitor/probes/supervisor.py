"""Best-effort systemd activation probe."""

import logging

from mosquitto_monitor.supervisor.systemctl import SystemctlClient

logger = logging.getLogger(__name__)


class SupervisorProbe:
    """
    Asks systemd whether the broker unit is active.

    Optional and best-effort: a missing systemctl, permission problems,
    an unknown unit or a timeout all yield False without raising.
    """

    def __init__(
        self,
        service_name: str,
        client: SystemctlClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.service_name = service_name
        self.timeout = timeout
        self._client = client or SystemctlClient()

    async def check(self) -> bool:
        """
        Query `systemctl is-active`.

        Returns:
            True iff systemd reports the unit as "active".
        """
        try:
            return await self._client.is_active(self.service_name, timeout=self.timeout)
        except (OSError, TimeoutError, ValueError) as e:
            logger.debug("systemd query for %s failed: %s", self.service_name, e)
            return False
