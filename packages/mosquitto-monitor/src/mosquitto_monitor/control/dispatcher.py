"""
ControlDispatcher: start/stop/restart/reload requests for the broker.

Two strategies:
- supervisor: `systemctl <action> <service>`
- protocol: broker-native administrative command (not available for
  Mosquitto without an admin plugin; always reports failure)

Whatever the outcome, exactly one verification health cycle is scheduled
`verification_delay_s` seconds later. The verification result updates the
session's record; it is never folded into the outcome already returned.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from mosquitto_monitor.config import MonitorConfig
from mosquitto_monitor.exceptions import (
    ControlMethodUnsupportedError,
    ControlNotConfiguredError,
)
from mosquitto_monitor.supervisor.systemctl import SystemctlClient, classify_failure
from mosquitto_monitor.types import ControlAction, ControlMethod, ControlOutcome

logger = logging.getLogger(__name__)

PROTOCOL_NOT_IMPLEMENTED = (
    "MQTT control not implemented - administrative plugin/extension required"
)

VerifyCallback = Callable[[], Awaitable[Any]]

E = TypeVar("E", bound=Enum)


class ControlDispatcher:
    """
    Executes control requests through the resolved strategy.

    Example:
        dispatcher = ControlDispatcher(config, verify=scheduler.run_cycle)
        outcome = await dispatcher.dispatch("restart")
        if not outcome.succeeded:
            print(outcome.error)
    """

    def __init__(
        self,
        config: MonitorConfig | None,
        systemctl: SystemctlClient | None = None,
        verify: VerifyCallback | None = None,
    ) -> None:
        self.config = config
        self.systemctl = systemctl or SystemctlClient()
        self.verify = verify
        self._verifications: set[asyncio.Task[None]] = set()

    async def dispatch(
        self,
        action: ControlAction | str,
        method: ControlMethod | str = ControlMethod.AUTO,
    ) -> ControlOutcome:
        """
        Run one control request.

        Args:
            action: start, stop, restart or reload
            method: auto, supervisor or protocol

        Returns:
            ControlOutcome. Execution failures are reported here, not raised.

        Raises:
            ControlNotConfiguredError: If there is no session configuration
            ControlMethodUnsupportedError: If the action or method is unknown,
                or supervisor control is requested while it is disabled
        """
        config = self._require_config()
        control_action = _parse(ControlAction, action)
        strategy = self.resolve(_parse(ControlMethod, method))

        logger.info(
            "Mosquitto control request: %s via %s", control_action.value, strategy.value
        )

        if strategy is ControlMethod.SUPERVISOR:
            outcome = await self._via_supervisor(config, control_action)
        else:
            outcome = self._via_protocol(control_action)

        if outcome.succeeded:
            logger.info(outcome.message)
        else:
            logger.error("Control request failed: %s", outcome.error)

        self._schedule_verification(config.verification_delay_s)
        return outcome

    def resolve(self, method: ControlMethod) -> ControlMethod:
        """
        Map a requested method to the strategy that will run.

        An explicit supervisor request needs only system control enabled;
        `use_systemd_control` decides what auto resolves to.
        """
        config = self._require_config()

        if method is ControlMethod.SUPERVISOR:
            if not config.enable_system_control:
                raise ControlMethodUnsupportedError(
                    method.value, "system control is disabled"
                )
            return ControlMethod.SUPERVISOR
        if method is ControlMethod.AUTO and config.supervisor_control_enabled:
            return ControlMethod.SUPERVISOR
        return ControlMethod.PROTOCOL

    def cancel_verifications(self) -> None:
        for task in list(self._verifications):
            task.cancel()
        self._verifications.clear()

    @property
    def pending_verifications(self) -> int:
        return len(self._verifications)

    async def wait_for_verification(self) -> None:
        """Wait until every scheduled verification cycle has finished."""
        if self._verifications:
            await asyncio.gather(*self._verifications, return_exceptions=True)

    def _require_config(self) -> MonitorConfig:
        if self.config is None:
            raise ControlNotConfiguredError()
        return self.config

    async def _via_supervisor(
        self, config: MonitorConfig, action: ControlAction
    ) -> ControlOutcome:
        try:
            result = await self.systemctl.run(
                action,
                config.service_name,
                timeout=config.control_timeout_s,
            )
        except (OSError, TimeoutError, ValueError) as e:
            error = classify_failure(action, error=e)
            return ControlOutcome(
                succeeded=False,
                method_used=ControlMethod.SUPERVISOR,
                message=error,
                error=error,
            )

        if not result.ok:
            error = classify_failure(action, result=result)
            return ControlOutcome(
                succeeded=False,
                method_used=ControlMethod.SUPERVISOR,
                message=error,
                error=error,
            )

        return ControlOutcome(
            succeeded=True,
            method_used=ControlMethod.SUPERVISOR,
            message=f"Broker {action.past_tense} successfully via systemd",
        )

    @staticmethod
    def _via_protocol(action: ControlAction) -> ControlOutcome:
        logger.warning("MQTT %s requested, but MQTT control is not implemented", action.value)
        return ControlOutcome(
            succeeded=False,
            method_used=ControlMethod.PROTOCOL,
            message="MQTT control not implemented",
            error=PROTOCOL_NOT_IMPLEMENTED,
        )

    def _schedule_verification(self, delay: float) -> None:
        task = asyncio.create_task(self._verify_later(delay))
        self._verifications.add(task)
        task.add_done_callback(self._verifications.discard)

    async def _verify_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        logger.debug("Running verification health check")
        if self.verify is not None:
            await self.verify()


def _parse(kind: type[E], value: E | str) -> E:
    if isinstance(value, kind):
        return value
    try:
        return kind(str(value).lower())
    except ValueError:
        raise ControlMethodUnsupportedError(str(value)) from None
