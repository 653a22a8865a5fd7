"""Async wrapper around systemctl.

Provides `systemctl is-active` queries and lifecycle commands
(start/stop/restart/reload) for the broker service.

All commands use asyncio.create_subprocess_exec with argument arrays;
a shell is never involved. Service names are validated before any
command is built.
"""

import asyncio
import logging
from dataclasses import dataclass

from mosquitto_monitor.supervisor.validation import ServiceNameValidator
from mosquitto_monitor.types import ControlAction

logger = logging.getLogger(__name__)

PERMISSION_HINT = "User may need sudo permissions for systemctl commands."

_PERMISSION_MARKERS = ("permission denied", "access denied", "authentication")


@dataclass
class CommandResult:
    """Captured result of one systemctl invocation.

    Attributes:
        returncode: Process exit code
        stdout: Decoded, stripped standard output
        stderr: Decoded, stripped standard error
    """

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class SystemctlClient:
    """Runs systemctl commands for a single broker service.

    Note:
        Requires systemd. Where systemctl is missing, calls raise
        FileNotFoundError; callers decide whether that is fatal.
    """

    BINARY = "systemctl"

    def __init__(self, validator: ServiceNameValidator | None = None):
        self._validator = validator or ServiceNameValidator()

    async def is_active(self, service_name: str, timeout: float = 5.0) -> bool:
        """Check whether systemd reports the service as active.

        Args:
            service_name: Unit name (e.g., 'mosquitto')
            timeout: Seconds before the query is abandoned

        Returns:
            True if `systemctl is-active` prints "active"

        Raises:
            ValueError: If the service name fails validation
            FileNotFoundError: If systemctl is not installed
            TimeoutError: If the query does not finish in time
        """
        result = await self._exec(["is-active", service_name], service_name, timeout)
        # is-active exits non-zero for anything but "active"; stdout carries the state
        return result.stdout == "active"

    async def run(
        self,
        action: ControlAction,
        service_name: str,
        timeout: float = 30.0,
    ) -> CommandResult:
        """Run `systemctl <action> <service>`.

        Args:
            action: Lifecycle action to perform
            service_name: Unit name to act on
            timeout: Seconds before the command is killed

        Returns:
            CommandResult with exit code and output

        Raises:
            ValueError: If the service name fails validation
            FileNotFoundError: If systemctl is not installed
            PermissionError: If systemctl cannot be executed
            TimeoutError: If the command does not finish in time
        """
        result = await self._exec([action.value, service_name], service_name, timeout)
        logger.debug(
            "Executed %s %s %s (exit %s)",
            self.BINARY,
            action.value,
            service_name,
            result.returncode,
        )
        if result.stderr:
            logger.debug("systemctl stderr: %s", result.stderr)
        return result

    async def _exec(
        self, args: list[str], service_name: str, timeout: float
    ) -> CommandResult:
        self._validator.validate(service_name)

        proc = await asyncio.create_subprocess_exec(
            self.BINARY,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise TimeoutError(
                f"{self.BINARY} {' '.join(args)} timed out after {timeout:g}s"
            ) from None

        return CommandResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace").strip(),
            stderr=stderr.decode("utf-8", errors="replace").strip(),
        )


def classify_failure(
    action: ControlAction,
    result: CommandResult | None = None,
    error: BaseException | None = None,
) -> str:
    """Build the user-facing error text for a failed systemctl command.

    Args:
        action: Action that was attempted
        result: Completed command result, if the command ran
        error: Exception raised instead of a result, if any

    Returns:
        Message naming the cause (command not found, stderr text, exit code
        or timeout), with a sudo hint appended for permission problems.
    """
    message = f"Failed to {action.value} via systemd: "

    if isinstance(error, FileNotFoundError):
        message += "systemctl command not found"
    elif isinstance(error, PermissionError):
        message += f"permission denied executing systemctl ({error})"
    elif isinstance(error, TimeoutError):
        message += str(error)
    elif error is not None:
        message += str(error) or type(error).__name__
    elif result is not None and result.stderr:
        message += result.stderr
    elif result is not None:
        message += f"exit code {result.returncode}"
    else:
        message += "Unknown systemd error"

    if any(marker in message.lower() for marker in _PERMISSION_MARKERS):
        message += f". {PERMISSION_HINT}"

    return message
