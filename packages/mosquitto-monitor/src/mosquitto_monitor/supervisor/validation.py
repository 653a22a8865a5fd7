"""Validation utilities for supervisor commands.

Service names end up as an argument to systemctl. They are checked against
an allow-list pattern before any command is built, and critical system
units are refused outright.
"""

import re
from typing import Set


class ServiceNameValidator:
    """Allow-list validation for systemd unit names.

    Only names matching NAME_PATTERN are accepted. Forbidden units (systemd,
    ssh, dbus, etc.) are refused even when they match the pattern.
    """

    NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.@:-]{0,254}$")

    # Critical services that should NEVER be controlled
    FORBIDDEN_SERVICES: Set[str] = {
        "systemd",
        "dbus",
        "ssh",
        "sshd",
        "networking",
        "network-manager",
        "systemd-resolved",
        "systemd-networkd",
        "init",
    }

    def is_allowed(self, service_name: str) -> bool:
        """Check if a service name passes validation.

        Args:
            service_name: Service name to check

        Returns:
            True if validate() would accept the name, False otherwise
        """
        try:
            self.validate(service_name)
        except ValueError:
            return False
        return True

    def validate(self, service_name: str) -> None:
        """Validate service name for use in a systemctl command.

        Args:
            service_name: Service name to validate

        Raises:
            ValueError: If the name contains path separators, path traversal,
                characters outside the allow-list, or names a forbidden unit
        """
        if not isinstance(service_name, str) or not service_name:
            raise ValueError("Invalid service name: must be a non-empty string")
        if "/" in service_name:
            raise ValueError("Invalid service name: contains path separator '/'")
        if ".." in service_name:
            raise ValueError("Invalid service name: contains path traversal '..'")
        if not self.NAME_PATTERN.match(service_name):
            raise ValueError(
                f"Invalid service name '{service_name}': "
                "only letters, digits and '_.@:-' are allowed"
            )

        unit = service_name.removesuffix(".service")
        if unit in self.FORBIDDEN_SERVICES:
            raise ValueError(f"Service '{service_name}' is forbidden")
