"""Environment-based configuration for a broker monitoring session.

All settings can be overridden via environment variables with the
MOSQUITTO_MONITOR_ prefix. For example:
    MOSQUITTO_MONITOR_BROKER_URL=mqtt://broker.lan
    MOSQUITTO_MONITOR_MONITOR_INTERVAL=10
    MOSQUITTO_MONITOR_USE_SYSTEMD_CONTROL=false
"""

from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from mosquitto_monitor.supervisor.validation import ServiceNameValidator

MIN_MONITOR_INTERVAL = 5.0


class MonitorConfig(BaseSettings):
    """Monitoring session configuration, supplied once at session start."""

    enabled: bool = True

    # Health cycle
    monitor_interval: float = Field(default=30.0, ge=MIN_MONITOR_INTERVAL)

    # Broker address
    broker_url: str = "mqtt://localhost"
    broker_port: int = Field(default=1883, ge=1, le=65535)

    # systemd
    service_name: str = "mosquitto"
    enable_system_control: bool = True
    use_systemd_control: bool = True

    # Statistics
    log_path: Path = Path("/var/log/mosquitto/mosquitto.log")
    enable_statistics: bool = True
    use_sys_topics: bool = True
    stats_reconnect: bool = True
    stats_reconnect_min_s: float = Field(default=1.0, gt=0)
    stats_reconnect_max_s: float = Field(default=60.0, gt=0)

    # Probe and command timeouts
    port_timeout_ms: int = Field(default=3000, gt=0)
    handshake_timeout_ms: int = Field(default=5000, gt=0)
    supervisor_timeout_s: float = Field(default=5.0, gt=0)
    control_timeout_s: float = Field(default=30.0, gt=0)
    verification_delay_s: float = Field(default=2.0, ge=0)

    # Publishing
    source_label: str = "mosquitto-monitor"
    delta_url: str | None = None

    model_config = {"env_prefix": "MOSQUITTO_MONITOR_"}

    @field_validator("service_name")
    @classmethod
    def _check_service_name(cls, value: str) -> str:
        ServiceNameValidator().validate(value)
        return value

    @field_validator("broker_url")
    @classmethod
    def _check_broker_url(cls, value: str) -> str:
        if not _hostname(value):
            raise ValueError(f"Cannot determine broker host from '{value}'")
        return value

    @property
    def broker_host(self) -> str:
        """Hostname part of broker_url ("mqtt://localhost" -> "localhost")."""
        return _hostname(self.broker_url)

    @property
    def supervisor_control_enabled(self) -> bool:
        return self.enable_system_control and self.use_systemd_control

    @property
    def interval_seconds(self) -> float:
        return self.monitor_interval

    def summary(self) -> dict[str, Any]:
        """Public configuration block reported alongside the broker status."""
        return {
            "serviceName": self.service_name,
            "brokerUrl": self.broker_url,
            "brokerPort": self.broker_port,
            "useSystemdControl": self.use_systemd_control,
            "useSysTopics": self.use_sys_topics,
        }


def _hostname(url: str) -> str:
    if "://" not in url:
        # Bare "host" or "host:port"
        return url.split(":", 1)[0].strip()
    return urlsplit(url).hostname or ""
