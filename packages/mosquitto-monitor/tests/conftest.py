"""Shared fixtures for the mosquitto-monitor tests."""

import os
from typing import Any

import pytest

from fakes import FakeMqttClient
from mosquitto_monitor.config import MonitorConfig
from mosquitto_monitor.stats import topics


@pytest.fixture(autouse=True)
def _reset_fake_clients():
    FakeMqttClient.instances.clear()
    yield
    FakeMqttClient.instances.clear()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep MOSQUITTO_MONITOR_* variables of the host out of the tests."""
    for key in list(os.environ):
        if key.startswith("MOSQUITTO_MONITOR_"):
            monkeypatch.delenv(key)


@pytest.fixture
def config() -> MonitorConfig:
    """Config with fast timeouts and no verification delay."""
    return MonitorConfig(
        monitor_interval=5.0,
        verification_delay_s=0.0,
        port_timeout_ms=200,
        handshake_timeout_ms=200,
        supervisor_timeout_s=0.2,
        control_timeout_s=1.0,
    )


@pytest.fixture
def sys_snapshot() -> dict[str, Any]:
    """A populated $SYS snapshot as the feed would store it."""
    return {
        topics.UPTIME: 3600.0,
        topics.VERSION: "mosquitto version 2.0.18",
        topics.CLIENTS_CONNECTED: 3,
        topics.CLIENTS_TOTAL: 5,
        topics.MESSAGES_RECEIVED: 120,
        topics.MESSAGES_SENT: 240,
        topics.BYTES_RECEIVED: 4096,
        topics.BYTES_SENT: 8192,
        topics.SUBSCRIPTIONS_COUNT: 7,
        topics.RETAINED_MESSAGES_COUNT: 2,
        topics.STORED_MESSAGES_COUNT: 4,
        topics.PUBLISH_DROPPED: 0,
        topics.PUBLISH_RECEIVED: 118,
    }
