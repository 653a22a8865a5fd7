"""Tests for the mosquitto-monitor CLI."""

import json
from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from mosquitto_monitor.cli.main import app
from mosquitto_monitor.types import (
    BrokerStatus,
    CombinedBrokerRecord,
    ControlMethod,
    ControlOutcome,
    utcnow,
)

runner = CliRunner()

SESSION = "mosquitto_monitor.cli.main.MonitorSession"


def running_record() -> CombinedBrokerRecord:
    now = utcnow()
    return CombinedBrokerRecord(
        status=BrokerStatus(running=True, reachable=True, last_checked_at=now),
        last_updated_at=now,
        connection_count=2,
    )


class TestStatusCommand:
    def test_json_output(self):
        with patch(f"{SESSION}.force_health_check", AsyncMock(return_value=running_record())), \
             patch(f"{SESSION}.status", return_value={"status": {"running": True}}):
            result = runner.invoke(app, ["status", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"status": {"running": True}}

    def test_table_output(self):
        with patch(f"{SESSION}.force_health_check", AsyncMock(return_value=running_record())):
            result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Mosquitto Broker" in result.stdout
        assert "running" in result.stdout

    def test_invalid_config(self):
        result = runner.invoke(app, ["status", "--port", "70000"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout


class TestControlCommand:
    def test_failed_outcome_exits_nonzero(self):
        outcome = ControlOutcome(
            succeeded=False,
            method_used=ControlMethod.PROTOCOL,
            message="MQTT control not implemented",
            error="MQTT control not implemented - administrative plugin/extension required",
        )

        with patch(f"{SESSION}.request_control", AsyncMock(return_value=outcome)):
            result = runner.invoke(app, ["control", "restart", "--method", "protocol"])

        assert result.exit_code == 1
        assert "not implemented" in result.stdout

    def test_successful_outcome(self):
        outcome = ControlOutcome(
            succeeded=True,
            method_used=ControlMethod.SUPERVISOR,
            message="Broker restarted successfully via systemd",
        )

        with patch(f"{SESSION}.request_control", AsyncMock(return_value=outcome)):
            result = runner.invoke(app, ["control", "restart"])

        assert result.exit_code == 0
        assert "Broker restarted successfully via systemd" in result.stdout

    def test_unknown_action(self):
        result = runner.invoke(app, ["control", "explode"])

        assert result.exit_code == 1
        assert "UNSUPPORTED_METHOD" in result.stdout
