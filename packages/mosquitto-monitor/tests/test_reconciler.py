"""Tests for StatusReconciler merge rules and transitions."""

from datetime import datetime, timezone
from types import MappingProxyType

import pytest

from mosquitto_monitor.exceptions import ReconciliationError
from mosquitto_monitor.monitor.reconciler import StatusReconciler, extract_derived_stats
from mosquitto_monitor.stats import topics
from mosquitto_monitor.types import ConnectionMethod, HostStats, ProbeResult

CHECKED_AT = datetime(2026, 1, 26, 12, 0, tzinfo=timezone.utc)


def probe(port: bool, handshake: bool, supervisor: bool | None = None) -> ProbeResult:
    return ProbeResult(
        port_open=port,
        handshake_ok=handshake,
        supervisor_active=supervisor,
        checked_at=CHECKED_AT,
    )


class TestMergeRules:
    """running, reachable, connection method and active state."""

    @pytest.mark.parametrize(
        "handshake,supervisor,port,method,active_state",
        [
            (False, False, False, ConnectionMethod.PORT, "inactive"),
            (False, False, True, ConnectionMethod.PORT, "inactive"),
            (False, True, False, ConnectionMethod.SUPERVISOR, "active"),
            (False, True, True, ConnectionMethod.SUPERVISOR, "active"),
            (True, False, False, ConnectionMethod.PROTOCOL, "connected"),
            (True, False, True, ConnectionMethod.PROTOCOL, "connected"),
            (True, True, False, ConnectionMethod.PROTOCOL, "active"),
            (True, True, True, ConnectionMethod.PROTOCOL, "active"),
        ],
    )
    def test_all_combinations(self, handshake, supervisor, port, method, active_state):
        record = StatusReconciler().reconcile(probe(port, handshake, supervisor))

        assert record.status.running == (handshake or port)
        assert record.status.reachable == port
        assert record.status.connection_method is method
        assert record.status.active_state == active_state
        assert record.status.last_checked_at == CHECKED_AT

    def test_supervisor_disabled(self):
        """A disabled supervisor probe never affects running."""
        record = StatusReconciler().reconcile(probe(port=True, handshake=False, supervisor=None))

        assert record.status.running is True
        assert record.status.connection_method is ConnectionMethod.PORT

    def test_scenario_broker_down(self):
        record = StatusReconciler().reconcile(probe(port=False, handshake=False))

        status = record.status
        assert (status.running, status.reachable) == (False, False)
        assert status.connection_method is ConnectionMethod.PORT
        assert status.active_state == "inactive"

    def test_scenario_broker_up_supervisor_inactive(self):
        record = StatusReconciler().reconcile(probe(port=True, handshake=True, supervisor=False))

        status = record.status
        assert (status.running, status.reachable) == (True, True)
        assert status.connection_method is ConnectionMethod.PROTOCOL
        assert status.active_state == "connected"


class TestStatistics:
    """Derived stats, uptime and host statistics."""

    def test_snapshot_populates_derived_stats(self, sys_snapshot):
        record = StatusReconciler().reconcile(probe(True, True), sys_snapshot)

        stats = record.derived_stats
        assert stats is not None
        assert stats.uptime == 3600.0
        assert stats.version == "mosquitto version 2.0.18"
        assert stats.clients_connected == 3
        assert stats.bytes_sent == 8192
        assert stats.retained_messages == 2
        assert record.status.uptime_seconds == 3600.0

    def test_empty_snapshot_omits_derived_stats(self, caplog):
        caplog.set_level("DEBUG")

        record = StatusReconciler().reconcile(probe(True, True), MappingProxyType({}))

        assert record.derived_stats is None
        assert record.status.uptime_seconds is None
        assert "sysStats" not in record.to_dict()
        assert "No $SYS statistics available" in caplog.text

    def test_partial_snapshot_defaults_to_zero(self):
        record = StatusReconciler().reconcile(
            probe(True, True), {topics.CLIENTS_CONNECTED: 1}
        )

        assert record.derived_stats is not None
        assert record.derived_stats.clients_connected == 1
        assert record.derived_stats.messages_sent == 0
        assert record.derived_stats.version == "unknown"
        assert record.status.uptime_seconds is None

    def test_present_but_zero_is_kept(self):
        stats = extract_derived_stats({topics.MESSAGES_SENT: 0})

        assert stats.messages_sent == 0

    def test_host_stats(self):
        record = StatusReconciler().reconcile(
            probe(True, True), None, HostStats(connection_count=4, log_size_bytes=2048)
        )

        assert record.connection_count == 4
        assert record.approximate_log_size_bytes == 2048

    def test_inconsistent_input_raises(self):
        reconciler = StatusReconciler()

        with pytest.raises(ReconciliationError):
            reconciler.reconcile({"port_open": True})

        with pytest.raises(ReconciliationError):
            reconciler.reconcile(probe(True, True), ["not", "a", "mapping"])


class TestFailuresAndTransitions:
    """Failed cycles and running-state transitions."""

    def test_failed_record_never_keeps_running(self, sys_snapshot):
        reconciler = StatusReconciler()
        reconciler.reconcile(probe(True, True), sys_snapshot)

        record = reconciler.failed("probe exploded", CHECKED_AT)

        assert record.status.running is False
        assert record.status.reachable is False
        assert record.status.error == "probe exploded"
        assert record.derived_stats is None

    def test_first_cycle_is_not_a_transition(self):
        reconciler = StatusReconciler()

        reconciler.reconcile(probe(True, True))

        assert reconciler.last_transition is None

    def test_stop_and_start_transitions(self, caplog):
        caplog.set_level("INFO")
        reconciler = StatusReconciler()

        reconciler.reconcile(probe(True, True))
        reconciler.reconcile(probe(False, False))
        stopped = reconciler.last_transition
        reconciler.reconcile(probe(False, False))
        unchanged = reconciler.last_transition
        reconciler.reconcile(probe(True, False))
        started = reconciler.last_transition

        assert stopped is not None and stopped.event == "stopped"
        assert unchanged is None
        assert started is not None and started.event == "started"
        assert "Mosquitto broker stopped" in caplog.text
        assert "Mosquitto broker started" in caplog.text

    def test_failed_cycle_counts_as_stop(self):
        reconciler = StatusReconciler()
        reconciler.reconcile(probe(True, True))

        reconciler.failed("boom", CHECKED_AT)

        assert reconciler.last_transition is not None
        assert reconciler.last_transition.running is False
