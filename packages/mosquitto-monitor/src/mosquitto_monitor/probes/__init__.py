"""Bounded, exception-free broker probes."""

from mosquitto_monitor.probes.handshake import HandshakeProbe
from mosquitto_monitor.probes.port import PortProbe
from mosquitto_monitor.probes.supervisor import SupervisorProbe

__all__ = ["HandshakeProbe", "PortProbe", "SupervisorProbe"]
