"""Broker lifecycle control."""

from mosquitto_monitor.control.dispatcher import ControlDispatcher

__all__ = ["ControlDispatcher"]
