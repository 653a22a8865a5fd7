"""
Measurement sinks.

- ConsoleSink: prints each measurement with rich
- DeltaHttpSink: POSTs each measurement as a SignalK-style delta via httpx
- CollectingSink: keeps measurements in memory for inspection
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
from rich.console import Console

from mosquitto_monitor.types import Measurement


def to_delta(measurement: Measurement, source_label: str) -> dict[str, Any]:
    """
    Build a SignalK-style delta message for one measurement.

    Example:
        {
            "context": "vessels.self",
            "updates": [{
                "source": {"label": "mosquitto-monitor", "type": "plugin"},
                "timestamp": "2026-01-26T12:00:00+00:00",
                "values": [{"path": "system.mqtt.broker.status.uptime", "value": 42.0}],
                "meta": [{"path": "...", "value": {"units": "s", "description": "Broker uptime"}}]
            }]
        }

    The meta entry is present only when a unit or description exists.
    """
    update: dict[str, Any] = {
        "source": {"label": source_label, "type": "plugin"},
        "timestamp": measurement.timestamp.isoformat(),
        "values": [{"path": measurement.path, "value": measurement.value}],
    }

    meta: dict[str, str] = {}
    if measurement.unit:
        meta["units"] = measurement.unit
    if measurement.description:
        meta["description"] = measurement.description
    if meta:
        update["meta"] = [{"path": measurement.path, "value": meta}]

    return {"context": "vessels.self", "updates": [update]}


class ConsoleSink:
    """Prints each measurement as a rich-formatted line."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def publish(self, measurement: Measurement) -> None:
        unit = f" {measurement.unit}" if measurement.unit else ""
        self.console.print(
            f"[dim]{measurement.timestamp:%H:%M:%S}[/dim] "
            f"[cyan]{measurement.path}[/cyan] = {measurement.value}{unit}"
        )


@dataclass
class DeltaHttpSink:
    """
    Delivers deltas to an HTTP endpoint with an injected httpx client.

    Attributes:
        http: Pre-configured httpx.AsyncClient
        url: Endpoint receiving POSTed delta documents
        source_label: Source label written into every delta

    Example:
        async with httpx.AsyncClient(timeout=5.0) as http:
            sink = DeltaHttpSink(http=http, url="http://signalk:3000/deltas")
            await sink.publish(measurement)
    """

    http: httpx.AsyncClient
    url: str
    source_label: str = "mosquitto-monitor"

    async def publish(self, measurement: Measurement) -> None:
        """
        POST one delta.

        Raises:
            httpx.HTTPError: On transport errors or 4xx/5xx responses.
        """
        response = await self.http.post(self.url, json=to_delta(measurement, self.source_label))
        response.raise_for_status()

    async def aclose(self) -> None:
        await self.http.aclose()


@dataclass
class CollectingSink:
    """Keeps every published measurement in order."""

    measurements: list[Measurement] = field(default_factory=list)

    async def publish(self, measurement: Measurement) -> None:
        self.measurements.append(measurement)

    def paths(self) -> list[str]:
        return [m.path for m in self.measurements]
