"""Mosquitto monitor CLI.

Commands:
- run: Monitor the broker until interrupted
- status: Run one health check and print the result
- control: Start, stop, restart or reload the broker and verify the result

Options fall back to MOSQUITTO_MONITOR_* environment variables through
MonitorConfig, so only flags given on the command line override them.
"""

import asyncio
import functools
import json
import logging
import signal
from typing import Any

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from mosquitto_monitor.config import MonitorConfig
from mosquitto_monitor.exceptions import MonitorError
from mosquitto_monitor.monitor.session import MonitorSession
from mosquitto_monitor.publish.sinks import ConsoleSink, DeltaHttpSink
from mosquitto_monitor.types import CombinedBrokerRecord, ControlOutcome

app = typer.Typer(
    name="mosquitto-monitor",
    help="Health monitoring and control for a Mosquitto MQTT broker",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=Console(stderr=True), rich_tracebacks=True, show_path=verbose
            )
        ],
        force=True,
    )


def _build_config(**overrides: Any) -> MonitorConfig:
    """Build MonitorConfig from environment plus explicit CLI overrides."""
    given = {key: value for key, value in overrides.items() if value is not None}
    try:
        return MonitorConfig(**given)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)


def _print_record(record: CombinedBrokerRecord) -> None:
    status = record.status
    table = Table(title="Mosquitto Broker")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    running = "[green]running[/green]" if status.running else "[red]stopped[/red]"
    table.add_row("Status", running)
    table.add_row("Reachable", "yes" if status.reachable else "no")
    table.add_row("Connection method", status.connection_method.value)
    table.add_row("Active state", status.active_state or "-")
    table.add_row(
        "Uptime", f"{status.uptime_seconds:g}s" if status.uptime_seconds is not None else "-"
    )
    table.add_row("Connections", str(record.connection_count))
    table.add_row(
        "Log size",
        f"{record.approximate_log_size_bytes} B"
        if record.approximate_log_size_bytes is not None
        else "-",
    )
    table.add_row("Last check", status.last_checked_at.strftime("%Y-%m-%d %H:%M:%S"))
    if status.error:
        table.add_row("Error", f"[red]{status.error}[/red]")

    if record.derived_stats is not None:
        for key, value in record.derived_stats.to_dict().items():
            table.add_row(f"$SYS {key}", str(value))

    console.print(table)


def _print_outcome(outcome: ControlOutcome) -> None:
    if outcome.succeeded:
        console.print(f"[green]{outcome.message}[/green] (method: {outcome.method_used.value})")
    else:
        console.print(
            f"[red]Control failed:[/red] {outcome.error or outcome.message} "
            f"(method: {outcome.method_used.value})"
        )


@app.command("run")
def run_monitor(
    broker_url: str = typer.Option(None, "--broker", "-b", help="Broker URL (e.g., mqtt://localhost)"),
    broker_port: int = typer.Option(None, "--port", "-p", help="Broker port"),
    interval: float = typer.Option(None, "--interval", "-i", help="Check interval in seconds (min 5)"),
    service_name: str = typer.Option(None, "--service", help="systemd unit name"),
    delta_url: str = typer.Option(None, "--delta-url", help="POST measurements as deltas to this URL"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not print measurements"),
) -> None:
    """
    Monitor the broker until interrupted.

    Runs a health check every interval, follows $SYS statistics and prints
    (or POSTs) the measurements of each cycle. Stop with Ctrl+C.
    """
    config = _build_config(
        broker_url=broker_url,
        broker_port=broker_port,
        monitor_interval=interval,
        service_name=service_name,
        delta_url=delta_url,
    )

    console.print(
        f"Monitoring [cyan]{config.broker_host}:{config.broker_port}[/cyan] "
        f"every {config.interval_seconds:g}s"
    )
    console.print("Press Ctrl+C to stop\n")

    async def _run() -> None:
        http: httpx.AsyncClient | None = None
        if config.delta_url:
            http = httpx.AsyncClient(timeout=5.0)
            sink: Any = DeltaHttpSink(http=http, url=config.delta_url, source_label=config.source_label)
        else:
            sink = None if quiet else ConsoleSink(console)

        session = MonitorSession(config, sink)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, functools.partial(_handle_signal, session, sig))

        try:
            await session.start()
            await session.wait()
        finally:
            session.stop()
            if http is not None:
                await http.aclose()

    asyncio.run(_run())
    console.print("Monitor stopped")


def _handle_signal(session: MonitorSession, sig: signal.Signals) -> None:
    console.print(f"Received {sig.name}, shutting down...")
    session.stop()


@app.command("status")
def show_status(
    broker_url: str = typer.Option(None, "--broker", "-b", help="Broker URL"),
    broker_port: int = typer.Option(None, "--port", "-p", help="Broker port"),
    sys_wait: float = typer.Option(
        0.0, "--sys-wait", help="Seconds to collect $SYS statistics before checking"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Run one health check and print the broker status."""
    config = _build_config(broker_url=broker_url, broker_port=broker_port)

    async def _status() -> dict[str, Any]:
        session = MonitorSession(config)
        try:
            if sys_wait > 0 and session.feed is not None:
                session.feed.start()
                await asyncio.sleep(sys_wait)
            record = await session.force_health_check()
            data = session.status()
        finally:
            session.stop()
        if not json_output:
            _print_record(record)
        return data

    data = asyncio.run(_status())
    if json_output:
        print(json.dumps(data, indent=2, default=str))


@app.command("control")
def control_broker(
    action: str = typer.Argument(..., help="start, stop, restart or reload"),
    method: str = typer.Option("auto", "--method", "-m", help="auto, supervisor or protocol"),
    broker_url: str = typer.Option(None, "--broker", "-b", help="Broker URL"),
    broker_port: int = typer.Option(None, "--port", "-p", help="Broker port"),
    service_name: str = typer.Option(None, "--service", help="systemd unit name"),
) -> None:
    """Run a control request, then verify the broker state."""
    config = _build_config(
        broker_url=broker_url, broker_port=broker_port, service_name=service_name
    )

    async def _control() -> ControlOutcome:
        session = MonitorSession(config)
        try:
            outcome = await session.request_control(action, method)
            _print_outcome(outcome)
            console.print(f"Verifying in {config.verification_delay_s:g}s...")
            await session.dispatcher.wait_for_verification()
            _print_record(session.current_record)
            return outcome
        finally:
            session.stop()

    try:
        outcome = asyncio.run(_control())
    except MonitorError as e:
        console.print(f"[red]Error ({e.code}):[/red] {e}")
        raise typer.Exit(1)

    if not outcome.succeeded:
        raise typer.Exit(1)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
