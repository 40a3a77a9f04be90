"""CLI for the quotes function.

Runs the Lambda handler locally against the real upstream and sink, with a
synthetic scheduled event, and prints the result.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Settings
from .handler import run_invocation
from .observability.logging_config import setup_logging
from .observability.telemetry import TelemetryConfig, init_telemetry, shutdown_telemetry

app = typer.Typer(
    name="quote-relay",
    help="Quote Relay - traced quote fetch-and-forward function",
    add_completion=False,
)

console = Console()


@dataclass
class LocalContext:
    """Minimal stand-in for the Lambda context object."""
    function_name: str = "quotes-function"
    aws_request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    invoked_function_arn: str = "arn:aws:lambda:local:000000000000:function:quotes-function"
    timeout_ms: int = 30000

    def get_remaining_time_in_millis(self) -> int:
        return self.timeout_ms


def scheduled_event() -> Dict[str, Any]:
    """An EventBridge scheduled event like the one the rate(5 minutes) rule sends."""
    return {
        "version": "0",
        "id": str(uuid.uuid4()),
        "detail-type": "Scheduled Event",
        "source": "aws.events",
        "account": "000000000000",
        "time": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "region": "local",
        "resources": [],
        "detail": {},
    }


@app.callback()
def main_callback() -> None:
    """Quote Relay command line."""


@app.command()
def invoke(
    target_url: Optional[str] = typer.Option(
        None,
        "--target-url",
        "-t",
        help="Sink URL (defaults to TARGET_URL)",
    ),
    quotes_url: Optional[str] = typer.Option(
        None,
        "--quotes-url",
        "-q",
        help="Quote source URL (defaults to QUOTES_URL)",
    ),
    exporter: Optional[str] = typer.Option(
        None,
        "--exporter",
        "-e",
        help="Span exporter: console or otlp (defaults to SPAN_EXPORTER)",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
) -> None:
    """Run one local invocation and print the result."""
    overrides = {
        "target_url": target_url,
        "quotes_url": quotes_url,
        "span_exporter": exporter,
        "log_level": log_level,
    }
    settings = Settings(**{k: v for k, v in overrides.items() if v is not None})

    setup_logging(level=settings.log_level, service_name=settings.otel_service_name)
    tracer, provider = init_telemetry(settings.otel_service_name, TelemetryConfig.from_settings(settings))

    try:
        result = asyncio.run(run_invocation(
            scheduled_event(),
            LocalContext(function_name=settings.otel_service_name),
            settings=settings,
            tracer=tracer,
            provider=provider,
        ))
    finally:
        shutdown_telemetry()

    table = Table(title="Invocation result", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("statusCode", str(result.status_code))
    for name, value in result.headers.items():
        table.add_row(name, value)
    console.print(table)

    style = "red" if result.is_server_error else "green"
    console.print(Panel(json.dumps(json.loads(result.body), indent=2), title="body", border_style=style))

    if result.is_server_error:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
