"""Command-line interface for sending requests through a service task."""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from servicekit.config import ENV_VARS, ServiceKitSettings
from servicekit.delegate import LoggingPassthroughDelegate
from servicekit.dispatch import ImmediateDispatcher
from servicekit.errors import ConfigError
from servicekit.metrics import METRIC_FIELDS, ServiceTaskMetrics
from servicekit.result import ServiceTaskResult
from servicekit.service import WebService

app = typer.Typer(
    name="servicekit",
    help="Send HTTP requests through a servicekit handler pipeline.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

# Extra time allowed for the pipeline beyond the transport timeout
PIPELINE_GRACE_SECONDS = 5.0


def configure_logging(level: str, verbose: bool = False) -> None:
    """Configure root logging for CLI runs."""
    log_level = logging.DEBUG if verbose else getattr(logging, level, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def parse_headers(values: list[str]) -> dict[str, str]:
    """Parse ``Name: value`` pairs.

    Raises:
        ValueError: If an entry has no colon or an empty name.
    """
    headers: dict[str, str] = {}
    for entry in values:
        name, sep, value = entry.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Invalid header (expected 'Name: value'): {entry}")
        headers[name.strip()] = value.strip()
    return headers


def _print_value(value: Any, as_json: bool) -> None:
    if as_json:
        console.print_json(json.dumps(value, default=str))
    else:
        console.print(value, markup=False, highlight=False)


def _metrics_table(metrics: ServiceTaskMetrics) -> Table:
    table = Table(title="Task Metrics")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    for name in METRIC_FIELDS:
        value = getattr(metrics, name)
        table.add_row(name, value.isoformat() if value else "-")
    for name in ("fetch_duration", "json_duration", "update_ui_duration"):
        duration = getattr(metrics, name)
        table.add_row(name, f"{duration * 1000:.2f}ms" if duration is not None else "-")
    return table


@app.command("fetch")
def fetch_cmd(
    url: str = typer.Argument(..., help="URL (or path relative to SERVICEKIT_BASE_URL)"),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method"),
    header: list[str] = typer.Option(
        [],
        "--header",
        "-H",
        help="Request header as 'Name: value' (repeatable)",
    ),
    data: str | None = typer.Option(None, "--data", "-d", help="Request body"),
    json_output: bool = typer.Option(
        True,
        "--json/--raw",
        help="Decode the response as JSON (default) or print the raw body",
    ),
    timeout: float | None = typer.Option(None, "--timeout", "-t", help="Transport timeout in seconds"),
    show_metrics: bool = typer.Option(False, "--metrics", help="Print collected task metrics"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Send a request and print the processed response.

    Example:
        servicekit fetch https://api.example.com/zip/15217 -H "Accept: application/json"
    """
    try:
        settings = ServiceKitSettings.from_env(os.environ)
    except ConfigError as e:
        err_console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(code=1) from None

    if timeout is not None:
        settings = settings.model_copy(update={"timeout": timeout})

    configure_logging(settings.log_level, verbose)

    try:
        headers = parse_headers(header)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=2) from None

    outcome: dict[str, Any] = {}
    delegate = LoggingPassthroughDelegate(raise_for_status=True)

    with WebService.from_settings(
        settings,
        dispatcher=ImmediateDispatcher(),
        passthrough_delegate=delegate,
    ) as service:
        task = service.request(method, url)
        for name, value in headers.items():
            task.set_header_value(value, name)
        if data is not None:
            task.set_body(data.encode("utf-8"))

        if json_output:
            task.response_json(lambda document, response: ServiceTaskResult.value(document))
        else:
            task.response(
                lambda body, response: (body or b"").decode("utf-8", errors="replace")
            )

        (
            task.update_ui(lambda value: _print_value(value, json_output))
            .response_error(lambda error: outcome.__setitem__("error", error))
            .metrics_collected(lambda metrics, response: outcome.__setitem__("metrics", metrics))
            .resume()
        )

        if not task.wait(settings.timeout + PIPELINE_GRACE_SECONDS):
            task.cancel()
            err_console.print(f"[red]Error:[/red] {method.upper()} {url} did not finish")
            raise typer.Exit(code=1)

    if show_metrics and "metrics" in outcome:
        console.print(_metrics_table(outcome["metrics"]))

    if "error" in outcome:
        err_console.print(f"[red]Error:[/red] {outcome['error']}")
        raise typer.Exit(code=1)


@app.command("env")
def env_cmd() -> None:
    """Show the SERVICEKIT_* environment variables and their current values."""
    table = Table(title="SERVICEKIT Environment Variables")
    table.add_column("Variable", style="cyan", no_wrap=True)
    table.add_column("Setting", style="yellow")
    table.add_column("Current Value", style="green")

    for field_name, env_var in sorted(ENV_VARS.items(), key=lambda x: x[1]):
        value = os.environ.get(env_var, "(not set)")
        if len(value) > 50:
            value = value[:47] + "..."
        table.add_row(env_var, field_name, value)

    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
