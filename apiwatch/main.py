"""Entry point for the apiwatch health monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from apiwatch.config import settings
from apiwatch.health.models import BatchSummary
from apiwatch.monitor import build_monitor

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server() -> None:
    """Start the FastAPI server (scheduler starts in the app lifespan)."""
    console.print(Panel("Starting apiwatch API Server", style="bold green"))
    uvicorn.run(
        "apiwatch.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def render_summary(summary: BatchSummary) -> Table:
    table = Table(title=f"Health checks: {summary.passed}/{summary.total} passing")
    table.add_column("Category")
    table.add_column("Endpoint")
    table.add_column("Status")
    table.add_column("Code", justify="right")
    table.add_column("ms", justify="right")
    table.add_column("Error")
    for r in sorted(summary.results, key=lambda r: (r.category, r.endpoint)):
        style = "green" if r.passed else "red"
        table.add_row(
            r.category,
            r.endpoint,
            f"[{style}]{r.status.value}[/{style}]",
            str(r.status_code or "-"),
            str(r.response_time_ms if r.response_time_ms is not None else "-"),
            r.error_message or "",
        )
    return table


def run_check() -> None:
    """Run one probe cycle and print the results."""
    monitor = build_monitor(settings, probe_on_start=False)
    with console.status("[bold green]Probing endpoints..."):
        summary = monitor.executor.run_all_checks()
    console.print(render_summary(summary))
    console.print(f"[dim]Average response time: {summary.avg_response_time_ms} ms[/dim]")
    if summary.failed:
        sys.exit(2)


def run_cleanup() -> None:
    """Run both retention sweeps now."""
    monitor = build_monitor(settings, probe_on_start=False)
    checks = monitor.sweeper.sweep_checks()
    errors = monitor.sweeper.sweep_errors()
    policy = monitor.sweeper.get_policy()
    console.print(
        f"Removed {checks if checks is not None else 'n/a'} health checks "
        f"(> {policy['health_checks']}d) and {errors if errors is not None else 'n/a'} "
        f"error records (> {policy['errors']}d)"
    )


def run_report(timeframe: str) -> None:
    """Print error statistics and fire the notification hook."""
    monitor = build_monitor(settings, probe_on_start=False)
    stats = monitor.aggregator.get_error_stats(timeframe)
    text = asyncio.run(monitor.notifier.notify_error_report(stats))
    console.print(Panel(text, title=f"Errors: last {timeframe}"))


def main() -> None:
    parser = argparse.ArgumentParser(description="apiwatch: API health monitor")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server and scheduler")
    sub.add_parser("check", help="Run one probe cycle now")
    sub.add_parser("cleanup", help="Apply the retention policy now")
    report_parser = sub.add_parser("report", help="Show error statistics")
    report_parser.add_argument("--timeframe", default="24h", help="e.g. 1h, 24h, 7d")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        run_check()
    elif args.command == "cleanup":
        run_cleanup()
    elif args.command == "report":
        run_report(args.timeframe)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
