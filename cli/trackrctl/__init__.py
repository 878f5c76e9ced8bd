#!/usr/bin/env python3
"""Trackr notifications CLI.

Usage:
    trackr scan      - Run the due-date scan (for cron; exits 1 on failure)
    trackr trigger   - Manually trigger the scan (POST)
    trackr health    - Check the API is up

Cron example (daily at 9 AM):
    0 9 * * * TRACKR_API_URL=https://trackr.example.com trackr scan
"""

import os
import sys

import click
import httpx
from rich.console import Console
from rich.table import Table

# API base URL
API_BASE = os.getenv("TRACKR_API_URL", "http://localhost:8000")

# Scans may dispatch many e-mails; allow longer than interactive calls
SCAN_TIMEOUT_SECONDS = 330

console = Console()

REPORT_ROWS = [
    ("tasks_examined", "Tasks examined"),
    ("due_soon", "Due soon"),
    ("overdue", "Overdue"),
    ("sent", "Sent"),
    ("skipped_no_address", "Skipped (no email)"),
    ("unresolved", "Unresolved assignees"),
    ("failed", "Failed"),
    ("deduplicated", "Already notified"),
    ("errors", "Task errors"),
]


def _handle_api_error(error: Exception, endpoint: str) -> None:
    """Print a user-friendly message for transport errors and exit 1."""
    console.print()
    if isinstance(error, httpx.ConnectError):
        console.print("[red]⚠️  Cannot connect to Trackr API[/red]")
        console.print(f"[dim]Tried: {API_BASE}{endpoint}[/dim]")
        console.print(
            "[dim]Check that the application is running and TRACKR_API_URL is correct[/dim]"
        )
    elif isinstance(error, httpx.TimeoutException):
        console.print("[red]⚠️  Request timed out[/red]")
    else:
        console.print(f"[red]⚠️  Unexpected error: {error}[/red]")
    sys.exit(1)


def _request(method: str, endpoint: str, timeout: float) -> httpx.Response:
    try:
        return httpx.request(
            method,
            f"{API_BASE}{endpoint}",
            headers={"User-Agent": "Trackr-Scheduled-Notifications/1.0"},
            timeout=timeout,
        )
    except Exception as e:
        _handle_api_error(e, endpoint)


def format_report(data: dict) -> Table:
    """Format a run report as a rich Table."""
    table = Table(title=f"Scan at {data.get('evaluated_at', '?')}")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    for key, label in REPORT_ROWS:
        table.add_row(label, str(data.get(key, 0)))
    return table


def _run_scan(method: str) -> None:
    endpoint = "/scheduled-notifications"
    response = _request(method, endpoint, SCAN_TIMEOUT_SECONDS)

    try:
        payload = response.json()
    except ValueError:
        console.print(f"[red]❌ Failed to parse API response (HTTP {response.status_code})[/red]")
        console.print(f"[dim]Raw response: {response.text[:500]}[/dim]")
        sys.exit(1)

    if response.status_code >= 300 or not payload.get("success"):
        console.print(
            f"[red]❌ Scheduled notifications failed: {payload.get('error', 'unknown error')}[/red]"
        )
        if payload.get("details"):
            console.print(f"[dim]Details: {payload['details']}[/dim]")
        sys.exit(1)

    data = payload.get("data") or {}
    console.print("[green]✅ Scheduled notifications completed successfully[/green]")
    console.print(format_report(data))
    if data.get("deadline_exceeded"):
        console.print("[yellow]Scan hit its deadline; remaining tasks run next cycle[/yellow]")


@click.group()
def cli():
    """Trackr notifications - due-date reminders and assignment e-mails."""
    pass


@cli.command()
def scan():
    """Run the due-date scan and report results."""
    with console.status("[bold blue]Running scheduled notifications...", spinner="dots"):
        _run_scan("GET")


@cli.command()
def trigger():
    """Manually trigger the scan (POST)."""
    with console.status("[bold blue]Triggering scheduled notifications...", spinner="dots"):
        _run_scan("POST")


@cli.command()
def health():
    """Check the API is healthy."""
    response = _request("GET", "/health", 10)
    if response.status_code != 200:
        console.print(f"[red]⚠️  API Error: HTTP {response.status_code}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] {response.json().get('status', 'unknown')}")


if __name__ == "__main__":
    cli()
