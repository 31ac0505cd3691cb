"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..client.poller import UiKind, UiState

console = Console()

UI_STYLES = {
    UiKind.IDLE: ("dim", "•"),
    UiKind.PROGRESS: ("blue", "⏳"),
    UiKind.SUCCESS: ("green", "✓"),
    UiKind.ERROR: ("red", "✗"),
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def print_ui_state(state: UiState, snapshot: dict[str, Any] | None = None):
    """Print one poller update on a single line"""
    color, icon = UI_STYLES.get(state.kind, ("white", "•"))
    stage = f" [dim]({snapshot.get('stage')})[/dim]" if snapshot else ""
    console.print(f"[{color}]{icon} {state.title}[/{color}]{stage} {state.detail}")


def create_status_table(snapshot: dict[str, Any]) -> Table:
    """Create a formatted table for a lead status snapshot"""
    table = Table(title="Lead Status", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    rows = [
        ("ID", snapshot.get("id")),
        ("Status", snapshot.get("status")),
        ("Stage", snapshot.get("stage")),
        ("Attempts", snapshot.get("attempts")),
        ("Created", snapshot.get("createdAt")),
        ("Updated", snapshot.get("updatedAt")),
        ("Done", snapshot.get("doneAt")),
    ]
    for label, key in (("Error", "error"), ("Render error", "renderError")):
        error = snapshot.get(key)
        if isinstance(error, dict):
            rows.append((label, error.get("message")))

    result = snapshot.get("result")
    if isinstance(result, dict) and result.get("messageId"):
        rows.append(("Message ID", result["messageId"]))

    for label, value in rows:
        table.add_row(label, "—" if value in (None, "") else str(value))

    return table


def create_health_panel(health: dict[str, Any], base_url: str) -> Panel:
    """Create formatted panel for the health check"""
    store = health.get("store") or {}
    resources = health.get("resources") or {}
    ok = health.get("ok", False)
    color = "green" if ok else "red"

    content = (
        f"[{color}]{'Healthy' if ok else 'Degraded'}[/{color}]\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• Site: [magenta]{health.get('site', 'unknown')}[/magenta]\n"
        f"• Store: [cyan]{store.get('name', '?')}[/cyan] ({store.get('backend', '?')}), "
        f"connected={store.get('connected')}\n"
        f"• Renderer ready: {resources.get('renderer_ready')}\n"
        f"• Transmitter ready: {resources.get('transmitter_ready')}\n"
        f"• API URL: [blue]{base_url}[/blue]"
    )
    return Panel(content, title="System Status", border_style=color)
