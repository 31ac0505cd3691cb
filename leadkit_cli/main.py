"""Lead Kit CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from .client.base import LeadKitError
from .client.endpoints import LeadKitClient
from .commands import config, leads
from .utils.config_manager import config as config_manager
from .utils.formatting import create_health_panel, print_error, print_info

console = Console()

# Create main Typer app
app = typer.Typer(
    name="leadkit",
    help="📨 Lead Kit - submit leads and follow their delivery",
    rich_markup_mode="rich",
)

app.add_typer(config.app, name="config")
app.command("submit")(leads.submit)
app.command("status")(leads.status)
app.command("watch")(leads.watch)
app.command("retry")(leads.retry)


@app.command()
def health():
    """🩺 Check API health and connectivity"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with LeadKitClient(base_url) as client:
            console.print(create_health_panel(client.health_check(), base_url))

    except LeadKitError as e:
        print_error(f"Failed to connect: {e}")
        console.print(
            Panel(
                f"🚫 [red]Connection Failed[/red]\n\n"
                f"Make sure the Lead Kit API is running at:\n"
                f"[blue]{base_url}[/blue]\n\n"
                f"You can update the API URL with:\n"
                f"[cyan]leadkit config set api.base_url <url>[/cyan]",
                title="Connection Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None, "--version", "-v", help="Show version and exit"
    ),
):
    """
    📨 Lead Kit CLI

    Submit form leads, watch background processing and retry failures.
    """
    if version:
        from . import __version__

        console.print(f"Lead Kit CLI v{__version__}")
        raise typer.Exit()


if __name__ == "__main__":
    app()
