"""Lead Commands - submit, watch and retry"""

import typer
from rich.console import Console

from ..client.base import LeadKitError
from ..client.endpoints import LeadKitClient
from ..client.poller import LeadStatusPoller, UiKind, UiState
from ..utils.config_manager import config
from ..utils.formatting import (
    create_status_table,
    print_error,
    print_info,
    print_success,
    print_ui_state,
    print_warning,
)

console = Console()


def parse_fields(fields: list[str]) -> dict[str, str]:
    """Turn ``key=value`` pairs into a payload dict"""
    payload: dict[str, str] = {}
    for item in fields:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got '{item}'")
        payload[key.strip()] = value
    return payload


def build_poller(client: LeadKitClient) -> LeadStatusPoller:
    poll = config.get("poll", {}) or {}
    return LeadStatusPoller(
        client,
        interval_ms=int(poll.get("interval_ms", 900)),
        max_interval_ms=int(poll.get("max_interval_ms", 2500)),
        growth=float(poll.get("growth", 1.15)),
        hard_stop_ms=int(poll.get("hard_stop_ms", 60000)),
        max_attempts=int(poll.get("max_attempts", 3)),
    )


def watch_lead(client: LeadKitClient, lead_id: str) -> bool:
    """Follow a lead until it settles; True when it was sent"""
    last: list[UiState] = []

    def on_ui(state: UiState, snapshot):
        # Repeated identical updates are noise on a terminal
        if last and last[-1] == state:
            return
        last.append(state)
        print_ui_state(state, snapshot)

    snapshot = build_poller(client).poll(lead_id, on_ui)
    if snapshot is None:
        print_warning(f"Stopped watching {lead_id}; it may still complete")
        return False

    final = last[-1] if last else None
    if final is not None and final.kind == UiKind.ERROR and final.can_retry:
        print_info(f"Retry with: leadkit retry {lead_id}")
    return final is not None and final.kind == UiKind.SUCCESS


def submit(
    field: list[str] = typer.Option(
        [], "--field", "-f", help="Form field as key=value (repeatable)"
    ),
    watch: bool = typer.Option(False, "--watch", "-w", help="Follow progress"),
):
    """📨 Submit a lead"""
    payload = parse_fields(field)

    try:
        with LeadKitClient(config.get("api.base_url")) as client:
            queued = client.submit_lead(payload)
            print_success(f"Lead queued: {queued.get('id')}")
            console.print(f"Correlation ID: [cyan]{queued.get('correlationId')}[/cyan]")

            if watch and not watch_lead(client, queued["id"]):
                raise typer.Exit(1)

    except LeadKitError as e:
        print_error(f"Failed to submit lead: {e}")
        errors = ((e.data or {}).get("error") or {}).get("details", {}).get("errors")
        for error in errors or []:
            console.print(f"  [yellow]{error.get('path')}[/yellow]: {error.get('message')}")
        raise typer.Exit(1) from None


def status(lead_id: str = typer.Argument(..., help="Lead ID")):
    """📊 Show the current status of a lead"""
    try:
        with LeadKitClient(config.get("api.base_url")) as client:
            console.print(create_status_table(client.get_status(lead_id)))
    except LeadKitError as e:
        print_error(f"Failed to get status: {e}")
        raise typer.Exit(1) from None


def watch(lead_id: str = typer.Argument(..., help="Lead ID")):
    """👀 Follow a lead until it is sent or fails"""
    with LeadKitClient(config.get("api.base_url")) as client:
        if not watch_lead(client, lead_id):
            raise typer.Exit(1)


def retry(
    lead_id: str = typer.Argument(..., help="Lead ID"),
    watch: bool = typer.Option(False, "--watch", "-w", help="Follow progress"),
):
    """🔁 Retry a failed lead"""
    try:
        with LeadKitClient(config.get("api.base_url")) as client:
            outcome = client.retry_lead(lead_id)
            if outcome.get("status") == "queued":
                print_success(f"Lead re-queued: {lead_id}")
            else:
                print_info(outcome.get("message") or f"Nothing to retry for {lead_id}")

            if watch and not watch_lead(client, lead_id):
                raise typer.Exit(1)

    except LeadKitError as e:
        if e.status_code == 429:
            print_error("Retry limit reached for this lead")
        else:
            print_error(f"Failed to retry lead: {e}")
        raise typer.Exit(1) from None
