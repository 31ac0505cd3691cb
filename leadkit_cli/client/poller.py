"""
Status polling and the user-facing state derived from a lead snapshot.

One cooperative loop: poll, report, sleep, grow the interval. The loop stops
on a terminal status or at the hard deadline, which only stops watching; the
background work carries on server side.
"""

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .base import LeadKitError

DEFAULT_WORKING_DETAIL = (
    "Preparing and sending the document to the website owner. Keep this page open."
)
DEFAULT_SUCCESS_DETAIL = "Your request has been delivered to the website owner."

TERMINAL_STATUSES = frozenset({"sent", "success", "failed", "error"})


class UiKind(str, Enum):
    IDLE = "idle"
    PROGRESS = "progress"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class UiState:
    kind: UiKind
    title: str
    detail: str
    can_retry: bool = False


def _norm(value: Any) -> str:
    return str(value or "").strip().lower()


def _error_message(snapshot: dict[str, Any], key: str) -> str:
    error = snapshot.get(key)
    if isinstance(error, dict):
        return str(error.get("message") or "").strip()
    return ""


def normalize_status(data: Any) -> dict[str, Any]:
    """Accept either a bare snapshot or one nested under ``lead``."""
    if isinstance(data, dict) and isinstance(data.get("lead"), dict):
        return data["lead"]
    return data if isinstance(data, dict) else {}


def is_terminal_status(snapshot: dict[str, Any] | None) -> bool:
    return _norm((snapshot or {}).get("status")) in TERMINAL_STATUSES


def failure_prefix(stage: str) -> str:
    if stage.startswith("render"):
        return "Rendering failed."
    if stage.startswith("send"):
        return "Sending failed."
    return "Processing failed."


def ui_state_from_status(
    snapshot: dict[str, Any] | None,
    max_attempts: int = 3,
    working_detail: str | None = None,
    success_detail: str | None = None,
) -> UiState:
    """Map a status snapshot onto what the user should see."""
    s = snapshot or {}
    status = _norm(s.get("status"))
    stage = _norm(s.get("stage"))
    try:
        attempts = int(s.get("attempts") or 0)
    except (TypeError, ValueError):
        attempts = 0

    working = (working_detail or "").strip() or DEFAULT_WORKING_DETAIL
    success = UiState(
        UiKind.SUCCESS,
        "Sent successfully",
        (success_detail or "").strip() or DEFAULT_SUCCESS_DETAIL,
    )

    if status in ("sent", "success"):
        return success

    if status in ("failed", "error"):
        message = _error_message(s, "error") or "Something failed."
        return UiState(
            UiKind.ERROR,
            "Failed to send",
            f"{failure_prefix(stage)} {message}".strip(),
            can_retry=attempts < max_attempts,
        )

    if stage == "plan" or status == "queued":
        return UiState(UiKind.PROGRESS, "Preparing…", working)
    if stage == "render_start":
        return UiState(UiKind.PROGRESS, "Generating document…", working)
    if stage == "render_ok":
        return UiState(
            UiKind.PROGRESS,
            "Document ready… now sending",
            "Now sending it to the website owner.",
        )
    if stage == "render_failed":
        message = (
            _error_message(s, "error")
            or _error_message(s, "renderError")
            or "Document failed."
        )
        return UiState(
            UiKind.PROGRESS,
            "Issue generating document — continuing…",
            "We couldn't generate the document, but we're still attempting "
            f"to send the lead. {message}",
        )
    if stage == "send_start":
        return UiState(
            UiKind.PROGRESS,
            "Sending…",
            "Sending to the website owner now. Keep this page open.",
        )
    if stage in ("send_ok", "done"):
        return success

    return UiState(UiKind.PROGRESS, "Processing…", working)


class StatusSource(Protocol):
    def get_status(self, lead_id: str) -> dict[str, Any]: ...


UiCallback = Callable[[UiState, dict[str, Any] | None], None]


class LeadStatusPoller:
    """Polls a lead until it is terminal or the hard deadline passes."""

    def __init__(
        self,
        client: StatusSource,
        interval_ms: int = 900,
        max_interval_ms: int = 2500,
        growth: float = 1.15,
        hard_stop_ms: int = 60000,
        max_attempts: int = 3,
        working_detail: str | None = None,
        success_detail: str | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if interval_ms <= 0 or max_interval_ms <= 0 or hard_stop_ms <= 0:
            raise ValueError("Polling intervals must be positive")
        self.client = client
        self.interval_ms = min(interval_ms, max_interval_ms)
        self.max_interval_ms = max_interval_ms
        self.growth = growth
        self.hard_stop_ms = hard_stop_ms
        self.max_attempts = max_attempts
        self.working_detail = working_detail
        self.success_detail = success_detail
        self.clock = clock
        self.sleep = sleep

    def next_interval(self, interval_ms: int) -> int:
        return min(self.max_interval_ms, math.floor(interval_ms * self.growth))

    def poll(
        self, lead_id: str, on_ui: UiCallback | None = None
    ) -> dict[str, Any] | None:
        """Return the terminal snapshot, or None when the deadline passed."""
        lead_id = (lead_id or "").strip()
        if not lead_id:
            return None

        def emit(state: UiState, snapshot: dict[str, Any] | None = None) -> None:
            if on_ui is not None:
                on_ui(state, snapshot)

        interval = self.interval_ms
        started = self.clock()
        emit(
            UiState(
                UiKind.PROGRESS,
                "Preparing…",
                (self.working_detail or "").strip() or DEFAULT_WORKING_DETAIL,
            )
        )

        while True:
            if (self.clock() - started) * 1000 > self.hard_stop_ms:
                emit(
                    UiState(
                        UiKind.ERROR,
                        "Still working…",
                        "This is taking longer than usual. "
                        "You can keep this page open, or retry.",
                        can_retry=True,
                    )
                )
                return None

            try:
                snapshot = normalize_status(self.client.get_status(lead_id))
            except LeadKitError:
                emit(
                    UiState(
                        UiKind.PROGRESS, "Checking status…", "Still working. Retrying…"
                    )
                )
            else:
                emit(
                    ui_state_from_status(
                        snapshot,
                        max_attempts=self.max_attempts,
                        working_detail=self.working_detail,
                        success_detail=self.success_detail,
                    ),
                    snapshot,
                )
                if is_terminal_status(snapshot):
                    return snapshot

            self.sleep(interval / 1000)
            interval = self.next_interval(interval)
