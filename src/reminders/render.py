"""Reminder rendering: toast/dialog views and system notification text."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.reminders.models import MeetingCandidate, NoteCandidate

LOGOUT_TITLE = "Logout Reminder"
LOGOUT_MESSAGE = "Don't forget to logout Taskflow."

_NOTIFICATION_BODY_MAX = 120


@dataclass(frozen=True)
class ToastView:
    """Corner toast content. ``item_id`` identifies the surfaced candidate."""

    item_id: str
    heading: str
    body: str
    detail: str = ""


@dataclass(frozen=True)
class DialogView:
    """Centered modal content; requires explicit acknowledgment."""

    title: str
    description: str
    dismiss_label: str = "Dismiss"


def format_time(moment: datetime) -> str:
    """12-hour clock, e.g. ``9:05 AM``, ``12:30 PM``."""
    hour = moment.hour % 12 or 12
    suffix = "PM" if moment.hour >= 12 else "AM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def meeting_toast(meeting: MeetingCandidate) -> ToastView:
    title = meeting.title or "Meeting"
    return ToastView(
        item_id=meeting.id,
        heading="Meeting Reminder",
        body=f"{title} at {format_time(meeting.trigger_time)}",
    )


def note_toast(note: NoteCandidate) -> ToastView:
    heading = f"{note.activity_type} Reminder" if note.activity_type else "Note Reminder"
    return ToastView(
        item_id=note.id,
        heading=heading,
        body=f"Reminder at {format_time(note.trigger_time)}",
        detail=note.remarks_text.upper(),
    )


def logout_dialog() -> DialogView:
    return DialogView(title=LOGOUT_TITLE, description=LOGOUT_MESSAGE)


def notification_body(view: ToastView) -> str:
    """Short single-line body for a system notification."""
    text = f"{view.heading}: {view.body}"
    if view.detail:
        text = f"{text} ({view.detail})"
    if len(text) > _NOTIFICATION_BODY_MAX:
        text = text[: _NOTIFICATION_BODY_MAX - 1].rstrip() + "…"
    return text


def push_notification_text(
    payload: Mapping[str, Any], default_title: str = "Reminder"
) -> tuple[str, str] | None:
    """Extract (title, body) from a server push payload, or None if it carries none."""
    notification = payload.get("notification")
    if not isinstance(notification, Mapping):
        return None
    title = notification.get("title") or default_title
    body = notification.get("body") or ""
    return str(title), str(body)
