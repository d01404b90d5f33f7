"""Presentation dispatcher: turns ActiveState transitions into UI, sound and notifications.

Responsibilities:
- Show/hide one toast per track (meeting, note); announce only genuinely new items
- Open/close the logout dialog on checkpoint edges
- Play the sound once per newly surfaced toast; playback failures are ignored
- Emit a system notification only when permission was granted
- Dismiss: stop the sound, clear the slot immediately, then persist to the ledger
  (storage failure never blocks the dismiss)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

import structlog

from src.infra.errors import LedgerWriteError
from src.reminders.contracts import Permission
from src.reminders.models import ActiveState, MeetingCandidate, NoteCandidate, ReminderKind
from src.reminders.render import (
    ToastView,
    logout_dialog,
    meeting_toast,
    note_toast,
    notification_body,
    push_notification_text,
)

if TYPE_CHECKING:
    from src.reminders.contracts import AudioCue, Presenter, SystemNotifier
    from src.reminders.evaluator import WindowEvaluator
    from src.reminders.ledger import DismissalLedger

logger = structlog.get_logger()


class PresentationDispatcher:
    """Drives the presenter, audio cue and system notifier for one tab."""

    def __init__(
        self,
        presenter: Presenter,
        audio: AudioCue,
        notifier: SystemNotifier,
        evaluator: WindowEvaluator,
        ledger: DismissalLedger,
        *,
        notification_title: str = "Reminder",
    ) -> None:
        self._presenter = presenter
        self._audio = audio
        self._notifier = notifier
        self._evaluator = evaluator
        self._ledger = ledger
        self._notification_title = notification_title
        self._permission = Permission.denied
        self._shown: dict[ReminderKind, str | None] = {
            ReminderKind.meeting: None,
            ReminderKind.note: None,
        }
        self._dialog_open = False

    @property
    def permission(self) -> Permission:
        return self._permission

    def shown_id(self, kind: ReminderKind) -> str | None:
        """Id of the item whose toast is currently rendered for ``kind``."""
        return self._shown.get(kind)

    @property
    def dialog_open(self) -> bool:
        return self._dialog_open

    async def request_permission(self) -> Permission:
        """Ask for system notification permission once; remembered for this tab."""
        try:
            self._permission = Permission(await self._notifier.request_permission())
        except Exception as e:
            logger.warning("notification_permission_failed", error=str(e))
            self._permission = Permission.denied
        logger.info("notification_permission", permission=str(self._permission))
        return self._permission

    async def apply(self, state: ActiveState) -> None:
        """Reconcile the visible UI with ``state``."""
        await self._apply_track(ReminderKind.meeting, state.active_meeting, meeting_toast)
        await self._apply_track(ReminderKind.note, state.active_note, note_toast)

        if state.logout_active and not self._dialog_open:
            await self._presenter.open_dialog(logout_dialog())
            self._dialog_open = True
            logger.info("logout_dialog_opened")
        elif not state.logout_active and self._dialog_open:
            await self._presenter.close_dialog()
            self._dialog_open = False

    async def dismiss(self, kind: ReminderKind, day: str) -> bool:
        """User dismiss for one track. Returns False if nothing was active."""
        if kind == ReminderKind.logout:
            if not self._evaluator.state.logout_active and not self._dialog_open:
                return False
            self._ledger.remember_logout(day)
            self._evaluator.clear(kind)
            await self._stop_sound()
            if self._dialog_open:
                await self._presenter.close_dialog()
                self._dialog_open = False
            try:
                await self._ledger.mark_logout_dismissed(day)
            except LedgerWriteError as e:
                logger.warning("ledger_write_failed", kind=str(kind), error=str(e))
            return True

        item_id = self._shown.get(kind)
        if item_id is None:
            return False
        self._ledger.remember(kind, item_id, day)
        self._evaluator.clear(kind)
        self._shown[kind] = None
        await self._stop_sound()
        await self._presenter.hide_toast(str(kind))
        try:
            await self._ledger.mark_dismissed(kind, item_id, day)
        except LedgerWriteError as e:
            logger.warning("ledger_write_failed", kind=str(kind), item_id=item_id, error=str(e))
        logger.info("reminder_dismissed", kind=str(kind), item_id=item_id)
        return True

    async def relay_push(self, payload: Mapping[str, Any]) -> None:
        """Surface a server push message outside the tick cycle."""
        text = push_notification_text(payload, self._notification_title)
        if text is not None and self._permission == Permission.granted:
            await self._notifier.show(*text)
        await self._play_sound()

    async def _apply_track(
        self,
        kind: ReminderKind,
        candidate: MeetingCandidate | NoteCandidate | None,
        render: Callable[[Any], ToastView],
    ) -> None:
        current = self._shown[kind]
        if candidate is None:
            if current is not None:
                await self._presenter.hide_toast(str(kind))
                self._shown[kind] = None
                logger.info("reminder_expired", kind=str(kind), item_id=current)
            return
        if candidate.id == current:
            return

        view = render(candidate)
        await self._presenter.show_toast(str(kind), view)
        self._shown[kind] = candidate.id
        logger.info("reminder_surfaced", kind=str(kind), item_id=candidate.id)
        await self._announce(view)

    async def _announce(self, view: ToastView) -> None:
        await self._play_sound()
        if self._permission == Permission.granted:
            await self._notifier.show(self._notification_title, notification_body(view))

    async def _play_sound(self) -> None:
        try:
            await self._audio.play()
        except Exception as e:
            # Autoplay may be blocked by the platform
            logger.debug("sound_playback_failed", error=str(e))

    async def _stop_sound(self) -> None:
        try:
            await self._audio.stop()
        except Exception as e:
            logger.debug("sound_stop_failed", error=str(e))
