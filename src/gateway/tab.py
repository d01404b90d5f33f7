"""One WebSocket connection = one dashboard tab running its own ReminderEngine.

Presenter, audio cue and system notifier are realized as event frames sent
to the browser, which owns the actual DOM, <audio> element and Notification API.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from src.feeds.hub import MEETINGS, NOTES
from src.gateway.protocol import RPCEvent, TabOpenParams
from src.infra.errors import GatewayError
from src.infra.logging import bind_tab_context
from src.reminders.contracts import AudioCue, Permission, Presenter, SystemNotifier
from src.reminders.engine import ReminderEngine

if TYPE_CHECKING:
    from src.config.settings import ReminderSettings
    from src.feeds.hub import SnapshotFeedHub
    from src.reminders.contracts import KeyValueStore
    from src.reminders.models import ReminderKind
    from src.reminders.render import DialogView, ToastView

logger = structlog.get_logger()

SendText = Callable[[str], Awaitable[None]]
StoreFactory = Callable[[str], "KeyValueStore"]


class EventSender:
    """Serializes presentation events onto the socket."""

    def __init__(self, send_text: SendText) -> None:
        self._send_text = send_text

    async def emit(self, event: str, **data: Any) -> None:
        await self._send_text(RPCEvent(event=event, data=data).model_dump_json())


class WebSocketPresenter(Presenter):
    def __init__(self, sender: EventSender) -> None:
        self._sender = sender

    async def show_toast(self, kind: str, view: ToastView) -> None:
        await self._sender.emit("toast.show", kind=kind, **asdict(view))

    async def hide_toast(self, kind: str) -> None:
        await self._sender.emit("toast.hide", kind=kind)

    async def open_dialog(self, view: DialogView) -> None:
        await self._sender.emit("dialog.open", **asdict(view))

    async def close_dialog(self) -> None:
        await self._sender.emit("dialog.close")


class WebSocketAudioCue(AudioCue):
    def __init__(self, sender: EventSender, src: str) -> None:
        self._sender = sender
        self._src = src

    async def play(self) -> None:
        await self._sender.emit("sound.play", src=self._src)

    async def stop(self) -> None:
        await self._sender.emit("sound.stop")


class WebSocketNotifier(SystemNotifier):
    """Permission is decided by the browser and reported in tab.open."""

    def __init__(self, sender: EventSender, permission: Permission) -> None:
        self._sender = sender
        self._permission = permission

    async def request_permission(self) -> Permission:
        return self._permission

    async def show(self, title: str, body: str) -> None:
        if self._permission != Permission.granted:
            return
        await self._sender.emit("notification.show", title=title, body=body)


class TabSession:
    """Lifecycle of one tab: open → (ticks, dismissals, pushes) → close."""

    def __init__(
        self,
        send_text: SendText,
        *,
        feed_hub: SnapshotFeedHub,
        store_factory: StoreFactory,
        settings: ReminderSettings,
        clock: Callable[[], datetime] | None = None,
        tab_id: str | None = None,
    ) -> None:
        self.tab_id = tab_id or uuid.uuid4().hex
        self.reference_id = ""
        self._sender = EventSender(send_text)
        self._feed_hub = feed_hub
        self._store_factory = store_factory
        self._settings = settings
        self._clock = clock
        self._store: KeyValueStore | None = None
        self.engine: ReminderEngine | None = None

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    async def open(self, params: TabOpenParams, *, run_loop: bool = True) -> None:
        if self.engine is not None:
            raise GatewayError("Tab is already open", code="TAB_ALREADY_OPEN")
        self.reference_id = params.reference_id
        bind_tab_context(self.tab_id, self.reference_id)

        permission = (
            Permission.granted
            if params.notification_permission == "granted"
            else Permission.denied
        )
        self._store = self._store_factory(self.tab_id)
        self.engine = ReminderEngine(
            meeting_feed=self._feed_hub.feed(MEETINGS, self.reference_id),
            note_feed=self._feed_hub.feed(NOTES, self.reference_id),
            store=self._store,
            presenter=WebSocketPresenter(self._sender),
            audio=WebSocketAudioCue(self._sender, self._settings.sound_url),
            notifier=WebSocketNotifier(self._sender, permission),
            settings=self._settings,
            clock=self._clock,
        )
        await self.engine.start(run_loop=run_loop)
        logger.info("tab_opened", permission=str(permission))

    async def dismiss(self, kind: ReminderKind) -> bool:
        return await self._require_engine().dismiss(kind)

    async def relay_push(self, payload: dict[str, Any]) -> None:
        await self._require_engine().relay_push(payload)

    def state_snapshot(self) -> dict[str, Any]:
        state = self._require_engine().state
        return {
            "meeting_id": state.active_meeting.id if state.active_meeting else None,
            "note_id": state.active_note.id if state.active_note else None,
            "logout_active": state.logout_active,
        }

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.stop()
            self.engine = None
        if self._store is not None:
            await self._store.close()
            self._store = None
        logger.info("tab_closed", tab_id=self.tab_id)

    def _require_engine(self) -> ReminderEngine:
        if self.engine is None:
            raise GatewayError("Tab is not open; send tab.open first", code="TAB_NOT_OPEN")
        return self.engine
