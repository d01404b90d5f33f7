"""Tests for TabSession: one WebSocket tab driving its engine through event frames."""

from __future__ import annotations

import json
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from src.feeds.hub import MEETINGS, NOTES, SnapshotFeedHub
from src.gateway.protocol import TabOpenParams
from src.gateway.tab import TabSession
from src.infra.errors import GatewayError
from src.reminders.models import ReminderKind
from src.storage.memory import StorageArea

TZ = ZoneInfo("Asia/Manila")


class _Socket:
    def __init__(self) -> None:
        self.frames: list[dict] = []

    async def send_text(self, text: str) -> None:
        self.frames.append(json.loads(text))

    def events(self) -> list[str]:
        return [f["event"] for f in self.frames if f["type"] == "event"]


def _make_tab(hub: SnapshotFeedHub, area: StorageArea, settings, clock) -> tuple[TabSession, _Socket]:
    socket = _Socket()
    tab = TabSession(
        socket.send_text,
        feed_hub=hub,
        store_factory=area.view,
        settings=settings,
        clock=clock,
        tab_id="tab-1",
    )
    return tab, socket


class TestTabSession:
    @pytest.mark.asyncio
    async def test_open_surfaces_current_reminders(self, storage_area, reminder_settings, clock) -> None:
        hub = SnapshotFeedHub()
        hub.publish(MEETINGS, "REF-1", [
            {"id": "m1", "type_activity": "Client Meeting", "start_date": clock.now.isoformat()},
        ])
        hub.publish(MEETINGS, "REF-2", [
            {"id": "other", "type_activity": "Other", "start_date": clock.now.isoformat()},
        ])
        tab, socket = _make_tab(hub, storage_area, reminder_settings, clock)

        await tab.open(
            TabOpenParams(reference_id="REF-1", notification_permission="granted"), run_loop=False,
        )

        assert tab.is_open
        assert socket.events() == ["toast.show", "sound.play", "notification.show"]
        toast = socket.frames[0]["data"]
        assert toast == {
            "kind": "meeting",
            "item_id": "m1",
            "heading": "Meeting Reminder",
            "body": "Client Meeting at 10:00 AM",
            "detail": "",
        }
        assert socket.frames[1]["data"] == {"src": "/reminder-notification.mp3"}
        assert tab.state_snapshot() == {"meeting_id": "m1", "note_id": None, "logout_active": False}
        await tab.close()

    @pytest.mark.asyncio
    async def test_default_permission_means_no_notification(self, storage_area, reminder_settings, clock) -> None:
        hub = SnapshotFeedHub()
        hub.publish(NOTES, "REF-1", [{"id": "n1", "remind_at": clock.now.isoformat()}])
        tab, socket = _make_tab(hub, storage_area, reminder_settings, clock)

        await tab.open(TabOpenParams(reference_id="REF-1"), run_loop=False)

        assert socket.events() == ["toast.show", "sound.play"]
        await tab.close()

    @pytest.mark.asyncio
    async def test_feed_update_reaches_next_tick(self, storage_area, reminder_settings, clock) -> None:
        hub = SnapshotFeedHub()
        tab, socket = _make_tab(hub, storage_area, reminder_settings, clock)
        await tab.open(TabOpenParams(reference_id="REF-1"), run_loop=False)
        assert socket.frames == []

        hub.publish(NOTES, "REF-1", [{"id": "n1", "remind_at": clock.now.isoformat()}])
        await tab.engine.tick()

        assert socket.events() == ["toast.show", "sound.play"]
        await tab.close()

    @pytest.mark.asyncio
    async def test_dismiss_emits_stop_and_hide(self, storage_area, reminder_settings, clock) -> None:
        hub = SnapshotFeedHub()
        hub.publish(NOTES, "REF-1", [{"id": "n1", "remind_at": clock.now.isoformat()}])
        tab, socket = _make_tab(hub, storage_area, reminder_settings, clock)
        await tab.open(TabOpenParams(reference_id="REF-1"), run_loop=False)
        socket.frames.clear()

        assert await tab.dismiss(ReminderKind.note) is True

        assert socket.events() == ["sound.stop", "toast.hide"]
        assert socket.frames[-1]["data"] == {"kind": "note"}
        await tab.close()

    @pytest.mark.asyncio
    async def test_logout_dialog_frames(self, storage_area, reminder_settings, clock) -> None:
        clock.now = datetime(2026, 3, 9, 16, 30, 1, tzinfo=TZ)
        tab, socket = _make_tab(SnapshotFeedHub(), storage_area, reminder_settings, clock)

        await tab.open(TabOpenParams(reference_id="REF-1"), run_loop=False)
        assert socket.frames[0] == {
            "type": "event",
            "event": "dialog.open",
            "data": {
                "title": "Logout Reminder",
                "description": "Don't forget to logout Taskflow.",
                "dismiss_label": "Dismiss",
            },
        }

        await tab.dismiss(ReminderKind.logout)
        assert socket.events()[-1] == "dialog.close"
        await tab.close()

    @pytest.mark.asyncio
    async def test_open_twice_rejected(self, storage_area, reminder_settings, clock) -> None:
        tab, _ = _make_tab(SnapshotFeedHub(), storage_area, reminder_settings, clock)
        await tab.open(TabOpenParams(reference_id="REF-1"), run_loop=False)

        with pytest.raises(GatewayError) as exc_info:
            await tab.open(TabOpenParams(reference_id="REF-1"), run_loop=False)

        assert exc_info.value.code == "TAB_ALREADY_OPEN"
        await tab.close()

    @pytest.mark.asyncio
    async def test_requires_open(self, storage_area, reminder_settings, clock) -> None:
        tab, _ = _make_tab(SnapshotFeedHub(), storage_area, reminder_settings, clock)

        with pytest.raises(GatewayError) as exc_info:
            await tab.dismiss(ReminderKind.meeting)
        assert exc_info.value.code == "TAB_NOT_OPEN"

        with pytest.raises(GatewayError):
            tab.state_snapshot()

    @pytest.mark.asyncio
    async def test_close_releases_feeds(self, storage_area, reminder_settings, clock) -> None:
        hub = SnapshotFeedHub()
        tab, _ = _make_tab(hub, storage_area, reminder_settings, clock)
        await tab.open(TabOpenParams(reference_id="REF-1"), run_loop=False)
        assert hub.subscriber_count(MEETINGS, "REF-1") == 1

        await tab.close()

        assert not tab.is_open
        assert hub.subscriber_count(MEETINGS, "REF-1") == 0
        assert hub.subscriber_count(NOTES, "REF-1") == 0
