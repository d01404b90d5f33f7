"""Shared pytest fixtures for SalesDesk reminder tests.

Unit tests get recording fakes for every engine collaborator (presenter,
audio cue, system notifier, snapshot feeds) plus a settable clock.

Integration tests get a PostgreSQL URL via two modes:
1. TEST_DATABASE_* env vars present → connect to external PG (CI scenario)
2. Otherwise → testcontainers auto-starts a temporary PG container (local dev)

Safety: refuses to run against any database whose name doesn't contain '_test'.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from src.config.settings import ReminderSettings
from src.reminders.contracts import AudioCue, Permission, Presenter, SnapshotFeed, SystemNotifier
from src.storage.memory import StorageArea

TZ = ZoneInfo("Asia/Manila")


# ---------------------------------------------------------------------------
# Recording fakes
# ---------------------------------------------------------------------------


class RecordingPresenter(Presenter):
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.toasts: dict[str, object] = {}
        self.dialog = None

    async def show_toast(self, kind, view) -> None:
        self.calls.append(("show_toast", kind, view.item_id))
        self.toasts[kind] = view

    async def hide_toast(self, kind) -> None:
        self.calls.append(("hide_toast", kind))
        self.toasts.pop(kind, None)

    async def open_dialog(self, view) -> None:
        self.calls.append(("open_dialog", view.title))
        self.dialog = view

    async def close_dialog(self) -> None:
        self.calls.append(("close_dialog",))
        self.dialog = None


class RecordingAudio(AudioCue):
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.plays = 0
        self.stops = 0

    async def play(self) -> None:
        self.plays += 1
        if self.fail:
            raise RuntimeError("NotAllowedError: play() failed because the user didn't interact")

    async def stop(self) -> None:
        self.stops += 1


class RecordingNotifier(SystemNotifier):
    def __init__(self, permission: Permission = Permission.granted) -> None:
        self.permission = permission
        self.requests = 0
        self.shown: list[tuple[str, str]] = []

    async def request_permission(self) -> Permission:
        self.requests += 1
        return self.permission

    async def show(self, title: str, body: str) -> None:
        if self.permission != Permission.granted:
            return
        self.shown.append((title, body))


class ManualFeed(SnapshotFeed):
    """Feed whose snapshots are pushed by the test."""

    def __init__(self, docs: list[dict] | None = None) -> None:
        self.docs = list(docs or [])
        self.callbacks: list = []

    def subscribe(self, on_snapshot):
        self.callbacks.append(on_snapshot)
        on_snapshot(list(self.docs))

        def _unsubscribe() -> None:
            self.callbacks.remove(on_snapshot)

        return _unsubscribe

    def push(self, docs: list[dict]) -> None:
        self.docs = list(docs)
        for callback in list(self.callbacks):
            callback(list(self.docs))


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture
def audio() -> RecordingAudio:
    return RecordingAudio()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def meeting_feed() -> ManualFeed:
    return ManualFeed()


@pytest.fixture
def note_feed() -> ManualFeed:
    return ManualFeed()


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2026, 3, 9, 10, 0, tzinfo=TZ))


@pytest.fixture
def storage_area() -> StorageArea:
    return StorageArea()


@pytest.fixture
def reminder_settings() -> ReminderSettings:
    return ReminderSettings(timezone="Asia/Manila")


# ---------------------------------------------------------------------------
# PostgreSQL (integration)
# ---------------------------------------------------------------------------


def _validate_test_db_name(name: str) -> None:
    """Safety: refuse to truncate a database whose name doesn't contain '_test'."""
    if "_test" not in name.lower():
        raise RuntimeError(
            f"Refusing to run tests against database '{name}': "
            "name must contain '_test' to prevent accidental data loss. "
            "Set TEST_DATABASE_NAME to a test-specific database."
        )


def _build_pg_url_from_env() -> str | None:
    """Build async PG URL from TEST_DATABASE_* env vars, or return None."""
    host = os.getenv("TEST_DATABASE_HOST")
    if host is None:
        return None
    port = os.getenv("TEST_DATABASE_PORT", "5432")
    user = os.getenv("TEST_DATABASE_USER", "postgres")
    password = os.getenv("TEST_DATABASE_PASSWORD", "")
    name = os.getenv("TEST_DATABASE_NAME", "salesdesk_test")
    _validate_test_db_name(name)
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


@pytest.fixture(scope="session")
def _pg_container():
    """Manage testcontainers PostgreSQL lifecycle.

    Yields (url, container) where container is None if using external PG.
    """
    url = _build_pg_url_from_env()
    if url is not None:
        yield url, None
        return

    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer("postgres:16", dbname="salesdesk_test")
    container.start()

    host = container.get_container_host_ip()
    port = container.get_exposed_port(5432)
    user = container.username
    password = container.password
    dbname = container.dbname
    _validate_test_db_name(dbname)

    url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{dbname}"

    yield url, container

    container.stop()


@pytest.fixture(scope="session")
def pg_url(_pg_container) -> str:
    """Provide an async PostgreSQL URL for integration tests."""
    url, _ = _pg_container
    return url
