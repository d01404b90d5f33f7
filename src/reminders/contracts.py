"""Collaborator contracts consumed by the reminder engine.

The engine owns none of these transports. Concrete implementations live in
src.storage (key-value stores), src.feeds (snapshot feeds) and src.gateway
(WebSocket-backed presenter, audio and system notifier).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from enum import StrEnum
from typing import Any

from src.reminders.render import DialogView, ToastView

Unsubscribe = Callable[[], None]
SnapshotCallback = Callable[[Sequence[Mapping[str, Any]]], None]
ChangeCallback = Callable[[str], None]


class Permission(StrEnum):
    granted = "granted"
    denied = "denied"


class SnapshotFeed(ABC):
    """Live collection subscription: a complete ordered snapshot on every change."""

    @abstractmethod
    def subscribe(self, on_snapshot: SnapshotCallback) -> Unsubscribe:
        """Register a snapshot callback. Returns a function that cancels it."""
        ...


class SystemNotifier(ABC):
    """OS/browser-level notification channel."""

    @abstractmethod
    async def request_permission(self) -> Permission:
        ...

    @abstractmethod
    async def show(self, title: str, body: str) -> None:
        """Display a notification. No-op if permission was not granted."""
        ...


class AudioCue(ABC):
    """The reminder sound."""

    @abstractmethod
    async def play(self) -> None:
        """Rewind and play. May raise if playback is blocked by the platform."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop and rewind if playing."""
        ...


class KeyValueStore(ABC):
    """Profile-scoped persistent JSON store shared by all tabs."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def on_external_change(self, key: str, callback: ChangeCallback) -> Unsubscribe:
        """Fire ``callback(key)`` when another writer sets ``key``."""
        ...

    async def close(self) -> None:
        """Release watchers and listeners. Default: nothing to release."""
        return None


class Presenter(ABC):
    """Visible UI surface: the toast stack and the centered dialog."""

    @abstractmethod
    async def show_toast(self, kind: str, view: ToastView) -> None:
        ...

    @abstractmethod
    async def hide_toast(self, kind: str) -> None:
        ...

    @abstractmethod
    async def open_dialog(self, view: DialogView) -> None:
        ...

    @abstractmethod
    async def close_dialog(self) -> None:
        ...
