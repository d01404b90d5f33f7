"""Dismissal ledger: per-day record of reminders already shown and dismissed.

Persisted as three JSON blobs in the shared key-value store:
- dismissedMeetings:        {"YYYY-MM-DD": [id, ...]}
- dismissedNotes:           {"YYYY-MM-DD": [id, ...]}
- dismissedLogoutReminders: {"YYYY-MM-DD": true}

Within a day the ledger only grows. Writes merge with the latest stored blob
(union), so concurrent tabs dismissing different ids never lose each other's
entries. Reads are served from an in-memory copy refreshed by load()/reload().
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import TypeAdapter, ValidationError

from src.constants import (
    DISMISSED_LOGOUT_KEY,
    DISMISSED_MEETINGS_KEY,
    DISMISSED_NOTES_KEY,
    LEDGER_KEYS,
)
from src.infra.errors import LedgerError, LedgerWriteError, StorageError
from src.reminders.models import ReminderKind

if TYPE_CHECKING:
    from src.reminders.contracts import KeyValueStore

logger = structlog.get_logger()

_DAY_IDS = TypeAdapter(dict[str, list[str]])
_DAY_FLAGS = TypeAdapter(dict[str, bool])

_ID_KEYS: dict[ReminderKind, str] = {
    ReminderKind.meeting: DISMISSED_MEETINGS_KEY,
    ReminderKind.note: DISMISSED_NOTES_KEY,
}


def _kind_for_key(key: str) -> ReminderKind | None:
    for kind, k in _ID_KEYS.items():
        if k == key:
            return kind
    return None


class DismissalLedger:
    """Per-day dismissed ids (meeting, note) and logout flags."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._ids: dict[ReminderKind, dict[str, set[str]]] = {kind: {} for kind in _ID_KEYS}
        self._logout: dict[str, bool] = {}

    @property
    def keys(self) -> tuple[str, ...]:
        """Store keys this ledger reads and writes."""
        return LEDGER_KEYS

    # ── reads (in-memory) ────────────────────────────────────────────────

    def is_dismissed(self, kind: ReminderKind, item_id: str, day: str) -> bool:
        return item_id in self._ids[self._id_kind(kind)].get(day, ())

    def dismissed_ids(self, kind: ReminderKind, day: str) -> frozenset[str]:
        return frozenset(self._ids[self._id_kind(kind)].get(day, ()))

    def is_logout_dismissed(self, day: str) -> bool:
        return self._logout.get(day, False)

    # ── refresh from store ───────────────────────────────────────────────

    async def load(self) -> None:
        """Read every ledger key. Store failures leave the cached copy in place."""
        for key in self.keys:
            await self.reload(key)

    async def reload(self, key: str) -> bool:
        """Re-read one ledger key and merge it into memory.

        Returns False if the key is not a ledger key or the store failed.
        """
        if key not in self.keys:
            return False
        try:
            raw = await self._store.get(key)
        except StorageError as e:
            logger.warning("ledger_reload_failed", key=key, error=str(e), code=e.code)
            return False

        if key == DISMISSED_LOGOUT_KEY:
            for day, flag in self._parse_flags(raw).items():
                if flag:
                    self._logout[day] = True
        else:
            cache = self._ids[_kind_for_key(key)]
            for day, ids in self._parse_ids(key, raw).items():
                cache.setdefault(day, set()).update(ids)
        logger.debug("ledger_reloaded", key=key)
        return True

    # ── writes ───────────────────────────────────────────────────────────

    def remember(self, kind: ReminderKind, item_id: str, day: str) -> None:
        """Record a dismissal in memory only; visible to the next evaluation."""
        self._ids[self._id_kind(kind)].setdefault(day, set()).add(item_id)

    def remember_logout(self, day: str) -> None:
        self._logout[day] = True

    async def mark_dismissed(self, kind: ReminderKind, item_id: str, day: str) -> None:
        """Record a dismissal. Memory is updated before the store write.

        Raises LedgerWriteError if the store write fails; the in-memory copy
        keeps the dismissal regardless.
        """
        kind = self._id_kind(kind)
        self.remember(kind, item_id, day)
        key = _ID_KEYS[kind]
        try:
            stored = self._parse_ids(key, await self._store.get(key))
            merged = self._ids[kind][day]
            merged.update(stored.get(day, ()))
            stored[day] = sorted(merged)
            await self._store.set(key, stored)
        except StorageError as e:
            raise LedgerWriteError(f"Failed to persist {kind} dismissal {item_id}: {e}") from e
        logger.info("ledger_dismissed", kind=str(kind), item_id=item_id, day=day)

    async def mark_logout_dismissed(self, day: str) -> None:
        """Record today's logout acknowledgment. Same failure contract as mark_dismissed."""
        self.remember_logout(day)
        try:
            stored = self._parse_flags(await self._store.get(DISMISSED_LOGOUT_KEY))
            stored[day] = True
            await self._store.set(DISMISSED_LOGOUT_KEY, stored)
        except StorageError as e:
            raise LedgerWriteError(f"Failed to persist logout dismissal: {e}") from e
        logger.info("ledger_logout_dismissed", day=day)

    # ── helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _id_kind(kind: ReminderKind) -> ReminderKind:
        if kind not in _ID_KEYS:
            raise LedgerError(f"No id ledger for reminder kind '{kind}'")
        return kind

    @staticmethod
    def _parse_ids(key: str, raw: Any) -> dict[str, list[str]]:
        if raw is None:
            return {}
        try:
            return _DAY_IDS.validate_python(raw)
        except ValidationError:
            logger.warning("ledger_blob_invalid", key=key)
            return {}

    @staticmethod
    def _parse_flags(raw: Any) -> dict[str, bool]:
        if raw is None:
            return {}
        try:
            return _DAY_FLAGS.validate_python(raw)
        except ValidationError:
            logger.warning("ledger_blob_invalid", key=DISMISSED_LOGOUT_KEY)
            return {}
