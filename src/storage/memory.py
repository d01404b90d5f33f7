"""In-process key-value storage shared by several tab views.

StorageArea plays the role of the profile-wide store: values are kept as JSON
text (callers never share mutable objects), and a write through one view
notifies every *other* view registered for that key, the way a storage event
reaches sibling tabs but not the writer.
"""

from __future__ import annotations

import json
import uuid
from collections import defaultdict
from typing import Any

import structlog

from src.infra.errors import StorageError
from src.reminders.contracts import ChangeCallback, KeyValueStore, Unsubscribe

logger = structlog.get_logger()


class StorageArea:
    """Shared backing map for MemoryKeyValueStore views."""

    def __init__(self, *, quota_bytes: int | None = None) -> None:
        self._data: dict[str, str] = {}
        self._quota_bytes = quota_bytes
        self._views: list[MemoryKeyValueStore] = []

    def view(self, writer_id: str | None = None) -> MemoryKeyValueStore:
        """Create a store handle for one tab."""
        store = MemoryKeyValueStore(self, writer_id=writer_id or uuid.uuid4().hex)
        self._views.append(store)
        return store

    def detach(self, store: MemoryKeyValueStore) -> None:
        if store in self._views:
            self._views.remove(store)

    def read(self, key: str) -> str | None:
        return self._data.get(key)

    def write(self, key: str, text: str, origin: MemoryKeyValueStore) -> None:
        if self._quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
            if used + len(key) + len(text) > self._quota_bytes:
                raise StorageError(
                    f"Storage quota exceeded writing '{key}' "
                    f"({used + len(key) + len(text)} > {self._quota_bytes})",
                    code="QUOTA_EXCEEDED",
                )
        self._data[key] = text
        for store in list(self._views):
            if store is not origin:
                store.notify(key)


class MemoryKeyValueStore(KeyValueStore):
    """One tab's handle onto a StorageArea."""

    def __init__(self, area: StorageArea, *, writer_id: str) -> None:
        self._area = area
        self.writer_id = writer_id
        self._listeners: dict[str, list[ChangeCallback]] = defaultdict(list)

    async def get(self, key: str) -> Any | None:
        text = self._area.read(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.warning("kv_value_not_json", key=key)
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            text = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for '{key}' is not JSON serializable: {e}") from e
        self._area.write(key, text, origin=self)

    def on_external_change(self, key: str, callback: ChangeCallback) -> Unsubscribe:
        self._listeners[key].append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners[key]:
                self._listeners[key].remove(callback)

        return _unsubscribe

    def notify(self, key: str) -> None:
        for callback in list(self._listeners.get(key, ())):
            callback(key)

    async def close(self) -> None:
        self._listeners.clear()
        self._area.detach(self)
