"""PostgreSQL-backed key-value store shared by tabs in different processes.

Every write bumps the row's ``version``. External changes are detected by a
polling watcher: a version this store did not write itself fires the key's
callbacks. Polling starts with the first subscription; call close() to stop.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infra.errors import StorageError
from src.reminders.contracts import ChangeCallback, KeyValueStore, Unsubscribe
from src.storage.models import KVEntry

logger = structlog.get_logger()


class SqlKeyValueStore(KeyValueStore):
    """KeyValueStore over the kv_entries table."""

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        *,
        writer_id: str | None = None,
        poll_interval_s: float = 2.0,
    ) -> None:
        self._db_session_factory = db_session_factory
        self.writer_id = writer_id or uuid.uuid4().hex
        self._poll_interval_s = poll_interval_s
        self._listeners: dict[str, list[ChangeCallback]] = defaultdict(list)
        self._seen: dict[str, int] = {}
        self._own_versions: dict[str, set[int]] = defaultdict(set)
        self._watch_task: asyncio.Task[None] | None = None

    async def get(self, key: str) -> Any | None:
        try:
            async with self._db_session_factory() as db:
                result = await db.execute(
                    select(KVEntry.value, KVEntry.version).where(KVEntry.key == key)
                )
                row = result.one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read '{key}': {e}", code="STORAGE_READ_FAILED") from e
        # Changes after this read must fire even if no poll has run yet
        self._seen.setdefault(key, row.version if row is not None else 0)
        return row.value if row is not None else None

    async def set(self, key: str, value: Any) -> None:
        stmt = pg_insert(KVEntry).values(key=key, value=value, version=1, writer_id=self.writer_id)
        stmt = stmt.on_conflict_do_update(
            index_elements=[KVEntry.key],
            set_={
                "value": stmt.excluded.value,
                "version": KVEntry.version + 1,
                "writer_id": stmt.excluded.writer_id,
                "updated_at": func.now(),
            },
        ).returning(KVEntry.version)
        try:
            async with self._db_session_factory() as db, db.begin():
                version = (await db.execute(stmt)).scalar_one()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write '{key}': {e}", code="STORAGE_WRITE_FAILED") from e
        self._own_versions[key].add(version)
        logger.debug("kv_written", key=key, version=version, writer_id=self.writer_id)

    def on_external_change(self, key: str, callback: ChangeCallback) -> Unsubscribe:
        self._listeners[key].append(callback)
        if self._watch_task is None or self._watch_task.done():
            self._watch_task = asyncio.get_running_loop().create_task(
                self._watch(), name=f"kv_watch:{self.writer_id}",
            )

        def _unsubscribe() -> None:
            if callback in self._listeners[key]:
                self._listeners[key].remove(callback)

        return _unsubscribe

    async def close(self) -> None:
        self._listeners.clear()
        if self._watch_task is not None:
            self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass
            self._watch_task = None

    async def poll_once(self) -> list[str]:
        """Compare stored versions with the last seen ones; fire callbacks for foreign writes.

        A key that was neither read nor polled before only records a baseline on
        its first poll. Returns the keys that fired.
        """
        keys = [k for k, callbacks in self._listeners.items() if callbacks]
        if not keys:
            return []
        try:
            async with self._db_session_factory() as db:
                result = await db.execute(
                    select(KVEntry.key, KVEntry.version).where(KVEntry.key.in_(keys))
                )
                versions = {row.key: row.version for row in result}
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to poll versions: {e}", code="STORAGE_READ_FAILED") from e

        fired: list[str] = []
        for key in keys:
            current = versions.get(key, 0)
            if key not in self._seen:
                self._seen[key] = current
                continue
            previous = self._seen[key]
            if current == previous:
                continue
            self._seen[key] = current
            own = self._own_versions[key]
            foreign = any(v not in own for v in range(previous + 1, current + 1))
            own.difference_update(v for v in list(own) if v <= current)
            if foreign:
                fired.append(key)
                for callback in list(self._listeners[key]):
                    callback(key)
        return fired

    async def _watch(self) -> None:
        while True:
            try:
                await self.poll_once()
            except StorageError as e:
                logger.warning("kv_watch_poll_failed", error=str(e), code=e.code)
            await asyncio.sleep(self._poll_interval_s)
