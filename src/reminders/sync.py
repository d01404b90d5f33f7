"""Cross-tab sync: refresh the local ledger copy when another tab writes it.

Store change callbacks are synchronous; each one schedules a reload of the
changed key on the running loop. Reloads only feed the next evaluation and
never touch what is already rendered.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from src.reminders.contracts import KeyValueStore, Unsubscribe
    from src.reminders.ledger import DismissalLedger

logger = structlog.get_logger()


class CrossTabSync:
    """Subscribes to external changes of every ledger key."""

    def __init__(self, store: KeyValueStore, ledger: DismissalLedger) -> None:
        self._store = store
        self._ledger = ledger
        self._unsubscribes: list[Unsubscribe] = []
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def running(self) -> bool:
        return bool(self._unsubscribes)

    def start(self) -> None:
        if self._unsubscribes:
            return
        for key in self._ledger.keys:
            self._unsubscribes.append(self._store.on_external_change(key, self._on_change))
        logger.debug("cross_tab_sync_started", keys=list(self._ledger.keys))

    async def stop(self) -> None:
        while self._unsubscribes:
            self._unsubscribes.pop()()
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()

    async def drain(self) -> None:
        """Wait for reloads already scheduled."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_change(self, key: str) -> None:
        if not self._unsubscribes:
            return
        logger.debug("ledger_external_change", key=key)
        task = asyncio.get_running_loop().create_task(
            self._ledger.reload(key), name=f"ledger_reload:{key}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
