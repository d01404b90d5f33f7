"""ReminderEngine: one tab's scheduler wiring aggregator, ledger, evaluator,
dispatcher and cross-tab sync around a fixed-cadence tick task.

Lifecycle: start() loads the ledger, subscribes to store changes and feeds,
requests notification permission, runs a first tick and spawns the tick loop.
stop() tears all of it down together.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from src.reminders.aggregator import CandidateAggregator
from src.reminders.dispatcher import PresentationDispatcher
from src.reminders.evaluator import WindowEvaluator
from src.reminders.ledger import DismissalLedger
from src.reminders.models import ActiveState, ReminderKind, day_key
from src.reminders.sync import CrossTabSync

if TYPE_CHECKING:
    from src.config.settings import ReminderSettings
    from src.reminders.contracts import (
        AudioCue,
        KeyValueStore,
        Presenter,
        SnapshotFeed,
        SystemNotifier,
    )

logger = structlog.get_logger()

Clock = Callable[[], datetime]


class ReminderEngine:
    """Per-tab reminder scheduler over injected collaborators."""

    def __init__(
        self,
        *,
        meeting_feed: SnapshotFeed,
        note_feed: SnapshotFeed,
        store: KeyValueStore,
        presenter: Presenter,
        audio: AudioCue,
        notifier: SystemNotifier,
        settings: ReminderSettings,
        clock: Clock | None = None,
    ) -> None:
        tz = settings.tz()
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(tz) if tz else datetime.now().astimezone())
        self._meeting_feed = meeting_feed
        self._note_feed = note_feed

        self.aggregator = CandidateAggregator(tz)
        self.ledger = DismissalLedger(store)
        self.evaluator = WindowEvaluator(
            self.aggregator,
            self.ledger,
            window=timedelta(minutes=settings.window_minutes),
            logout_hour=settings.logout_hour,
            logout_minute=settings.logout_minute,
        )
        self.dispatcher = PresentationDispatcher(
            presenter,
            audio,
            notifier,
            self.evaluator,
            self.ledger,
            notification_title=settings.notification_title,
        )
        self.sync = CrossTabSync(store, self.ledger)
        self._task: asyncio.Task[None] | None = None
        self._started = False

    @property
    def state(self) -> ActiveState:
        return self.evaluator.state

    @property
    def running(self) -> bool:
        return self._started

    def now(self) -> datetime:
        return self._clock()

    async def start(self, *, run_loop: bool = True) -> None:
        """Bring the engine up. ``run_loop=False`` skips the periodic task (manual ticks)."""
        if self._started:
            return
        self._started = True
        await self.ledger.load()
        self.sync.start()
        self.aggregator.attach(self._meeting_feed, self._note_feed)
        await self.dispatcher.request_permission()
        await self.tick()
        if run_loop:
            self._task = asyncio.create_task(self._run(), name="reminder_tick_loop")
        logger.info("reminder_engine_started", tick_interval_s=self._settings.tick_interval_s)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.aggregator.detach()
        await self.sync.stop()
        self._started = False
        logger.info("reminder_engine_stopped")

    async def tick(self) -> ActiveState:
        """One evaluation: recompute the active slots and reconcile the UI."""
        state = self.evaluator.evaluate(self.now())
        await self.dispatcher.apply(state)
        return state

    async def dismiss(self, kind: ReminderKind) -> bool:
        return await self.dispatcher.dismiss(kind, day_key(self.now()))

    async def relay_push(self, payload: Mapping[str, Any]) -> None:
        await self.dispatcher.relay_push(payload)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._settings.tick_interval_s)
            try:
                await self.tick()
            except Exception:
                # Next tick retries from scratch
                logger.exception("reminder_tick_failed")
