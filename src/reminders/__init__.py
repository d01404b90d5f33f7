"""Reminder engine: meeting/note reminders and the daily logout checkpoint."""

from src.reminders.aggregator import CandidateAggregator
from src.reminders.dispatcher import PresentationDispatcher
from src.reminders.engine import ReminderEngine
from src.reminders.evaluator import WindowEvaluator, select_candidate
from src.reminders.ledger import DismissalLedger
from src.reminders.models import (
    ActiveState,
    MeetingCandidate,
    NoteCandidate,
    ReminderKind,
    day_key,
)
from src.reminders.sync import CrossTabSync

__all__ = [
    "ActiveState",
    "CandidateAggregator",
    "CrossTabSync",
    "DismissalLedger",
    "MeetingCandidate",
    "NoteCandidate",
    "PresentationDispatcher",
    "ReminderEngine",
    "ReminderKind",
    "WindowEvaluator",
    "day_key",
    "select_candidate",
]
