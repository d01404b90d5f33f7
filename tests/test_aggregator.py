"""Tests for CandidateAggregator: wholesale snapshot replacement and malformed docs."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from src.reminders.aggregator import CandidateAggregator

TZ = ZoneInfo("Asia/Manila")


class TestSnapshots:
    def test_starts_empty(self) -> None:
        aggregator = CandidateAggregator(TZ)
        assert aggregator.meetings == ()
        assert aggregator.notes == ()

    def test_snapshot_replaces_list(self) -> None:
        aggregator = CandidateAggregator(TZ)
        aggregator.replace_meetings([
            {"id": "m1", "start_date": "2026-03-09T10:00"},
            {"id": "m2", "start_date": "2026-03-09T11:00"},
        ])
        aggregator.replace_meetings([{"id": "m3", "start_date": "2026-03-09T12:00"}])

        assert [m.id for m in aggregator.meetings] == ["m3"]

    def test_feed_order_preserved(self) -> None:
        aggregator = CandidateAggregator(TZ)
        aggregator.replace_notes([
            {"id": "n2", "remind_at": "2026-03-09T11:00"},
            {"id": "n1", "remind_at": "2026-03-09T10:00"},
        ])

        assert [n.id for n in aggregator.notes] == ["n2", "n1"]

    def test_malformed_document_dropped_siblings_kept(self) -> None:
        aggregator = CandidateAggregator(TZ)
        aggregator.replace_meetings([
            {"id": "good-1", "start_date": "2026-03-09T10:00"},
            {"id": "bad", "start_date": "next tuesday"},
            "not-a-document",
            {"start_date": "2026-03-09T10:00"},
            {"id": "good-2", "start_date": datetime(2026, 3, 9, 10, 5, tzinfo=TZ)},
        ])

        assert [m.id for m in aggregator.meetings] == ["good-1", "good-2"]

    def test_out_of_range_trigger_dropped_siblings_kept(self) -> None:
        aggregator = CandidateAggregator(ZoneInfo("America/New_York"))
        aggregator.replace_meetings([
            {"id": "good", "start_date": "2026-03-09T10:00"},
            {"id": "year-one", "start_date": "0001-01-01T00:00:00+00:00"},
        ])
        aggregator.replace_notes([
            {"id": "huge-nanos", "remind_at": {"seconds": 1, "nanoseconds": 10**30}},
            {"id": "good", "remind_at": "2026-03-09T10:00"},
        ])

        assert [m.id for m in aggregator.meetings] == ["good"]
        assert [n.id for n in aggregator.notes] == ["good"]

    def test_notes_without_remind_at_skipped(self) -> None:
        aggregator = CandidateAggregator(TZ)
        aggregator.replace_notes([
            {"id": "n1", "remarks": "plain note"},
            {"id": "n2", "remind_at": "2026-03-09T10:00"},
        ])

        assert [n.id for n in aggregator.notes] == ["n2"]

    def test_empty_snapshot_clears(self) -> None:
        aggregator = CandidateAggregator(TZ)
        aggregator.replace_notes([{"id": "n1", "remind_at": "2026-03-09T10:00"}])
        aggregator.replace_notes([])

        assert aggregator.notes == ()


class TestFeedSubscription:
    def test_attach_receives_current_and_later_snapshots(self, meeting_feed, note_feed) -> None:
        meetings, notes = meeting_feed, note_feed
        meetings.docs = [{"id": "m1", "start_date": "2026-03-09T10:00"}]
        aggregator = CandidateAggregator(TZ)

        aggregator.attach(meetings, notes)
        assert [m.id for m in aggregator.meetings] == ["m1"]

        notes.push([{"id": "n1", "remind_at": "2026-03-09T10:00"}])
        assert [n.id for n in aggregator.notes] == ["n1"]

    def test_detach_stops_updates(self, meeting_feed, note_feed) -> None:
        meetings, notes = meeting_feed, note_feed
        aggregator = CandidateAggregator(TZ)
        aggregator.attach(meetings, notes)

        aggregator.detach()
        meetings.push([{"id": "m1", "start_date": "2026-03-09T10:00"}])

        assert aggregator.meetings == ()
        assert meetings.callbacks == []
        assert notes.callbacks == []
