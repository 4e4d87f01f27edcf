"""Tests for the conversation history store."""

import asyncio
import json
from datetime import timedelta
from unittest.mock import patch

import pytest

from ai_collab.history import (
    HISTORY_FILENAME,
    ConversationHistoryStore,
    entry_from_dict,
    entry_to_dict,
)


@pytest.fixture
def record(clock):
    """Factory for raw on-disk records aged relative to the test clock."""

    def build(query, hours_ago, tool="consult_ai"):
        return {
            "timestamp": (clock.now - timedelta(hours=hours_ago)).isoformat().replace("+00:00", "Z"),
            "tool": tool,
            "provider": "claude",
            "query": query,
            "response": f"answer to {query}",
            "contextFiles": ["src/auth.py"],
            "tokenCount": 10,
        }

    return build


class TestEmptyWorkspace:
    def test_no_history_file(self, history_store, project_dir):
        assert history_store.recent(5, 6) == []
        assert history_store.all() == []
        assert not (project_dir / HISTORY_FILENAME).exists()

    def test_path_is_inside_workspace(self, history_store, project_dir):
        assert history_store.path == project_dir / HISTORY_FILENAME


class TestAppend:
    @pytest.mark.asyncio
    async def test_append_persists_newest_first(self, history_store, project_dir, clock, make_entry):
        await history_store.append(make_entry(query="first", timestamp=clock.now))
        clock.advance(minutes=1)
        assert await history_store.append(make_entry(query="second", timestamp=clock.now)) is True

        assert [e.query for e in history_store.all()] == ["second", "first"]
        data = json.loads((project_dir / HISTORY_FILENAME).read_text(encoding="utf-8"))
        assert [r["query"] for r in data] == ["second", "first"]
        assert data[0]["contextFiles"] == []
        assert data[0]["tokenCount"] == 42

    @pytest.mark.asyncio
    async def test_capacity_evicts_oldest(self, history_store, clock, make_entry):
        for i in range(25):
            await history_store.append(make_entry(query=f"q{i}", timestamp=clock.now))
            clock.advance(seconds=1)

        entries = history_store.all()
        assert len(entries) == 20
        assert entries[0].query == "q24"
        assert entries[-1].query == "q5"
        assert not {f"q{i}" for i in range(5)} & {e.query for e in entries}

    @pytest.mark.asyncio
    async def test_appending_21st_evicts_exactly_one(self, history_store, clock, make_entry):
        for i in range(21):
            await history_store.append(make_entry(query=f"q{i}", timestamp=clock.now))
        queries = [e.query for e in history_store.all()]
        assert len(queries) == 20
        assert "q0" not in queries

    @pytest.mark.asyncio
    async def test_write_failure_keeps_entry_in_memory(self, history_store, clock, make_entry):
        with patch("pathlib.Path.write_text", side_effect=OSError("disk full")):
            persisted = await history_store.append(make_entry(query="kept", timestamp=clock.now))
        assert persisted is False
        assert [e.query for e in history_store.all()] == ["kept"]

    @pytest.mark.asyncio
    async def test_concurrent_appends_leave_file_matching_memory(
        self, history_store, project_dir, clock, make_entry
    ):
        await asyncio.gather(
            *(history_store.append(make_entry(query=f"q{i}", timestamp=clock.now)) for i in range(8))
        )

        on_disk = json.loads((project_dir / HISTORY_FILENAME).read_text(encoding="utf-8"))
        assert [r["query"] for r in on_disk] == [e.query for e in history_store.all()]
        assert len(on_disk) == 8


class TestLoad:
    def test_drops_expired_entries_and_rewrites(self, resolver, clock, project_dir, write_history, record):
        path = project_dir / HISTORY_FILENAME
        write_history(path, [record("fresh", 1), record("day old", 23), record("stale", 25)])

        store = ConversationHistoryStore(resolver, clock=clock)
        assert [e.query for e in store.all()] == ["fresh", "day old"]

        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert [r["query"] for r in on_disk] == ["fresh", "day old"]

    def test_untouched_file_is_not_rewritten(self, resolver, clock, project_dir, write_history, record):
        path = project_dir / HISTORY_FILENAME
        write_history(path, [record("fresh", 1)])
        before = path.read_text(encoding="utf-8")

        ConversationHistoryStore(resolver, clock=clock).all()
        assert path.read_text(encoding="utf-8") == before

    def test_round_trip_keeps_all_fields(self, resolver, clock, project_dir, write_history, record):
        write_history(project_dir / HISTORY_FILENAME, [record("fresh", 1)])
        entry = ConversationHistoryStore(resolver, clock=clock).all()[0]
        assert entry.timestamp == clock.now - timedelta(hours=1)
        assert entry.tool == "consult_ai"
        assert entry.provider == "claude"
        assert entry.response == "answer to fresh"
        assert entry.context_files == ("src/auth.py",)
        assert entry.token_count == 10

    def test_corrupt_file_loads_empty(self, resolver, clock, project_dir):
        (project_dir / HISTORY_FILENAME).write_text("{not json", encoding="utf-8")
        assert ConversationHistoryStore(resolver, clock=clock).all() == []

    def test_malformed_records_are_skipped(self, resolver, clock, project_dir, write_history, record):
        write_history(project_dir / HISTORY_FILENAME, [record("good", 1), {"tool": "x"}, "junk"])
        assert [e.query for e in ConversationHistoryStore(resolver, clock=clock).all()] == ["good"]

    def test_reload_on_workspace_switch(
        self, resolver, clock, project_dir, tmp_path, write_history, record
    ):
        write_history(project_dir / HISTORY_FILENAME, [record("mine", 1)])
        other = tmp_path / "other"
        other.mkdir()
        write_history(other / HISTORY_FILENAME, [record("theirs", 1)])

        store = ConversationHistoryStore(resolver, clock=clock)
        assert [e.query for e in store.all()] == ["mine"]
        resolver.set_workspace(other)
        assert [e.query for e in store.all()] == ["theirs"]


class TestRecent:
    def test_filters_by_freshness_window(self, resolver, clock, project_dir, write_history, record):
        write_history(
            project_dir / HISTORY_FILENAME,
            [record("one hour", 1), record("five hours", 5), record("seven hours", 7)],
        )
        store = ConversationHistoryStore(resolver, clock=clock)

        assert [e.query for e in store.recent(5, 6)] == ["one hour", "five hours"]
        # all() keeps the longer retention window
        assert len(store.all()) == 3

    def test_respects_limit(self, resolver, clock, project_dir, write_history, record):
        write_history(project_dir / HISTORY_FILENAME, [record(f"q{i}", i * 0.1) for i in range(8)])
        store = ConversationHistoryStore(resolver, clock=clock)
        assert [e.query for e in store.recent(limit=3)] == ["q0", "q1", "q2"]


class TestSerialization:
    def test_entry_dict_round_trip(self, make_entry):
        entry = make_entry(context_files=("a.py", "b.py"))
        assert entry_from_dict(entry_to_dict(entry)) == entry

    def test_naive_timestamp_is_treated_as_utc(self, clock):
        entry = entry_from_dict({"timestamp": "2025-01-20T12:00:00", "query": "q"})
        assert entry.timestamp == clock.now

    def test_missing_timestamp_is_rejected(self):
        assert entry_from_dict({"query": "q"}) is None
