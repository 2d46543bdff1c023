"""Tests for the live board event feed."""

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from ateam.events.feed import BoardEventFeed
from ateam.events.sse import HEARTBEAT, parse_sse_chunk
from ateam.persistence.models import ActivityLogEntry, CheckResult
from ateam.state import Stage

PROJECT = "test-project"


class Collector:
    """Async transport that records every chunk it is sent."""

    def __init__(self):
        self.chunks: list[str] = []
        self.fail_next = 0

    async def __call__(self, chunk: str) -> None:
        if self.fail_next:
            self.fail_next -= 1
            raise ConnectionResetError("observer went away")
        self.chunks.append(chunk)

    @property
    def events(self) -> list[dict]:
        return [event for chunk in self.chunks for event in parse_sse_chunk(chunk)]

    def activity_ids(self) -> list[int]:
        return [e["data"]["entry"]["id"] for e in self.events if e["type"] == "activity-entry-added"]


def failing_source(error: Exception | None = None) -> MagicMock:
    source = MagicMock()
    source.list_items.side_effect = error or RuntimeError("database is locked")
    return source


def healthy_source() -> MagicMock:
    source = MagicMock()
    source.list_items.return_value = []
    source.get_current_mission.return_value = None
    source.list_activity.return_value = []
    return source


class TestPolling:
    """Tests for poll_once against a real board."""

    @pytest.mark.asyncio
    async def test_first_poll_is_baseline(self, board, repo):
        board.create_item("Existing")
        send = Collector()
        feed = BoardEventFeed(repo, PROJECT, send=send)

        assert await feed.poll_once() is True

        assert send.chunks == []
        assert feed.last_activity_log_id == repo.latest_activity_id(PROJECT)

    @pytest.mark.asyncio
    async def test_every_entry_exactly_once(self, board, repo):
        """N entries written between polls arrive once each, in id order."""
        send = Collector()
        feed = BoardEventFeed(repo, PROJECT, send=send)
        await feed.poll_once()

        written = [board.log_activity(f"entry {n}").id for n in range(25)]
        await feed.poll_once()
        await feed.poll_once()
        more = [board.log_activity(f"late {n}").id for n in range(3)]
        await feed.poll_once()

        assert send.activity_ids() == written + more
        assert feed.last_activity_log_id == more[-1]

    @pytest.mark.asyncio
    async def test_explicit_cursor_skips_baseline(self, board, repo):
        first = board.log_activity("before")
        second = board.log_activity("after")
        send = Collector()
        feed = BoardEventFeed(repo, PROJECT, send=send, last_activity_log_id=first.id)

        await feed.poll_once()

        assert send.activity_ids() == [second.id]

    @pytest.mark.asyncio
    async def test_item_events(self, board, repo):
        base = board.create_item("Base")
        send = Collector()
        feed = BoardEventFeed(repo, PROJECT, send=send)
        await feed.poll_once()

        item = board.create_item("Login form")
        await feed.poll_once()
        board.move(item.id, Stage.READY)
        await feed.poll_once()
        board.set_dependencies(item.id, [base.id])
        await feed.poll_once()

        kinds = [e["type"] for e in send.events if e["type"] != "activity-entry-added"]
        assert kinds == ["item-added", "item-moved", "item-updated"]
        moved = next(e for e in send.events if e["type"] == "item-moved")
        assert moved["data"]["from_stage"] == "briefings"
        assert moved["data"]["to_stage"] == "ready"

    @pytest.mark.asyncio
    async def test_archived_item_is_deleted_event(self, board, repo):
        board.start_mission("First")
        item = board.create_item("Login form")
        send = Collector()
        feed = BoardEventFeed(repo, PROJECT, send=send)
        await feed.poll_once()

        board.archive_mission()
        await feed.poll_once()

        deleted = [e for e in send.events if e["type"] == "item-deleted"]
        assert [e["data"]["item_id"] for e in deleted] == [item.id]

    @pytest.mark.asyncio
    async def test_mission_events(self, board, repo):
        board.start_mission("Kanban viewer")
        send = Collector()
        feed = BoardEventFeed(repo, PROJECT, send=send)
        await feed.poll_once()

        board.record_precheck(CheckResult(passed=True))
        board.record_postcheck(CheckResult(passed=True))
        await feed.poll_once()

        kinds = [e["type"] for e in send.events if e["type"] != "activity-entry-added"]
        assert kinds == ["board-updated", "mission-completed"]

    @pytest.mark.asyncio
    async def test_batch_is_one_send(self, board, repo):
        send = Collector()
        feed = BoardEventFeed(repo, PROJECT, send=send)
        await feed.poll_once()

        board.create_item("One")
        board.create_item("Two")
        await feed.poll_once()

        assert len(send.chunks) == 1
        assert len(send.events) == 4

    @pytest.mark.asyncio
    async def test_quiet_poll_sends_nothing(self, board, repo):
        send = Collector()
        feed = BoardEventFeed(repo, PROJECT, send=send)
        await feed.poll_once()
        await feed.poll_once()
        assert send.chunks == []


class TestFailures:
    """Tests for cursor safety and the circuit breaker."""

    @pytest.mark.asyncio
    async def test_emit_failure_keeps_cursor(self, board, repo):
        """A failed send leaves the cursor alone and the entries are re-sent."""
        send = Collector()
        feed = BoardEventFeed(repo, PROJECT, send=send)
        await feed.poll_once()
        cursor = feed.last_activity_log_id

        written = [board.log_activity(f"entry {n}").id for n in range(3)]
        send.fail_next = 1
        assert await feed.poll_once() is False
        assert feed.last_activity_log_id == cursor
        assert feed.consecutive_errors == 1

        assert await feed.poll_once() is True
        assert send.activity_ids() == written
        assert feed.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_query_failure_keeps_cursor(self):
        source = failing_source()
        feed = BoardEventFeed(source, PROJECT, send=AsyncMock(), last_activity_log_id=7)

        assert await feed.poll_once() is False

        assert feed.last_activity_log_id == 7
        assert feed.consecutive_errors == 1

    @pytest.mark.asyncio
    async def test_closes_on_fifth_consecutive_failure(self):
        feed = BoardEventFeed(failing_source(), PROJECT, send=AsyncMock())

        for _ in range(4):
            await feed.poll_once()
            assert not feed.closed

        await feed.poll_once()

        assert feed.closed
        assert feed.breaker.is_open
        assert feed.consecutive_errors == 5
        assert await feed.poll_once() is False

    @pytest.mark.asyncio
    async def test_success_resets_count(self):
        source = healthy_source()
        feed = BoardEventFeed(source, PROJECT, send=AsyncMock())
        await feed.poll_once()

        source.list_activity.side_effect = RuntimeError("disk I/O error")
        for _ in range(4):
            await feed.poll_once()
        source.list_activity.side_effect = None
        await feed.poll_once()
        source.list_activity.side_effect = RuntimeError("disk I/O error")
        for _ in range(4):
            await feed.poll_once()

        assert not feed.closed
        assert feed.consecutive_errors == 4

    @pytest.mark.asyncio
    async def test_emit_failures_count_toward_breaker(self):
        source = healthy_source()
        send = AsyncMock(side_effect=ConnectionResetError("gone"))
        feed = BoardEventFeed(source, PROJECT, send=send, last_activity_log_id=0)
        source.list_activity.return_value = [ActivityLogEntry(PROJECT, "hello", id=1)]

        for _ in range(5):
            await feed.poll_once()

        assert feed.closed
        assert feed.last_activity_log_id == 0

    @pytest.mark.asyncio
    async def test_failure_logged_to_feed_log(self, isolated_logs):
        feed = BoardEventFeed(failing_source(), PROJECT, send=AsyncMock(), max_consecutive_errors=1)
        await feed.poll_once()

        lines = isolated_logs.feed_log_path.read_text().splitlines()
        assert any('"circuit_open"' in line for line in lines)
        assert any('"items"' in line for line in lines)


class TestLifecycle:
    """Tests for run(), close(), heartbeats and stream()."""

    @pytest.mark.asyncio
    async def test_run_requires_transport(self):
        feed = BoardEventFeed(healthy_source(), PROJECT)
        with pytest.raises(RuntimeError):
            await feed.run()

    @pytest.mark.asyncio
    async def test_close_stops_tasks(self):
        on_close = MagicMock()
        feed = BoardEventFeed(
            healthy_source(),
            PROJECT,
            send=AsyncMock(),
            poll_interval_ms=10,
            on_close=on_close,
        )
        runner = asyncio.create_task(feed.run())
        await asyncio.sleep(0.05)

        feed.close()
        await asyncio.wait_for(runner, timeout=1)

        assert feed.closed
        assert feed._poll_task.done()
        assert feed._heartbeat_task.done()
        on_close.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_waits_for_running_query(self):
        """The source is closed only after a query in the worker thread returns."""
        started = threading.Event()
        release = threading.Event()
        calls: list[str] = []

        def slow_list_items(project_id):
            started.set()
            release.wait(timeout=2)
            calls.append("query")
            return []

        source = healthy_source()
        source.list_items.side_effect = slow_list_items
        source.close.side_effect = lambda: calls.append("close")
        feed = BoardEventFeed(source, PROJECT, send=AsyncMock(), on_close=source.close)

        runner = asyncio.create_task(feed.run())
        assert await asyncio.to_thread(started.wait, 1)
        feed.close()
        asyncio.get_running_loop().call_later(0.05, release.set)
        await asyncio.wait_for(runner, timeout=2)

        assert calls == ["query", "close"]

    @pytest.mark.asyncio
    async def test_breaker_trip_ends_run(self):
        feed = BoardEventFeed(failing_source(), PROJECT, send=AsyncMock(), poll_interval_ms=1)
        await asyncio.wait_for(feed.run(), timeout=2)
        assert feed.breaker.is_open

    @pytest.mark.asyncio
    async def test_heartbeat(self):
        send = AsyncMock()
        feed = BoardEventFeed(
            healthy_source(),
            PROJECT,
            send=send,
            poll_interval_ms=60_000,
            heartbeat_interval_ms=10,
        )
        runner = asyncio.create_task(feed.run())
        await asyncio.sleep(0.1)
        feed.close()
        await asyncio.wait_for(runner, timeout=1)

        send.assert_any_await(HEARTBEAT)

    @pytest.mark.asyncio
    async def test_heartbeat_failure_closes(self):
        send = AsyncMock(side_effect=BrokenPipeError("gone"))
        feed = BoardEventFeed(
            healthy_source(),
            PROJECT,
            send=send,
            poll_interval_ms=60_000,
            heartbeat_interval_ms=10,
        )
        await asyncio.wait_for(feed.run(), timeout=1)
        assert feed.closed

    @pytest.mark.asyncio
    async def test_stream_yields_events(self, board):
        board.log_activity("before")
        feed = board.subscribe(last_activity_log_id=0)
        chunks = feed.stream()

        first = await asyncio.wait_for(chunks.__anext__(), timeout=2)
        await chunks.aclose()

        messages = [e["data"]["entry"]["message"] for e in parse_sse_chunk(first)]
        assert messages == ["before"]
        assert feed.closed
