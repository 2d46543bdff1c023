"""
Board Event Feed - live, loss-free board updates for one observer

Each observer connection gets its own BoardEventFeed with private state:
the activity-log cursor, the last seen item and mission snapshots, a
circuit breaker, and two asyncio tasks (poll and heartbeat).

Poll cycle:
1. Query the store for the item list, the current mission, and activity
   entries after the cursor
2. Diff against the previous snapshot and build one event per change,
   plus one event per new activity entry in ascending id order
3. Send the whole batch through the transport, and only then commit the
   new snapshot and advance the cursor
4. Any failure leaves cursor and snapshot untouched; after
   max_consecutive_errors failures in a row the connection closes

The first poll only records a baseline unless the feed was opened with an
explicit cursor.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from ateam.config import (
    DEFAULT_HEARTBEAT_INTERVAL_MS,
    DEFAULT_POLL_INTERVAL_MS,
    MAX_CONSECUTIVE_ERRORS,
)
from ateam.events.circuit import PollCircuitBreaker
from ateam.events.sse import HEARTBEAT, BoardEvent, EventType, format_sse_event
from ateam.logging import FeedLogEntry, feed_logger, now_iso
from ateam.persistence.models import ActivityLogEntry, Mission, WorkItem
from ateam.state import MissionState

logger = logging.getLogger(__name__)

Transport = Callable[[str], Awaitable[None]]

_CLOSED = object()


class BoardEventFeed:
    """
    Incremental event stream for one observer connection.

    The source is anything with list_items(project_id),
    get_current_mission(project_id) and list_activity(project_id, after_id);
    BoardRepository provides all three. Source calls run in a worker
    thread so that a slow store never blocks the event loop.

    Usage:
        feed = BoardEventFeed(repo, "my-project")
        async for chunk in feed.stream():
            response.write(chunk)
    """

    def __init__(
        self,
        source: Any,
        project_id: str,
        send: Transport | None = None,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        heartbeat_interval_ms: int = DEFAULT_HEARTBEAT_INTERVAL_MS,
        max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS,
        last_activity_log_id: int | None = None,
        on_close: Callable[[], None] | None = None,
    ):
        """
        Args:
            source: Store to poll
            project_id: Normalized project id
            send: Async transport for SSE text; stream() installs its own
            poll_interval_ms: Delay between polls
            heartbeat_interval_ms: Delay between keep-alive markers
            max_consecutive_errors: Failed polls in a row before closing
            last_activity_log_id: Resume cursor; None means take a baseline
            on_close: Called once after the tasks have stopped and any
                in-flight query has returned
        """
        self.source = source
        self.project_id = project_id
        self.connection_id = uuid.uuid4().hex[:8]
        self.poll_interval = poll_interval_ms / 1000
        self.heartbeat_interval = heartbeat_interval_ms / 1000
        self.breaker = PollCircuitBreaker(max_consecutive_errors)

        self.last_activity_log_id = last_activity_log_id or 0
        self._baseline_pending = last_activity_log_id is None
        self._items: dict[str, WorkItem] = {}
        self._mission: Mission | None = None

        self._send = send
        self._on_close = on_close
        self._queue: asyncio.Queue | None = None
        self._poll_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._pending_query: asyncio.Future | None = None
        self._closed = False
        self._closed_event = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def consecutive_errors(self) -> int:
        return self.breaker.consecutive_errors

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def run(self) -> None:
        """Start the poll and heartbeat tasks and wait until the feed closes."""
        if self._closed:
            return
        if self._send is None:
            raise RuntimeError("BoardEventFeed.run() needs a transport; use stream() instead")

        self._log("opened")
        self._poll_task = asyncio.create_task(self._poll_loop())
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        try:
            await self._closed_event.wait()
        finally:
            self.close()
            tasks = [t for t in (self._poll_task, self._heartbeat_task) if t is not None]
            await asyncio.gather(*tasks, return_exceptions=True)
            if self._pending_query is not None:
                # A cancelled poll leaves its query running in the worker thread
                await asyncio.gather(self._pending_query, return_exceptions=True)
            if self._on_close is not None:
                on_close, self._on_close = self._on_close, None
                on_close()

    async def stream(self) -> AsyncIterator[str]:
        """Run the feed and yield SSE text chunks until it closes."""
        self._queue = asyncio.Queue()
        self._send = self._enqueue
        runner = asyncio.create_task(self.run())
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is _CLOSED:
                    break
                yield chunk
        finally:
            self.close()
            await asyncio.gather(runner, return_exceptions=True)

    def close(self) -> None:
        """
        Close the connection.

        Cancels both tasks immediately; safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None  # Called outside the event loop

        for task in (self._poll_task, self._heartbeat_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

        self._closed_event.set()
        if self._queue is not None:
            self._queue.put_nowait(_CLOSED)

        logger.debug(f"Feed {self.connection_id}: closed")
        self._log("closed")

    async def _enqueue(self, chunk: str) -> None:
        if self._queue is None:
            raise RuntimeError("feed has no queue")
        self._queue.put_nowait(chunk)

    async def _poll_loop(self) -> None:
        while not self._closed:
            await self.poll_once()
            if self._closed:
                break
            await asyncio.sleep(self.poll_interval)

    async def _heartbeat_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.heartbeat_interval)
            if self._closed:
                break
            try:
                await self._send(HEARTBEAT)  # type: ignore[misc]
            except Exception as e:
                # Transport gone: the observer disconnected
                logger.warning(f"Feed {self.connection_id}: heartbeat failed, closing: {e}")
                self.close()

    # =========================================================================
    # POLLING
    # =========================================================================

    async def poll_once(self) -> bool:
        """
        Run one poll cycle.

        Returns:
            True if the cycle succeeded (queries and emission)
        """
        if self._closed:
            return False

        query = "items"
        try:
            items = await self._query(self.source.list_items, self.project_id)
            query = "mission"
            mission = await self._query(self.source.get_current_mission, self.project_id)
            query = "activity"
            entries = await self._query(
                self.source.list_activity, self.project_id, self.last_activity_log_id
            )
        except Exception as e:
            self._poll_failed(query, e)
            return False

        entries = sorted(entries, key=lambda e: e.id or 0)
        new_cursor = max([self.last_activity_log_id] + [e.id or 0 for e in entries])

        if self._baseline_pending:
            self._commit(items, mission, new_cursor)
            self._baseline_pending = False
            self.breaker.record_success()
            logger.debug(
                f"Feed {self.connection_id}: baseline of {len(items)} items, cursor {new_cursor}"
            )
            return True

        events = self._item_events(items) + self._mission_events(mission)
        events += [self._activity_event(entry) for entry in entries]

        if events:
            batch = "".join(format_sse_event(event) for event in events)
            try:
                await self._send(batch)  # type: ignore[misc]
            except Exception as e:
                self._poll_failed("emit", e)
                return False

        # Only now is the batch delivered
        self._commit(items, mission, new_cursor)
        self.breaker.record_success()
        if events:
            logger.debug(f"Feed {self.connection_id}: emitted {len(events)} events, cursor {new_cursor}")
        return True

    async def _query(self, method: Callable[..., Any], *args: Any) -> Any:
        """Run a source call in a worker thread that outlives cancellation of the poll."""
        self._pending_query = asyncio.ensure_future(asyncio.to_thread(method, *args))
        return await asyncio.shield(self._pending_query)

    def _commit(self, items: list[WorkItem], mission: Mission | None, cursor: int) -> None:
        self._items = {item.id: item for item in items}
        self._mission = mission
        self.last_activity_log_id = cursor

    def _poll_failed(self, query: str, error: Exception) -> None:
        tripped = self.breaker.record_failure(error)
        count = self.breaker.consecutive_errors
        logger.error(
            f"Feed {self.connection_id}: {query} query failed "
            f"({count}/{self.breaker.failure_threshold}): {error}"
        )
        self._log(
            "poll_failed" if query != "emit" else "emit_failed",
            query=query,
            error=str(error),
            error_type=type(error).__name__,
        )
        if tripped:
            logger.error(
                f"Feed {self.connection_id}: circuit breaker tripped after "
                f"{count} consecutive errors, closing connection"
            )
            self._log("circuit_open", query=query, error=str(error), error_type=type(error).__name__)
            self.close()

    # =========================================================================
    # DIFFING
    # =========================================================================

    def _item_events(self, items: list[WorkItem]) -> list[BoardEvent]:
        events: list[BoardEvent] = []
        seen: set[str] = set()

        for item in items:
            seen.add(item.id)
            previous = self._items.get(item.id)
            if previous is None:
                events.append(BoardEvent(EventType.ITEM_ADDED, {"item": item.to_dict()}))
            elif previous.stage != item.stage:
                events.append(
                    BoardEvent(
                        EventType.ITEM_MOVED,
                        {
                            "item_id": item.id,
                            "from_stage": previous.stage.value,
                            "to_stage": item.stage.value,
                            "item": item.to_dict(),
                        },
                    )
                )
            elif previous.to_dict() != item.to_dict():
                events.append(BoardEvent(EventType.ITEM_UPDATED, {"item": item.to_dict()}))

        for item_id in self._items:
            if item_id not in seen:
                events.append(BoardEvent(EventType.ITEM_DELETED, {"item_id": item_id}))

        return events

    def _mission_events(self, mission: Mission | None) -> list[BoardEvent]:
        previous = self._mission
        prev_key = (previous.id, previous.state) if previous else None
        new_key = (mission.id, mission.state) if mission else None
        if prev_key == new_key:
            return []

        events = [BoardEvent(EventType.BOARD_UPDATED, {"mission": mission.to_dict() if mission else None})]
        if mission is not None and mission.state == MissionState.COMPLETED:
            events.append(BoardEvent(EventType.MISSION_COMPLETED, {"mission": mission.to_dict()}))
        return events

    def _activity_event(self, entry: ActivityLogEntry) -> BoardEvent:
        return BoardEvent(EventType.ACTIVITY_ENTRY_ADDED, {"entry": entry.to_dict()})

    def _log(self, event: str, **fields: Any) -> None:
        feed_logger.info(
            FeedLogEntry(
                timestamp=now_iso(),
                connection_id=self.connection_id,
                project_id=self.project_id,
                event=event,
                consecutive_errors=self.breaker.consecutive_errors,
                last_activity_log_id=self.last_activity_log_id,
                **fields,
            ).to_json()
        )
