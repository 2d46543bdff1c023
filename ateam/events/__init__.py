"""
A(i)-Team live event feed.

- feed.py: per-connection poll/heartbeat loop with atomic cursor advance
- circuit.py: consecutive-failure breaker that closes a failing feed
- sse.py: event types and server-sent events framing
"""

from ateam.events.circuit import CircuitState, CircuitStats, PollCircuitBreaker
from ateam.events.feed import BoardEventFeed
from ateam.events.sse import HEARTBEAT, BoardEvent, EventType, format_sse_event, parse_sse_chunk

__all__ = [
    "BoardEventFeed",
    "BoardEvent",
    "EventType",
    "HEARTBEAT",
    "format_sse_event",
    "parse_sse_chunk",
    "CircuitState",
    "CircuitStats",
    "PollCircuitBreaker",
]
