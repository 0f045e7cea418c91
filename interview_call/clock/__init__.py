"""Session budget clock."""

from interview_call.clock.session_clock import SessionClock
from interview_call.clock.store import (
    ClockStore,
    JsonFileClockStore,
    MemoryClockStore,
    create_clock_store,
)

__all__ = [
    "ClockStore",
    "JsonFileClockStore",
    "MemoryClockStore",
    "SessionClock",
    "create_clock_store",
]
