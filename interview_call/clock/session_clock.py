"""Session Clock - Elapsed live time against a fixed budget.

- Armed only while a call is live; the start instant is persisted per session
  so a reload of the controlling process resumes the same budget
- elapsed() never decreases while armed, even if the wall clock steps back
- A single owned polling task checks the budget on a fixed cadence and fires
  the budget-exceeded notification exactly once

The start instant is wall-clock (epoch seconds) because it has to be
comparable across processes; the monotonic clamp covers clock adjustments.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Awaitable, Callable

from interview_call.clock.store import ClockStore, MemoryClockStore
from interview_call.config.constants import SESSION
from interview_call.observability.logging import get_logger

logger = get_logger(__name__)

BudgetCallback = Callable[[], None] | Callable[[], Awaitable[None]]


class SessionClock:
    """Budget clock for one interview session.

    Usage:
        clock = SessionClock("session-123", store, on_budget_exceeded=handler)
        clock.arm(budget_s=1800)

        clock.elapsed()     # seconds since the live call started
        clock.remaining()   # seconds left in the budget

        clock.disarm()      # stop polling, forget the start instant
    """

    def __init__(
        self,
        session_id: str,
        store: ClockStore | None = None,
        on_budget_exceeded: BudgetCallback | None = None,
        tick_s: float = SESSION.CLOCK_TICK_S,
        now: Callable[[], float] = time.time,
    ) -> None:
        self._session_id = session_id
        self._store = store or MemoryClockStore()
        self._on_budget_exceeded = on_budget_exceeded
        self._tick_s = tick_s
        self._now = now

        self._budget_s: float = float(SESSION.SESSION_BUDGET_S)
        self._start: float | None = None
        self._high_water: float = 0.0
        self._fired: bool = False
        self._task: asyncio.Task | None = None

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def is_armed(self) -> bool:
        return self._start is not None

    @property
    def budget_s(self) -> float:
        return self._budget_s

    @property
    def start_instant(self) -> float | None:
        return self._start

    @property
    def fired(self) -> bool:
        """Whether the budget-exceeded notification has been delivered."""
        return self._fired

    def arm(self, budget_s: float | None = None) -> float:
        """Start tracking elapsed time.

        Reuses a start instant already persisted for this session, otherwise
        persists "now". Starts the polling task when an event loop is running.

        Returns:
            The start instant in epoch seconds
        """
        if budget_s is not None:
            self._budget_s = float(budget_s)

        if self._start is not None:
            return self._start

        persisted = self._store.load(self._session_id)
        if persisted is not None:
            self._start = persisted
            logger.info(
                "session_clock_resumed",
                session_id=self._session_id,
                start=persisted,
                elapsed_s=self.elapsed(),
            )
        else:
            self._start = self._now()
            self._store.save(self._session_id, self._start)
            logger.info(
                "session_clock_armed",
                session_id=self._session_id,
                budget_s=self._budget_s,
            )

        self._high_water = 0.0
        self._fired = False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._task = loop.create_task(self._poll())

        return self._start

    def elapsed(self) -> float:
        """Seconds since the start instant; 0 when not armed."""
        if self._start is None:
            return 0.0
        value = max(0.0, self._now() - self._start)
        if value < self._high_water:
            return self._high_water
        self._high_water = value
        return value

    def remaining(self) -> float:
        """Seconds left in the budget."""
        return max(0.0, self._budget_s - self.elapsed())

    def disarm(self) -> None:
        """Stop tracking and clear the persisted start instant."""
        task = self._task
        self._task = None
        # Disarm may be called from the budget callback inside the polling task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        if self._start is not None:
            logger.info(
                "session_clock_disarmed",
                session_id=self._session_id,
                elapsed_s=self.elapsed(),
            )
        self._start = None
        self._high_water = 0.0
        self._store.clear(self._session_id)

    async def check(self) -> bool:
        """Fire the budget notification if the budget is spent.

        Returns:
            True if this call delivered the notification
        """
        if self._start is None or self._fired:
            return False
        if self.elapsed() < self._budget_s:
            return False

        self._fired = True
        logger.info(
            "session_budget_exceeded",
            session_id=self._session_id,
            budget_s=self._budget_s,
        )
        callback = self._on_budget_exceeded
        if callback is not None:
            if inspect.iscoroutinefunction(callback):
                await callback()
            else:
                callback()
        return True

    async def _poll(self) -> None:
        while self._start is not None and not self._fired:
            await asyncio.sleep(self._tick_s)
            await self.check()


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
