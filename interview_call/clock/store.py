"""Clock Store - Persisted session start instants.

The session clock records the instant a live call started so that a reload
of the controlling process resumes the same budget instead of resetting it.

Backends:
- MemoryClockStore: process-local, used in tests and single-process runs
- JsonFileClockStore: survives restarts, one JSON object keyed by session
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from interview_call.observability.logging import get_logger

logger = get_logger(__name__)


class ClockStore(ABC):
    """Key/value storage for session start instants (epoch seconds)."""

    @abstractmethod
    def load(self, key: str) -> float | None:
        """Return the persisted start instant, if any."""
        ...

    @abstractmethod
    def save(self, key: str, instant: float) -> None:
        """Persist the start instant for a session."""
        ...

    @abstractmethod
    def clear(self, key: str) -> None:
        """Forget the start instant for a session."""
        ...


class MemoryClockStore(ClockStore):
    """In-memory store."""

    def __init__(self) -> None:
        self._instants: dict[str, float] = {}

    def load(self, key: str) -> float | None:
        return self._instants.get(key)

    def save(self, key: str, instant: float) -> None:
        self._instants[key] = instant

    def clear(self, key: str) -> None:
        self._instants.pop(key, None)


class JsonFileClockStore(ClockStore):
    """Store backed by a single JSON file.

    The whole file is rewritten on every change; a session writes at most
    twice (arm and disarm), so this never becomes a hot path.
    """

    def __init__(
        self,
        path: str | Path,
        max_age_s: float | None = None,
        now: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(path)
        if max_age_s is not None:
            self.prune(now() - max_age_s)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, float]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("clock_store_unreadable", path=str(self._path), error=str(e))
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: float(v) for k, v in data.items() if isinstance(v, (int, float))}

    def _write(self, data: dict[str, float]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
        tmp.replace(self._path)

    def load(self, key: str) -> float | None:
        return self._read().get(key)

    def save(self, key: str, instant: float) -> None:
        data = self._read()
        data[key] = instant
        self._write(data)

    def clear(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)

    def prune(self, older_than: float) -> int:
        """Drop start instants earlier than older_than.

        Entries left behind by a process that died mid-session are never
        cleared by disarm().

        Returns:
            Number of entries removed
        """
        data = self._read()
        kept = {k: v for k, v in data.items() if v >= older_than}
        removed = len(data) - len(kept)
        if removed:
            self._write(kept)
            logger.info("clock_store_pruned", path=str(self._path), removed=removed)
        return removed


def create_clock_store(path: str | None = None, max_age_s: float | None = None) -> ClockStore:
    """Create the store selected by settings (file if a path is given).

    File stores drop entries older than max_age_s when opened.
    """
    if path:
        return JsonFileClockStore(path, max_age_s=max_age_s)
    return MemoryClockStore()
