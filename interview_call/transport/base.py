"""Transport Interface - real-time audio/video call abstraction.

The controller is blind to which transport carries the call. Every
implementation exposes join/leave/destroy, local media toggles, and a single
inbound queue of typed events delivered in arrival order.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MediaState:
    """Local media flags."""

    audio: bool = False
    video: bool = True

    def to_dict(self) -> dict[str, bool]:
        return {"audio": self.audio, "video": self.video}


# -----------------------------------------------------------------------------
# Inbound events
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class TransportEvent:
    """Base class for inbound transport events."""

    received_at: datetime = field(default_factory=_utcnow, kw_only=True)

    @property
    def kind(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class ParticipantJoined(TransportEvent):
    """A participant is present in the call."""

    participant_id: str
    local: bool = False


@dataclass(frozen=True)
class ParticipantLeft(TransportEvent):
    """A participant left the call."""

    participant_id: str
    local: bool = False


@dataclass(frozen=True)
class AppMessage(TransportEvent):
    """Structured application message (may carry a speech payload)."""

    participant_id: str | None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TranscriptionMessage(TransportEvent):
    """Free-form transcription text attributed to a participant."""

    participant_id: str | None
    text: str
    timestamp: datetime | None = None


@dataclass(frozen=True)
class TransportFailure(TransportEvent):
    """The transport reported a fatal error."""

    reason: str


class TransportEventQueue:
    """Single inbound queue; order of put() is order of get()."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[TransportEvent] = asyncio.Queue()

    def put(self, event: TransportEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> TransportEvent:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        await self._queue.join()

    def empty(self) -> bool:
        return self._queue.empty()

    def qsize(self) -> int:
        return self._queue.qsize()


# -----------------------------------------------------------------------------
# Transport
# -----------------------------------------------------------------------------


class Transport(ABC):
    """Canonical interface for real-time call transports.

    Usage:
        transport = RelayTransport()
        await transport.join(resource.conversation_url, MediaState(audio=False))

        event = await transport.events.get()

        await transport.set_local_audio(True)
        await transport.leave()
        await transport.destroy()
    """

    def __init__(self) -> None:
        self._events = TransportEventQueue()

    @property
    def events(self) -> TransportEventQueue:
        """Inbound event queue."""
        return self._events

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport name identifier."""
        ...

    @property
    @abstractmethod
    def local_participant_id(self) -> str | None:
        """Identity of the local participant once joined."""
        ...

    @abstractmethod
    async def join(self, url: str, media: MediaState) -> None:
        """Join the call. Returns once the join is acknowledged.

        Raises:
            TransportError: If the call cannot be joined
        """
        ...

    @abstractmethod
    async def leave(self) -> None:
        """Leave the call."""
        ...

    @abstractmethod
    async def destroy(self) -> None:
        """Release the transport. It cannot be joined again."""
        ...

    @abstractmethod
    async def set_local_audio(self, enabled: bool) -> None:
        """Mute or unmute the local microphone."""
        ...

    @abstractmethod
    async def set_local_video(self, enabled: bool) -> None:
        """Enable or disable the local camera."""
        ...
