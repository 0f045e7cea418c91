"""Transcript Collector - ordered message log from inbound transport events.

Two event shapes carry speech:
- AppMessage with a speech payload (data["properties"]["speech"] or data["speech"])
- TranscriptionMessage with free-form text

Both normalize into TranscriptMessage. Order of the log is order of arrival;
messages are frozen and never removed. The same utterance arriving through
both sources yields two messages; the second is flagged as a possible
duplicate in logs and metrics only.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from interview_call.observability.logging import TranscriptLogger
from interview_call.observability.metrics import (
    record_transcript_duplicate,
    record_transcript_message,
)
from interview_call.transport.base import AppMessage, TranscriptionMessage, TransportEvent


class Speaker(Enum):
    USER = "user"
    INTERVIEWER = "interviewer"


class MessageOrigin(Enum):
    LIVE_TRANSCRIPT = "live-transcript"
    APPLICATION_EVENT = "application-event"


@dataclass(frozen=True)
class TranscriptMessage:
    """One utterance in the transcript."""

    id: int
    timestamp: datetime
    speaker: Speaker
    text: str
    origin: MessageOrigin

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "speaker": self.speaker.value,
            "text": self.text,
            "origin": self.origin.value,
        }


def _speech_text(data: dict[str, Any]) -> str | None:
    properties = data.get("properties")
    if isinstance(properties, dict):
        speech = properties.get("speech")
        if isinstance(speech, str):
            return speech
    speech = data.get("speech")
    if isinstance(speech, str):
        return speech
    return None


def _normalize(text: str) -> str:
    return " ".join(text.lower().split())


class TranscriptCollector:
    """Single-writer transcript log for one session.

    Usage:
        collector = TranscriptCollector("session-123", lambda: transport.local_participant_id)
        collector.open()

        collector.on_transport_event(event)

        messages = collector.snapshot()
    """

    def __init__(
        self,
        session_id: str,
        local_participant_id: Callable[[], str | None],
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_id = session_id
        self._local_participant_id = local_participant_id
        self._now = now or (lambda: datetime.now(timezone.utc))

        self._messages: list[TranscriptMessage] = []
        self._ids = itertools.count(1)
        self._open = False
        self._logger = TranscriptLogger(session_id)

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        """Start accepting events."""
        self._open = True

    def close(self) -> None:
        """Stop accepting events. Already collected messages are kept."""
        self._open = False

    def __len__(self) -> int:
        return len(self._messages)

    def snapshot(self) -> tuple[TranscriptMessage, ...]:
        """Immutable view of the log at this instant."""
        return tuple(self._messages)

    def speaker_for(self, participant_id: str | None) -> Speaker:
        local_id = self._local_participant_id()
        if participant_id is not None and local_id is not None and participant_id == local_id:
            return Speaker.USER
        return Speaker.INTERVIEWER

    def on_transport_event(self, event: TransportEvent) -> TranscriptMessage | None:
        """Append a message for a speech-bearing event.

        Returns:
            The appended message, or None if the event was discarded
        """
        if not self._open:
            self._logger.event_discarded("collector_closed", event.kind)
            return None

        if isinstance(event, AppMessage):
            text = _speech_text(event.data)
            origin = MessageOrigin.APPLICATION_EVENT
            timestamp = event.received_at
        elif isinstance(event, TranscriptionMessage):
            text = event.text
            origin = MessageOrigin.LIVE_TRANSCRIPT
            timestamp = event.timestamp or event.received_at
        else:
            self._logger.event_discarded("not_speech", event.kind)
            return None

        if text is None or not text.strip():
            self._logger.event_discarded("empty_text", event.kind)
            return None

        message = TranscriptMessage(
            id=next(self._ids),
            timestamp=timestamp or self._now(),
            speaker=self.speaker_for(event.participant_id),
            text=text.strip(),
            origin=origin,
        )

        previous = self._messages[-1] if self._messages else None
        self._messages.append(message)
        self._logger.message_appended(message.id, message.speaker.value, origin.value)
        record_transcript_message(origin.value)

        if (
            previous is not None
            and previous.origin is not message.origin
            and previous.speaker is message.speaker
            and _normalize(previous.text) == _normalize(message.text)
        ):
            self._logger.possible_duplicate(message.id, previous.id)
            record_transcript_duplicate()

        return message
