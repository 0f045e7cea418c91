"""Real-time transport boundary."""

from interview_call.transport.base import (
    AppMessage,
    MediaState,
    ParticipantJoined,
    ParticipantLeft,
    TranscriptionMessage,
    Transport,
    TransportEvent,
    TransportEventQueue,
    TransportFailure,
)
from interview_call.transport.relay import RelayTransport

__all__ = [
    "AppMessage",
    "MediaState",
    "ParticipantJoined",
    "ParticipantLeft",
    "RelayTransport",
    "TranscriptionMessage",
    "Transport",
    "TransportEvent",
    "TransportEventQueue",
    "TransportFailure",
]
