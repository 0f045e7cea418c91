"""Transcript collection and export."""

from interview_call.transcript.collector import (
    MessageOrigin,
    Speaker,
    TranscriptCollector,
    TranscriptMessage,
)

__all__ = [
    "MessageOrigin",
    "Speaker",
    "TranscriptCollector",
    "TranscriptMessage",
]
