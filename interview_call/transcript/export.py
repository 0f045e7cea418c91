"""Session export - JSON document for progress tracking."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from interview_call.evaluation.engine import EvaluationSummary
from interview_call.observability.logging import get_logger
from interview_call.transcript.collector import Speaker, TranscriptMessage

logger = get_logger(__name__)


def build_export(
    transcript: Iterable[TranscriptMessage],
    evaluation: EvaluationSummary | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Export document with the conversation, evaluation and counts."""
    messages = list(transcript)
    exported_at = now or datetime.now(timezone.utc)
    return {
        "conversation": [m.to_dict() for m in messages],
        "evaluation": evaluation.to_dict() if evaluation is not None else None,
        "timestamp": exported_at.isoformat(),
        "totalMessages": len(messages),
        "userMessages": sum(1 for m in messages if m.speaker is Speaker.USER),
    }


def export_filename(now: datetime | None = None) -> str:
    """interview-data-YYYY-MM-DD.json"""
    day = (now or datetime.now(timezone.utc)).date().isoformat()
    return f"interview-data-{day}.json"


def write_export(
    directory: str | Path,
    transcript: Iterable[TranscriptMessage],
    evaluation: EvaluationSummary | None,
    now: datetime | None = None,
) -> Path:
    """Write the export document into directory.

    Returns:
        Path of the written file
    """
    now = now or datetime.now(timezone.utc)
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)

    path = target_dir / export_filename(now)
    document = build_export(transcript, evaluation, now)
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")

    logger.info(
        "session_exported",
        path=str(path),
        total_messages=document["totalMessages"],
    )
    return path
