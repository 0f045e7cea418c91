"""Evaluation Engine - scoring summary from a transcript snapshot.

Pure and deterministic: the same transcript always yields the same summary.
Only the candidate's utterances are scored:

- technical: coverage of a technical vocabulary
- communication: answer length against an ideal range
- confidence: hedging/filler ratio, weighted by participation
- problem_solving: coverage of reasoning markers

Each sub-score is clamped to [0, 100] and rounded to one decimal; the
aggregate is their arithmetic mean.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable

from interview_call.config.constants import SESSION
from interview_call.transcript.collector import Speaker, TranscriptMessage

TECHNICAL_TERMS = frozenset({
    "algorithm", "api", "architecture", "async", "cache", "class", "cloud",
    "complexity", "concurrency", "database", "debug", "deploy", "design",
    "docker", "framework", "function", "index", "interface", "kubernetes",
    "latency", "library", "model", "network", "optimize", "performance",
    "pipeline", "protocol", "python", "query", "react", "refactor", "scalability",
    "schema", "server", "sql", "testing", "thread", "throughput",
})

REASONING_MARKERS = (
    "because", "therefore", "so that", "first", "then", "finally", "trade-off",
    "tradeoff", "approach", "instead", "alternatively", "if", "which means",
    "as a result", "the reason",
)

FILLERS = frozenset({
    "um", "uh", "er", "like", "maybe", "perhaps", "guess", "basically",
    "actually", "probably", "sort", "kind",
})

# Full marks thresholds
TECHNICAL_TERMS_FOR_FULL = 8
REASONING_MARKERS_FOR_FULL = 6
IDEAL_ANSWER_WORDS = 40
LONG_ANSWER_WORDS = 150
PARTICIPATION_FOR_FULL = 5

_WORD_RE = re.compile(r"[a-z0-9][a-z0-9+#\-']*")


@dataclass(frozen=True)
class EvaluationSummary:
    """Bounded scoring summary for one session."""

    technical: float
    communication: float
    confidence: float
    problem_solving: float
    aggregate: float
    feedback: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "technical": self.technical,
            "communication": self.communication,
            "confidence": self.confidence,
            "problem_solving": self.problem_solving,
            "aggregate": self.aggregate,
            "feedback": list(self.feedback),
        }


def _bound(value: float) -> float:
    return min(SESSION.SCORE_MAX, max(SESSION.SCORE_MIN, value))


def _clamp(value: float) -> float:
    return round(_bound(value), 1)


def _words(text: str) -> list[str]:
    return _WORD_RE.findall(text.lower())


def _technical_score(words: list[str]) -> float:
    used = TECHNICAL_TERMS.intersection(words)
    return 100.0 * len(used) / TECHNICAL_TERMS_FOR_FULL


def _communication_score(answer_lengths: list[int]) -> float:
    average = sum(answer_lengths) / len(answer_lengths)
    if average <= IDEAL_ANSWER_WORDS:
        return 100.0 * average / IDEAL_ANSWER_WORDS
    if average <= LONG_ANSWER_WORDS:
        return 100.0
    # Rambling answers lose points past the long threshold
    return 100.0 - (average - LONG_ANSWER_WORDS) / 2.0


def _confidence_score(words: list[str], answers: int) -> float:
    if not words:
        return 0.0
    filler_ratio = sum(1 for word in words if word in FILLERS) / len(words)
    steadiness = max(0.0, 1.0 - 4.0 * filler_ratio)
    participation = min(1.0, answers / PARTICIPATION_FOR_FULL)
    return 100.0 * steadiness * participation


def _problem_solving_score(text: str) -> float:
    padded = f" {' '.join(_words(text))} "
    used = {marker for marker in REASONING_MARKERS if f" {marker} " in padded}
    return 100.0 * len(used) / REASONING_MARKERS_FOR_FULL


def _feedback(summary: dict[str, float]) -> tuple[str, ...]:
    lines = []
    if summary["technical"] >= 70:
        lines.append("Strong use of technical vocabulary.")
    elif summary["technical"] < 40:
        lines.append("Go deeper on the technical details of your work.")
    if summary["communication"] >= 70:
        lines.append("Answers were well sized and easy to follow.")
    else:
        lines.append("Aim for fuller answers of a few sentences each.")
    if summary["confidence"] < 50:
        lines.append("Reduce hedging and filler words to sound more confident.")
    if summary["problem_solving"] >= 60:
        lines.append("Reasoning was clearly structured.")
    else:
        lines.append("Explain why you chose an approach, not only what you did.")
    return tuple(lines)


def evaluate(transcript: Iterable[TranscriptMessage]) -> EvaluationSummary:
    """Score a transcript snapshot.

    Args:
        transcript: Messages in arrival order

    Returns:
        EvaluationSummary; all zeros when the candidate never spoke
    """
    answers = [m.text for m in transcript if m.speaker is Speaker.USER and m.text.strip()]
    if not answers:
        return EvaluationSummary(
            technical=0.0,
            communication=0.0,
            confidence=0.0,
            problem_solving=0.0,
            aggregate=0.0,
            feedback=("No candidate responses were captured, so no evaluation was possible.",),
        )

    words = [word for answer in answers for word in _words(answer)]
    raw = {
        "technical": _bound(_technical_score(words)),
        "communication": _bound(_communication_score([len(_words(a)) for a in answers])),
        "confidence": _bound(_confidence_score(words, len(answers))),
        "problem_solving": _bound(_problem_solving_score(" ".join(answers))),
    }
    scores = {name: round(value, 1) for name, value in raw.items()}
    # Mean of the unrounded sub-scores, rounded once
    aggregate = _clamp(sum(raw.values()) / len(raw))

    return EvaluationSummary(
        aggregate=aggregate,
        feedback=_feedback(scores),
        **scores,
    )
