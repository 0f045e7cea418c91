"""Post-session evaluation."""

from interview_call.evaluation.engine import EvaluationSummary, evaluate

__all__ = ["EvaluationSummary", "evaluate"]
