"""
Relevance gate.

Licenses or forbids further grading of an answer; it never scores.
When the relevance backend cannot answer, the configured failure policy
decides the outcome and the result is marked degraded.
"""

import logging

from exam_grader.config import RelevanceFailurePolicy
from exam_grader.grading.capabilities import RelevanceChecker
from exam_grader.models import Question, RelevanceResult

logger = logging.getLogger(__name__)

FAIL_OPEN_SCORE = 70.0


class RelevanceGate:
    """Pre-scoring check that rejects answers about a different topic."""

    def __init__(
        self,
        checker: RelevanceChecker,
        threshold: float = 40.0,
        failure_policy: RelevanceFailurePolicy = RelevanceFailurePolicy.FAIL_OPEN,
    ):
        self._checker = checker
        self._threshold = threshold
        self._failure_policy = failure_policy

    def check(self, question: Question, answer: str) -> RelevanceResult:
        """
        Decide whether an answer addresses the question.

        Args:
            question: The question being answered.
            answer: Trimmed, non-empty answer text.

        Returns:
            RelevanceResult with ``is_relevant`` decided against the threshold.
        """
        try:
            verdict = self._checker.check(question.prompt, answer)
        except Exception as e:
            return self._on_failure(question, e)

        if not isinstance(verdict, RelevanceResult):
            return self._on_failure(
                question, TypeError(f"malformed verdict of type {type(verdict).__name__}")
            )

        # The threshold is owned here, whatever the checker decided
        return verdict.model_copy(update={"is_relevant": verdict.score >= self._threshold})

    def _on_failure(self, question: Question, error: Exception) -> RelevanceResult:
        if self._failure_policy == RelevanceFailurePolicy.FAIL_CLOSED:
            logger.warning(
                "Relevance check failed for question %s (%s); degraded mode, failing closed",
                question.id,
                error,
            )
            return RelevanceResult(score=0.0, is_relevant=False, degraded=True)

        logger.warning(
            "Relevance check failed for question %s (%s); degraded mode, failing open",
            question.id,
            error,
        )
        return RelevanceResult(score=FAIL_OPEN_SCORE, is_relevant=True, degraded=True)
