"""
Attempt-level aggregation.

Runs once per attempt after every answer is graded: originality across the
descriptive answers, career mapping over career-tagged questions, and the
roll-up of integrity flags. Never alters a per-answer score.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Mapping, Sequence

from exam_grader.grading.capabilities import ReasoningScorer
from exam_grader.models import (
    AttemptSummary,
    CareerMapping,
    GradingResult,
    IntegrityFlags,
    OriginalityMetrics,
    Question,
)

logger = logging.getLogger(__name__)

DESCRIPTIVE_MIN_LENGTH = 20
AI_PROBABILITY_THRESHOLD = 70.0
POV_PRESENCE_THRESHOLD = 40.0
DEFAULT_CAREER_TERMS = ("ai", "career", "industry")


class AttemptAggregator:
    """
    Builds the attempt summary from graded results.

    The originality and career calls are independent and run concurrently;
    either failing resolves to its default without affecting the other.
    """

    def __init__(
        self,
        reasoning_scorer: ReasoningScorer,
        career_terms: Sequence[str] = DEFAULT_CAREER_TERMS,
    ):
        self._reasoning_scorer = reasoning_scorer
        self._career_terms = tuple(t.lower() for t in career_terms)

    def aggregate(
        self,
        questions: Sequence[Question],
        answers: Mapping[str, str],
        results: Sequence[GradingResult],
    ) -> AttemptSummary:
        """
        Summarize a graded attempt.

        Args:
            questions: The attempt's questions.
            answers: Answer text keyed by question id.
            results: Per-answer grading results.

        Returns:
            AttemptSummary with originality, optional career mapping,
            aggregated flags and score totals.
        """
        descriptive = [
            text
            for text in (answers.get(q.id) or "" for q in questions if q.type.is_descriptive)
            if len(text.strip()) > DESCRIPTIVE_MIN_LENGTH
        ]
        career_questions = [q for q in questions if self.is_career_question(q)]

        with ThreadPoolExecutor(max_workers=2) as executor:
            originality_future = executor.submit(self._originality, descriptive)
            career_future = executor.submit(self._career_mapping, career_questions, answers)
            originality = originality_future.result()
            career = career_future.result()

        flags = self.aggregate_flags(results, originality)
        if flags.raised:
            logger.info("Attempt flags raised: %s", ", ".join(flags.raised))

        return AttemptSummary(
            originality_metrics=originality,
            career_mapping=career,
            aggregated_flags=flags,
            answers_analyzed=len(descriptive),
            total_score=sum(r.score for r in results),
            total_max=sum(r.max_points for r in results),
        )

    def is_career_question(self, question: Question) -> bool:
        """Whether a word in the question's subject tag starts with a career term."""
        if not question.subject:
            return False
        subject = question.subject.lower()
        return any(re.search(rf"\b{re.escape(term)}", subject) for term in self._career_terms)

    @staticmethod
    def aggregate_flags(
        results: Sequence[GradingResult], originality: OriginalityMetrics
    ) -> IntegrityFlags:
        """
        Roll per-answer flags up to the attempt.

        AI usage is only suspected when a high AI-likelihood coincides with
        a weak personal voice. The low-voice flag is attempt-wide and comes
        from the originality analysis, not from per-answer flags.
        """
        return IntegrityFlags(
            irrelevant_answer_flag=any(r.integrity_flags.irrelevant_answer_flag for r in results),
            ai_usage_suspected=(
                originality.ai_generated_probability > AI_PROBABILITY_THRESHOLD
                and originality.pov_presence_score < POV_PRESENCE_THRESHOLD
            ),
            style_inconsistency_flag=originality.style_inconsistency_flag,
            keyword_penalty=any(r.integrity_flags.keyword_penalty for r in results),
            low_pov_flag=originality.pov_presence_score < POV_PRESENCE_THRESHOLD,
            time_anomaly_flag=False,
        )

    def _originality(self, descriptive: list[str]) -> OriginalityMetrics:
        if not descriptive:
            return OriginalityMetrics.trusting_default()
        try:
            metrics = self._reasoning_scorer.analyze_originality(descriptive)
        except Exception:
            logger.exception("Originality analysis failed; using trusting default")
            return OriginalityMetrics.trusting_default()
        if not isinstance(metrics, OriginalityMetrics):
            logger.error(
                "Originality analysis returned %s; using trusting default", type(metrics).__name__
            )
            return OriginalityMetrics.trusting_default()
        return metrics

    def _career_mapping(
        self, career_questions: list[Question], answers: Mapping[str, str]
    ) -> CareerMapping | None:
        if not career_questions:
            return None
        prompts = [q.prompt for q in career_questions]
        texts = [answers.get(q.id) or "" for q in career_questions]
        try:
            mapping = self._reasoning_scorer.generate_career_mapping(prompts, texts)
        except Exception:
            logger.exception("Career mapping failed; omitting it from the summary")
            return None
        if not isinstance(mapping, CareerMapping):
            logger.error(
                "Career mapping returned %s; omitting it from the summary", type(mapping).__name__
            )
            return None
        return mapping
