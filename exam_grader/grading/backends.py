"""
LLM-backed implementations of the scoring capabilities.

Each operation builds a prompt, calls its backend, parses the JSON and
hands it to the normalizer. Transport failures surface as ``LLMError`` and
unparseable payloads as ``ScoringError``; oddly-shaped payloads are
repaired by the normalizer and never raise.
"""

import logging
from typing import Any, Sequence

from exam_grader.config import Settings
from exam_grader.grading.llm_client import LLMClient
from exam_grader.grading.normalizer import ResponseNormalizer
from exam_grader.grading.prompt_builder import PromptBuilder
from exam_grader.models import (
    CareerMapping,
    DiagramEvaluation,
    MarksDistribution,
    NumericalValidation,
    OriginalityMetrics,
    PointOfView,
    PointValidation,
    RelevanceResult,
)

logger = logging.getLogger(__name__)


class _LLMBackend:
    """Shared prompt-call-parse plumbing."""

    def __init__(self, client: LLMClient, system_prompt: str):
        self._client = client
        self._system_prompt = system_prompt
        self._normalizer = ResponseNormalizer()

    @property
    def model(self) -> str:
        return self._client.model

    def _ask(self, operation: str, user_prompt: str) -> Any:
        logger.debug("%s: calling %s backend", operation, self._client.name)
        raw = self._client.generate(system_prompt=self._system_prompt, user_prompt=user_prompt)
        return self._normalizer.parse(raw)

    def health_check(self) -> bool:
        return self._client.health_check()


class LLMRelevanceChecker(_LLMBackend):
    """Relevance checks on the rule-backed backend."""

    def __init__(self, client: LLMClient, threshold: float = 40.0):
        super().__init__(client, PromptBuilder.RULE_SYSTEM_PROMPT)
        self._threshold = threshold

    def check(self, question: str, answer: str) -> RelevanceResult:
        data = self._ask("relevance", PromptBuilder.build_relevance_prompt(question, answer))
        result = self._normalizer.relevance(data, self._threshold)
        logger.info(
            "Relevance %.0f/100 | question: %r | answer: %r",
            result.score,
            result.question_topic,
            result.answer_topic,
        )
        return result


class LLMRuleBackedScorer(_LLMBackend):
    """Marks, points, numerical and diagram evaluations on the rule-backed backend."""

    def __init__(self, client: LLMClient):
        super().__init__(client, PromptBuilder.RULE_SYSTEM_PROMPT)

    def marks_distribution(
        self, question: str, answer: str, max_points: float, expected_structure: str | None
    ) -> MarksDistribution:
        prompt = PromptBuilder.build_marks_prompt(question, answer, max_points, expected_structure)
        distribution = self._normalizer.marks_distribution(self._ask("marks", prompt), max_points)
        logger.info("Marks distribution: %.2f/%s", distribution.total.awarded, max_points)
        return distribution

    def required_points(
        self, question: str, answer: str, min_points_required: int
    ) -> list[PointValidation]:
        prompt = PromptBuilder.build_required_points_prompt(question, answer, min_points_required)
        points = self._normalizer.required_points(self._ask("points", prompt), min_points_required)
        logger.info(
            "Required points: %d/%d covered", sum(1 for p in points if p.covered), len(points)
        )
        return points

    def numerical_validation(
        self, question: str, answer: str, canonical_answer: str | None, max_points: float
    ) -> NumericalValidation:
        prompt = PromptBuilder.build_numerical_prompt(question, answer, canonical_answer, max_points)
        validation = self._normalizer.numerical(self._ask("numerical", prompt), max_points)
        logger.info("Numerical validation: %.2f/%s", validation.partial_marks, max_points)
        return validation

    def diagram_evaluation(
        self,
        question: str,
        answer: str,
        max_points: float,
        required_components: Sequence[str],
    ) -> DiagramEvaluation:
        required = tuple(required_components)
        prompt = PromptBuilder.build_diagram_prompt(question, answer, max_points, required)
        evaluation = self._normalizer.diagram(self._ask("diagram", prompt), max_points, required)
        logger.info("Diagram evaluation: %.2f/%s", evaluation.total.awarded, max_points)
        return evaluation


class LLMReasoningScorer(_LLMBackend):
    """Point-of-view, originality and career analysis on the reasoning backend."""

    def __init__(self, client: LLMClient):
        super().__init__(client, PromptBuilder.REASONING_SYSTEM_PROMPT)

    def detect_point_of_view(self, answer: str) -> PointOfView:
        data = self._ask("point of view", PromptBuilder.build_point_of_view_prompt(answer))
        return self._normalizer.point_of_view(data)

    def analyze_originality(self, answers: Sequence[str]) -> OriginalityMetrics:
        logger.info("Analyzing originality across %d answers", len(answers))
        data = self._ask("originality", PromptBuilder.build_originality_prompt(answers))
        return self._normalizer.originality(data)

    def generate_career_mapping(
        self, prompts: Sequence[str], answers: Sequence[str]
    ) -> CareerMapping:
        data = self._ask("career mapping", PromptBuilder.build_career_prompt(prompts, answers))
        return self._normalizer.career_mapping(data)


def build_backends(
    settings: Settings,
) -> tuple[LLMRelevanceChecker, LLMRuleBackedScorer, LLMReasoningScorer]:
    """Create the default LLM-backed capabilities from settings."""
    rule_client = LLMClient(settings.rule_backend())
    reasoning_client = LLMClient(settings.reasoning_backend())
    return (
        LLMRelevanceChecker(rule_client, settings.relevance_threshold),
        LLMRuleBackedScorer(rule_client),
        LLMReasoningScorer(reasoning_client),
    )
