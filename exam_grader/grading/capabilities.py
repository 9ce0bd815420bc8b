"""
Capability interfaces consumed by the grading pipeline.

Any object with these methods can act as a scoring backend; the default
implementations in ``exam_grader.grading.backends`` talk to LLM hosts.
Implementations may raise on transport failure or an unparseable payload;
the orchestrator and aggregator turn any raised error into the documented
zero/neutral default.
"""

from typing import Protocol, Sequence, runtime_checkable

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


@runtime_checkable
class RelevanceChecker(Protocol):
    """Decides how closely an answer addresses its question."""

    def check(self, question: str, answer: str) -> RelevanceResult: ...


@runtime_checkable
class RuleBackedScorer(Protocol):
    """Structured, low-variance evaluations with bounded outputs."""

    def marks_distribution(
        self, question: str, answer: str, max_points: float, expected_structure: str | None
    ) -> MarksDistribution: ...

    def required_points(
        self, question: str, answer: str, min_points_required: int
    ) -> list[PointValidation]: ...

    def numerical_validation(
        self, question: str, answer: str, canonical_answer: str | None, max_points: float
    ) -> NumericalValidation: ...

    def diagram_evaluation(
        self,
        question: str,
        answer: str,
        max_points: float,
        required_components: Sequence[str],
    ) -> DiagramEvaluation: ...


@runtime_checkable
class ReasoningScorer(Protocol):
    """Higher-variance judgments about voice, originality and aptitude."""

    def detect_point_of_view(self, answer: str) -> PointOfView: ...

    def analyze_originality(self, answers: Sequence[str]) -> OriginalityMetrics: ...

    def generate_career_mapping(
        self, prompts: Sequence[str], answers: Sequence[str]
    ) -> CareerMapping: ...
