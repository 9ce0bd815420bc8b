"""
Grading engine - the per-answer orchestrator.

Runs each answer through the grading state machine:

    EMPTY -> ZERO
    MCQ -> EXACT_MATCH
    RELEVANCE_CHECK -> IRRELEVANT -> ZERO
                    -> RELEVANT -> NUMERICAL | DIAGRAM | DESCRIPTIVE -> SCORED

Backend errors and malformed payloads never abort grading: each backend
call settles to its zero/neutral default and the pipeline continues.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Mapping, Sequence, TypeVar

from exam_grader.config import Settings, get_settings
from exam_grader.grading.backends import build_backends
from exam_grader.grading.capabilities import ReasoningScorer, RelevanceChecker, RuleBackedScorer
from exam_grader.grading.deterministic import (
    analyze_keywords,
    count_words,
    grade_mcq,
    is_too_short,
    minimum_words,
)
from exam_grader.grading.policy import CoverageStats, apply_caps, compute_components
from exam_grader.grading.relevance import RelevanceGate
from exam_grader.models import (
    AuditRecord,
    DiagramEvaluation,
    GradingResult,
    IntegrityFlags,
    MarksDistribution,
    NumericalValidation,
    PointOfView,
    PointValidation,
    Question,
    QuestionType,
    RelevanceResult,
)
from exam_grader.numeric import clamp, round_points

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_ANSWER_LENGTH = 3
LOW_POV_THRESHOLD = 40.0


class GradingEngine:
    """
    Grades one answer at a time against its question.

    Composes the relevance gate, the deterministic scorers and the two
    scoring backends, then applies the descriptive scoring formula, caps
    and penalties to produce a bounded GradingResult.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        relevance_checker: RelevanceChecker | None = None,
        rule_scorer: RuleBackedScorer | None = None,
        reasoning_scorer: ReasoningScorer | None = None,
    ):
        """
        Initialize the grading engine.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            relevance_checker: Relevance capability. LLM-backed if not provided.
            rule_scorer: Rule-backed capability. LLM-backed if not provided.
            reasoning_scorer: Reasoning capability. LLM-backed if not provided.
        """
        self._settings = settings or get_settings()

        if relevance_checker is None or rule_scorer is None or reasoning_scorer is None:
            default_checker, default_rule, default_reasoning = build_backends(self._settings)
            relevance_checker = relevance_checker or default_checker
            rule_scorer = rule_scorer or default_rule
            reasoning_scorer = reasoning_scorer or default_reasoning

        self._rule_scorer = rule_scorer
        self._reasoning_scorer = reasoning_scorer
        self._gate = RelevanceGate(
            relevance_checker,
            threshold=self._settings.relevance_threshold,
            failure_policy=self._settings.relevance_failure_policy,
        )

    # ==========================================================================
    # Public API
    # ==========================================================================

    def grade_answer(self, question: Question, answer_text: str | None) -> GradingResult:
        """
        Grade a single answer.

        Never raises for backend problems: every failure resolves to a
        documented default and the result is always fully populated.

        Args:
            question: The question being answered.
            answer_text: The candidate's raw answer.

        Returns:
            GradingResult with ``0 <= score <= question.max_points``.
        """
        trimmed = (answer_text or "").strip()
        try:
            return self._grade(question, trimmed)
        except Exception:
            logger.exception("Grading failed for question %s; awarding 0 for review", question.id)
            return self._zero_result(
                question, "Grading could not be completed. 0 marks awarded pending review."
            )

    def grade_attempt(
        self, questions: Sequence[Question], answers: Mapping[str, str]
    ) -> list[GradingResult]:
        """
        Grade every question of an attempt concurrently.

        Args:
            questions: The attempt's questions.
            answers: Answer text keyed by question id; missing entries grade as empty.

        Returns:
            One GradingResult per question, in question order.
        """
        with ThreadPoolExecutor(max_workers=self._settings.max_workers) as executor:
            return list(
                executor.map(lambda q: self.grade_answer(q, answers.get(q.id, "")), questions)
            )

    def create_audit(self, question: Question, answer_text: str, result: GradingResult) -> AuditRecord:
        """
        Create an audit record for a graded answer.

        Args:
            question: The question graded.
            answer_text: The candidate's raw answer.
            result: The grading result.

        Returns:
            Immutable AuditRecord.
        """
        result_content = (
            f"{result.score}/{result.max_points}\n"
            f"relevance: {result.relevance_score}\n"
            f"caps: {', '.join(result.caps_applied)}\n"
            f"flags: {', '.join(result.integrity_flags.raised)}"
        )
        return AuditRecord(
            question_id=question.id,
            question_hash=AuditRecord.compute_hash(question.model_dump_json()),
            answer_hash=AuditRecord.compute_hash(answer_text or ""),
            result_hash=AuditRecord.compute_hash(result_content),
            rule_backend_model=self._settings.rule_backend_model,
            reasoning_backend_model=self._settings.reasoning_backend_model,
        )

    def health_check(self) -> dict[str, bool]:
        """
        Check whether the scoring backends are reachable.

        Returns:
            Reachability per backend; backends without a probe count as healthy.
        """
        status: dict[str, bool] = {}
        for name, backend in (("rule-backed", self._rule_scorer), ("reasoning", self._reasoning_scorer)):
            probe = getattr(backend, "health_check", None)
            status[name] = probe() if callable(probe) else True
        return status

    # ==========================================================================
    # State machine
    # ==========================================================================

    def _grade(self, question: Question, answer: str) -> GradingResult:
        if len(answer) < MIN_ANSWER_LENGTH:
            logger.info("Question %s: empty answer, 0 marks", question.id)
            return self._zero_result(question, "No answer provided. 0 marks awarded.")

        if question.type == QuestionType.MCQ:
            return self._grade_mcq(question, answer)

        relevance = self._gate.check(question, answer)
        if not relevance.is_relevant:
            return self._irrelevant_result(question, relevance)

        if question.type == QuestionType.NUMERICAL:
            return self._grade_numerical(question, answer, relevance)
        if question.type == QuestionType.DIAGRAM:
            return self._grade_diagram(question, answer, relevance)
        return self._grade_descriptive(question, answer, relevance)

    def _grade_mcq(self, question: Question, answer: str) -> GradingResult:
        score, correct = grade_mcq(question, answer)
        if correct:
            feedback = "Correct"
        elif question.canonical_answer and question.canonical_answer.strip():
            feedback = f"Incorrect. Expected: {question.canonical_answer}"
        else:
            feedback = "Incorrect. No canonical answer is set for this question."
        return GradingResult(
            question_id=question.id,
            question_type=question.type,
            score=score,
            max_points=question.max_points,
            feedback=feedback,
            relevance_score=100.0,
            marks_distribution=MarksDistribution.single_criterion(question.max_points, score),
        )

    def _grade_numerical(
        self, question: Question, answer: str, relevance: RelevanceResult
    ) -> GradingResult:
        max_points = question.max_points
        validation = self._settle(
            "numerical validation",
            question,
            lambda: self._rule_scorer.numerical_validation(
                question.prompt, answer, question.canonical_answer, max_points
            ),
            NumericalValidation.failed(),
        )
        partial = clamp(validation.partial_marks, 0.0, max_points)
        if partial != validation.partial_marks:
            validation = validation.model_copy(update={"partial_marks": partial})

        score = int(clamp(round_points(partial), 0, max_points))
        if validation.final_value_correct:
            feedback = "Correct computation with valid steps."
        else:
            feedback = (
                f"Partial marks: {score}/{max_points}. "
                f"Formula: {'correct' if validation.formula_correct else 'incorrect'}, "
                f"steps: {'valid' if validation.step_sequence_valid else 'invalid'}."
            )

        return GradingResult(
            question_id=question.id,
            question_type=question.type,
            score=score,
            max_points=max_points,
            feedback=self._with_degraded_note(feedback, relevance),
            relevance_score=relevance.score,
            marks_distribution=MarksDistribution.allocate(max_points, partial),
            numerical_validation=validation,
        )

    def _grade_diagram(
        self, question: Question, answer: str, relevance: RelevanceResult
    ) -> GradingResult:
        max_points = question.max_points
        keywords = analyze_keywords(
            answer,
            question.mandatory_keywords,
            question.supporting_keywords,
            self._settings.keyword_stuffing_threshold,
        )
        evaluation = self._settle(
            "diagram evaluation",
            question,
            lambda: self._rule_scorer.diagram_evaluation(
                question.prompt, answer, max_points, question.mandatory_keywords
            ),
            DiagramEvaluation.empty(max_points, question.mandatory_keywords),
        )

        score = int(clamp(round_points(evaluation.total.awarded), 0, max_points))
        feedback = f"Diagram score: {score}/{max_points}."
        if evaluation.missing_components:
            feedback += f" Missing components: {', '.join(evaluation.missing_components)}."

        return GradingResult(
            question_id=question.id,
            question_type=question.type,
            score=score,
            max_points=max_points,
            feedback=self._with_degraded_note(feedback, relevance),
            relevance_score=relevance.score,
            marks_distribution=MarksDistribution.zero(max_points),
            keyword_analysis=keywords,
            diagram_evaluation=evaluation,
        )

    def _grade_descriptive(
        self, question: Question, answer: str, relevance: RelevanceResult
    ) -> GradingResult:
        max_points = question.max_points

        keywords = analyze_keywords(
            answer,
            question.mandatory_keywords,
            question.supporting_keywords,
            self._settings.keyword_stuffing_threshold,
        )
        word_count = count_words(answer)
        min_words = minimum_words(question, self._settings.default_min_words)
        too_short = is_too_short(word_count, min_words)

        marks, points, pov = self._run_descriptive_backends(question, answer)

        stats = CoverageStats(
            mandatory_total=keywords.mandatory_total,
            mandatory_found=keywords.mandatory_found,
            supporting_total=keywords.supporting_total,
            supporting_found=keywords.supporting_found,
            too_short=too_short,
            min_points_required=question.min_points_required,
            points_validated=len(points),
            points_covered=sum(1 for p in points if p.covered),
            keyword_stuffing=keywords.keyword_stuffing,
            relevance_score=relevance.score,
        )
        components = compute_components(
            stats,
            points,
            marks.awarded_ratio,
            max_points,
            ai_base_weight=self._settings.ai_quality_base_weight,
            ai_coverage_weight=self._settings.ai_quality_coverage_weight,
        )
        score, notes = apply_caps(components.raw, stats, max_points)

        flags = IntegrityFlags(
            keyword_penalty=keywords.keyword_stuffing,
            low_pov_flag=pov.pov_score < LOW_POV_THRESHOLD,
        )

        logger.info(
            "Question %s: %d/%d | mandatory=%d supporting=%d points=%d ai=%d | relevance=%.0f",
            question.id,
            score,
            max_points,
            components.mandatory,
            components.supporting,
            components.conceptual,
            components.ai_quality,
            relevance.score,
        )

        feedback = [
            f"Score: {score}/{max_points}.",
            f"Relevance: {relevance.score:.0f}/100.",
            f"Keywords: {stats.mandatory_found}/{stats.mandatory_total} mandatory, "
            f"{stats.supporting_found}/{stats.supporting_total} supporting.",
        ]
        if keywords.missing_mandatory:
            feedback.append(f"Missing: {', '.join(keywords.missing_mandatory)}.")
        if too_short:
            feedback.append(f"Too short ({word_count} words, minimum {min_words}).")
        if flags.low_pov_flag:
            feedback.append("Lacks personal analysis.")
        if flags.keyword_penalty:
            feedback.append("Keyword stuffing detected.")
        if notes:
            feedback.append(f"Applied: {'; '.join(notes)}.")

        return GradingResult(
            question_id=question.id,
            question_type=question.type,
            score=score,
            max_points=max_points,
            feedback=self._with_degraded_note(" ".join(feedback), relevance),
            relevance_score=relevance.score,
            marks_distribution=marks,
            points_validation=tuple(points),
            keyword_analysis=keywords,
            integrity_flags=flags,
            caps_applied=notes,
        )

    def _run_descriptive_backends(
        self, question: Question, answer: str
    ) -> tuple[MarksDistribution, list[PointValidation], PointOfView]:
        """
        Issue the three independent backend calls concurrently.

        Joined with settle-all semantics: each call yields its result or its
        default, and no call's failure affects the others.
        """
        max_points = question.max_points
        min_points = question.min_points_required

        def required_points() -> list[PointValidation]:
            if not min_points:
                return []
            points = self._rule_scorer.required_points(question.prompt, answer, min_points)
            return [p for p in points if isinstance(p, PointValidation)]

        with ThreadPoolExecutor(max_workers=3) as executor:
            marks_future = executor.submit(
                self._settle,
                "marks distribution",
                question,
                lambda: self._rule_scorer.marks_distribution(
                    question.prompt, answer, max_points, question.expected_structure
                ),
                MarksDistribution.zero(max_points),
            )
            points_future = executor.submit(
                self._settle, "required points", question, required_points, []
            )
            pov_future = executor.submit(
                self._settle,
                "point of view",
                question,
                lambda: self._reasoning_scorer.detect_point_of_view(answer),
                PointOfView(),
            )
            return marks_future.result(), points_future.result(), pov_future.result()

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @staticmethod
    def _settle(operation: str, question: Question, call: Callable[[], T], default: T) -> T:
        """Run a backend call, substituting the default on error or a malformed result."""
        try:
            result = call()
        except Exception as e:
            logger.warning(
                "%s failed for question %s (%s: %s); using default",
                operation,
                question.id,
                type(e).__name__,
                e,
            )
            return default
        if not isinstance(result, type(default)):
            logger.warning(
                "%s returned %s for question %s; using default",
                operation,
                type(result).__name__,
                question.id,
            )
            return default
        return result

    @staticmethod
    def _with_degraded_note(feedback: str, relevance: RelevanceResult) -> str:
        if relevance.degraded:
            return f"{feedback} Relevance could not be verified."
        return feedback

    @staticmethod
    def _zero_result(question: Question, feedback: str) -> GradingResult:
        return GradingResult(
            question_id=question.id,
            question_type=question.type,
            score=0,
            max_points=question.max_points,
            feedback=feedback,
            relevance_score=0.0,
            marks_distribution=MarksDistribution.zero(question.max_points),
        )

    @staticmethod
    def _irrelevant_result(question: Question, relevance: RelevanceResult) -> GradingResult:
        logger.info(
            "Question %s: irrelevant answer (relevance %.0f/100), 0 marks",
            question.id,
            relevance.score,
        )
        return GradingResult(
            question_id=question.id,
            question_type=question.type,
            score=0,
            max_points=question.max_points,
            feedback=(
                f"0 marks: answer is irrelevant to the question "
                f"(relevance {relevance.score:.0f}/100). "
                f'Question topic: "{relevance.question_topic}", '
                f'but the answer is about: "{relevance.answer_topic}".'
            ),
            relevance_score=relevance.score,
            marks_distribution=MarksDistribution.zero(question.max_points),
            integrity_flags=IntegrityFlags(irrelevant_answer_flag=True),
        )
