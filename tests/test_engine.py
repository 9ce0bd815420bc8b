"""
Unit tests for the grading engine.

Exercises every path of the per-answer state machine against capability
fakes, including backend failures and malformed results.
"""

from unittest.mock import MagicMock

import pytest

from exam_grader.config import RelevanceFailurePolicy, Settings
from exam_grader.grading import GradingEngine, LLMError, ScoringError
from exam_grader.models import (
    GradingResult,
    MarksDistribution,
    NumericalValidation,
    PointOfView,
    Question,
    QuestionType,
    RelevanceResult,
)


class TestEmptyAnswers:
    """Tests for the empty-answer short circuit."""

    @pytest.mark.parametrize("answer", ["", "   ", "ok", " a \n", None])
    def test_short_answer_scores_zero(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        relevance_checker: MagicMock,
        rule_scorer: MagicMock,
        answer: str | None,
    ) -> None:
        """Test answers under three characters score 0 without backend calls."""
        result = engine.grade_answer(descriptive_question, answer)

        assert result.score == 0
        assert result.relevance_score == 0
        assert "No answer provided" in result.feedback
        relevance_checker.check.assert_not_called()
        rule_scorer.marks_distribution.assert_not_called()

    def test_empty_mcq_scores_zero(self, engine: GradingEngine, mcq_question: Question) -> None:
        """Test the short circuit applies to MCQ too."""
        result = engine.grade_answer(mcq_question, "  ")

        assert result.score == 0


class TestMCQ:
    """Tests for exact-match grading."""

    def test_correct_answer_scores_full(
        self,
        engine: GradingEngine,
        mcq_question: Question,
        relevance_checker: MagicMock,
        rule_scorer: MagicMock,
        reasoning_scorer: MagicMock,
    ) -> None:
        """Test a matching answer scores max points with no backend calls."""
        result = engine.grade_answer(mcq_question, "Amritsar")

        assert result.score == mcq_question.max_points
        assert result.feedback == "Correct"
        assert result.relevance_score == 100
        assert result.marks_distribution.total.awarded == mcq_question.max_points
        relevance_checker.check.assert_not_called()
        assert not rule_scorer.method_calls
        assert not reasoning_scorer.method_calls

    def test_incorrect_answer_scores_zero(self, engine: GradingEngine, mcq_question: Question) -> None:
        """Test a different answer scores 0 and names the expected answer."""
        result = engine.grade_answer(mcq_question, "Lahore")

        assert result.score == 0
        assert "Expected: Amritsar" in result.feedback

    def test_match_is_case_sensitive(self, engine: GradingEngine, mcq_question: Question) -> None:
        """Test exact match does not fold case."""
        assert engine.grade_answer(mcq_question, "amritsar").score == 0

    def test_missing_canonical_answer(self, engine: GradingEngine, mcq_question: Question) -> None:
        """Test feedback does not print a missing canonical answer."""
        question = mcq_question.model_copy(update={"canonical_answer": None})

        result = engine.grade_answer(question, "Amritsar")

        assert result.score == 0
        assert "None" not in result.feedback
        assert "No canonical answer" in result.feedback


class TestRelevanceGate:
    """Tests for the relevance stage of the pipeline."""

    def test_irrelevant_answer_scores_zero(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        relevance_checker: MagicMock,
        rule_scorer: MagicMock,
    ) -> None:
        """Test an irrelevant answer scores 0, is flagged and names both topics."""
        relevance_checker.check.return_value = RelevanceResult(
            score=10.0,
            question_topic="Salt March",
            answer_topic="Photosynthesis",
            is_relevant=False,
        )

        result = engine.grade_answer(descriptive_question, good_answer)

        assert result.score == 0
        assert result.integrity_flags.irrelevant_answer_flag
        assert "Salt March" in result.feedback
        assert "Photosynthesis" in result.feedback
        rule_scorer.marks_distribution.assert_not_called()

    def test_threshold_overrides_checker_boolean(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        relevance_checker: MagicMock,
    ) -> None:
        """Test the gate decides relevance from the score, not the checker's flag."""
        relevance_checker.check.return_value = RelevanceResult(score=39.0, is_relevant=True)

        result = engine.grade_answer(descriptive_question, good_answer)

        assert result.score == 0
        assert result.integrity_flags.irrelevant_answer_flag

    def test_fail_open_grades_normally(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        relevance_checker: MagicMock,
    ) -> None:
        """Test a failed relevance check fails open with a permissive default."""
        relevance_checker.check.side_effect = LLMError("relevance backend down")

        result = engine.grade_answer(descriptive_question, good_answer)

        assert result.relevance_score == 70
        assert result.score == 10
        assert not result.integrity_flags.irrelevant_answer_flag
        assert "Relevance could not be verified" in result.feedback

    def test_malformed_verdict_fails_open(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        relevance_checker: MagicMock,
    ) -> None:
        """Test a checker returning the wrong type is handled by the failure policy."""
        relevance_checker.check.return_value = {"relevance_score": 90}

        result = engine.grade_answer(descriptive_question, good_answer)

        assert result.relevance_score == 70
        assert result.score == 10
        assert "Relevance could not be verified" in result.feedback

    def test_fail_closed_scores_zero(
        self,
        test_settings: Settings,
        relevance_checker: MagicMock,
        rule_scorer: MagicMock,
        reasoning_scorer: MagicMock,
        descriptive_question: Question,
        good_answer: str,
    ) -> None:
        """Test a failed relevance check under fail-closed zeroes the answer."""
        settings = test_settings.model_copy(
            update={"relevance_failure_policy": RelevanceFailurePolicy.FAIL_CLOSED}
        )
        relevance_checker.check.side_effect = LLMError("relevance backend down")
        engine = GradingEngine(settings, relevance_checker, rule_scorer, reasoning_scorer)

        result = engine.grade_answer(descriptive_question, good_answer)

        assert result.score == 0
        assert result.integrity_flags.irrelevant_answer_flag
        rule_scorer.marks_distribution.assert_not_called()


class TestDescriptivePath:
    """Tests for the composite descriptive scoring formula."""

    def test_strong_answer_scores_full(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
    ) -> None:
        """Test a complete answer with full AI marks reaches max points."""
        result = engine.grade_answer(descriptive_question, good_answer)

        assert result.score == 10
        assert result.caps_applied == ()
        assert result.keyword_analysis is not None
        assert result.keyword_analysis.mandatory_found == 2
        assert len(result.points_validation) == 2
        assert not result.integrity_flags.low_pov_flag

    def test_three_backend_calls_are_made(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        rule_scorer: MagicMock,
        reasoning_scorer: MagicMock,
    ) -> None:
        """Test marks, points and point-of-view are each requested once."""
        engine.grade_answer(descriptive_question, good_answer)

        rule_scorer.marks_distribution.assert_called_once()
        rule_scorer.required_points.assert_called_once_with(
            descriptive_question.prompt, good_answer, 2
        )
        reasoning_scorer.detect_point_of_view.assert_called_once_with(good_answer)

    def test_no_mandatory_match_caps_at_fifteen_percent(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        off_keyword_answer: str,
    ) -> None:
        """Test an answer without mandatory keywords is capped whatever the AI says."""
        result = engine.grade_answer(descriptive_question, off_keyword_answer)

        assert result.score <= 2
        assert any("no mandatory keywords" in note for note in result.caps_applied)
        assert "Missing: Salt March, Gandhi" in result.feedback

    def test_keyword_stuffing_flagged_and_penalised(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
    ) -> None:
        """Test stuffing raises the flag and scores below the same answer without it."""
        stuffed_answer = good_answer + " Gandhi Gandhi Gandhi Gandhi"

        clean = engine.grade_answer(descriptive_question, good_answer)
        stuffed = engine.grade_answer(descriptive_question, stuffed_answer)

        assert clean.keyword_analysis.keyword_density <= 8
        assert not clean.integrity_flags.keyword_penalty
        assert stuffed.keyword_analysis.keyword_density > 8
        assert stuffed.integrity_flags.keyword_penalty
        assert any("keyword stuffing" in note for note in stuffed.caps_applied)
        assert "Keyword stuffing detected." in stuffed.feedback
        assert stuffed.score == 9
        assert stuffed.score < clean.score

    def test_required_points_skipped_without_minimum(
        self,
        engine: GradingEngine,
        career_question: Question,
        rule_scorer: MagicMock,
    ) -> None:
        """Test no required-points call is made when the question sets no minimum."""
        result = engine.grade_answer(career_question, "AI could route water tankers to dry areas.")

        rule_scorer.required_points.assert_not_called()
        assert result.points_validation == ()

    def test_no_keywords_caps_at_seventy_percent(
        self,
        engine: GradingEngine,
        career_question: Question,
    ) -> None:
        """Test a question without keywords never exceeds 70% of max points."""
        result = engine.grade_answer(career_question, "AI could route water tankers to dry areas.")

        assert result.score <= 7
        assert any("no keywords declared" in note for note in result.caps_applied)

    def test_borderline_relevance_halves_score(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        relevance_checker: MagicMock,
    ) -> None:
        """Test relevance in [40, 50) halves the score."""
        relevance_checker.check.return_value = RelevanceResult(score=45.0, is_relevant=True)

        result = engine.grade_answer(descriptive_question, good_answer)

        assert result.score == 6
        assert result.caps_applied == ("borderline relevance: score halved",)

    def test_low_point_of_view_is_flagged(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        reasoning_scorer: MagicMock,
    ) -> None:
        """Test a weak personal voice raises the flag but leaves the score alone."""
        reasoning_scorer.detect_point_of_view.return_value = PointOfView(pov_score=20.0)

        result = engine.grade_answer(descriptive_question, good_answer)

        assert result.integrity_flags.low_pov_flag
        assert result.score == 10

    def test_partial_failure_keeps_sibling_results(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        rule_scorer: MagicMock,
        reasoning_scorer: MagicMock,
    ) -> None:
        """Test failed marks and point-of-view calls settle to defaults independently."""
        rule_scorer.marks_distribution.side_effect = LLMError("timeout")
        reasoning_scorer.detect_point_of_view.side_effect = ScoringError("not json")

        result = engine.grade_answer(descriptive_question, good_answer)

        # 4 mandatory + 2 supporting + 3 conceptual, no AI-quality share
        assert result.score == 9
        assert result.marks_distribution.total.awarded == 0
        assert len(result.points_validation) == 2
        assert not result.integrity_flags.low_pov_flag

    def test_malformed_capability_result_uses_default(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        rule_scorer: MagicMock,
    ) -> None:
        """Test a capability returning the wrong type is treated as a failure."""
        rule_scorer.marks_distribution.side_effect = None
        rule_scorer.marks_distribution.return_value = {"total": {"awarded": 99}}

        result = engine.grade_answer(descriptive_question, good_answer)

        assert isinstance(result.marks_distribution, MarksDistribution)
        assert result.marks_distribution.total.awarded == 0
        assert result.score == 9

    def test_all_backends_failing_still_returns_result(
        self,
        engine: GradingEngine,
        descriptive_question: Question,
        good_answer: str,
        relevance_checker: MagicMock,
        rule_scorer: MagicMock,
        reasoning_scorer: MagicMock,
    ) -> None:
        """Test grading survives every capability raising."""
        relevance_checker.check.side_effect = LLMError("down")
        rule_scorer.marks_distribution.side_effect = LLMError("down")
        rule_scorer.required_points.side_effect = LLMError("down")
        reasoning_scorer.detect_point_of_view.side_effect = LLMError("down")

        result = engine.grade_answer(descriptive_question, good_answer)

        assert isinstance(result, GradingResult)
        # Keywords alone: 4 mandatory + 2 supporting
        assert result.score == 6
        assert result.points_validation == ()


class TestNumericalPath:
    """Tests for numerical grading."""

    def test_correct_computation(
        self, engine: GradingEngine, numerical_question: Question
    ) -> None:
        """Test a fully correct computation scores the partial marks returned."""
        result = engine.grade_answer(numerical_question, "v = g t = 9.8 x 2 = 19.6 m/s")

        assert result.score == 5
        assert result.feedback.startswith("Correct computation")
        assert result.marks_distribution.total.awarded == 5
        assert abs(result.marks_distribution.parts_awarded - 5) < 0.01

    def test_backend_failure_scores_zero(
        self,
        engine: GradingEngine,
        numerical_question: Question,
        rule_scorer: MagicMock,
    ) -> None:
        """Test a failing numerical validator yields the all-false default and 0."""
        rule_scorer.numerical_validation.side_effect = LLMError("backend unavailable")

        result = engine.grade_answer(numerical_question, "v = 19.6 m/s")

        assert result.score == 0
        assert result.numerical_validation == NumericalValidation.failed()

    def test_partial_marks_clamped_to_max(
        self,
        engine: GradingEngine,
        numerical_question: Question,
        rule_scorer: MagicMock,
    ) -> None:
        """Test out-of-range partial marks never push the score past max points."""
        rule_scorer.numerical_validation.return_value = NumericalValidation(
            formula_correct=True, partial_marks=50.0
        )

        result = engine.grade_answer(numerical_question, "v = 19.6 m/s")

        assert result.score == 5
        assert result.numerical_validation.partial_marks == 5
        assert "Partial marks: 5/5" in result.feedback

    def test_partial_marks_rounded_half_up(
        self,
        engine: GradingEngine,
        numerical_question: Question,
        rule_scorer: MagicMock,
    ) -> None:
        """Test fractional partial marks round half up to whole points."""
        rule_scorer.numerical_validation.return_value = NumericalValidation(
            formula_correct=True, partial_marks=2.5
        )

        result = engine.grade_answer(numerical_question, "v = 9.8 m/s")

        assert result.score == 3
        assert "Formula: correct" in result.feedback


class TestDiagramPath:
    """Tests for diagram grading."""

    def test_scored_from_evaluation_total(
        self, engine: GradingEngine, diagram_question: Question
    ) -> None:
        """Test the score is the evaluation total and missing components are named."""
        result = engine.grade_answer(
            diagram_question, "A circle labelled cell membrane with a nucleus in the middle."
        )

        # 3 + 1 + 2 + 0.5 = 6.5, rounded half up
        assert result.score == 7
        assert result.diagram_evaluation is not None
        assert result.diagram_evaluation.missing_components == ("mitochondria",)
        assert "mitochondria" in result.feedback
        assert result.keyword_analysis is not None
        assert result.keyword_analysis.mandatory_found == 2

    def test_backend_failure_scores_zero(
        self,
        engine: GradingEngine,
        diagram_question: Question,
        rule_scorer: MagicMock,
    ) -> None:
        """Test a failing diagram evaluation scores 0 with every component missing."""
        rule_scorer.diagram_evaluation.side_effect = ScoringError("garbled")

        result = engine.grade_answer(diagram_question, "A circle with a dot in it.")

        assert result.score == 0
        assert result.diagram_evaluation.missing_components == diagram_question.mandatory_keywords


class TestScoreBounds:
    """Tests for the clamp invariant across question types."""

    @pytest.mark.parametrize(
        "question_type",
        [QuestionType.SHORT_ANSWER, QuestionType.DESCRIPTIVE, QuestionType.NUMERICAL, QuestionType.DIAGRAM],
    )
    def test_score_within_bounds(
        self,
        engine: GradingEngine,
        good_answer: str,
        question_type: QuestionType,
    ) -> None:
        """Test every path keeps the score within [0, max_points]."""
        question = Question(
            id="q-any",
            prompt="Explain the Salt March.",
            type=question_type,
            max_points=3,
            mandatory_keywords=("Gandhi",),
        )

        result = engine.grade_answer(question, good_answer)

        assert 0 <= result.score <= question.max_points


class TestGradeAttempt:
    """Tests for grading a whole attempt."""

    def test_results_in_question_order(
        self,
        engine: GradingEngine,
        mcq_question: Question,
        descriptive_question: Question,
        numerical_question: Question,
        good_answer: str,
    ) -> None:
        """Test one result per question, in order, with missing answers graded empty."""
        questions = [numerical_question, mcq_question, descriptive_question]
        answers = {"q-mcq": "Amritsar", "q-salt": good_answer}

        results = engine.grade_attempt(questions, answers)

        assert [r.question_id for r in results] == ["q-num", "q-mcq", "q-salt"]
        assert results[0].score == 0
        assert "No answer provided" in results[0].feedback
        assert results[1].score == 2


class TestAuditAndHealth:
    """Tests for audit records and health checks."""

    def test_create_audit(
        self,
        engine: GradingEngine,
        mcq_question: Question,
        test_settings: Settings,
    ) -> None:
        """Test audit records hash inputs and outputs and name both models."""
        result = engine.grade_answer(mcq_question, "Amritsar")
        audit = engine.create_audit(mcq_question, "Amritsar", result)

        assert audit.question_id == "q-mcq"
        assert len(audit.answer_hash) == 64
        assert audit.rule_backend_model == test_settings.rule_backend_model
        assert audit.reasoning_backend_model == test_settings.reasoning_backend_model

    def test_audit_is_reproducible(self, engine: GradingEngine, mcq_question: Question) -> None:
        """Test identical inputs and outcomes produce identical hashes."""
        first = engine.create_audit(mcq_question, "Amritsar", engine.grade_answer(mcq_question, "Amritsar"))
        second = engine.create_audit(mcq_question, "Amritsar", engine.grade_answer(mcq_question, "Amritsar"))

        assert first.question_hash == second.question_hash
        assert first.answer_hash == second.answer_hash
        assert first.result_hash == second.result_hash
        assert first.audit_id != second.audit_id

    def test_health_check(self, engine: GradingEngine, reasoning_scorer: MagicMock) -> None:
        """Test health is reported per backend."""
        reasoning_scorer.health_check.return_value = False

        assert engine.health_check() == {"rule-backed": True, "reasoning": False}
