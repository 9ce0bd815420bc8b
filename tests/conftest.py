"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

import json
import tempfile
from pathlib import Path
from typing import Any, Generator
from unittest.mock import MagicMock

import pytest

from exam_grader.config import Settings
from exam_grader.grading import GradingEngine
from exam_grader.grading.normalizer import ResponseNormalizer
from exam_grader.models import (
    MARKS_PROPORTIONS,
    CareerMapping,
    DepthTier,
    MarksDistribution,
    NumericalValidation,
    OriginalityMetrics,
    PointOfView,
    PointValidation,
    Question,
    QuestionType,
    RelevanceResult,
)


# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ==============================================================================
# Sample Question Fixtures
# ==============================================================================


@pytest.fixture
def mcq_question() -> Question:
    """A multiple-choice question with an exact canonical answer."""
    return Question(
        id="q-mcq",
        prompt="In which city did the Jallianwala Bagh massacre take place?",
        type=QuestionType.MCQ,
        canonical_answer="Amritsar",
        max_points=2,
    )


@pytest.fixture
def descriptive_question() -> Question:
    """A descriptive question with mandatory and supporting keywords."""
    return Question(
        id="q-salt",
        prompt="Explain the significance of the Salt March in the Indian independence movement.",
        type=QuestionType.DESCRIPTIVE,
        max_points=10,
        subject="Modern History",
        mandatory_keywords=("Salt March", "Gandhi"),
        supporting_keywords=("civil disobedience", "Dandi"),
        min_words=20,
        min_points_required=2,
    )


@pytest.fixture
def numerical_question() -> Question:
    """A numerical question with a reference value."""
    return Question(
        id="q-num",
        prompt="A stone falls freely for 2 seconds. What is its final velocity? (g = 9.8 m/s^2)",
        type=QuestionType.NUMERICAL,
        canonical_answer="19.6 m/s",
        max_points=5,
    )


@pytest.fixture
def diagram_question() -> Question:
    """A diagram question whose mandatory keywords are the required components."""
    return Question(
        id="q-cell",
        prompt="Draw and label an animal cell.",
        type=QuestionType.DIAGRAM,
        max_points=8,
        mandatory_keywords=("cell membrane", "nucleus", "mitochondria"),
    )


@pytest.fixture
def career_question() -> Question:
    """A descriptive question tagged for career mapping."""
    return Question(
        id="q-career",
        prompt="Describe a problem in your community that AI could help solve.",
        type=QuestionType.DESCRIPTIVE,
        max_points=10,
        subject="AI Careers",
    )


# ==============================================================================
# Sample Answer Fixtures
# ==============================================================================


@pytest.fixture
def good_answer() -> str:
    """A 65-word answer that uses every keyword once."""
    return (
        "In 1930 Gandhi led the Salt March from Sabarmati Ashram to the coastal village "
        "of Dandi to protest the British salt tax. I think the march mattered because it "
        "turned an everyday necessity into a symbol of civil disobedience that ordinary "
        "people could join. Thousands broke the law by making salt, and the arrests that "
        "followed drew international attention to the demand for self rule."
    )


@pytest.fixture
def off_keyword_answer() -> str:
    """A 150-word answer that contains none of the keywords."""
    return " ".join(["Factories transformed production across Europe."] * 30)


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with mocked values."""
    return Settings(
        rule_backend_api_key="test-rule-key",
        rule_backend_base_url="https://rule.test.local/v1",
        rule_backend_model="rule-test-model",
        reasoning_backend_api_key="test-api-key-for-testing",
        reasoning_backend_base_url="https://reasoning.test.local/v1",
        reasoning_backend_model="reasoning-test-model",
        backend_max_retries=2,
        max_workers=2,
        output_directory=temp_dir / "output",
    )


# ==============================================================================
# Capability Fakes
# ==============================================================================


def full_marks(question: str, answer: str, max_points: float, expected_structure: Any) -> MarksDistribution:
    """Marks distribution with every criterion at its maximum."""
    return MarksDistribution.allocate(max_points, max_points, MARKS_PROPORTIONS)


def covered_points(question: str, answer: str, min_points_required: int) -> list[PointValidation]:
    """Every required point covered in depth."""
    return [
        PointValidation(point=f"Point {i}", covered=True, depth=DepthTier.HIGH)
        for i in range(1, min_points_required + 1)
    ]


def partial_diagram(question: str, answer: str, max_points: float, required_components: Any):
    """A diagram with two of its components detected."""
    return ResponseNormalizer().diagram(
        {
            "component_presence": {"awarded": 3},
            "label_accuracy": {"awarded": 1},
            "logical_flow": {"awarded": 2},
            "explanation_alignment": {"awarded": 0.5},
            "detected_components": ["Cell membrane", "Nucleus"],
        },
        max_points,
        tuple(required_components),
    )


@pytest.fixture
def relevance_checker() -> MagicMock:
    """Relevance capability that finds every answer on topic."""
    checker = MagicMock()
    checker.check.return_value = RelevanceResult(
        score=85.0,
        question_topic="Salt March",
        answer_topic="Salt March",
        is_relevant=True,
    )
    return checker


@pytest.fixture
def rule_scorer() -> MagicMock:
    """Rule-backed capability returning strong, well-formed evaluations."""
    scorer = MagicMock()
    scorer.marks_distribution.side_effect = full_marks
    scorer.required_points.side_effect = covered_points
    scorer.numerical_validation.return_value = NumericalValidation(
        formula_correct=True,
        step_sequence_valid=True,
        final_value_correct=True,
        partial_marks=5.0,
    )
    scorer.diagram_evaluation.side_effect = partial_diagram
    scorer.health_check.return_value = True
    return scorer


@pytest.fixture
def reasoning_scorer() -> MagicMock:
    """Reasoning capability with a confident personal voice."""
    scorer = MagicMock()
    scorer.detect_point_of_view.return_value = PointOfView(pov_score=65.0, has_personal_framing=True)
    scorer.analyze_originality.return_value = OriginalityMetrics(
        ai_generated_probability=20.0,
        pov_presence_score=70.0,
        originality_score=80.0,
    )
    scorer.generate_career_mapping.return_value = CareerMapping(
        ai_aptitude_score=72.0,
        recommended_roles=("ML Engineer", "Data Analyst"),
    )
    scorer.health_check.return_value = True
    return scorer


@pytest.fixture
def engine(
    test_settings: Settings,
    relevance_checker: MagicMock,
    rule_scorer: MagicMock,
    reasoning_scorer: MagicMock,
) -> GradingEngine:
    """Grading engine wired to the capability fakes."""
    return GradingEngine(
        test_settings,
        relevance_checker=relevance_checker,
        rule_scorer=rule_scorer,
        reasoning_scorer=reasoning_scorer,
    )


# ==============================================================================
# File Fixtures
# ==============================================================================


@pytest.fixture
def attempt_data(
    mcq_question: Question,
    descriptive_question: Question,
    career_question: Question,
    good_answer: str,
) -> dict[str, Any]:
    """A serialized attempt with three questions and their answers."""
    return {
        "attempt_id": "attempt-001",
        "questions": [
            json.loads(q.model_dump_json())
            for q in (mcq_question, descriptive_question, career_question)
        ],
        "answers": {
            "q-mcq": "Amritsar",
            "q-salt": good_answer,
            "q-career": "I would use AI to predict which streets flood first during the monsoon season.",
        },
    }


@pytest.fixture
def attempt_file(temp_dir: Path, attempt_data: dict[str, Any]) -> Path:
    """Write the sample attempt to a JSON file."""
    file_path = temp_dir / "attempt.json"
    file_path.write_text(json.dumps(attempt_data), encoding="utf-8")
    return file_path
