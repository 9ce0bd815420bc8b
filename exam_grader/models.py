"""
Pydantic models for the exam grading pipeline.

These models define the strict schemas for:
- Questions and candidate attempts
- Per-answer grading results with bounded sub-scores
- Attempt-level originality, career and integrity summaries
- Audit records for reproducibility

All models are frozen: once a result is built it is never mutated.
"""

from datetime import datetime, timezone
from enum import Enum
from hashlib import sha256
from typing import Any
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from exam_grader.numeric import round_half_up

# Share of a descriptive answer's max points per marks-distribution criterion.
MARKS_PROPORTIONS: tuple[tuple[str, float], ...] = (
    ("concept_accuracy", 0.25),
    ("logical_reasoning", 0.20),
    ("required_points_coverage", 0.15),
    ("keyword_accuracy", 0.10),
    ("structure_coherence", 0.10),
    ("length_compliance", 0.10),
    ("original_thought", 0.10),
)

# Formula, step sequence and final value for numerical answers.
NUMERICAL_PROPORTIONS: tuple[tuple[str, float], ...] = (
    ("concept_accuracy", 0.40),
    ("logical_reasoning", 0.30),
    ("required_points_coverage", 0.30),
)

DIAGRAM_PROPORTIONS: tuple[tuple[str, float], ...] = (
    ("component_presence", 0.375),
    ("label_accuracy", 0.25),
    ("logical_flow", 0.25),
    ("explanation_alignment", 0.125),
)

MARKS_TOTAL_TOLERANCE = 0.5

_EPSILON = 1e-6


def split_points(max_points: float, proportions: tuple[tuple[str, float], ...]) -> dict[str, float]:
    """
    Split max points across named criteria by proportion.

    Every share but the last is rounded to two decimals; the last share
    absorbs the remainder so the shares always sum to max_points.
    """
    shares: dict[str, float] = {}
    allocated = 0.0
    for name, weight in proportions[:-1]:
        share = round_half_up(max_points * weight, 2)
        shares[name] = share
        allocated += share
    last_name = proportions[-1][0]
    shares[last_name] = max(0.0, round_half_up(max_points - allocated, 2))
    return shares


# ==============================================================================
# Question Models
# ==============================================================================


class QuestionType(str, Enum):
    """Kinds of exam question the pipeline can grade."""

    MCQ = "MCQ"
    SHORT_ANSWER = "SHORT_ANSWER"
    DESCRIPTIVE = "DESCRIPTIVE"
    NUMERICAL = "NUMERICAL"
    DIAGRAM = "DIAGRAM"

    @property
    def is_descriptive(self) -> bool:
        """Whether answers of this type run the composite scoring formula."""
        return self in (QuestionType.SHORT_ANSWER, QuestionType.DESCRIPTIVE)


class Question(BaseModel):
    """
    A single exam question, authored and owned outside the grading core.

    Keyword sets drive the deterministic part of descriptive scoring;
    word counts and the minimum conceptual points feed the scoring caps.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique question identifier")

    prompt: str = Field(..., min_length=1, description="Question text shown to the candidate")

    type: QuestionType = Field(..., description="Question type, selects the grading path")

    canonical_answer: str | None = Field(
        default=None,
        description="Expected answer: exact option for MCQ, reference value for numerical",
    )

    max_points: int = Field(..., gt=0, le=1000, description="Maximum points for this question")

    subject: str | None = Field(default=None, description="Subject tag, e.g. 'AI careers'")

    mandatory_keywords: tuple[str, ...] = Field(
        default=(),
        description="Terms a complete answer must contain",
    )

    supporting_keywords: tuple[str, ...] = Field(
        default=(),
        description="Bonus terms that strengthen an answer",
    )

    expected_structure: str | None = Field(
        default=None,
        description="Expected answer structure label, e.g. 'introduction-body-conclusion'",
    )

    min_words: int | None = Field(default=None, ge=1)
    optimal_words: int | None = Field(default=None, ge=1)
    max_words: int | None = Field(default=None, ge=1)

    min_points_required: int | None = Field(
        default=None,
        ge=1,
        description="Minimum conceptual points a full-credit answer must cover",
    )

    @field_validator("mandatory_keywords", "supporting_keywords", mode="before")
    @classmethod
    def clean_keywords(cls, v: Any) -> tuple[str, ...]:
        """Strip keywords and drop blank entries."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        return tuple(str(k).strip() for k in v if str(k).strip())

    @property
    def declares_keywords(self) -> bool:
        """Whether any mandatory or supporting keyword is declared."""
        return bool(self.mandatory_keywords or self.supporting_keywords)


# ==============================================================================
# Sub-score Models
# ==============================================================================


class ScorePair(BaseModel):
    """A bounded sub-score: points awarded out of a declared maximum."""

    model_config = ConfigDict(frozen=True)

    max: float = Field(..., ge=0)
    awarded: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def validate_points_range(self) -> "ScorePair":
        """Ensure awarded points don't exceed max points."""
        if self.awarded > self.max + _EPSILON:
            raise ValueError(
                f"Awarded points ({self.awarded}) cannot exceed max points ({self.max})"
            )
        return self


class MarksDistribution(BaseModel):
    """
    Fixed-proportion breakdown of an answer's marks across seven criteria.

    The total must agree with the sum of its parts; normalization recomputes
    it before construction when a backend reports something else.
    """

    model_config = ConfigDict(frozen=True)

    concept_accuracy: ScorePair
    logical_reasoning: ScorePair
    required_points_coverage: ScorePair
    keyword_accuracy: ScorePair
    structure_coherence: ScorePair
    length_compliance: ScorePair
    original_thought: ScorePair
    total: ScorePair

    @property
    def parts(self) -> dict[str, ScorePair]:
        """The seven criteria, in declaration order."""
        return {name: getattr(self, name) for name, _ in MARKS_PROPORTIONS}

    @property
    def parts_awarded(self) -> float:
        """Sum of points awarded across the seven criteria."""
        return sum(pair.awarded for pair in self.parts.values())

    @property
    def awarded_ratio(self) -> float:
        """Total awarded as a fraction of total max, capped at 1."""
        if self.total.max <= 0:
            return 0.0
        return min(self.total.awarded / self.total.max, 1.0)

    @model_validator(mode="after")
    def validate_total_consistency(self) -> "MarksDistribution":
        """Ensure the total agrees with the sum of the criteria."""
        if abs(self.total.awarded - self.parts_awarded) > MARKS_TOTAL_TOLERANCE:
            raise ValueError(
                f"Total awarded ({self.total.awarded}) disagrees with "
                f"sum of criteria ({self.parts_awarded})"
            )
        return self

    @classmethod
    def zero(cls, max_points: float) -> "MarksDistribution":
        """Standard proportions with nothing awarded."""
        shares = split_points(max_points, MARKS_PROPORTIONS)
        return cls(
            **{name: ScorePair(max=share) for name, share in shares.items()},
            total=ScorePair(max=max_points),
        )

    @classmethod
    def single_criterion(cls, max_points: float, awarded: float) -> "MarksDistribution":
        """All marks on concept accuracy, as for an exact-match question."""
        empty = ScorePair(max=0.0)
        return cls(
            concept_accuracy=ScorePair(max=max_points, awarded=awarded),
            logical_reasoning=empty,
            required_points_coverage=empty,
            keyword_accuracy=empty,
            structure_coherence=empty,
            length_compliance=empty,
            original_thought=empty,
            total=ScorePair(max=max_points, awarded=awarded),
        )

    @classmethod
    def allocate(
        cls,
        max_points: float,
        awarded: float,
        proportions: tuple[tuple[str, float], ...] = NUMERICAL_PROPORTIONS,
    ) -> "MarksDistribution":
        """
        Spread an already-decided award over a subset of criteria.

        Criteria are filled in order up to their maxima, so the parts
        always sum to the awarded total.
        """
        shares = split_points(max_points, proportions)
        remaining = max(0.0, min(awarded, max_points))
        pairs: dict[str, ScorePair] = {}
        for name, _ in MARKS_PROPORTIONS:
            share = shares.get(name, 0.0)
            given = min(remaining, share)
            remaining = round_half_up(remaining - given, 6)
            pairs[name] = ScorePair(max=share, awarded=given)
        return cls(**pairs, total=ScorePair(max=max_points, awarded=min(awarded, max_points)))


class DepthTier(str, Enum):
    """How thoroughly a conceptual point is addressed."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class PointValidation(BaseModel):
    """Coverage verdict for one conceptual point."""

    model_config = ConfigDict(frozen=True)

    point: str
    covered: bool = False
    depth: DepthTier = DepthTier.LOW


class KeywordMatch(BaseModel):
    """Whether one keyword appears in the answer, and how often."""

    model_config = ConfigDict(frozen=True)

    keyword: str
    found: bool
    occurrences: int = Field(default=0, ge=0)


class KeywordAnalysis(BaseModel):
    """
    Deterministic keyword evidence for an answer.

    Stuffing is derived purely from density and is reproducible
    bit-for-bit for the same inputs.
    """

    model_config = ConfigDict(frozen=True)

    mandatory_matches: tuple[KeywordMatch, ...] = ()
    supporting_matches: tuple[KeywordMatch, ...] = ()
    match_percentage: int = Field(default=0, ge=0, le=100)
    keyword_density: float = Field(default=0.0, ge=0)
    keyword_stuffing: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def mandatory_found(self) -> int:
        """Number of mandatory keywords present."""
        return sum(1 for m in self.mandatory_matches if m.found)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def supporting_found(self) -> int:
        """Number of supporting keywords present."""
        return sum(1 for m in self.supporting_matches if m.found)

    @property
    def mandatory_total(self) -> int:
        return len(self.mandatory_matches)

    @property
    def supporting_total(self) -> int:
        return len(self.supporting_matches)

    @property
    def missing_mandatory(self) -> list[str]:
        """Mandatory keywords absent from the answer."""
        return [m.keyword for m in self.mandatory_matches if not m.found]


class NumericalStep(BaseModel):
    """One step of a worked numerical answer."""

    model_config = ConfigDict(frozen=True)

    step: str
    correct: bool = False
    marks: float = Field(default=0.0, ge=0)


class NumericalValidation(BaseModel):
    """Step-by-step verdict on a numerical answer."""

    model_config = ConfigDict(frozen=True)

    formula_correct: bool = False
    step_sequence_valid: bool = False
    final_value_correct: bool = False
    partial_marks: float = Field(default=0.0, ge=0)
    steps_analysis: tuple[NumericalStep, ...] = ()

    @classmethod
    def failed(cls) -> "NumericalValidation":
        """All checks false and nothing awarded."""
        return cls()


class DiagramEvaluation(BaseModel):
    """Four-part evaluation of a diagram description."""

    model_config = ConfigDict(frozen=True)

    component_presence: ScorePair
    label_accuracy: ScorePair
    logical_flow: ScorePair
    explanation_alignment: ScorePair
    total: ScorePair
    detected_components: tuple[str, ...] = ()
    missing_components: tuple[str, ...] = ()

    @classmethod
    def empty(cls, max_points: float, required_components: tuple[str, ...] = ()) -> "DiagramEvaluation":
        """Standard split with nothing awarded and every required component missing."""
        shares = split_points(max_points, DIAGRAM_PROPORTIONS)
        return cls(
            **{name: ScorePair(max=share) for name, share in shares.items()},
            total=ScorePair(max=max_points),
            missing_components=tuple(required_components),
        )


# ==============================================================================
# Backend Verdict Models
# ==============================================================================


class RelevanceResult(BaseModel):
    """Outcome of the relevance gate."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(..., ge=0, le=100)
    question_topic: str = "unknown"
    answer_topic: str = "unknown"
    is_relevant: bool
    degraded: bool = Field(
        default=False,
        description="True when the verdict comes from the failure policy, not the backend",
    )


class PointOfView(BaseModel):
    """Personal point-of-view indicators for one answer."""

    model_config = ConfigDict(frozen=True)

    pov_score: float = Field(default=50.0, ge=0, le=100)
    has_contextual_explanation: bool = False
    has_logical_flow: bool = False
    has_personal_framing: bool = False
    has_unique_structuring: bool = False
    has_example_reasoning: bool = False


class OriginalityMetrics(BaseModel):
    """Attempt-wide originality and authorship signals."""

    model_config = ConfigDict(frozen=True)

    ai_generated_probability: float = Field(default=0.0, ge=0, le=100)
    pov_presence_score: float = Field(default=100.0, ge=0, le=100)
    originality_score: float = Field(default=100.0, ge=0, le=100)
    style_inconsistency_flag: bool = False

    @classmethod
    def trusting_default(cls) -> "OriginalityMetrics":
        """No evidence of misconduct: no AI likelihood, full voice and originality."""
        return cls()


class CareerMapping(BaseModel):
    """Career aptitude mapping derived from career- or AI-tagged answers."""

    model_config = ConfigDict(frozen=True)

    ai_aptitude_score: float = Field(default=0.0, ge=0, le=100)
    recommended_roles: tuple[str, ...] = ()
    confidence_levels: dict[str, float] = Field(default_factory=dict)
    reasoning_strengths: tuple[str, ...] = ()
    improvement_areas: tuple[str, ...] = ()
    skill_gap_analysis: tuple[str, ...] = ()
    learning_path_recommendation: tuple[str, ...] = ()


class IntegrityFlags(BaseModel):
    """Advisory booleans attached to a result for human review."""

    model_config = ConfigDict(frozen=True)

    irrelevant_answer_flag: bool = False
    ai_usage_suspected: bool = False
    style_inconsistency_flag: bool = False
    keyword_penalty: bool = False
    low_pov_flag: bool = False
    time_anomaly_flag: bool = False

    @property
    def raised(self) -> list[str]:
        """Names of flags that are set."""
        return [name for name, value in self.model_dump().items() if value]


# ==============================================================================
# Grading Result Models
# ==============================================================================


class GradingResult(BaseModel):
    """
    Complete grading result for one answer.

    Created once per (attempt, question) and immutable thereafter.
    """

    model_config = ConfigDict(frozen=True)

    question_id: str
    question_type: QuestionType

    score: int = Field(..., ge=0, description="Final points awarded")
    max_points: int = Field(..., gt=0)

    feedback: str = Field(..., min_length=1)

    relevance_score: float = Field(default=0.0, ge=0, le=100)

    marks_distribution: MarksDistribution
    points_validation: tuple[PointValidation, ...] = ()
    keyword_analysis: KeywordAnalysis | None = None
    numerical_validation: NumericalValidation | None = None
    diagram_evaluation: DiagramEvaluation | None = None

    integrity_flags: IntegrityFlags = Field(default_factory=IntegrityFlags)

    # Attempt-level fields; never filled per answer
    originality_metrics: OriginalityMetrics | None = None
    career_mapping: CareerMapping | None = None

    caps_applied: tuple[str, ...] = Field(
        default=(),
        description="Caps and penalties that fired, in application order",
    )

    graded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def validate_score_range(self) -> "GradingResult":
        """Ensure the score doesn't exceed the question's max points."""
        if self.score > self.max_points:
            raise ValueError(
                f"Score ({self.score}) cannot exceed max points ({self.max_points})"
            )
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage(self) -> float:
        """Score as a percentage of max points."""
        return self.score / self.max_points * 100


class AttemptSummary(BaseModel):
    """Attempt-level aggregate produced after every answer is graded."""

    model_config = ConfigDict(frozen=True)

    originality_metrics: OriginalityMetrics
    career_mapping: CareerMapping | None = None
    aggregated_flags: IntegrityFlags
    answers_analyzed: int = Field(
        default=0,
        ge=0,
        description="Descriptive answers sent to originality analysis",
    )
    total_score: int = Field(default=0, ge=0)
    total_max: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage(self) -> float:
        """Attempt score as a percentage of the attempt's max points."""
        if self.total_max == 0:
            return 0.0
        return self.total_score / self.total_max * 100


# ==============================================================================
# Audit Models
# ==============================================================================


class AuditRecord(BaseModel):
    """
    Immutable audit record for reproducibility.

    Contains hashes of inputs and outputs to enable verification
    that the same inputs produce the same outputs.
    """

    model_config = ConfigDict(frozen=True)

    audit_id: UUID = Field(default_factory=uuid4)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    question_id: str

    question_hash: str = Field(..., description="SHA-256 hash of the question content")

    answer_hash: str = Field(..., description="SHA-256 hash of the candidate answer")

    result_hash: str = Field(..., description="SHA-256 hash of the scored outcome")

    rule_backend_model: str

    reasoning_backend_model: str

    @staticmethod
    def compute_hash(content: str) -> str:
        """Compute SHA-256 hash of content."""
        return sha256(content.encode("utf-8")).hexdigest()


# ==============================================================================
# Attempt Models
# ==============================================================================


class AttemptSubmission(BaseModel):
    """A candidate's full set of answers for one assessment."""

    model_config = ConfigDict(frozen=True)

    attempt_id: str = Field(default_factory=lambda: str(uuid4()))

    questions: tuple[Question, ...] = Field(..., min_length=1)

    answers: dict[str, str] = Field(
        default_factory=dict,
        description="Answer text keyed by question id",
    )

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "AttemptSubmission":
        """Ensure no two questions share an id."""
        ids = [q.id for q in self.questions]
        if len(ids) != len(set(ids)):
            duplicates = {i for i in ids if ids.count(i) > 1}
            raise ValueError(f"Duplicate question ids found: {sorted(duplicates)}")
        return self


class AttemptReport(BaseModel):
    """Everything produced for one attempt, ready to be written out."""

    model_config = ConfigDict(frozen=True)

    attempt_id: str
    results: tuple[GradingResult, ...]
    summary: AttemptSummary
    audits: tuple[AuditRecord, ...] = ()
