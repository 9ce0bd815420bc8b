"""
Scoring policy for descriptive answers.

The composite score is four weighted components followed by an ordered
sequence of caps and penalties. Every function here is pure: the same
coverage statistics always produce the same score, and each rule can be
exercised on its own.
"""

import logging
from typing import Callable, NamedTuple, Sequence

from exam_grader.models import DepthTier, PointValidation
from exam_grader.numeric import clamp, round_points

logger = logging.getLogger(__name__)

MANDATORY_WEIGHT = 0.40
SUPPORTING_WEIGHT = 0.15
CONCEPTUAL_WEIGHT = 0.25

DEPTH_WEIGHTS = {DepthTier.HIGH: 1.0, DepthTier.MEDIUM: 0.7}
DEFAULT_DEPTH_WEIGHT = 0.4

NO_KEYWORDS_CAP = 0.70
NO_MANDATORY_MATCH_CAP = 0.15
LOW_MANDATORY_COVERAGE_CAP = 0.40
LOW_MANDATORY_COVERAGE_LIMIT = 0.5
TOO_SHORT_CAP = 0.50
MIN_POINTS_CAP = 0.60
STUFFING_PENALTY = 0.15
LOW_RELEVANCE_BAND = (40.0, 50.0)
LOW_RELEVANCE_MULTIPLIER = 0.5


class CoverageStats(NamedTuple):
    """Evidence about one descriptive answer that the caps are decided on."""

    mandatory_total: int
    mandatory_found: int
    supporting_total: int
    supporting_found: int
    too_short: bool = False
    min_points_required: int | None = None
    points_validated: int = 0
    points_covered: int = 0
    keyword_stuffing: bool = False
    relevance_score: float = 100.0

    @property
    def mandatory_coverage(self) -> float:
        if self.mandatory_total == 0:
            return 0.0
        return self.mandatory_found / self.mandatory_total

    @property
    def supporting_coverage(self) -> float:
        if self.supporting_total == 0:
            return 0.0
        return self.supporting_found / self.supporting_total

    @property
    def combined_coverage(self) -> float:
        declared = self.mandatory_total + self.supporting_total
        if declared == 0:
            return 0.0
        return (self.mandatory_found + self.supporting_found) / declared


class ScoreComponents(NamedTuple):
    """Whole-point contributions of the four weighted components."""

    mandatory: int
    supporting: int
    conceptual: int
    ai_quality: int

    @property
    def raw(self) -> int:
        return self.mandatory + self.supporting + self.conceptual + self.ai_quality


class RuleOutcome(NamedTuple):
    """Score after one rule, and a note when the rule fired."""

    score: int
    note: str | None = None


def depth_weighted_coverage(points: Sequence[PointValidation]) -> float:
    """
    Coverage of conceptual points, weighted by depth.

    Covered points count 1.0 (HIGH), 0.7 (MEDIUM) or 0.4 (anything else);
    uncovered points count nothing. Capped at 1.
    """
    if not points:
        return 0.0
    weighted = sum(
        DEPTH_WEIGHTS.get(p.depth, DEFAULT_DEPTH_WEIGHT) for p in points if p.covered
    )
    return min(weighted / len(points), 1.0)


def compute_components(
    stats: CoverageStats,
    points: Sequence[PointValidation],
    ai_awarded_ratio: float,
    max_points: int,
    ai_base_weight: float = 0.05,
    ai_coverage_weight: float = 0.15,
) -> ScoreComponents:
    """
    Compute the four weighted score components.

    The AI-quality weight grows with keyword coverage, so a model's
    judgment only carries weight when keyword evidence corroborates it.

    Args:
        stats: Keyword and coverage statistics for the answer.
        points: Conceptual point verdicts (may be empty).
        ai_awarded_ratio: Marks-distribution total as a fraction of its max.
        max_points: The question's max points.
        ai_base_weight: AI-quality weight with no keyword coverage.
        ai_coverage_weight: Extra AI-quality weight at full keyword coverage.

    Returns:
        ScoreComponents in whole points.
    """
    ai_weight = ai_base_weight + ai_coverage_weight * stats.combined_coverage
    return ScoreComponents(
        mandatory=round_points(max_points * MANDATORY_WEIGHT * stats.mandatory_coverage),
        supporting=round_points(max_points * SUPPORTING_WEIGHT * stats.supporting_coverage),
        conceptual=round_points(max_points * CONCEPTUAL_WEIGHT * depth_weighted_coverage(points)),
        ai_quality=round_points(max_points * ai_weight * clamp(ai_awarded_ratio, 0.0, 1.0)),
    )


# ==============================================================================
# Caps and penalties, in application order
# ==============================================================================


def _cap(score: int, max_points: int, share: float, note: str) -> RuleOutcome:
    return RuleOutcome(min(score, round_points(max_points * share)), note)


def cap_no_keywords(score: int, stats: CoverageStats, max_points: int) -> RuleOutcome:
    """No keywords declared at all: the score rests on AI judgment alone."""
    if stats.mandatory_total == 0 and stats.supporting_total == 0:
        return _cap(score, max_points, NO_KEYWORDS_CAP, "no keywords declared: capped at 70%")
    return RuleOutcome(score)


def cap_no_mandatory_match(score: int, stats: CoverageStats, max_points: int) -> RuleOutcome:
    """Mandatory keywords declared but none found."""
    if stats.mandatory_total > 0 and stats.mandatory_found == 0:
        return _cap(
            score, max_points, NO_MANDATORY_MATCH_CAP, "no mandatory keywords matched: capped at 15%"
        )
    return RuleOutcome(score)


def cap_low_mandatory_coverage(score: int, stats: CoverageStats, max_points: int) -> RuleOutcome:
    """Some, but under half, of the mandatory keywords found."""
    if stats.mandatory_total > 0 and 0 < stats.mandatory_coverage < LOW_MANDATORY_COVERAGE_LIMIT:
        return _cap(
            score,
            max_points,
            LOW_MANDATORY_COVERAGE_CAP,
            "under half of mandatory keywords matched: capped at 40%",
        )
    return RuleOutcome(score)


def cap_too_short(score: int, stats: CoverageStats, max_points: int) -> RuleOutcome:
    """Answer below half the minimum word count."""
    if stats.too_short:
        return _cap(score, max_points, TOO_SHORT_CAP, "answer too short: capped at 50%")
    return RuleOutcome(score)


def cap_min_points(score: int, stats: CoverageStats, max_points: int) -> RuleOutcome:
    """Fewer conceptual points covered than the question requires."""
    if (
        stats.min_points_required
        and stats.points_validated > 0
        and stats.points_covered < stats.min_points_required
    ):
        return _cap(
            score,
            max_points,
            MIN_POINTS_CAP,
            f"only {stats.points_covered}/{stats.min_points_required} required points covered: "
            "capped at 60%",
        )
    return RuleOutcome(score)


def penalty_keyword_stuffing(score: int, stats: CoverageStats, max_points: int) -> RuleOutcome:
    """Keyword stuffing costs a fixed share of max points."""
    if stats.keyword_stuffing:
        penalty = round_points(max_points * STUFFING_PENALTY)
        return RuleOutcome(max(0, score - penalty), "keyword stuffing: 15% penalty")
    return RuleOutcome(score)


def penalty_low_relevance(score: int, stats: CoverageStats, max_points: int) -> RuleOutcome:
    """Borderline relevance halves the score."""
    low, high = LOW_RELEVANCE_BAND
    if low <= stats.relevance_score < high:
        return RuleOutcome(
            round_points(score * LOW_RELEVANCE_MULTIPLIER), "borderline relevance: score halved"
        )
    return RuleOutcome(score)


ScoreRule = Callable[[int, CoverageStats, int], RuleOutcome]

SCORE_RULES: tuple[ScoreRule, ...] = (
    cap_no_keywords,
    cap_no_mandatory_match,
    cap_low_mandatory_coverage,
    cap_too_short,
    cap_min_points,
    penalty_keyword_stuffing,
    penalty_low_relevance,
)


def apply_caps(
    raw_score: int,
    stats: CoverageStats,
    max_points: int,
    rules: Sequence[ScoreRule] = SCORE_RULES,
) -> tuple[int, tuple[str, ...]]:
    """
    Apply caps and penalties in order, then clamp to [0, max_points].

    Each rule only ever lowers the score it is given.

    Returns:
        Tuple of (final score, notes of the rules that fired).
    """
    score = raw_score
    notes: list[str] = []
    for rule in rules:
        outcome = rule(score, stats, max_points)
        if outcome.note:
            notes.append(outcome.note)
            logger.info("Score rule fired: %s (%d -> %d)", outcome.note, score, outcome.score)
        score = outcome.score
    return int(clamp(score, 0, max_points)), tuple(notes)
