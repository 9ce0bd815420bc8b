"""
Response normalization for scoring backend output.

Backends return loosely-typed JSON: extra fields, missing fields, numbers
as strings, totals that disagree with their parts. Every field the pipeline
consumes is validated and coerced here into the bounded models, with
documented defaults, before any scoring arithmetic sees it.

Only an unparseable payload raises; partial or oddly-shaped payloads are
repaired.
"""

import json
import re
from typing import Any

from exam_grader.models import (
    DIAGRAM_PROPORTIONS,
    MARKS_PROPORTIONS,
    MARKS_TOTAL_TOLERANCE,
    CareerMapping,
    DepthTier,
    DiagramEvaluation,
    MarksDistribution,
    NumericalStep,
    NumericalValidation,
    OriginalityMetrics,
    PointOfView,
    PointValidation,
    RelevanceResult,
    ScorePair,
    split_points,
)
from exam_grader.numeric import as_bool, as_float, clamp

MAX_RECOMMENDED_ROLES = 3


class ScoringError(Exception):
    """Raised when a backend response holds no parseable JSON."""

    def __init__(self, message: str, raw_response: str | None = None):
        self.raw_response = raw_response
        super().__init__(message)


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _as_text_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(t for t in (_as_text(v) for v in value if not isinstance(v, (dict, list))) if t)


def _as_percent(value: Any, default: float) -> float:
    return clamp(as_float(value, default), 0.0, 100.0)


class ResponseNormalizer:
    """
    Parses backend responses and coerces them into bounded models.

    Ensures:
    1. The payload contains a JSON value
    2. Every numeric field is finite and within its declared range
    3. Totals agree with their parts
    4. Missing fields take zeroed-but-valid defaults
    """

    def parse(self, response: str) -> Any:
        """
        Extract the JSON value from a raw backend response.

        Args:
            response: Raw response text.

        Returns:
            The decoded JSON object or array.

        Raises:
            ScoringError: If no JSON value can be decoded.
        """
        text = (response or "").strip()
        if not text:
            raise ScoringError("Empty response", raw_response=response)

        # Remove markdown code block if present
        block = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
        if block:
            text = block.group(1).strip()

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        # Fall back to the first object or array embedded in prose
        starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
        if not starts:
            raise ScoringError("No JSON value found in response", raw_response=response)

        try:
            value, _ = json.JSONDecoder().raw_decode(text[min(starts) :])
        except json.JSONDecodeError as e:
            raise ScoringError(f"Invalid JSON in response: {e}", raw_response=response) from e
        return value

    # ==========================================================================
    # Rule-backed evaluations
    # ==========================================================================

    def marks_distribution(self, data: Any, max_points: float) -> MarksDistribution:
        """
        Coerce a marks distribution into the fixed proportions.

        Maxima always come from the proportions, never from the backend.
        The reported total is kept only when it agrees with the sum of the
        criteria; otherwise the sum is used.
        """
        raw = _as_dict(data)
        shares = split_points(max_points, MARKS_PROPORTIONS)

        pairs: dict[str, ScorePair] = {}
        for name, share in shares.items():
            awarded = as_float(_as_dict(raw.get(name)).get("awarded"))
            pairs[name] = ScorePair(max=share, awarded=clamp(awarded, 0.0, share))

        parts_sum = sum(p.awarded for p in pairs.values())
        reported = _as_dict(raw.get("total")).get("awarded")
        total = parts_sum
        if reported is not None:
            reported_total = clamp(as_float(reported), 0.0, max_points)
            if abs(reported_total - parts_sum) <= MARKS_TOTAL_TOLERANCE:
                total = reported_total

        return MarksDistribution(
            **pairs,
            total=ScorePair(max=max_points, awarded=clamp(total, 0.0, max_points)),
        )

    def required_points(self, data: Any, min_points_required: int) -> list[PointValidation]:
        """
        Coerce a list of conceptual point verdicts.

        Accepts a bare array or an object holding ``points`` or ``items``.
        Pads with uncovered placeholders up to the required minimum.
        """
        if isinstance(data, dict):
            data = data.get("points", data.get("items", []))
        items = data if isinstance(data, list) else []

        points: list[PointValidation] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            depth = _as_text(item.get("depth")).upper()
            points.append(
                PointValidation(
                    point=_as_text(item.get("point"), f"Point {len(points) + 1}"),
                    covered=as_bool(item.get("covered")),
                    depth=DepthTier(depth) if depth in DepthTier.__members__ else DepthTier.LOW,
                )
            )

        while len(points) < min_points_required:
            points.append(PointValidation(point=f"Unaddressed point {len(points) + 1}"))

        return points

    def numerical(self, data: Any, max_points: float) -> NumericalValidation:
        """
        Coerce a numerical step validation.

        An answer with no correct formula, step sequence, final value or
        individual step is awarded nothing, whatever the backend claims.
        """
        raw = _as_dict(data)

        items = raw.get("steps_analysis")
        steps = []
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                continue
            steps.append(
                NumericalStep(
                    step=_as_text(item.get("step"), "step"),
                    correct=as_bool(item.get("correct")),
                    marks=clamp(as_float(item.get("marks")), 0.0, max_points),
                )
            )

        formula = as_bool(raw.get("formula_correct"))
        sequence = as_bool(raw.get("step_sequence_valid"))
        final = as_bool(raw.get("final_value_correct"))

        partial = clamp(as_float(raw.get("partial_marks")), 0.0, max_points)
        if not (formula or sequence or final or any(s.correct for s in steps)):
            partial = 0.0

        return NumericalValidation(
            formula_correct=formula,
            step_sequence_valid=sequence,
            final_value_correct=final,
            partial_marks=partial,
            steps_analysis=tuple(steps),
        )

    def diagram(
        self, data: Any, max_points: float, required_components: tuple[str, ...] = ()
    ) -> DiagramEvaluation:
        """
        Coerce a diagram evaluation into the fixed four-part split.

        Missing components are derived from the detected list when the
        backend does not report them.
        """
        raw = _as_dict(data)
        shares = split_points(max_points, DIAGRAM_PROPORTIONS)

        pairs: dict[str, ScorePair] = {}
        for name, share in shares.items():
            awarded = as_float(_as_dict(raw.get(name)).get("awarded"))
            pairs[name] = ScorePair(max=share, awarded=clamp(awarded, 0.0, share))

        total = clamp(sum(p.awarded for p in pairs.values()), 0.0, max_points)

        detected = _as_text_tuple(raw.get("detected_components"))
        if isinstance(raw.get("missing_components"), list):
            missing = _as_text_tuple(raw.get("missing_components"))
        else:
            seen = {d.lower() for d in detected}
            missing = tuple(c for c in required_components if c.lower() not in seen)

        return DiagramEvaluation(
            **pairs,
            total=ScorePair(max=max_points, awarded=total),
            detected_components=detected,
            missing_components=missing,
        )

    def relevance(self, data: Any, threshold: float) -> RelevanceResult:
        """
        Coerce a relevance verdict.

        Relevance is decided here from the numeric score; the backend's
        own boolean is ignored.
        """
        raw = _as_dict(data)
        score = _as_percent(raw.get("relevance_score"), 0.0)
        return RelevanceResult(
            score=score,
            question_topic=_as_text(raw.get("question_topic"), "unknown"),
            answer_topic=_as_text(raw.get("answer_topic"), "unknown"),
            is_relevant=score >= threshold,
        )

    # ==========================================================================
    # Reasoning evaluations
    # ==========================================================================

    def point_of_view(self, data: Any) -> PointOfView:
        """Coerce point-of-view indicators; the score defaults to neutral."""
        raw = _as_dict(data)
        return PointOfView(
            pov_score=_as_percent(raw.get("pov_score"), 50.0),
            has_contextual_explanation=as_bool(raw.get("has_contextual_explanation")),
            has_logical_flow=as_bool(raw.get("has_logical_flow")),
            has_personal_framing=as_bool(raw.get("has_personal_framing")),
            has_unique_structuring=as_bool(raw.get("has_unique_structuring")),
            has_example_reasoning=as_bool(raw.get("has_example_reasoning")),
        )

    def originality(self, data: Any) -> OriginalityMetrics:
        """Coerce attempt-wide originality metrics, trusting where fields are absent."""
        raw = _as_dict(data)
        default = OriginalityMetrics.trusting_default()
        return OriginalityMetrics(
            ai_generated_probability=_as_percent(
                raw.get("ai_generated_probability"), default.ai_generated_probability
            ),
            pov_presence_score=_as_percent(raw.get("pov_presence_score"), default.pov_presence_score),
            originality_score=_as_percent(raw.get("originality_score"), default.originality_score),
            style_inconsistency_flag=as_bool(raw.get("style_inconsistency_flag")),
        )

    def career_mapping(self, data: Any) -> CareerMapping:
        """Coerce a career mapping, keeping at most three recommended roles."""
        raw = _as_dict(data)
        confidence = {
            _as_text(role): _as_percent(level, 0.0)
            for role, level in _as_dict(raw.get("confidence_levels")).items()
            if _as_text(role)
        }
        return CareerMapping(
            ai_aptitude_score=_as_percent(raw.get("ai_aptitude_score"), 0.0),
            recommended_roles=_as_text_tuple(raw.get("recommended_roles"))[:MAX_RECOMMENDED_ROLES],
            confidence_levels=confidence,
            reasoning_strengths=_as_text_tuple(raw.get("reasoning_strengths")),
            improvement_areas=_as_text_tuple(raw.get("improvement_areas")),
            skill_gap_analysis=_as_text_tuple(raw.get("skill_gap_analysis")),
            learning_path_recommendation=_as_text_tuple(raw.get("learning_path_recommendation")),
        )
