"""
Deterministic scorers.

Pure, rule-based scoring that needs no backend call: keyword evidence,
answer length checks and exact-match grading of multiple-choice answers.
Keyword analysis is the anchor the AI-derived scores are capped against,
so its output must be reproducible bit-for-bit.
"""

from typing import Sequence

from exam_grader.models import KeywordAnalysis, KeywordMatch, Question
from exam_grader.numeric import round_half_up, round_points

DEFAULT_STUFFING_THRESHOLD = 8.0

# Share of the minimum word count below which an answer is too short.
SHORT_ANSWER_RATIO = 0.5


def count_words(text: str) -> int:
    """Count whitespace-separated words in the trimmed text."""
    return len(text.split())


def _match_keywords(lowered_answer: str, keywords: Sequence[str]) -> tuple[KeywordMatch, ...]:
    matches = []
    for keyword in keywords:
        occurrences = lowered_answer.count(keyword.lower())
        matches.append(KeywordMatch(keyword=keyword, found=occurrences > 0, occurrences=occurrences))
    return tuple(matches)


def analyze_keywords(
    answer: str,
    mandatory_keywords: Sequence[str],
    supporting_keywords: Sequence[str],
    stuffing_threshold: float = DEFAULT_STUFFING_THRESHOLD,
) -> KeywordAnalysis:
    """
    Analyze keyword coverage and density in an answer.

    Matching is a case-insensitive literal substring search. Density is the
    total keyword occurrences per word, as a percentage rounded half-up to
    two decimals; stuffing is flagged when density exceeds the threshold.

    Args:
        answer: Candidate answer text.
        mandatory_keywords: Terms a complete answer must contain.
        supporting_keywords: Bonus terms.
        stuffing_threshold: Density percentage above which stuffing is flagged.

    Returns:
        KeywordAnalysis for the answer.
    """
    lowered = answer.lower()
    word_count = count_words(answer)

    mandatory = _match_keywords(lowered, [k for k in mandatory_keywords if k.strip()])
    supporting = _match_keywords(lowered, [k for k in supporting_keywords if k.strip()])
    all_matches = mandatory + supporting

    declared = len(all_matches)
    found = sum(1 for m in all_matches if m.found)
    match_percentage = round_points(found / declared * 100) if declared else 0

    occurrences = sum(m.occurrences for m in all_matches)
    density = round_half_up(occurrences / word_count * 100, 2) if word_count else 0.0

    return KeywordAnalysis(
        mandatory_matches=mandatory,
        supporting_matches=supporting,
        match_percentage=match_percentage,
        keyword_density=density,
        keyword_stuffing=density > stuffing_threshold,
    )


def minimum_words(question: Question, default_min_words: int) -> int:
    """The question's minimum word count, or the configured default."""
    return question.min_words or default_min_words


def is_too_short(word_count: int, min_words: int) -> bool:
    """Whether the answer falls below half of the minimum word count."""
    return word_count < round_points(min_words * SHORT_ANSWER_RATIO)


def grade_mcq(question: Question, answer: str) -> tuple[int, bool]:
    """
    Grade a multiple-choice answer by exact match.

    Returns:
        Tuple of (points awarded, whether the answer is correct).
    """
    expected = (question.canonical_answer or "").strip()
    correct = bool(expected) and answer.strip() == expected
    return (question.max_points if correct else 0), correct
