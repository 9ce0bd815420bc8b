"""
Question bank validation module.

Catches authoring mistakes that the model constraints cannot see on a
single field, so that a question is gradable before any answer reaches it.
"""

from typing import Sequence

from exam_grader.models import Question, QuestionType


class QuestionValidationError(Exception):
    """Raised when question validation fails."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        message = "Question validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(message)


class QuestionValidator:
    """
    Validates question banks for gradability.

    Checks:
    1. MCQ questions carry a canonical answer
    2. Word counts are ordered min <= optimal <= max
    3. No keyword is both mandatory and supporting
    4. Minimum conceptual points only on descriptive questions
    5. No duplicate question ids
    """

    def validate(self, questions: Sequence[Question]) -> tuple[bool, list[str]]:
        """
        Validate questions and return any issues found.

        Args:
            questions: The questions to validate.

        Returns:
            Tuple of (is_valid, list of issues).
        """
        issues: list[str] = []

        if not questions:
            issues.append("Question bank is empty")

        for i, question in enumerate(questions, start=1):
            issues.extend(self._validate_question(question, i))

        issues.extend(self._check_duplicates(questions))

        return len(issues) == 0, issues

    def validate_or_raise(self, questions: Sequence[Question]) -> None:
        """
        Validate questions and raise if invalid.

        Raises:
            QuestionValidationError: If validation fails.
        """
        is_valid, issues = self.validate(questions)
        if not is_valid:
            raise QuestionValidationError(issues)

    def warnings(self, questions: Sequence[Question]) -> list[str]:
        """Non-blocking observations about questions that will still grade."""
        notes: list[str] = []
        for question in questions:
            if question.type == QuestionType.DIAGRAM and not question.mandatory_keywords:
                notes.append(
                    f"Question {question.id}: diagram has no mandatory keywords, "
                    "so no required components can be reported missing"
                )
        return notes

    def _validate_question(self, question: Question, index: int) -> list[str]:
        """Validate a single question."""
        issues: list[str] = []
        prefix = f"Question {index} ({question.id})"

        if question.type == QuestionType.MCQ and not (question.canonical_answer or "").strip():
            issues.append(f"{prefix}: MCQ question has no canonical answer")

        declared = [
            (name, value)
            for name, value in (
                ("min_words", question.min_words),
                ("optimal_words", question.optimal_words),
                ("max_words", question.max_words),
            )
            if value is not None
        ]
        for (low_name, low), (high_name, high) in zip(declared, declared[1:]):
            if low > high:
                issues.append(f"{prefix}: {low_name} ({low}) exceeds {high_name} ({high})")

        mandatory = {k.lower() for k in question.mandatory_keywords}
        overlap = sorted(k for k in {s.lower() for s in question.supporting_keywords} if k in mandatory)
        if overlap:
            issues.append(
                f"{prefix}: keywords are both mandatory and supporting ({', '.join(overlap)})"
            )

        if question.min_points_required and not question.type.is_descriptive:
            issues.append(
                f"{prefix}: min_points_required only applies to descriptive questions, "
                f"not {question.type.value}"
            )

        return issues

    def _check_duplicates(self, questions: Sequence[Question]) -> list[str]:
        """Check for duplicate question ids."""
        issues: list[str] = []
        seen_ids: dict[str, int] = {}

        for i, question in enumerate(questions, start=1):
            if question.id in seen_ids:
                issues.append(
                    f"Duplicate question id: '{question.id}' "
                    f"(appears at positions {seen_ids[question.id]} and {i})"
                )
            else:
                seen_ids[question.id] = i

        return issues
