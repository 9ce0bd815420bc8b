"""
Question bank loader.

Reads question banks and candidate attempts from JSON files into
validated models.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from exam_grader.models import AttemptSubmission, Question

logger = logging.getLogger(__name__)


class QuestionLoadError(Exception):
    """
    Raised when a question bank or attempt file cannot be loaded.

    Contains the offending file and the underlying cause.
    """

    def __init__(self, message: str, file_path: str | Path, cause: Exception | None = None):
        self.file_path = str(file_path)
        self.cause = cause
        super().__init__(f"Failed to load '{file_path}': {message}")


def _read_json(file_path: Path) -> Any:
    if not file_path.exists():
        raise QuestionLoadError("File does not exist", file_path)
    if file_path.suffix.lower() != ".json":
        raise QuestionLoadError(f"Unsupported file format: {file_path.suffix}", file_path)

    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise QuestionLoadError(f"Invalid JSON at line {e.lineno}: {e.msg}", file_path, e) from e
    except OSError as e:
        raise QuestionLoadError(f"Cannot read file: {e}", file_path, e) from e


def load_questions(file_path: str | Path) -> list[Question]:
    """
    Load a question bank.

    Args:
        file_path: JSON file holding a list of questions, or an object
            with a ``questions`` list.

    Returns:
        Validated questions, in file order.

    Raises:
        QuestionLoadError: If the file is missing, malformed or invalid.
    """
    path = Path(file_path)
    data = _read_json(path)

    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        raise QuestionLoadError("Expected a list of questions", path)

    try:
        questions = [Question.model_validate(item) for item in data]
    except ValidationError as e:
        raise QuestionLoadError(f"Invalid question: {e}", path, e) from e

    logger.info("Loaded %d questions from %s", len(questions), path)
    return questions


def load_attempt(file_path: str | Path) -> AttemptSubmission:
    """
    Load a candidate attempt: its questions and the answers keyed by question id.

    Raises:
        QuestionLoadError: If the file is missing, malformed or invalid.
    """
    path = Path(file_path)
    data = _read_json(path)

    if not isinstance(data, dict):
        raise QuestionLoadError("Expected an object with 'questions' and 'answers'", path)

    try:
        attempt = AttemptSubmission.model_validate(data)
    except ValidationError as e:
        raise QuestionLoadError(f"Invalid attempt: {e}", path, e) from e

    unknown = sorted(set(attempt.answers) - {q.id for q in attempt.questions})
    if unknown:
        logger.warning("Attempt %s has answers for unknown questions: %s", attempt.attempt_id, unknown)

    logger.info(
        "Loaded attempt %s: %d questions, %d answers",
        attempt.attempt_id,
        len(attempt.questions),
        len(attempt.answers),
    )
    return attempt
