import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from .config import QUESTIONS_PATH
from .traits import QuestionDefinition

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_file_question_bank() -> dict[str, Any]:
    with QUESTIONS_PATH.open("r", encoding="utf-8") as f:
        return json.load(f)


def load_question_rows(path: Path | None = None) -> list[dict[str, Any]]:
    """Read and validate the bundled question bank.

    Every row is parsed into a QuestionDefinition first, so a malformed
    weight table fails here instead of at scoring time.
    """
    if path is None:
        bank = get_file_question_bank()
    else:
        with path.open("r", encoding="utf-8") as f:
            bank = json.load(f)
    rows = bank.get("questions") if isinstance(bank, dict) else None
    if not isinstance(rows, list):
        raise ValueError("question bank must contain a 'questions' list")

    seen_ids: set[str] = set()
    seen_numbers: set[int] = set()
    for row in rows:
        question = QuestionDefinition.from_row(row)
        if question.id in seen_ids:
            raise ValueError(f"duplicate question id {question.id}")
        if question.question_number in seen_numbers:
            raise ValueError(f"duplicate question number {question.question_number}")
        seen_ids.add(question.id)
        seen_numbers.add(question.question_number)
    return rows


def sync_questions(repo, path: Path | None = None) -> int:
    rows = load_question_rows(path)
    for row in rows:
        repo.upsert_question(row)
    logger.info("[questions] synced %s questions", len(rows))
    return len(rows)
