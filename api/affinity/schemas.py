from typing import Any
from pydantic import BaseModel, Field

from .config import BULK_COMPATIBILITY_MAX_TARGETS, MAX_ANSWERS_PER_SUBMISSION


class AnswerInput(BaseModel):
    question_id: str = Field(min_length=1)
    option_index: int = Field(ge=0)


class SubmitAnswersRequest(BaseModel):
    answers: list[AnswerInput] = Field(min_length=1, max_length=MAX_ANSWERS_PER_SUBMISSION)


class BulkCompatibilityRequest(BaseModel):
    user_ids: list[str] = Field(min_length=1, max_length=BULK_COMPATIBILITY_MAX_TARGETS)


class TargetUserRequest(BaseModel):
    user_id: str = Field(min_length=1)


class PersonalityScoresResponse(BaseModel):
    is_completed: bool
    personality_scores: dict[str, float] | None = None
    completed_at: str | None = None


class ActionResponse(BaseModel):
    state: str
    is_match: bool
    match: dict[str, Any] | None = None
    already_passed: bool = False
    message: str
