from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from ..config import BULK_COMPATIBILITY_MAX_TARGETS, BULK_COMPATIBILITY_TIMEOUT_SECONDS, BULK_COMPATIBILITY_WORKERS
from ..errors import AffinityError, InvalidOperationError, NotFoundError, PreconditionFailedError
from ..traits import Answer, QuestionDefinition, TraitVector, compute_trait_vector, index_questions
from .compatibility import CompatibilityBreakdown, compute_compatibility
from .compatibility_cache import CompatibilityCache, inputs_fingerprint
from .insights import generate_personality_insights

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PersonalityStatus:
    is_completed: bool
    vector: TraitVector | None = None
    completed_at: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "is_completed": self.is_completed,
            "personality_scores": self.vector.as_dict() if self.vector else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class CompatibilitySuccess:
    target_id: str
    breakdown: CompatibilityBreakdown

    def as_dict(self) -> dict[str, Any]:
        return {"user_id": self.target_id, "status": "ok", "compatibility": self.breakdown.as_dict()}


@dataclass(frozen=True)
class CompatibilityFailure:
    target_id: str
    reason: str

    def as_dict(self) -> dict[str, Any]:
        return {"user_id": self.target_id, "status": "failed", "reason": self.reason}


def _failure_reason(exc: BaseException) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, PreconditionFailedError):
        return "not_completed"
    if isinstance(exc, AffinityError):
        return exc.code
    return "error"


def vector_from_profile(profile: dict[str, Any]) -> TraitVector | None:
    if not profile.get("personality_completed"):
        return None
    return TraitVector.from_mapping(profile.get("traits") or {})


class PersonalityService:
    def __init__(
        self,
        repo,
        cache: CompatibilityCache,
        *,
        clock: Callable[[], datetime] = _now_utc,
        bulk_workers: int = BULK_COMPATIBILITY_WORKERS,
        bulk_timeout_seconds: float = BULK_COMPATIBILITY_TIMEOUT_SECONDS,
        bulk_max_targets: int = BULK_COMPATIBILITY_MAX_TARGETS,
    ) -> None:
        self.repo = repo
        self.cache = cache
        self._clock = clock
        self._bulk_workers = max(1, int(bulk_workers))
        self._bulk_timeout_seconds = bulk_timeout_seconds
        self._bulk_max_targets = bulk_max_targets

    def _require_profile(self, user_id: str) -> dict[str, Any]:
        profile = self.repo.get_profile(user_id)
        if not profile:
            raise NotFoundError(f"Profile not found for user {user_id}", code="profile_not_found")
        return profile

    def _question_bank(self) -> list[QuestionDefinition]:
        return [QuestionDefinition.from_row(row) for row in self.repo.list_questions()]

    def list_questions(self) -> list[dict[str, Any]]:
        questions = sorted(self._question_bank(), key=lambda q: (q.question_number, q.id))
        return [q.public_dict() for q in questions]

    def submit_answers(self, user_id: str, answers: Iterable[Answer]) -> PersonalityStatus:
        self._require_profile(user_id)
        answers = list(answers)
        if not answers:
            raise InvalidOperationError("At least one answer is required", code="no_answers")

        questions = index_questions(self._question_bank())
        vector = compute_trait_vector(questions, answers)
        completed_at = self._clock()
        rows = [
            {
                "question_id": a.question_id,
                "option_index": a.option_index,
                "selected_option": questions[a.question_id].option_text(a.option_index),
            }
            for a in answers
        ]
        self.repo.replace_personality_answers(user_id, rows, vector.as_decimals(), completed_at)
        self.cache.invalidate_all(user_id)
        logger.info("[personality] answers stored user_id=%s answers=%s", user_id, len(rows))
        return PersonalityStatus(is_completed=True, vector=vector, completed_at=completed_at)

    def get_trait_vector(self, user_id: str) -> PersonalityStatus:
        profile = self._require_profile(user_id)
        vector = vector_from_profile(profile)
        if vector is None:
            return PersonalityStatus(is_completed=False)
        return PersonalityStatus(is_completed=True, vector=vector, completed_at=profile.get("personality_completed_at"))

    def compatibility(self, user_a: str, user_b: str) -> CompatibilityBreakdown:
        profile_a = self.repo.get_profile(user_a)
        profile_b = self.repo.get_profile(user_b)
        if not profile_a or not profile_b:
            raise NotFoundError("One or both user profiles not found", code="profile_not_found")
        vector_a = vector_from_profile(profile_a)
        vector_b = vector_from_profile(profile_b)
        if vector_a is None or vector_b is None:
            raise PreconditionFailedError(
                "Both users must complete the personality questionnaire",
                code="personality_incomplete",
            )
        return self.compatibility_for_vectors(user_a, vector_a, user_b, vector_b)

    def compatibility_for_vectors(
        self, user_a: str, vector_a: TraitVector, user_b: str, vector_b: TraitVector
    ) -> CompatibilityBreakdown:
        fingerprint = inputs_fingerprint(user_a, vector_a, user_b, vector_b)
        cached = self.cache.get(user_a, user_b, fingerprint)
        if cached is not None:
            return cached
        breakdown = compute_compatibility(vector_a, vector_b)
        self.cache.put(user_a, user_b, breakdown, fingerprint=fingerprint)
        return breakdown

    def bulk_compatibility(
        self, user_id: str, target_ids: Iterable[str]
    ) -> list[CompatibilitySuccess | CompatibilityFailure]:
        targets = list(dict.fromkeys(str(t) for t in target_ids))
        if len(targets) > self._bulk_max_targets:
            raise InvalidOperationError(
                f"At most {self._bulk_max_targets} target users per request",
                code="too_many_targets",
            )
        profile = self._require_profile(user_id)
        if vector_from_profile(profile) is None:
            raise PreconditionFailedError(
                "Personality questionnaire not completed",
                code="personality_incomplete",
            )
        if not targets:
            return []

        executor = ThreadPoolExecutor(max_workers=min(self._bulk_workers, len(targets)))
        try:
            futures = {executor.submit(self.compatibility, user_id, target): target for target in targets}
            done, _ = wait(futures, timeout=self._bulk_timeout_seconds)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        by_target: dict[str, CompatibilitySuccess | CompatibilityFailure] = {}
        for future, target in futures.items():
            if future not in done:
                logger.info("[compat] bulk item timed out user_id=%s target=%s", user_id, target)
                by_target[target] = CompatibilityFailure(target, "timeout")
                continue
            exc = future.exception()
            if exc is not None:
                reason = _failure_reason(exc)
                if reason == "error":
                    logger.warning("[compat] bulk item failed user_id=%s target=%s", user_id, target, exc_info=exc)
                else:
                    logger.info("[compat] bulk item skipped user_id=%s target=%s reason=%s", user_id, target, reason)
                by_target[target] = CompatibilityFailure(target, reason)
                continue
            by_target[target] = CompatibilitySuccess(target, future.result())
        return [by_target[t] for t in targets]

    def reset_personality(self, user_id: str) -> None:
        self._require_profile(user_id)
        self.repo.clear_personality(user_id)
        self.cache.invalidate_all(user_id)
        logger.info("[personality] reset user_id=%s", user_id)

    def insights(self, user_id: str) -> dict[str, Any]:
        status = self.get_trait_vector(user_id)
        if not status.is_completed or status.vector is None:
            raise PreconditionFailedError(
                "Personality questionnaire not completed",
                code="personality_incomplete",
            )
        return {
            "insights": generate_personality_insights(status.vector),
            "personality_scores": status.vector.as_dict(),
        }
