from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..errors import InvalidOperationError, NotFoundError
from .compatibility import pair_key
from .notifications import Notifier
from .state_machine import MATCHED, ONE_SIDED_LIKE, UNACTED, transition_pair_state

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class ActionResult:
    state: str
    is_match: bool = False
    match_id: str | None = None
    conversation_id: str | None = None
    already_passed: bool = False
    message: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "is_match": self.is_match,
            "match": {"id": self.match_id, "conversation_id": self.conversation_id} if self.match_id else None,
            "already_passed": self.already_passed,
            "message": self.message,
        }


def _page(limit: int, offset: int) -> tuple[int, int]:
    return max(1, min(int(limit), MAX_PAGE_SIZE)), max(0, int(offset))


class MatchTransitionManager:
    def __init__(self, repo, notifier: Notifier) -> None:
        self.repo = repo
        self.notifier = notifier

    def _require_receiver(self, receiver_id: str) -> None:
        if not self.repo.get_profile(receiver_id):
            raise NotFoundError("Profile not found", code="profile_not_found")

    def _current_state(self, sender_id: str, receiver_id: str) -> str:
        if self.repo.find_match(sender_id, receiver_id):
            return MATCHED
        if self.repo.has_like(sender_id, receiver_id):
            return ONE_SIDED_LIKE
        return UNACTED

    def _announce_match(self, sender_id: str, receiver_id: str, match: dict[str, Any]) -> None:
        key = pair_key(sender_id, receiver_id)
        if match["created"]:
            logger.info("[match] created pair=%s match_id=%s", key, match["match_id"])
            self.notifier.new_match(sender_id, receiver_id, match["match_id"], match.get("conversation_id"))
        else:
            logger.info("[match] existing match reused pair=%s match_id=%s", key, match["match_id"])

    def _already_liked(self, sender_id: str, receiver_id: str) -> InvalidOperationError:
        # a stored like whose match step failed earlier is promoted before rejecting the retry
        if not self.repo.is_blocked_pair(sender_id, receiver_id):
            match = self.repo.create_match_if_mutual(sender_id, receiver_id)
            if match is not None and match["created"]:
                logger.warning("[match] repaired pair=%s match_id=%s", pair_key(sender_id, receiver_id), match["match_id"])
                self._announce_match(sender_id, receiver_id, match)
        return InvalidOperationError("Profile already liked", code="already_liked")

    def like(self, sender_id: str, receiver_id: str) -> ActionResult:
        if sender_id == receiver_id:
            raise InvalidOperationError("Cannot like your own profile", code="self_action")
        self._require_receiver(receiver_id)
        if self.repo.has_like(sender_id, receiver_id):
            raise self._already_liked(sender_id, receiver_id)
        if self.repo.is_blocked_pair(sender_id, receiver_id):
            raise InvalidOperationError("Cannot like this profile", code="blocked")

        # committed before the reciprocity check so racing likes see each other
        if not self.repo.create_like(sender_id, receiver_id):
            raise self._already_liked(sender_id, receiver_id)

        match = self.repo.create_match_if_mutual(sender_id, receiver_id)
        state = transition_pair_state(UNACTED, "like", reciprocal_like=match is not None)
        if match is None:
            self.notifier.new_like(sender_id, receiver_id)
            return ActionResult(state=state, message="Like sent successfully")

        self._announce_match(sender_id, receiver_id, match)
        return ActionResult(
            state=state,
            is_match=True,
            match_id=match["match_id"],
            conversation_id=match.get("conversation_id"),
            message="It's a match!",
        )

    def pass_profile(self, sender_id: str, receiver_id: str) -> ActionResult:
        """Record a pass. An earlier like from the sender stays stored, so the
        reported state is derived from the edges already present."""
        if sender_id == receiver_id:
            raise InvalidOperationError("Cannot pass your own profile", code="self_action")
        self._require_receiver(receiver_id)
        state = transition_pair_state(self._current_state(sender_id, receiver_id), "pass")

        if self.repo.has_pass(sender_id, receiver_id) or not self.repo.create_pass(sender_id, receiver_id):
            return ActionResult(state=state, already_passed=True, message="Profile already passed")
        return ActionResult(state=state, message="Profile passed successfully")

    def super_like(self, sender_id: str, receiver_id: str) -> ActionResult:
        if sender_id == receiver_id:
            raise InvalidOperationError("Cannot super like your own profile", code="self_action")
        self._require_receiver(receiver_id)
        if self.repo.has_super_like(sender_id, receiver_id):
            raise InvalidOperationError("Profile already super liked", code="already_super_liked")
        if self.repo.is_blocked_pair(sender_id, receiver_id):
            raise InvalidOperationError("Cannot super like this profile", code="blocked")

        if not self.repo.create_super_like(sender_id, receiver_id):
            raise InvalidOperationError("Profile already super liked", code="already_super_liked")
        self.notifier.super_like(sender_id, receiver_id)
        state = transition_pair_state(self._current_state(sender_id, receiver_id), "super_like")
        return ActionResult(state=state, message="Super like sent successfully")

    def who_liked_me(self, user_id: str, limit: int = 20, offset: int = 0) -> dict[str, Any]:
        limit, offset = _page(limit, offset)
        return {
            "profiles": self.repo.list_likes_received(user_id, limit=limit, offset=offset),
            "total": self.repo.count_likes_received(user_id),
        }

    def list_matches(self, user_id: str, limit: int = 20, offset: int = 0) -> dict[str, Any]:
        limit, offset = _page(limit, offset)
        return {
            "matches": self.repo.list_matches(user_id, limit=limit, offset=offset),
            "total": self.repo.count_matches(user_id),
        }
