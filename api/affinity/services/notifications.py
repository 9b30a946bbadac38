import logging
from typing import Any

logger = logging.getLogger(__name__)

NOTIFY_NEW_MATCH = "new_match"
NOTIFY_NEW_LIKE = "new_like"
NOTIFY_SUPER_LIKE = "super_like"


def build_notification_idempotency_key(*, notification_type: str, user_id: str, subject_id: str) -> str:
    return f"{notification_type}:{user_id}:{subject_id}"


class Notifier:
    """Writes rows to the notification outbox for the delivery worker.

    Enqueueing is fire-and-forget: a failure is logged and the triggering
    action still succeeds.
    """

    def __init__(self, repo) -> None:
        self._repo = repo

    def notify(self, user_id: str, notification_type: str, subject_id: str, payload: dict[str, Any]) -> bool:
        key = build_notification_idempotency_key(
            notification_type=notification_type,
            user_id=user_id,
            subject_id=subject_id,
        )
        try:
            self._repo.enqueue_notification(
                user_id=user_id,
                notification_type=notification_type,
                payload=payload,
                idempotency_key=key,
            )
        except Exception:
            logger.warning("[notify] enqueue failed type=%s user_id=%s", notification_type, user_id, exc_info=True)
            return False
        return True

    def new_match(self, user_a: str, user_b: str, match_id: str, conversation_id: str | None) -> None:
        for recipient, other in ((user_a, user_b), (user_b, user_a)):
            self.notify(
                recipient,
                NOTIFY_NEW_MATCH,
                match_id,
                {"match_id": match_id, "conversation_id": conversation_id, "matched_user_id": other},
            )

    def new_like(self, sender_id: str, receiver_id: str) -> None:
        self.notify(receiver_id, NOTIFY_NEW_LIKE, sender_id, {"from_user_id": sender_id})

    def super_like(self, sender_id: str, receiver_id: str) -> None:
        self.notify(receiver_id, NOTIFY_SUPER_LIKE, sender_id, {"from_user_id": sender_id})
