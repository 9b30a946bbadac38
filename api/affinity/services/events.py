import json
import uuid
from typing import Any

from sqlalchemy import text

ACTIVITY_LIKE_SENT = "LIKE_SENT"
ACTIVITY_SUPER_LIKE_SENT = "SUPER_LIKE_SENT"
ACTIVITY_MATCH_CREATED = "MATCH_CREATED"


def log_user_activity(
    db,
    user_id: str,
    activity_type: str,
    data: dict[str, Any] | None = None,
) -> None:
    data = data or {}
    db.execute(
        text(
            """
            INSERT INTO user_activity (id, user_id, activity_type, data)
            VALUES (CAST(:id AS uuid), CAST(:user_id AS uuid), :activity_type, CAST(:data AS jsonb))
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "activity_type": activity_type,
            "data": json.dumps(data),
        },
    )
