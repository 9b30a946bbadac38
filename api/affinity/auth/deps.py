"""
Authentication dependencies for FastAPI.

Identity is owned by an upstream service; this API only verifies the bearer
token it issued and trusts the `sub` claim as the caller's user id.
"""

import logging
import uuid

from fastapi import Header, HTTPException

from affinity.auth.security import decode_access_token

logger = logging.getLogger(__name__)


def _extract_bearer(authorization: str | None, trace_id: str) -> str:
    if not authorization:
        logger.warning("[AUTH_FAILURE] reason=missing_token trace_id=%s", trace_id)
        raise HTTPException(status_code=401, detail={"message": "Authentication required", "trace_id": trace_id})
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        logger.warning("[AUTH_FAILURE] reason=malformed_token trace_id=%s", trace_id)
        raise HTTPException(status_code=401, detail={"message": "Invalid Authorization header", "trace_id": trace_id})
    return parts[1].strip()


def get_current_user_id(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> str:
    trace_id = str(uuid.uuid4())
    token = _extract_bearer(authorization, trace_id)
    try:
        payload = decode_access_token(token)
    except HTTPException as exc:
        if exc.status_code != 401:
            raise
        logger.warning("[AUTH_FAILURE] reason=%s trace_id=%s", exc.detail, trace_id)
        raise HTTPException(status_code=401, detail={"message": "unauthorized", "trace_id": trace_id}) from exc

    user_id = str(payload.get("sub") or "").strip()
    if not user_id:
        logger.warning("[AUTH_FAILURE] reason=token_missing_subject trace_id=%s", trace_id)
        raise HTTPException(status_code=401, detail={"message": "unauthorized", "trace_id": trace_id})
    logger.debug("[auth] token valid, sub=%s", user_id)
    return user_id
