from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import HTTPException

from affinity.config import ACCESS_TOKEN_TTL_MINUTES, JWT_LEEWAY_SECONDS, JWT_SECRET

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["sub", "exp"]


def _secret() -> str:
    if not JWT_SECRET:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    return JWT_SECRET


def create_access_token(user_id: str, ttl_minutes: int | None = None) -> str:
    """Mint a signed bearer token for `user_id`."""
    issued = datetime.now(timezone.utc)
    expires = issued + timedelta(minutes=ttl_minutes or ACCESS_TOKEN_TTL_MINUTES)
    claims: dict[str, Any] = {"sub": str(user_id), "iat": issued, "exp": expires}
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    secret = _secret()
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            leeway=JWT_LEEWAY_SECONDS,
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="Token expired") from exc
    except jwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Token missing claim {exc.claim}") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc
    if not isinstance(claims, dict):
        raise HTTPException(status_code=401, detail="Invalid token")
    return claims
