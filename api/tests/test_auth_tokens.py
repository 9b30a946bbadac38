from datetime import datetime, timedelta, timezone

import jwt
import pytest

pytest.importorskip("fastapi")
from fastapi import HTTPException

from affinity.auth import security
from affinity.auth.deps import get_current_user_id

from conftest import ALICE


@pytest.fixture(autouse=True)
def secret(monkeypatch):
    monkeypatch.setattr(security, "JWT_SECRET", "test-secret-for-affinity-api-suite-0001")


def _encode(claims):
    return jwt.encode(claims, "test-secret-for-affinity-api-suite-0001", algorithm=security.ALGORITHM)


def test_issued_token_resolves_to_subject():
    token = security.create_access_token(ALICE)
    assert get_current_user_id(f"Bearer {token}") == ALICE


def test_expired_token_is_rejected():
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    token = _encode({"sub": ALICE, "exp": past})
    with pytest.raises(HTTPException) as exc:
        security.decode_access_token(token)
    assert exc.value.status_code == 401
    assert exc.value.detail == "Token expired"


def test_token_without_subject_is_rejected():
    token = _encode({"exp": datetime.now(timezone.utc) + timedelta(minutes=5)})
    with pytest.raises(HTTPException) as exc:
        get_current_user_id(f"Bearer {token}")
    assert exc.value.status_code == 401
    assert exc.value.detail["message"] == "unauthorized"


def test_token_signed_with_other_secret_is_rejected():
    token = jwt.encode({"sub": ALICE, "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}, "another-secret-for-affinity-api-suite-02", algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        security.decode_access_token(token)
    assert exc.value.status_code == 401


def test_malformed_header_is_rejected():
    with pytest.raises(HTTPException) as exc:
        get_current_user_id("Token abc")
    assert exc.value.status_code == 401


def test_missing_secret_is_a_server_error(monkeypatch):
    monkeypatch.setattr(security, "JWT_SECRET", "")
    with pytest.raises(HTTPException) as exc:
        security.create_access_token(ALICE)
    assert exc.value.status_code == 500
