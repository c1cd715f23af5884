"""
认证服务测试
"""
from datetime import timedelta

import pytest
from jose import jwt

from wf_core.services.auth_service import AuthService
from wf_core.utils.errors import UnauthorizedError


@pytest.fixture
def auth():
    return AuthService()


def test_round_trip(auth):
    token = auth.create_access_token(42, role="admin")

    payload = auth.decode_token(token)

    assert payload["sub"] == "42"
    assert payload["role"] == "admin"
    assert payload["type"] == "access"


def test_expired_token(auth):
    auth.access_token_expire = timedelta(minutes=-1)
    token = auth.create_access_token(42)

    with pytest.raises(UnauthorizedError) as exc:
        auth.decode_token(token)
    assert exc.value.code == "INVALID_TOKEN"


def test_wrong_signature(auth):
    token = jwt.encode({"sub": "42", "type": "access"}, "another-secret", algorithm="HS256")

    with pytest.raises(UnauthorizedError) as exc:
        auth.decode_token(token)
    assert exc.value.code == "INVALID_TOKEN"


def test_refresh_tokens_are_rejected(auth):
    token = auth.create_access_token(42, extra={"type": "refresh"})
    # create_access_token 总是覆盖 type
    assert auth.decode_token(token)["type"] == "access"

    forged = jwt.encode({"sub": "42", "type": "refresh"}, auth.settings.secret_key, algorithm="HS256")
    with pytest.raises(UnauthorizedError) as exc:
        auth.decode_token(forged)
    assert exc.value.code == "INVALID_TOKEN_TYPE"


def test_subject_must_be_user_id(auth):
    token = jwt.encode({"sub": "robot", "type": "access"}, auth.settings.secret_key, algorithm="HS256")

    with pytest.raises(UnauthorizedError):
        auth.decode_token(token)
