"""Token and identity tests."""

import jwt
import pytest

from roomservice.auth.dependencies import CurrentIdentity
from roomservice.auth.jwt import TokenError, create_access_token, verify_token
from roomservice.config import settings


def test_token_roundtrip_carries_role():
    token = create_access_token("user-7", role="manager")

    payload = verify_token(token)

    assert payload["sub"] == "user-7"
    assert payload["role"] == "manager"
    assert payload["type"] == "access"


def test_token_without_role():
    payload = verify_token(create_access_token("user-7"))
    assert "role" not in payload


def test_expired_token_rejected():
    token = create_access_token("user-7", role="kitchen", expires_minutes=-1)

    with pytest.raises(TokenError, match="expired"):
        verify_token(token)


def test_garbage_token_rejected():
    with pytest.raises(TokenError, match="Invalid token"):
        verify_token("not-a-jwt")


def test_token_signed_with_other_secret_rejected():
    forged = jwt.encode(
        {"sub": "user-7", "role": "admin"},
        "some-other-secret-that-is-long-enough",
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(TokenError):
        verify_token(forged)


@pytest.mark.parametrize(
    "role,staff",
    [("admin", True), ("manager", True), ("kitchen", True), ("guest", False), (None, False)],
)
def test_staff_roles(role, staff):
    assert CurrentIdentity("u", role).is_staff is staff
