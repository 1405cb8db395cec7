from datetime import timedelta

import jwt
import pytest

from utils.exceptions import ConfigurationError
from utils.tokens import Identity, TokenService

ACCESS_SECRET = "access-secret-for-tests-0123456789"
REFRESH_SECRET = "refresh-secret-for-tests-0123456789"


@pytest.fixture
def tokens():
    return TokenService(ACCESS_SECRET, REFRESH_SECRET)


@pytest.mark.parametrize("access,refresh", [(None, REFRESH_SECRET), (ACCESS_SECRET, ""), (None, None)])
def test_missing_secrets_refuse_to_build(access, refresh):
    with pytest.raises(ConfigurationError):
        TokenService(access, refresh)


def test_access_token_round_trip(tokens):
    token = tokens.issue_access("user-1", "a@x.com", {"USER", "ADMIN"})
    claims = tokens.verify_access(token)

    assert claims["sub"] == "user-1"
    assert claims["email"] == "a@x.com"
    assert claims["roles"] == ["ADMIN", "USER"]
    assert claims["type"] == "access"
    assert claims["exp"] - claims["iat"] == 3600

    identity = Identity.from_claims(claims)
    assert identity.user_id == "user-1"
    assert identity.roles == frozenset({"ADMIN", "USER"})


def test_refresh_token_lives_seven_days(tokens):
    claims = tokens.verify_refresh(tokens.issue_refresh("user-1"))
    assert claims["sub"] == "user-1"
    assert claims["exp"] - claims["iat"] == 7 * 24 * 3600


def test_tokens_issued_back_to_back_differ(tokens):
    assert tokens.issue_refresh("user-1") != tokens.issue_refresh("user-1")


def test_access_and_refresh_tokens_are_not_interchangeable(tokens):
    access = tokens.issue_access("user-1", "a@x.com", [])
    refresh = tokens.issue_refresh("user-1")

    assert tokens.verify_refresh(access) is None
    assert tokens.verify_access(refresh) is None


def test_wrong_type_claim_with_right_secret_is_rejected(tokens):
    forged = jwt.encode(
        {"sub": "user-1", "iat": 0, "exp": 9999999999, "iss": "fintrack-api", "type": "refresh"},
        ACCESS_SECRET,
        algorithm="HS256",
    )
    assert tokens.verify_access(forged) is None


def test_expired_and_tampered_tokens_verify_to_none():
    short = TokenService(ACCESS_SECRET, REFRESH_SECRET, access_expires=timedelta(seconds=-1))
    assert short.verify_access(short.issue_access("user-1", "a@x.com", [])) is None

    tokens = TokenService(ACCESS_SECRET, REFRESH_SECRET)
    other = TokenService("another-access-secret-0123456789", REFRESH_SECRET)
    assert tokens.verify_access(other.issue_access("user-1", "a@x.com", [])) is None
    assert tokens.verify_access("not.a.jwt") is None
    assert tokens.verify_access("") is None
