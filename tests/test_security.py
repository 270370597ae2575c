"""Tests for password hashing and the JWT issuer."""

from datetime import timedelta

import jwt
import pytest

from models.base_model import utcnow
from models.user import User
from services.errors import ConfigurationError, InvalidTokenError
from utils.security import JwtTokenIssuer, generate_refresh_token
from tests.conftest import TEST_SECRET


@pytest.fixture
def user():
    return User(email="alice@example.com", display_name="Alice", password_hash="x", roles=["user"])


class TestPasswordService:
    def test_hash_then_verify(self, passwords):
        hashed = passwords.hash("s3cret-password")
        assert hashed != "s3cret-password"
        assert passwords.verify(hashed, "s3cret-password") is True
        assert passwords.verify(hashed, "wrong") is False

    def test_verify_tolerates_garbage_hash(self, passwords):
        assert passwords.verify("not-a-hash", "anything") is False

    def test_burn_verification_is_always_false(self, passwords):
        assert passwords.burn_verification("anything") is False


class TestJwtTokenIssuer:
    @pytest.mark.parametrize("secret", [None, "", "too-short"])
    def test_rejects_missing_or_short_secret(self, secret):
        with pytest.raises(ConfigurationError):
            JwtTokenIssuer(secret)

    def test_round_trip_claims(self, issuer, user):
        token, expires_at = issuer.issue_access_token(user, ["user"], utcnow())
        claims = issuer.decode_access_token(token)
        assert claims["sub"] == user.id
        assert claims["email"] == "alice@example.com"
        assert claims["roles"] == ["user"]
        assert claims["type"] == "access"
        assert claims["jti"]
        assert expires_at - utcnow() <= timedelta(minutes=15)

    def test_each_token_gets_its_own_jti(self, issuer, user):
        now = utcnow()
        first, _ = issuer.issue_access_token(user, [], now)
        second, _ = issuer.issue_access_token(user, [], now)
        assert issuer.decode_access_token(first)["jti"] != issuer.decode_access_token(second)["jti"]

    def test_expired_token_is_rejected(self, issuer, user):
        token, _ = issuer.issue_access_token(user, [], utcnow() - timedelta(hours=1))
        with pytest.raises(InvalidTokenError):
            issuer.decode_access_token(token)

    def test_other_secret_is_rejected(self, issuer, user):
        other = JwtTokenIssuer("another-secret-that-is-long-enough-0123456789")
        token, _ = other.issue_access_token(user, [], utcnow())
        with pytest.raises(InvalidTokenError):
            issuer.decode_access_token(token)

    def test_tampered_token_is_rejected(self, issuer, user):
        mallory = User(email="mallory@example.com", display_name="Mallory", password_hash="x")
        token, _ = issuer.issue_access_token(user, ["user"], utcnow())
        forged, _ = issuer.issue_access_token(mallory, ["admin"], utcnow())
        header, _, signature = token.split(".")
        forged_payload = forged.split(".")[1]
        with pytest.raises(InvalidTokenError):
            issuer.decode_access_token(".".join([header, forged_payload, signature]))

    def test_wrong_token_type_is_rejected(self, issuer, user):
        now = utcnow()
        token = jwt.encode(
            {
                "iss": "account-api",
                "aud": "account-api-clients",
                "sub": user.id,
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(minutes=5)).timestamp()),
                "jti": "abc",
                "type": "refresh",
            },
            TEST_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            issuer.decode_access_token(token)

    def test_error_message_is_uniform(self, issuer):
        with pytest.raises(InvalidTokenError) as excinfo:
            issuer.decode_access_token("garbage")
        assert excinfo.value.message == "Invalid or expired token"


def test_refresh_tokens_are_unique_and_long():
    tokens = {generate_refresh_token() for _ in range(100)}
    assert len(tokens) == 100
    assert all(len(t) >= 64 for t in tokens)
