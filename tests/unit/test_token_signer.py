"""Unit tests for TokenSigner (stateless access tokens)."""

from uuid import uuid4

import jwt
import pytest

from inkwell.models.user import Role
from inkwell.services.token_signer import ACCESS_TOKEN_EXPIRE_MINUTES, TokenSigner

JWT_SECRET = "test-secret-key-for-jwt-unit-tests"


class TestIssue:
    def test_claims_round_trip(self, signer):
        user_id = uuid4()
        token = signer.issue(user_id, "ada@example.com", Role.ADMIN)

        claims = signer.verify(token)

        assert claims is not None
        assert claims.user_id == user_id
        assert claims.email == "ada@example.com"
        assert claims.role == Role.ADMIN

    def test_default_lifetime_is_fifteen_minutes(self, signer, clock):
        token = signer.issue(uuid4(), "a@example.com", Role.USER)
        claims = signer.verify(token)

        assert ACCESS_TOKEN_EXPIRE_MINUTES == 15
        assert claims.expires_at - claims.issued_at == 15 * 60
        assert claims.issued_at == int(clock.now().timestamp())
        assert signer.ttl_seconds == 900

    def test_signed_with_hs256(self, signer):
        token = signer.issue(uuid4(), "a@example.com", Role.USER)
        assert jwt.get_unverified_header(token)["alg"] == "HS256"

    def test_empty_secret_rejected(self):
        with pytest.raises(RuntimeError):
            TokenSigner(secret="  ")


class TestVerify:
    def test_valid_just_before_expiry(self, signer, clock):
        token = signer.issue(uuid4(), "a@example.com", Role.USER)
        clock.advance(minutes=14, seconds=59)
        assert signer.verify(token) is not None

    def test_expired_at_boundary(self, signer, clock):
        token = signer.issue(uuid4(), "a@example.com", Role.USER)
        clock.advance(minutes=15)
        assert signer.verify(token) is None

    def test_wrong_secret_rejected(self, signer, clock):
        other = TokenSigner(secret="a-different-secret-of-sufficient-length", clock=clock)
        token = other.issue(uuid4(), "a@example.com", Role.USER)
        assert signer.verify(token) is None

    def test_tampered_token_rejected(self, signer):
        token = signer.issue(uuid4(), "a@example.com", Role.USER)
        head, payload, sig = token.split(".")
        tampered = f"{head}.{payload}x.{sig}"
        assert signer.verify(tampered) is None

    def test_garbage_rejected(self, signer):
        assert signer.verify("not-a-jwt") is None

    def test_missing_claims_rejected(self, signer, clock):
        ts = int(clock.now().timestamp())
        token = jwt.encode({"iat": ts, "exp": ts + 60}, JWT_SECRET, algorithm="HS256")
        assert signer.verify(token) is None

    def test_unknown_role_rejected(self, signer, clock):
        ts = int(clock.now().timestamp())
        token = jwt.encode(
            {
                "sub": str(uuid4()),
                "email": "a@example.com",
                "role": "superuser",
                "iat": ts,
                "exp": ts + 60,
            },
            JWT_SECRET,
            algorithm="HS256",
        )
        assert signer.verify(token) is None

    def test_none_algorithm_rejected(self, signer, clock):
        ts = int(clock.now().timestamp())
        token = jwt.encode(
            {"sub": str(uuid4()), "email": "a@example.com", "role": "user", "iat": ts, "exp": ts + 60},
            key=None,
            algorithm="none",
        )
        assert signer.verify(token) is None

    def test_expiry_follows_injected_clock(self, clock):
        signer = TokenSigner(secret=JWT_SECRET, ttl_minutes=1, clock=clock)
        token = signer.issue(uuid4(), "a@example.com", Role.USER)
        clock.advance(seconds=61)
        assert signer.verify(token) is None
