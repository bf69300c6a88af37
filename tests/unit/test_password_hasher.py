"""Unit tests for PasswordHasher."""

from unittest.mock import patch

import pytest

from inkwell.services.exceptions import PasswordHashingError
from inkwell.services.password_hasher import PasswordHasher


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


class TestHash:
    async def test_returns_bcrypt_string(self, hasher):
        hashed = await hasher.hash("Str0ng!pass")
        assert hashed.startswith("$2b$") or hashed.startswith("$2a$")
        assert len(hashed) == 60

    async def test_hash_is_not_plaintext(self, hasher):
        hashed = await hasher.hash("Str0ng!pass")
        assert "Str0ng!pass" not in hashed

    async def test_different_salts(self, hasher):
        h1 = await hasher.hash("same-password")
        h2 = await hasher.hash("same-password")
        assert h1 != h2, "Each call should produce a unique salt"

    async def test_respects_cost_factor(self):
        hashed = await PasswordHasher(rounds=5).hash("pw")
        assert hashed.split("$")[2] == "05"

    async def test_failure_raises_typed_error(self, hasher):
        with patch(
            "inkwell.services.password_hasher.bcrypt.hashpw",
            side_effect=RuntimeError("boom"),
        ):
            with pytest.raises(PasswordHashingError):
                await hasher.hash("pw")


class TestVerify:
    async def test_correct_password(self, hasher):
        hashed = await hasher.hash("correct-horse")
        assert await hasher.verify("correct-horse", hashed) is True

    async def test_wrong_password(self, hasher):
        hashed = await hasher.hash("right-password")
        assert await hasher.verify("wrong-password", hashed) is False

    async def test_malformed_hash_is_mismatch(self, hasher):
        assert await hasher.verify("anything", "not-a-bcrypt-hash") is False

    async def test_empty_hash_is_mismatch(self, hasher):
        assert await hasher.verify("anything", "") is False
