"""Tests for bearer credential verification."""
import time

import jwt
import pytest

from app.auth.identity import IdentityVerifier
from app.errors import InvalidCredentialError, UnauthenticatedError
from app.store import InMemoryDocumentStore
from app.store.schemas import UserRecord

SECRET = "unit-secret"


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def verifier(store):
    return IdentityVerifier(store, SECRET)


def encode(payload, secret=SECRET):
    return jwt.encode(payload, secret, algorithm="HS256")


class TestDecode:
    @pytest.mark.parametrize("credential", [None, "", "   ", "Bearer "])
    def test_missing_credential(self, verifier, credential):
        with pytest.raises(UnauthenticatedError):
            verifier.decode_user_id(credential)

    def test_nested_user_claim(self, verifier):
        assert verifier.decode_user_id(encode({"user": {"id": "abc", "role": "user"}})) == "abc"

    def test_flat_user_id_claim_and_bearer_prefix(self, verifier):
        assert verifier.decode_user_id("Bearer " + encode({"user_id": "abc"})) == "abc"

    def test_expired(self, verifier):
        token = encode({"user": {"id": "abc"}, "exp": int(time.time()) - 10})
        with pytest.raises(InvalidCredentialError, match="expired"):
            verifier.decode_user_id(token)

    def test_wrong_signature(self, verifier):
        with pytest.raises(InvalidCredentialError):
            verifier.decode_user_id(encode({"user": {"id": "abc"}}, secret="other"))

    def test_garbage(self, verifier):
        with pytest.raises(InvalidCredentialError):
            verifier.decode_user_id("not.a.jwt")

    def test_no_user_claim(self, verifier):
        with pytest.raises(InvalidCredentialError):
            verifier.decode_user_id(encode({"sub": "abc"}))


class TestVerify:
    @pytest.mark.asyncio
    async def test_resolves_user(self, store, verifier):
        user = await store.save_user(UserRecord(username="alice", friends=["x" * 24]))

        resolved = await verifier.verify(encode({"user": {"id": user.id}}))

        assert resolved.id == user.id
        assert resolved.username == "alice"
        assert resolved.friends == ["x" * 24]

    @pytest.mark.asyncio
    async def test_user_no_longer_exists(self, verifier):
        with pytest.raises(InvalidCredentialError, match="User not found"):
            await verifier.verify(encode({"user": {"id": "f" * 24}}))
