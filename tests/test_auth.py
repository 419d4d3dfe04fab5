"""Tests for eop_assistant.services.auth."""
import pytest

from eop_assistant.services.auth import (
    InvalidTokenError,
    UserExistsError,
    authenticate,
    create_user,
    decode_token,
    hash_password,
    issue_token,
    verify_password,
)


def test_password_hash_round_trip():
    stored = hash_password("s3cret", iterations=1000)
    assert stored.startswith("pbkdf2_sha256$1000$")
    assert verify_password("s3cret", stored) is True
    assert verify_password("wrong", stored) is False


def test_hashes_are_salted():
    assert hash_password("same", iterations=1000) != hash_password("same", iterations=1000)


@pytest.mark.parametrize("stored", ["", "plaintext", "md5$1$salt$abc", "pbkdf2_sha256$notanint$salt$abc"])
def test_verify_rejects_malformed_hashes(stored):
    assert verify_password("anything", stored) is False


def test_token_round_trip():
    token = issue_token("a@b.com", "u-1", secret="test-secret", expires_days=1)
    claims = decode_token(token, secret="test-secret")
    assert claims["email"] == "a@b.com"
    assert claims["userId"] == "u-1"


def test_token_wrong_secret_or_expired():
    token = issue_token("a@b.com", "u-1", secret="one")
    with pytest.raises(InvalidTokenError):
        decode_token(token, secret="two")
    expired = issue_token("a@b.com", "u-1", secret="one", expires_days=-1)
    with pytest.raises(InvalidTokenError):
        decode_token(expired, secret="one")


@pytest.mark.asyncio
async def test_create_and_authenticate(db_session):
    user = await create_user(db_session, " Ann@Example.com ", "pw")
    assert user.email == "ann@example.com"
    assert user.password_hash != "pw"

    assert (await authenticate(db_session, "ann@example.com", "pw")).id == user.id
    assert await authenticate(db_session, "ann@example.com", "nope") is None
    assert await authenticate(db_session, "nobody@example.com", "pw") is None


@pytest.mark.asyncio
async def test_duplicate_email_rejected(db_session):
    await create_user(db_session, "dup@example.com", "pw")
    with pytest.raises(UserExistsError):
        await create_user(db_session, "DUP@example.com", "other")
