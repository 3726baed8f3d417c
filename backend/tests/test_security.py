"""
Password rules and access tokens
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi import HTTPException

from nomadly.core.security import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    get_current_user,
    get_password_hash,
    password_problems,
    verify_password,
)
from nomadly.db.crud import create_user


class TestPasswords:
    def test_password_problems(self):
        assert password_problems("MySecurePass123") == []
        problems = password_problems("short")
        assert any("at least" in p for p in problems)
        assert any("uppercase" in p for p in problems)
        assert any("number" in p for p in problems)

    def test_hash_and_verify(self):
        hashed = get_password_hash("MySecurePass123")
        assert hashed != "MySecurePass123"
        assert verify_password("MySecurePass123", hashed)
        assert not verify_password("wrong", hashed)

    def test_verify_garbage_hash_is_false(self):
        assert verify_password("anything", "not-a-hash") is False


class TestTokens:
    def test_round_trip(self):
        user_id = uuid4()
        token = create_access_token({"sub": str(user_id)})
        assert decode_access_token(token) == user_id

    def test_expired_token(self):
        token = create_access_token({"sub": str(uuid4())}, expires_delta=timedelta(seconds=-5))
        assert decode_access_token(token) is None

    def test_tampered_token(self):
        token = create_access_token({"sub": str(uuid4())})
        assert decode_access_token(token[:-2] + "xx") is None

    def test_non_uuid_subject(self):
        assert decode_access_token(create_access_token({"sub": "not-a-uuid"})) is None


class TestCurrentUser:
    @pytest.mark.asyncio
    async def test_resolves_user(self, session, user):
        token = create_access_token({"sub": str(user.id)})
        assert (await get_current_user(token=token, session=session)).id == user.id

    @pytest.mark.asyncio
    async def test_unknown_user(self, session):
        token = create_access_token({"sub": str(uuid4())})
        with pytest.raises(HTTPException) as exc:
            await get_current_user(token=token, session=session)
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_authenticate_user(self, session):
        await create_user(session, "Cy@Example.com", get_password_hash("MySecurePass123"), "Cy")
        assert await authenticate_user("cy@example.com", "MySecurePass123", session) is not None
        assert await authenticate_user("cy@example.com", "nope", session) is None
        assert await authenticate_user("nobody@example.com", "MySecurePass123", session) is None
