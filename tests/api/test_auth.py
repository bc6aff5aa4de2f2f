"""
Tests for password hashing and bearer tokens.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.security import HTTPAuthorizationCredentials

from api.auth import TokenManager, get_current_identity, hash_password, verify_password
from catalog.errors import AuthenticationRequired
from catalog.models import Identity, UserRole


class TestPasswords:

    def test_hash_round_trip(self):
        hashed = hash_password("password123")

        assert hashed.startswith("pbkdf2_sha256$")
        assert "password123" not in hashed
        assert verify_password("password123", hashed)
        assert not verify_password("password124", hashed)

    def test_salts_differ(self):
        assert hash_password("password123") != hash_password("password123")

    def test_fixed_salt_is_deterministic(self):
        assert hash_password("secret", salt="abc") == hash_password("secret", salt="abc")

    @pytest.mark.parametrize("stored", ["", "plain-text", "md5$1$salt$digest", None])
    def test_malformed_hash(self, stored):
        assert not verify_password("password123", stored)


class TestTokens:

    def test_round_trip(self):
        token = TokenManager.create_token("507f1f77bcf86cd799439011")
        assert TokenManager.parse_token(token) == "507f1f77bcf86cd799439011"

    def test_tampered_user_id(self):
        user_id, expiry, signature = TokenManager.create_token("507f1f77bcf86cd799439011").split("|")
        forged = f"507f1f77bcf86cd799439012|{expiry}|{signature}"
        assert TokenManager.parse_token(forged) is None

    def test_expired(self):
        token = TokenManager.create_token("507f1f77bcf86cd799439011", expires_minutes=-5)
        assert TokenManager.parse_token(token) is None

    @pytest.mark.parametrize("token", ["", "garbage", "a|b", "a|b|c|d"])
    def test_malformed(self, token):
        assert TokenManager.parse_token(token) is None


class TestCurrentIdentity:

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        with pytest.raises(AuthenticationRequired) as exc_info:
            await get_current_identity(None)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token(self):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="not-a-token")
        with pytest.raises(AuthenticationRequired) as exc_info:
            await get_current_identity(credentials)
        assert "Invalid or expired token" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_resolves_identity(self):
        user_id = "507f1f77bcf86cd799439011"
        service = MagicMock()
        service.get_identity = AsyncMock(return_value=Identity(id=user_id, role=UserRole.ADMIN))
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=TokenManager.create_token(user_id))

        with patch('api.main.db_service', service):
            identity = await get_current_identity(credentials)

        assert identity.id == user_id
        assert identity.is_admin
        service.get_identity.assert_awaited_once_with(user_id)

    @pytest.mark.asyncio
    async def test_deleted_user(self):
        service = MagicMock()
        service.get_identity = AsyncMock(return_value=None)
        credentials = HTTPAuthorizationCredentials(
            scheme="Bearer", credentials=TokenManager.create_token("507f1f77bcf86cd799439011")
        )

        with patch('api.main.db_service', service):
            with pytest.raises(AuthenticationRequired) as exc_info:
                await get_current_identity(credentials)

        assert "no longer exists" in exc_info.value.message


@pytest.mark.parametrize("stored", ["pbkdf2_sha256$x$salt$digest", "pbkdf2_sha256$0$salt$digest"])
def test_malformed_iteration_count(stored):
    assert not verify_password("password123", stored)
