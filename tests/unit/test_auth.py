"""Tests for token handling and client scoping."""

import uuid
from datetime import UTC, datetime, timedelta

import jwt
import pytest

from api.auth import (
    Principal,
    create_access_token,
    decode_access_token,
    require_admin,
    require_client_access,
)
from api.config import get_settings
from api.exceptions import AuthenticationError, AuthorizationError


class TestTokens:
    def test_round_trip_client_token(self):
        client_id = uuid.uuid4()

        principal = decode_access_token(create_access_token("user-1", "Client", client_id))

        assert principal == Principal(user_id="user-1", role="Client", client_id=client_id)
        assert not principal.is_admin

    def test_admin_token_without_client(self):
        principal = decode_access_token(create_access_token("admin-1", "Admin"))
        assert principal.is_admin
        assert principal.client_id is None

    def test_expired_token(self):
        settings = get_settings()
        token = jwt.encode(
            {
                "sub": "user-1",
                "role": "Client",
                "exp": datetime.now(UTC) - timedelta(minutes=1),
                "aud": settings.jwt_audience,
            },
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(AuthenticationError, match="Token has expired"):
            decode_access_token(token)

    def test_wrong_secret(self):
        token = jwt.encode(
            {"sub": "user-1", "role": "Client", "aud": get_settings().jwt_audience},
            "another-secret",
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError, match="Invalid authentication token"):
            decode_access_token(token)

    def test_unknown_role(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": "user-1", "role": "Owner", "aud": settings.jwt_audience},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(AuthenticationError):
            decode_access_token(token)

    def test_garbage(self):
        with pytest.raises(AuthenticationError):
            decode_access_token("not-a-token")


class TestAuthorization:
    def test_client_scoping(self):
        own, other = uuid.uuid4(), uuid.uuid4()
        principal = Principal(user_id="u", role="Client", client_id=own)

        require_client_access(principal, own)
        with pytest.raises(AuthorizationError):
            require_client_access(principal, other)

    def test_admin_sees_everything(self):
        require_client_access(Principal(user_id="a", role="Admin"), uuid.uuid4())

    @pytest.mark.asyncio
    async def test_require_admin(self):
        with pytest.raises(AuthorizationError, match="Admin access required"):
            await require_admin(Principal(user_id="u", role="Client"))

        admin = Principal(user_id="a", role="Admin")
        assert await require_admin(admin) is admin
