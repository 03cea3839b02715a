"""Bearer-token authentication and client-scoped authorization."""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Annotated, Literal

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.config import get_settings
from api.exceptions import AuthenticationError, AuthorizationError

Role = Literal["Admin", "Client"]
ADMIN: Role = "Admin"
CLIENT: Role = "Client"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    user_id: str
    role: Role
    client_id: uuid.UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN

    def can_access(self, client_id: uuid.UUID) -> bool:
        return self.is_admin or self.client_id == client_id


def create_access_token(
    user_id: str,
    role: Role = CLIENT,
    client_id: uuid.UUID | str | None = None,
    expires_minutes: int | None = None,
) -> str:
    """Create a JWT access token."""
    settings = get_settings()
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)
    payload = {
        "sub": user_id,
        "role": role,
        "client_id": str(client_id) if client_id else None,
        "exp": expire,
        "aud": settings.jwt_audience,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid authentication token") from e

    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or role not in (ADMIN, CLIENT):
        raise AuthenticationError("Invalid authentication token")

    client_id = None
    if payload.get("client_id"):
        try:
            client_id = uuid.UUID(payload["client_id"])
        except ValueError as e:
            raise AuthenticationError("Invalid authentication token") from e

    return Principal(user_id=user_id, role=role, client_id=client_id)


async def get_current_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    principal = decode_access_token(credentials.credentials)
    request.state.user_id = principal.user_id
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def require_client_access(principal: Principal, client_id: uuid.UUID) -> None:
    """Admins see every client; client users only their own."""
    if not principal.can_access(client_id):
        raise AuthorizationError()


async def require_admin(principal: CurrentPrincipal) -> Principal:
    if not principal.is_admin:
        raise AuthorizationError("Admin access required")
    return principal


AdminPrincipal = Annotated[Principal, Depends(require_admin)]
