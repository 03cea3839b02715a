"""Custom exceptions and error handling."""

from typing import Any

from fastapi import status


class EffectivenessError(Exception):
    """Base exception for the effectiveness service.

    ``details`` entries are merged into the JSON error body next to
    ``code`` and ``message``.
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class NotFoundError(EffectivenessError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str | None = None, code: str = "NOT_FOUND"):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_404_NOT_FOUND,
        )


class ValidationError(EffectivenessError):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class AuthenticationError(EffectivenessError):
    """Authentication failed."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            code="UNAUTHORIZED",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class AuthorizationError(EffectivenessError):
    """Authorization failed."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(
            message=message,
            code="FORBIDDEN",
            status_code=status.HTTP_403_FORBIDDEN,
        )


class ConflictError(EffectivenessError):
    """Resource conflict."""

    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_409_CONFLICT,
        )


class RateLimitError(EffectivenessError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        code: str = "RATE_LIMIT_EXCEEDED",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details=details,
        )


class CooldownActiveError(RateLimitError):
    """A non-forced refresh arrived inside the client's cooldown window."""

    def __init__(self, remaining_hours: int):
        self.remaining_hours = remaining_hours
        super().__init__(
            message=(
                f"Effectiveness scoring is on cooldown. Try again in {remaining_hours} hours."
            ),
            code="COOLDOWN_ACTIVE",
            details={"remainingHours": remaining_hours},
        )


class ExternalServiceError(EffectivenessError):
    """External service error."""

    def __init__(self, service: str, message: str, code: str = "EXTERNAL_SERVICE_ERROR"):
        super().__init__(
            message=f"{service}: {message}",
            code=code,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"service": service},
        )


class InvalidStateTransitionError(EffectivenessError):
    """A run was asked to move backwards or out of a terminal state."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            message=f"Cannot transition run from '{current}' to '{target}'",
            code="INVALID_STATE_TRANSITION",
            status_code=status.HTTP_409_CONFLICT,
            details={"currentStatus": current, "targetStatus": target},
        )


class BadRequestError(EffectivenessError):
    """Malformed request that passed schema validation."""

    def __init__(self, message: str, code: str = "INVALID_REQUEST"):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_400_BAD_REQUEST,
        )
