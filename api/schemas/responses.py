"""Standard API response schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes as camelCase, accepts either case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorResponse(BaseModel):
    """Flat error body. Extra detail keys sit next to code and message."""

    model_config = ConfigDict(extra="allow")

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class ValidationErrorResponse(ErrorResponse):
    errors: list[dict[str, Any]] = Field(default_factory=list)


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: {"model": ErrorResponse, "description": "Missing or invalid bearer token"},
    403: {"model": ErrorResponse, "description": "Principal may not access this client"},
    404: {"model": ErrorResponse, "description": "Client or run not found"},
}
