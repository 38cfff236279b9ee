"""Error envelope shared by every endpoint."""

from typing import Any

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured error detail.

    `code` is machine-readable (e.g. BAD_REQUEST, ENTITY_NOT_FOUND);
    `detail` carries extra context such as per-field validation errors.
    """

    code: str
    message: str
    detail: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Format: { "error": { "code": str, "message": str, "detail": object } }"""

    error: ErrorDetail
