"""Pydantic schemas for API request/response validation."""

from restcrud.schemas.common import ErrorDetail, ErrorResponse
from restcrud.schemas.grid import GridData, UserAccessLevels

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "GridData",
    "UserAccessLevels",
]
