"""Exceptions raised by CRUD services.

Controllers translate these into HTTP 400 responses; anything else is treated
as an unexpected failure.
"""

from __future__ import annotations

from typing import Any


class ServiceError(RuntimeError):
    """Base class for expected service failures."""


class UniqueError(ServiceError):
    """A uniqueness rule would be violated (duplicate record)."""


class EntityValidationError(ServiceError):
    """Incoming data failed validation.

    `errors` maps field names to messages when the service can tell which
    field is wrong.
    """

    def __init__(self, message: str, errors: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or {}


class VerificationError(ServiceError):
    """A business rule check failed (state conflicts, forbidden transitions)."""


class HandleUploadsError(ServiceError):
    """Uploaded files attached to the request could not be processed."""


class EntityError(ServiceError):
    """The root entity could not be loaded or built."""


# Exception types a save turns into a 400 response.
SAVE_ERRORS: tuple[type[ServiceError], ...] = (
    UniqueError,
    EntityValidationError,
    VerificationError,
    HandleUploadsError,
    EntityError,
)
