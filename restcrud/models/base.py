"""Shared ORM helpers."""

from typing import Any

from sqlalchemy import inspect


class SerializableMixin:
    """Adds `to_dict()` to mapped classes.

    Grid rows and entity payloads are built from this, so only column
    attributes are included (relationships are left to the concrete service).
    """

    def to_dict(self) -> dict[str, Any]:
        mapper = inspect(self).mapper
        return {attr.key: getattr(self, attr.key) for attr in mapper.column_attrs}
