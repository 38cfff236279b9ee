"""SQLAlchemy ORM models.

Models represent database tables:
- phrases: Admin-managed phrase list (example CRUD resource)
"""

from restcrud.models.base import SerializableMixin
from restcrud.models.phrase import Phrase

__all__ = ["Phrase", "SerializableMixin"]
