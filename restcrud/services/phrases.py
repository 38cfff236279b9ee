"""Phrase list management.

Phrases are grouped by kind. Rows with source "system" are shipped with the
application (see scripts/seed.py) and are read-only through the API.
"""

from typing import Any

from pydantic import BaseModel, field_validator

from restcrud.models import Phrase
from restcrud.services.base import CrudService
from restcrud.services.exceptions import VerificationError

PHRASE_KINDS = ("stopword", "synonym", "blocked", "contract")
SYSTEM_SOURCE = "system"


class PhraseIn(BaseModel):
    """Incoming phrase data."""

    kind: str
    phrase: str
    enabled: bool = True
    source: str | None = None
    notes: str | None = None

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in PHRASE_KINDS:
            raise ValueError(f"must be one of {', '.join(PHRASE_KINDS)}")
        return v

    @field_validator("phrase")
    @classmethod
    def _normalize_phrase(cls, v: str) -> str:
        # Stored lowercased with collapsed whitespace; matching is literal.
        v = " ".join(v.split()).lower()
        if not v:
            raise ValueError("must not be empty")
        return v


def _source_of(item: Any) -> str | None:
    if isinstance(item, dict):
        return item.get("source")
    return getattr(item, "source", None)


class PhraseService(CrudService[Phrase]):
    model = Phrase
    schema = PhraseIn

    writable_fields = ("kind", "phrase", "enabled", "source", "notes")
    filter_fields = ("kind", "enabled", "source")
    search_fields = ("phrase", "notes")
    order_by = ("kind", "phrase")
    autocomplete_field = "phrase"

    async def check_user_edit_permission(self, item: Any) -> bool:
        return _source_of(item) != SYSTEM_SOURCE

    async def check_user_delete_permission(self, item: Any) -> bool:
        return _source_of(item) != SYSTEM_SOURCE

    async def verify(self, entity: Phrase, data: dict[str, Any]) -> None:
        if entity.id is not None and entity.source == SYSTEM_SOURCE:
            raise VerificationError("System phrases cannot be edited")
        if data.get("source") == SYSTEM_SOURCE and entity.source != SYSTEM_SOURCE:
            raise VerificationError("Source 'system' is reserved")

    async def verify_removal(self, entity: Phrase) -> None:
        if entity.source == SYSTEM_SOURCE:
            raise VerificationError("System phrases cannot be deleted")
