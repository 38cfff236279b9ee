"""Admin-managed phrases.

Phrases are short lowercased snippets grouped by kind (e.g. "stopword",
"synonym", "blocked"). Stored in DB so they can be edited through the CRUD
endpoints without code changes.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from restcrud.models.base import SerializableMixin
from restcrud.stores.postgres import Base


class Phrase(SerializableMixin, Base):
    __tablename__ = "phrases"
    __table_args__ = (UniqueConstraint("kind", "phrase", name="uq_phrases_kind_phrase"),)

    id: Mapped[int] = mapped_column(primary_key=True)

    kind: Mapped[str] = mapped_column(String(50), index=True)

    # Lowercased phrase (literal substring match; NOT regex).
    phrase: Mapped[str] = mapped_column(Text)

    enabled: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Optional provenance: "manual", "import", etc.
    source: Mapped[str | None] = mapped_column(String(50))
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Phrase {self.kind}:{self.phrase}>"
