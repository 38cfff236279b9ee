"""create_phrases

Revision ID: 3e8d2b7c1a90
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3e8d2b7c1a90"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "phrases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("phrase", sa.Text(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("source", sa.String(length=50), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kind", "phrase", name="uq_phrases_kind_phrase"),
    )

    op.create_index(op.f("ix_phrases_kind"), "phrases", ["kind"], unique=False)
    op.create_index(op.f("ix_phrases_enabled"), "phrases", ["enabled"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_phrases_enabled"), table_name="phrases")
    op.drop_index(op.f("ix_phrases_kind"), table_name="phrases")
    op.drop_table("phrases")
