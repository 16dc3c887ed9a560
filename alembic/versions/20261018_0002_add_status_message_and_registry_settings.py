"""add model status messages and registry settings

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 15:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "model_entries",
        sa.Column(
            "status_message",
            sa.Text(),
            nullable=True,
            comment="Progress of the current or last training run",
        ),
    )
    op.alter_column(
        "model_entries",
        "owner",
        existing_type=sa.String(length=64),
        existing_nullable=True,
        comment="Lease token '<message id>:<dequeue count>' holding the InProgress claim",
    )

    op.create_table(
        "registry_settings",
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("value", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("registry_settings")
    op.alter_column(
        "model_entries",
        "owner",
        existing_type=sa.String(length=64),
        existing_nullable=True,
        comment="Queue message id holding the InProgress claim",
    )
    op.drop_column("model_entries", "status_message")
