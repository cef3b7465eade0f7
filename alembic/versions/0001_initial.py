"""Initial schema: owners, forms, form responses

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18

Tables:
- owners: Airtable account holders with encrypted OAuth tokens
- forms: form definitions bound to one Airtable table
- form_responses: submissions / synced records (unique external_record_id)
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

JsonType = sa.JSON().with_variant(JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "owners",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("airtable_user_id", sa.String(64), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("access_token_encrypted", sa.Text, nullable=True),
        sa.Column("refresh_token_encrypted", sa.Text, nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "forms",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "owner_id",
            sa.Uuid(),
            sa.ForeignKey("owners.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("airtable_base_id", sa.String(64), nullable=False),
        sa.Column("airtable_table_id", sa.String(64), nullable=False),
        sa.Column("airtable_table_name", sa.String(255), nullable=False),
        sa.Column("questions", JsonType, nullable=False),
        sa.Column("settings", JsonType, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("idx_forms_owner", "forms", ["owner_id"])
    op.create_index("idx_forms_airtable_table", "forms", ["airtable_base_id", "airtable_table_id"])
    op.create_index("idx_forms_active_published", "forms", ["is_active", "published_at"])

    op.create_table(
        "form_responses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "form_id",
            sa.Uuid(),
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "owner_id",
            sa.Uuid(),
            sa.ForeignKey("owners.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("external_record_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("answers", JsonType, nullable=False),
        sa.Column("submitted_by", JsonType, nullable=True),
        sa.Column("metadata", JsonType, nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("sync_error", sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("external_record_id", name="uq_form_responses_external_record"),
    )
    op.create_index(
        "idx_form_responses_form_created", "form_responses", ["form_id", "created_at"]
    )
    op.create_index("idx_form_responses_status", "form_responses", ["status"])
    op.create_index("idx_form_responses_last_synced", "form_responses", ["last_synced_at"])


def downgrade() -> None:
    op.drop_table("form_responses")
    op.drop_table("forms")
    op.drop_table("owners")
