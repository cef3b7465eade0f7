"""SQLAlchemy ORM models for owners, forms, and form responses."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from formbridge.db.base import Base, JsonType
from formbridge.db.enums import (
    DEFAULT_RESPONSE_STATUS,
    LOCAL_RECORD_PREFIX,
    ResponseStatus,
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Owners
# =============================================================================


class Owner(Base):
    """
    Account that owns forms and holds Airtable OAuth credentials.

    Tokens are stored Fernet-encrypted (see services.token_service).
    """

    __tablename__ = "owners"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    airtable_user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    access_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    forms: Mapped[list["Form"]] = relationship(back_populates="owner")

    def is_token_expired(self, now: datetime | None = None) -> bool:
        """True when there is no expiry on record or it is in the past."""
        if not self.token_expires_at:
            return True
        now = now or datetime.now(timezone.utc)
        return _as_utc(self.token_expires_at) <= now

    def has_valid_token(self) -> bool:
        return bool(
            self.is_active and self.access_token_encrypted and not self.is_token_expired()
        )


# =============================================================================
# Forms
# =============================================================================


class Form(Base):
    """
    Form bound to one Airtable table.

    `questions` holds the ordered question list (see schemas.forms.Question).
    `version` increments on every question-set or settings mutation.
    A form with `published_at` null is not publicly submittable; `is_active`
    false means the form is retired (history retained).
    """

    __tablename__ = "forms"
    __table_args__ = (
        Index("idx_forms_owner", "owner_id"),
        Index("idx_forms_airtable_table", "airtable_base_id", "airtable_table_id"),
        Index("idx_forms_active_published", "is_active", "published_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("owners.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    airtable_base_id: Mapped[str] = mapped_column(String(64), nullable=False)
    airtable_table_id: Mapped[str] = mapped_column(String(64), nullable=False)
    airtable_table_name: Mapped[str] = mapped_column(String(255), nullable=False)
    questions: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    settings: Mapped[dict] = mapped_column(JsonType, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    owner: Mapped["Owner"] = relationship(back_populates="forms")

    @property
    def is_published(self) -> bool:
        return self.is_active and self.published_at is not None

    def get_question(self, question_key: str) -> dict | None:
        for question in self.questions or []:
            if question.get("key") == question_key:
                return question
        return None


# =============================================================================
# Responses
# =============================================================================


class FormResponse(Base):
    """
    One submission (or one synced Airtable record) for a form.

    `external_record_id` is the join key with the Airtable table and is
    unique across the system. A `local_` placeholder is stored only while
    the Airtable write has not succeeded.
    """

    __tablename__ = "form_responses"
    __table_args__ = (
        UniqueConstraint("external_record_id", name="uq_form_responses_external_record"),
        Index("idx_form_responses_form_created", "form_id", "created_at"),
        Index("idx_form_responses_status", "status"),
        Index("idx_form_responses_last_synced", "last_synced_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("owners.id", ondelete="SET NULL"), nullable=True
    )
    external_record_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_RESPONSE_STATUS, nullable=False
    )
    answers: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    submitted_by: Mapped[dict | None] = mapped_column(JsonType, nullable=True)
    extra_metadata: Mapped[dict | None] = mapped_column("metadata", JsonType, nullable=True)

    # Sync status
    last_synced_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sync_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    form: Mapped["Form"] = relationship()

    @property
    def has_external_record(self) -> bool:
        return bool(self.external_record_id) and not self.external_record_id.startswith(
            LOCAL_RECORD_PREFIX
        )

    @property
    def is_deleted(self) -> bool:
        return self.status == ResponseStatus.DELETED.value

    def get_answer(self, question_key: str):
        for answer in self.answers or []:
            if answer.get("question_key") == question_key:
                return answer.get("value")
        return None

    def answer_map(self) -> dict:
        return {a["question_key"]: a.get("value") for a in self.answers or []}

    def record_sync_result(self, success: bool, error: str | None = None) -> None:
        """Stamp the outcome of one Airtable read/write attempt."""
        self.last_synced_at = datetime.now(timezone.utc)
        self.sync_attempts = (self.sync_attempts or 0) + 1
        if success:
            self.status = ResponseStatus.SYNCED.value
            self.sync_error = None
        else:
            self.status = ResponseStatus.FAILED.value
            self.sync_error = error
