"""Persistence ports used by the sync engine.

The sync and retry components only see these protocols; the SQLAlchemy
implementations below bind them to a Session.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from formbridge.db.enums import ResponseStatus
from formbridge.db.models import Form, FormResponse, Owner


class FormRepository(Protocol):
    def find_by_id(self, form_id: UUID) -> Form | None: ...

    def find_active_by_table(self, base_id: str, table_id: str) -> Form | None: ...


class ResponseRepository(Protocol):
    def find_by_id(self, response_id: UUID) -> FormResponse | None: ...

    def find_by_external_id(self, external_record_id: str) -> FormResponse | None: ...

    def add(self, response: FormResponse) -> FormResponse: ...

    def save(self, response: FormResponse) -> FormResponse: ...

    def find_retryable(self, max_retries: int, limit: int) -> list[FormResponse]: ...

    def mark_deleted(self, external_record_id: str, now: datetime) -> FormResponse | None: ...


class OwnerRepository(Protocol):
    def find_by_id(self, owner_id: UUID) -> Owner | None: ...


# =============================================================================
# SQLAlchemy implementations
# =============================================================================


class SqlFormRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, form_id: UUID) -> Form | None:
        return self.db.query(Form).filter(Form.id == form_id).first()

    def find_active_by_table(self, base_id: str, table_id: str) -> Form | None:
        """Most recently created active form bound to the table."""
        return (
            self.db.query(Form)
            .filter(
                Form.airtable_base_id == base_id,
                Form.airtable_table_id == table_id,
                Form.is_active.is_(True),
            )
            .order_by(Form.created_at.desc())
            .first()
        )


class SqlResponseRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, response_id: UUID) -> FormResponse | None:
        return self.db.query(FormResponse).filter(FormResponse.id == response_id).first()

    def find_by_external_id(self, external_record_id: str) -> FormResponse | None:
        return (
            self.db.query(FormResponse)
            .filter(FormResponse.external_record_id == external_record_id)
            .first()
        )

    def add(self, response: FormResponse) -> FormResponse:
        self.db.add(response)
        return self.save(response)

    def save(self, response: FormResponse) -> FormResponse:
        """Commit pending changes; roll back and re-raise on failure."""
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(response)
        return response

    def find_retryable(self, max_retries: int, limit: int) -> list[FormResponse]:
        """Failed responses still under the attempt cap, oldest first."""
        return (
            self.db.query(FormResponse)
            .filter(
                FormResponse.status == ResponseStatus.FAILED.value,
                FormResponse.sync_attempts < max_retries,
            )
            .order_by(FormResponse.updated_at, FormResponse.created_at)
            .limit(limit)
            .all()
        )

    def mark_deleted(self, external_record_id: str, now: datetime) -> FormResponse | None:
        response = self.find_by_external_id(external_record_id)
        if response is None:
            return None
        response.status = ResponseStatus.DELETED.value
        response.last_synced_at = now
        return self.save(response)


class SqlOwnerRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, owner_id: UUID) -> Owner | None:
        return self.db.query(Owner).filter(Owner.id == owner_id).first()
