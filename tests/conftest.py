"""
Test configuration and fixtures.

Provides:
- In-memory SQLite session (tables emptied after each test)
- Owner/form factories with encrypted Airtable tokens
- FakeAirtableClient standing in for the Airtable REST API
- HTTPX AsyncClient wired to the app with dependency overrides
"""
import asyncio
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Generator

import pytest
from cryptography.fernet import Fernet
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FERNET_KEY"] = Fernet.generate_key().decode()
os.environ["AIRTABLE_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"

from formbridge.core.deps import get_client_factory, get_db
from formbridge.core.errors import ExternalApiError, RecordNotFoundError
from formbridge.db.base import Base
from formbridge.db.models import Form, Owner
from formbridge.db.session import SessionLocal, engine
from formbridge.main import app
from formbridge.services.airtable_client import AirtableBase, AirtableTable, RecordPage
from formbridge.services.field_mapper import map_field
from formbridge.services.sync_service import KeyedLocks, SyncOrchestrator, SyncPolicy
from formbridge.services.repositories import (
    SqlFormRepository,
    SqlOwnerRepository,
    SqlResponseRepository,
)
from formbridge.services.token_service import encrypt_token

BASE_ID = "appTestBase"
TABLE_ID = "tblTestTable"
ACCESS_TOKEN = "pat-test-token"


# =============================================================================
# Database Fixtures
# =============================================================================

Base.metadata.create_all(engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Session on the shared in-memory database.

    App code commits freely; every table is emptied after the test.
    """
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


# =============================================================================
# Factories
# =============================================================================


def make_owner(db: Session, *, token: str | None = ACCESS_TOKEN, expires_in: int = 3600) -> Owner:
    owner = Owner(
        id=uuid.uuid4(),
        airtable_user_id=f"usr{uuid.uuid4().hex[:12]}",
        email=f"owner-{uuid.uuid4().hex[:8]}@test.com",
        display_name="Test Owner",
        access_token_encrypted=encrypt_token(token) if token else None,
        token_expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    )
    db.add(owner)
    db.commit()
    db.refresh(owner)
    return owner


def make_question(key: str, field_id: str, question_type: str = "shortText", **extra: Any) -> dict:
    question = {
        "key": key,
        "external_field_id": field_id,
        "label": key.replace("_", " ").title(),
        "type": question_type,
        "required": False,
        "options": [],
        "validation_rules": None,
        "conditional_rule": None,
    }
    question.update(extra)
    return question


DEFAULT_QUESTIONS = [
    make_question("name", "fldName", required=True),
    make_question("email", "fldEmail"),
    make_question("notes", "fldNotes", "longText"),
]


def make_form(
    db: Session,
    owner: Owner,
    *,
    questions: list[dict] | None = None,
    published: bool = True,
    base_id: str = BASE_ID,
    table_id: str = TABLE_ID,
) -> Form:
    questions = questions if questions is not None else DEFAULT_QUESTIONS
    form = Form(
        owner_id=owner.id,
        title="Test Form",
        airtable_base_id=base_id,
        airtable_table_id=table_id,
        airtable_table_name="Test Table",
        questions=[dict(q) | {"order": i} for i, q in enumerate(questions)],
        settings={},
        published_at=datetime.now(timezone.utc) if published else None,
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    return form


@pytest.fixture(scope="function")
def owner(db: Session) -> Owner:
    return make_owner(db)


@pytest.fixture(scope="function")
def form(db: Session, owner: Owner) -> Form:
    return make_form(db, owner)


# =============================================================================
# Fake Airtable
# =============================================================================

TABLE_FIELDS = [
    {"id": "fldName", "name": "Name", "type": "singleLineText"},
    {"id": "fldEmail", "name": "Email", "type": "email"},
    {"id": "fldNotes", "name": "Notes", "type": "multilineText"},
    {
        "id": "fldPlan",
        "name": "Plan",
        "type": "singleSelect",
        "options": {"choices": [{"id": "basic", "name": "Basic"}, {"id": "pro", "name": "Pro"}]},
    },
    {"id": "fldCreated", "name": "Created", "type": "createdTime"},
]


class FakeAirtableClient:
    """
    In-memory Airtable table.

    `records` maps record id -> fields. Set `fail_*` attributes to make the
    matching call raise ExternalApiError. `calls` records every call made.
    """

    def __init__(self, page_size: int = 10):
        self.records: dict[str, dict[str, Any]] = {}
        self.page_size = page_size
        self.calls: list[tuple] = []
        self.fail_get: set[str] = set()
        self.fail_create = False
        self.fail_update = False
        self.fail_list_page: int | None = None
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_id = 1

    def add_record(self, record_id: str, fields: dict[str, Any]) -> None:
        self.records[record_id] = dict(fields)

    async def _enter(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1

    async def get_record(self, base_id: str, table_id: str, record_id: str) -> dict[str, Any]:
        self.calls.append(("get_record", record_id))
        await self._enter()
        if record_id in self.fail_get:
            raise ExternalApiError("Airtable API error: boom", status_code=500)
        if record_id not in self.records:
            raise RecordNotFoundError("Resource not found in Airtable.", status_code=404)
        return {"id": record_id, "fields": dict(self.records[record_id])}

    async def create_record(self, base_id: str, table_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_record", dict(fields)))
        await self._enter()
        if self.fail_create:
            raise ExternalApiError("Airtable API error: create failed", status_code=500)
        record_id = f"rec{self._next_id:014d}"
        self._next_id += 1
        self.records[record_id] = dict(fields)
        return {"id": record_id, "createdTime": "2026-01-01T00:00:00.000Z", "fields": dict(fields)}

    async def update_record(
        self, base_id: str, table_id: str, record_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        self.calls.append(("update_record", record_id, dict(fields)))
        await self._enter()
        if self.fail_update:
            raise ExternalApiError("Airtable API error: update failed", status_code=500)
        self.records.setdefault(record_id, {}).update(fields)
        return {"id": record_id, "createdTime": None, "fields": dict(self.records[record_id])}

    async def delete_record(self, base_id: str, table_id: str, record_id: str) -> bool:
        self.calls.append(("delete_record", record_id))
        self.records.pop(record_id, None)
        return True

    async def list_records(
        self,
        base_id: str,
        table_id: str,
        page_token: str | None = None,
        page_size: int | None = None,
    ) -> RecordPage:
        page_index = int(page_token) if page_token else 0
        self.calls.append(("list_records", page_index))
        if self.fail_list_page is not None and page_index == self.fail_list_page:
            raise ExternalApiError("Airtable API error: list failed", status_code=500)
        size = page_size or self.page_size
        ids = list(self.records)
        chunk = ids[page_index * size : (page_index + 1) * size]
        has_more = (page_index + 1) * size < len(ids)
        return RecordPage(
            records=[{"id": rid, "fields": dict(self.records[rid])} for rid in chunk],
            next_page_token=str(page_index + 1) if has_more else None,
        )

    async def list_bases(self) -> list[AirtableBase]:
        self.calls.append(("list_bases",))
        return [AirtableBase(id=BASE_ID, name="Test Base", permission_level="create")]

    async def list_tables(self, base_id: str) -> list[AirtableTable]:
        self.calls.append(("list_tables", base_id))
        return [
            AirtableTable(
                id=TABLE_ID,
                name="Test Table",
                primary_field_id="fldName",
                fields=[map_field(f) for f in TABLE_FIELDS],
            )
        ]

    async def get_table(self, base_id: str, table_id: str) -> AirtableTable | None:
        self.calls.append(("get_table", table_id))
        if table_id != TABLE_ID:
            return None
        return (await self.list_tables(base_id))[0]

    def clear_cache(self) -> None:
        self.calls.append(("clear_cache",))


@pytest.fixture(scope="function")
def airtable() -> FakeAirtableClient:
    return FakeAirtableClient()


@pytest.fixture(scope="function")
def client_factory(airtable: FakeAirtableClient):
    tokens: list[str] = []

    def factory(access_token: str) -> FakeAirtableClient:
        tokens.append(access_token)
        return airtable

    factory.tokens = tokens
    return factory


@pytest.fixture(scope="function")
def sync(db: Session, client_factory) -> SyncOrchestrator:
    """Orchestrator with zero pacing delays."""
    return SyncOrchestrator(
        SqlFormRepository(db),
        SqlResponseRepository(db),
        SqlOwnerRepository(db),
        client_factory,
        policy=SyncPolicy.immediate(),
        record_locks=KeyedLocks(),
    )


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest.fixture(scope="function")
async def client(db: Session, client_factory) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app, backed by the test session and fake Airtable."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_client_factory] = lambda: client_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def owner_client(client: AsyncClient, owner: Owner) -> AsyncClient:
    """Client that sends the owner identity header."""
    client.headers["X-Owner-Id"] = str(owner.id)
    return client


# =============================================================================
# Factory Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def owner_factory(db: Session):
    def factory(**kwargs) -> Owner:
        return make_owner(db, **kwargs)

    return factory


@pytest.fixture(scope="function")
def form_factory(db: Session, owner: Owner):
    def factory(questions: list[dict] | None = None, *, form_owner: Owner | None = None, **kwargs) -> Form:
        return make_form(db, form_owner or owner, questions=questions, **kwargs)

    return factory


@pytest.fixture(scope="function")
def question():
    """Question dict builder: question(key, field_id, type="shortText", **extra)."""
    return make_question
