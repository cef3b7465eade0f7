"""FastAPI dependencies for database access, owner identity, and sync wiring."""

from typing import Generator
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from formbridge.core.config import settings
from formbridge.core.security import verify_secret
from formbridge.db.models import Owner
from formbridge.db.session import SessionLocal
from formbridge.services.airtable_client import (
    AirtableClient,
    ClientFactory,
    CredentialStateRegistry,
    make_client_factory,
)
from formbridge.services.repositories import (
    SqlFormRepository,
    SqlOwnerRepository,
    SqlResponseRepository,
)
from formbridge.services.retry_service import RetryCoordinator
from formbridge.services.sync_service import KeyedLocks, SyncOrchestrator, SyncPolicy
from formbridge.services.token_service import get_access_token

# Process-wide per-credential state (metadata cache, rate-limit hints)
credential_states = CredentialStateRegistry()
# Single writer per Airtable record id within this process
record_locks = KeyedLocks()


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_client_factory() -> ClientFactory:
    return make_client_factory(credential_states)


def build_sync_orchestrator(
    db: Session,
    client_factory: ClientFactory,
    policy: SyncPolicy | None = None,
) -> SyncOrchestrator:
    """Orchestrator bound to one session (also used by the worker and CLI)."""
    return SyncOrchestrator(
        SqlFormRepository(db),
        SqlResponseRepository(db),
        SqlOwnerRepository(db),
        client_factory,
        policy=policy or SyncPolicy.from_settings(),
        record_locks=record_locks,
    )


def build_retry_coordinator(sync: SyncOrchestrator) -> RetryCoordinator:
    return RetryCoordinator(sync, sync.forms, sync.owners, sync.responses, sync.policy)


def get_sync_orchestrator(
    db: Session = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> SyncOrchestrator:
    return build_sync_orchestrator(db, client_factory)


def get_current_owner(
    x_owner_id: str | None = Header(None),
    db: Session = Depends(get_db),
) -> Owner:
    """
    Resolve the calling owner from the X-Owner-Id header.

    Session handling lives in front of this service; it forwards the
    authenticated owner id.

    Raises:
        HTTPException 401: header missing, malformed, or unknown/inactive owner
    """
    if not x_owner_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        owner_id = UUID(x_owner_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid owner id")

    owner = db.query(Owner).filter(Owner.id == owner_id).first()
    if not owner or not owner.is_active:
        raise HTTPException(status_code=401, detail="Owner not found")
    return owner


def get_owner_client(
    owner: Owner = Depends(get_current_owner),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> AirtableClient:
    """Airtable client for the calling owner; 401 when the token is unusable."""
    access_token = get_access_token(owner)
    if not access_token:
        raise HTTPException(
            status_code=401, detail="Airtable token expired, please reauthenticate"
        )
    return client_factory(access_token)


def verify_internal_secret(x_internal_secret: str | None = Header(None)) -> None:
    """Verify the internal secret header."""
    if not settings.INTERNAL_SECRET:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if not verify_secret(x_internal_secret, settings.INTERNAL_SECRET):
        raise HTTPException(status_code=403, detail="Invalid internal secret")
