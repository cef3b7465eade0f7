"""Response endpoints: public submission and owner-side management."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from formbridge.core.deps import get_client_factory, get_current_owner, get_db, get_sync_orchestrator
from formbridge.db.enums import ResponseStatus
from formbridge.db.models import FormResponse, Owner
from formbridge.schemas.responses import (
    ResponseList,
    ResponseRead,
    ResponseSubmit,
    ResponseUpdate,
    SubmissionRead,
)
from formbridge.services import form_service, response_service
from formbridge.services.airtable_client import ClientFactory
from formbridge.services.response_service import SubmissionResult
from formbridge.services.sync_service import SyncOrchestrator
from formbridge.services.token_service import get_access_token

router = APIRouter(tags=["responses"])

SUBMITTED_MESSAGE = "Response submitted successfully"
PENDING_SYNC_MESSAGE = "Response submitted successfully; Airtable sync is pending and will be retried"
SYNCED_MESSAGE = "Response synced to Airtable"
SYNC_FAILED_MESSAGE = "Airtable sync failed; the response will be retried"


def _submission_read(
    result: SubmissionResult,
    ok_message: str = SUBMITTED_MESSAGE,
    pending_message: str = PENDING_SYNC_MESSAGE,
) -> SubmissionRead:
    return SubmissionRead(
        response=ResponseRead.model_validate(result.response),
        synced=result.synced,
        message=ok_message if result.synced else pending_message,
        sync_error=result.error,
    )


def _get_owned_response(db: Session, response_id: UUID, owner: Owner) -> FormResponse:
    response = response_service.get_response(db, response_id)
    if not response:
        raise HTTPException(status_code=404, detail="Response not found")
    form = form_service.get_form(db, response.form_id, owner_id=owner.id)
    if not form:
        raise HTTPException(status_code=403, detail="Access denied")
    return response


@router.post("/public/forms/{form_id}/responses", response_model=SubmissionRead, status_code=201)
async def submit_response(
    form_id: UUID,
    body: ResponseSubmit,
    request: Request,
    db: Session = Depends(get_db),
    sync: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Submit answers to a published form (no authentication)."""
    form = form_service.get_public_form(db, form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found or not published")

    submitted_by = {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "referrer": request.headers.get("referer"),
    }
    result = await response_service.submit_response(
        db, form, body.answers, sync, submitted_by=submitted_by, metadata=body.metadata
    )
    return _submission_read(result)


@router.get("/forms/{form_id}/responses", response_model=ResponseList)
def list_form_responses(
    form_id: UUID,
    status: ResponseStatus | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    form = form_service.get_form(db, form_id, owner_id=owner.id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")

    items, total = response_service.list_responses(
        db, form.id, status=status.value if status else None, limit=limit, offset=offset
    )
    stats = response_service.response_stats(db, form.id)
    return ResponseList(
        items=[ResponseRead.model_validate(r) for r in items],
        total=total,
        by_status=stats.by_status,
    )


@router.get("/responses/{response_id}", response_model=ResponseRead)
def get_response(
    response_id: UUID,
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    return _get_owned_response(db, response_id, owner)


@router.patch("/responses/{response_id}", response_model=SubmissionRead)
async def update_response(
    response_id: UUID,
    body: ResponseUpdate,
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
    sync: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    response = _get_owned_response(db, response_id, owner)
    result = await response_service.update_response_answers(
        db, response.form, response, body.answers, sync
    )
    return _submission_read(result)


@router.post("/responses/{response_id}/sync", response_model=SubmissionRead)
async def sync_response(
    response_id: UUID,
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
    sync: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Push one response to Airtable now; a failure is recorded on the response."""
    response = _get_owned_response(db, response_id, owner)
    result = await response_service.resync_response(response, sync)
    return _submission_read(result, SYNCED_MESSAGE, SYNC_FAILED_MESSAGE)


@router.delete("/responses/{response_id}")
async def delete_response(
    response_id: UUID,
    delete_from_airtable: bool = Query(False),
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    response = _get_owned_response(db, response_id, owner)

    client = None
    if delete_from_airtable:
        access_token = get_access_token(owner)
        if access_token:
            client = client_factory(access_token)

    await response_service.soft_delete_response(db, response, client=client)
    return {"success": True, "message": "Response deleted successfully"}
