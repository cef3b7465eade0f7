"""Form builder endpoints (owner-scoped) and the public form view."""

from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from formbridge.core.deps import get_current_owner, get_db, get_owner_client
from formbridge.db.models import Form, Owner
from formbridge.schemas.forms import FormCreate, FormRead, FormStats, FormUpdate, PublicFormRead
from formbridge.services import form_service
from formbridge.services.airtable_client import AirtableClient

router = APIRouter(prefix="/forms", tags=["forms"])
public_router = APIRouter(prefix="/public/forms", tags=["public"])


def _get_owned_form(db: Session, form_id: UUID, owner: Owner) -> Form:
    form = form_service.get_form(db, form_id, owner_id=owner.id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


@router.get("", response_model=list[FormRead])
def list_forms(
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    return form_service.list_forms(db, owner.id)


@router.post("", response_model=FormRead, status_code=201)
async def create_form(
    body: FormCreate,
    owner: Owner = Depends(get_current_owner),
    client: AirtableClient = Depends(get_owner_client),
    db: Session = Depends(get_db),
):
    return await form_service.create_form(db, owner, body, client)


@router.get("/{form_id}", response_model=FormRead)
def get_form(
    form_id: UUID,
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    return _get_owned_form(db, form_id, owner)


@router.patch("/{form_id}", response_model=FormRead)
async def update_form(
    form_id: UUID,
    body: FormUpdate,
    owner: Owner = Depends(get_current_owner),
    client: AirtableClient = Depends(get_owner_client),
    db: Session = Depends(get_db),
):
    form = _get_owned_form(db, form_id, owner)
    return await form_service.update_form(db, form, body, client)


@router.delete("/{form_id}")
def retire_form(
    form_id: UUID,
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    form = _get_owned_form(db, form_id, owner)
    form_service.retire_form(db, form)
    return {"success": True, "message": "Form deleted successfully"}


@router.post("/{form_id}/publish", response_model=FormRead)
def publish_form(
    form_id: UUID,
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    form = _get_owned_form(db, form_id, owner)
    return form_service.publish_form(db, form)


@router.post("/{form_id}/unpublish", response_model=FormRead)
def unpublish_form(
    form_id: UUID,
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    form = _get_owned_form(db, form_id, owner)
    return form_service.unpublish_form(db, form)


@router.post("/{form_id}/duplicate", response_model=FormRead, status_code=201)
def duplicate_form(
    form_id: UUID,
    title: str | None = Body(None, embed=True),
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    form = _get_owned_form(db, form_id, owner)
    return form_service.duplicate_form(db, form, title=title)


@router.get("/{form_id}/stats", response_model=FormStats)
def form_stats(
    form_id: UUID,
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    form = _get_owned_form(db, form_id, owner)
    return form_service.form_stats(db, form)


@public_router.get("/{form_id}", response_model=PublicFormRead)
def get_public_form(form_id: UUID, db: Session = Depends(get_db)):
    form = form_service.get_public_form(db, form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found or not published")
    return form_service.public_form_view(form)
