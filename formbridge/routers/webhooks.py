"""Webhooks router - Airtable change notifications and manual resync."""

import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from formbridge.core.config import settings
from formbridge.core.deps import get_current_owner, get_db, get_sync_orchestrator
from formbridge.core.rate_limit import limiter, webhook_limit
from formbridge.core.security import verify_webhook_signature
from formbridge.db.models import Owner
from formbridge.schemas.responses import FullSyncRead
from formbridge.services import form_service
from formbridge.services.sync_service import SyncOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


@router.post("/airtable")
@limiter.limit(webhook_limit)
async def receive_airtable_webhook(
    request: Request,
    sync: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """
    Receive an Airtable record-change webhook.

    Security:
    - Validates payload size
    - Validates X-Webhook-Signature (hex HMAC-SHA256 of the raw body)

    Once the signature checks out the answer is always 200, with
    success=false when processing failed, so Airtable does not redeliver
    a payload that can never succeed.
    """
    # 1. Check payload size
    content_length = request.headers.get("content-length", "0")
    try:
        if int(content_length) > settings.WEBHOOK_MAX_PAYLOAD_BYTES:
            raise HTTPException(413, "Payload too large")
    except ValueError:
        pass

    # 2. Get raw body for signature verification
    body = await request.body()
    if len(body) > settings.WEBHOOK_MAX_PAYLOAD_BYTES:
        raise HTTPException(413, "Payload too large")

    # 3. Validate signature
    signature = request.headers.get(SIGNATURE_HEADER)
    if not verify_webhook_signature(body, signature, settings.AIRTABLE_WEBHOOK_SECRET):
        logger.warning("Airtable webhook invalid or missing signature")
        raise HTTPException(401, "Invalid signature")

    # 4. Parse payload
    try:
        data = json.loads(body)
    except ValueError:
        logger.warning("Airtable webhook body is not valid JSON")
        return {"success": False, "error": "Invalid JSON"}

    # 5. Process
    try:
        result = await sync.process_webhook(data)
    except Exception as exc:
        logger.exception("Airtable webhook processing failed")
        return {"success": False, "error": str(exc)}

    return {
        "success": True,
        "action": result.action,
        "synced": result.synced,
        "skipped": result.skipped,
        "failed": result.failed,
        "deleted": result.deleted,
    }


@router.post("/forms/{form_id}/sync", response_model=FullSyncRead)
async def resync_form(
    form_id: UUID,
    owner: Owner = Depends(get_current_owner),
    db: Session = Depends(get_db),
    sync: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Pull every record of the form's table into local responses."""
    form = form_service.get_form(db, form_id, owner_id=owner.id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")

    result = await sync.sync_all_records_for_form(form.id)
    return FullSyncRead(synced_count=result.synced_count, error_count=result.error_count)


@router.get("/health")
def webhook_health():
    return {"status": "ok", "service": "webhooks"}
