"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
"""

from fastapi import APIRouter, Depends, Query

from formbridge.core.config import settings
from formbridge.core.deps import build_retry_coordinator, get_sync_orchestrator, verify_internal_secret
from formbridge.schemas.responses import RetrySweepRead
from formbridge.services.sync_service import SyncOrchestrator

router = APIRouter(
    prefix="/internal/scheduled",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


@router.post("/retry-syncs", response_model=RetrySweepRead)
async def retry_failed_syncs(
    limit: int | None = Query(None, ge=1, le=1000),
    sync: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Push failed responses that are still under the retry cap."""
    result = await build_retry_coordinator(sync).retry_failed_syncs(
        limit or settings.SYNC_RETRY_LIMIT
    )
    return RetrySweepRead(
        attempted=result.attempted,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
    )
