"""Response service: submission, edits, soft delete, and listing.

A submission is always saved locally first (with a `local_` placeholder
record id), then pushed to Airtable. A failed push leaves the response
saved as `failed` for the retry sweep.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from formbridge.core.errors import ExternalApiError, NotFoundError, ResponseValidationError
from formbridge.core.structured_logging import build_log_context
from formbridge.db.enums import LOCAL_RECORD_PREFIX, ResponseStatus
from formbridge.db.models import Form, FormResponse
from formbridge.services import conditional_logic
from formbridge.services.answer_validation import is_blank, sanitize_answer, validate_answer

if TYPE_CHECKING:
    from formbridge.services.airtable_client import AirtableClient
    from formbridge.services.sync_service import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    response: FormResponse
    synced: bool
    error: str | None = None


@dataclass
class ResponseStats:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    last_response_at: datetime | None = None


def new_local_record_id() -> str:
    return f"{LOCAL_RECORD_PREFIX}{uuid.uuid4().hex}"


# =============================================================================
# Answer processing
# =============================================================================


def prepare_answers(form: Form, answers: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Validate submitted answers and build the stored answer list.

    Every key must belong to the form. Required checks apply to visible
    questions only; answers to hidden questions are dropped.

    Raises:
        ResponseValidationError: with one {question_key, error} per problem
    """
    questions = form.questions or []
    visible_keys = {q["key"] for q in conditional_logic.visible_questions(questions, answers)}
    errors: list[dict[str, str]] = []
    reported: set[str] = set()

    for question in questions:
        key = question["key"]
        if key in visible_keys and question.get("required") and is_blank(answers.get(key)):
            errors.append({"question_key": key, "error": "This field is required"})
            reported.add(key)

    now = datetime.now(timezone.utc).isoformat()
    processed: list[dict[str, Any]] = []
    for key, value in answers.items():
        question = form.get_question(key)
        if question is None:
            errors.append({"question_key": key, "error": "Question not found in form"})
            continue
        if key in reported or is_blank(value):
            continue

        check = validate_answer(question, value)
        if not check.is_valid:
            errors.append({"question_key": key, "error": check.error})
            continue

        if key not in visible_keys:
            continue
        processed.append(
            {"question_key": key, "value": sanitize_answer(question, value), "submitted_at": now}
        )

    if errors:
        raise ResponseValidationError(errors)

    order = {q["key"]: q.get("order", 0) for q in questions}
    processed.sort(key=lambda a: order.get(a["question_key"], 0))
    return processed


async def _push(sync: SyncOrchestrator, response: FormResponse) -> SubmissionResult:
    try:
        await sync.push_response_to_external(response)
    except Exception as exc:
        logger.warning(
            "Response saved locally but Airtable sync failed: %s",
            exc,
            extra=build_log_context(form_id=response.form_id, response_id=response.id),
        )
        return SubmissionResult(response=response, synced=False, error=str(exc))
    return SubmissionResult(response=response, synced=True)


# =============================================================================
# Mutations
# =============================================================================


async def submit_response(
    db: Session,
    form: Form,
    answers: dict[str, Any],
    sync: SyncOrchestrator,
    *,
    submitted_by: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
) -> SubmissionResult:
    """Save a new response, then write it to Airtable."""
    if not form.is_published:
        raise NotFoundError("Form not found or not published")

    processed = prepare_answers(form, answers)
    response = FormResponse(
        form_id=form.id,
        owner_id=form.owner_id,
        external_record_id=new_local_record_id(),
        status=ResponseStatus.SUBMITTED.value,
        answers=processed,
        submitted_by=submitted_by,
        extra_metadata=metadata or {},
    )
    db.add(response)
    db.commit()
    db.refresh(response)

    return await _push(sync, response)


async def update_response_answers(
    db: Session,
    form: Form,
    response: FormResponse,
    answers: dict[str, Any],
    sync: SyncOrchestrator,
) -> SubmissionResult:
    """Replace a response's answers and push the change to Airtable."""
    if response.is_deleted:
        raise NotFoundError("Response not found or deleted")

    response.answers = prepare_answers(form, answers)
    db.commit()
    db.refresh(response)

    return await _push(sync, response)


async def resync_response(response: FormResponse, sync: SyncOrchestrator) -> SubmissionResult:
    """Push a response to Airtable on demand (create or update)."""
    if response.is_deleted:
        raise NotFoundError("Response not found or deleted")

    return await _push(sync, response)


async def soft_delete_response(
    db: Session,
    response: FormResponse,
    client: AirtableClient | None = None,
) -> FormResponse:
    """
    Mark a response deleted (kept for audit).

    With a client, the Airtable record is deleted too; a failure there is
    logged and does not undo the local delete.
    """
    response.status = ResponseStatus.DELETED.value
    response.last_synced_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(response)

    if client is not None and response.has_external_record:
        form = response.form
        try:
            await client.delete_record(
                form.airtable_base_id, form.airtable_table_id, response.external_record_id
            )
        except ExternalApiError as exc:
            logger.warning(
                "Failed to delete record from Airtable: %s",
                exc,
                extra=build_log_context(response_id=response.id, record_id=response.external_record_id),
            )

    return response


# =============================================================================
# Queries
# =============================================================================


def get_response(db: Session, response_id: uuid.UUID) -> FormResponse | None:
    return db.query(FormResponse).filter(FormResponse.id == response_id).first()


def list_responses(
    db: Session,
    form_id: uuid.UUID,
    status: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[FormResponse], int]:
    """Newest first; returns (page, total matching)."""
    query = db.query(FormResponse).filter(FormResponse.form_id == form_id)
    if status:
        query = query.filter(FormResponse.status == status)
    total = query.count()
    items = query.order_by(FormResponse.created_at.desc()).offset(offset).limit(limit).all()
    return items, total


def response_stats(db: Session, form_id: uuid.UUID) -> ResponseStats:
    rows = (
        db.query(FormResponse.status, func.count(FormResponse.id), func.max(FormResponse.created_at))
        .filter(FormResponse.form_id == form_id)
        .group_by(FormResponse.status)
        .all()
    )
    stats = ResponseStats()
    for status, count, last_created in rows:
        stats.by_status[status] = count
        stats.total += count
        if last_created and (stats.last_response_at is None or last_created > stats.last_response_at):
            stats.last_response_at = last_created
    return stats
