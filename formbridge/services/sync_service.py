"""Airtable <-> local response synchronization.

Handles:
- Webhook dispatch (created/updated records are reconciled, deleted are soft-deleted)
- Single-record reconciliation (inbound)
- Full table resync with token-chained pages
- Outbound push of a local response (create or update)

Inbound failures are recorded on the response and contained here.
Outbound failures are recorded and re-raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, TypeVar
from uuid import UUID

from formbridge.core.config import settings
from formbridge.core.errors import (
    CredentialUnavailableError,
    InvalidWebhookPayload,
    NotFoundError,
    RecordNotFoundError,
)
from formbridge.core.structured_logging import build_log_context
from formbridge.db.enums import ResponseStatus, WebhookAction
from formbridge.db.models import Form, FormResponse, Owner
from formbridge.services.airtable_client import ClientFactory
from formbridge.services.field_mapper import answers_to_fields, record_to_answers
from formbridge.services.repositories import (
    FormRepository,
    OwnerRepository,
    ResponseRepository,
)
from formbridge.services.token_service import get_access_token

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Scheduling policy
# =============================================================================


@dataclass(frozen=True)
class SyncPolicy:
    """Batch size, pacing delays (seconds), and retry cap for sync work."""

    batch_size: int = 10
    batch_delay: float = 0.1
    page_delay: float = 0.2
    retry_delay: float = 0.05
    max_retries: int = 3
    page_size: int | None = None
    sleep: Sleep = asyncio.sleep

    @classmethod
    def from_settings(cls) -> "SyncPolicy":
        return cls(
            batch_size=max(settings.SYNC_BATCH_SIZE, 1),
            batch_delay=settings.SYNC_BATCH_DELAY_MS / 1000,
            page_delay=settings.SYNC_PAGE_DELAY_MS / 1000,
            retry_delay=settings.SYNC_RETRY_DELAY_MS / 1000,
            max_retries=settings.SYNC_MAX_RETRIES,
        )

    @classmethod
    def immediate(cls, **overrides: Any) -> "SyncPolicy":
        """Zero-delay policy (tests, CLI one-shots)."""
        values: dict[str, Any] = {"batch_delay": 0.0, "page_delay": 0.0, "retry_delay": 0.0}
        values.update(overrides)
        return cls(**values)

    async def pause(self, seconds: float) -> None:
        if seconds > 0:
            await self.sleep(seconds)


class BatchScheduler:
    """
    Runs an async callable over items in consecutive fixed-size batches.

    At most `batch_size` calls are in flight. An exception from one item is
    returned in its slot and never cancels the rest of the batch.
    """

    def __init__(self, policy: SyncPolicy):
        self.policy = policy

    async def run(
        self,
        items: Iterable[T],
        worker: Callable[[T], Awaitable[R]],
    ) -> list[R | BaseException]:
        pending = list(items)
        size = max(self.policy.batch_size, 1)
        results: list[R | BaseException] = []

        for start in range(0, len(pending), size):
            if start:
                await self.policy.pause(self.policy.batch_delay)
            batch = pending[start : start + size]
            results.extend(
                await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True)
            )

        return results


class KeyedLocks:
    """One asyncio.Lock per key; idle locks are dropped."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# =============================================================================
# Results
# =============================================================================


class RecordSyncOutcome(str, Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class WebhookResult:
    action: str | None
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    deleted: int = 0


@dataclass
class FullSyncResult:
    synced_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    pages: int = 0


@dataclass
class _RecordIds:
    table_id: str | None
    record_ids: list[str] = field(default_factory=list)


# =============================================================================
# Orchestrator
# =============================================================================


class SyncOrchestrator:
    def __init__(
        self,
        forms: FormRepository,
        responses: ResponseRepository,
        owners: OwnerRepository,
        client_factory: ClientFactory,
        *,
        policy: SyncPolicy | None = None,
        scheduler: BatchScheduler | None = None,
        record_locks: KeyedLocks | None = None,
    ):
        self.forms = forms
        self.responses = responses
        self.owners = owners
        self.client_factory = client_factory
        self.policy = policy or SyncPolicy.from_settings()
        self.scheduler = scheduler or BatchScheduler(self.policy)
        self.record_locks = record_locks or KeyedLocks()

    def _access_token_for(self, form: Form) -> str | None:
        owner: Owner | None = self.owners.find_by_id(form.owner_id)
        return get_access_token(owner)

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    async def process_webhook(self, event: Mapping[str, Any]) -> WebhookResult:
        """
        Apply one Airtable change notification.

        Raises:
            InvalidWebhookPayload: base/webhook missing or recordIds not a list
        """
        base = event.get("base") if isinstance(event, Mapping) else None
        webhook = event.get("webhook") if isinstance(event, Mapping) else None
        if not isinstance(base, Mapping) or not base.get("id") or not isinstance(webhook, Mapping):
            raise InvalidWebhookPayload("Invalid webhook payload")

        base_id = base["id"]
        action = webhook.get("action")
        result = WebhookResult(action=action)
        logger.info(
            "Processing Airtable webhook",
            extra=build_log_context(base_id=base_id, table_id=webhook.get("tableId"), action=action),
        )

        if action in (WebhookAction.CREATED_RECORDS.value, WebhookAction.UPDATED_RECORDS.value):
            payload = _parse_record_ids(webhook, require_table=True)
            await self._handle_upserted(base_id, payload, result)
        elif action == WebhookAction.DELETED_RECORDS.value:
            payload = _parse_record_ids(webhook, require_table=False)
            self._handle_deleted(payload, result)
        else:
            logger.warning("Unhandled webhook action: %s", action)

        return result

    async def _handle_upserted(self, base_id: str, payload: _RecordIds, result: WebhookResult) -> None:
        form = self.forms.find_active_by_table(base_id, payload.table_id)
        if form is None:
            logger.warning(
                "No active form for table",
                extra=build_log_context(base_id=base_id, table_id=payload.table_id),
            )
            return

        outcomes = await self.scheduler.run(
            payload.record_ids,
            lambda record_id: self.sync_single_record(base_id, payload.table_id, record_id),
        )
        for outcome in outcomes:
            if outcome is RecordSyncOutcome.SYNCED:
                result.synced += 1
            elif outcome is RecordSyncOutcome.SKIPPED:
                result.skipped += 1
            else:
                if isinstance(outcome, BaseException):
                    logger.error("Record sync task raised", exc_info=outcome)
                result.failed += 1

    def _handle_deleted(self, payload: _RecordIds, result: WebhookResult) -> None:
        now = _now_utc()
        for record_id in payload.record_ids:
            try:
                response = self.responses.mark_deleted(record_id, now)
            except Exception:
                logger.exception(
                    "Failed to mark record deleted", extra=build_log_context(record_id=record_id)
                )
                continue
            if response is not None:
                result.deleted += 1
                logger.info(
                    "Marked response deleted",
                    extra=build_log_context(response_id=response.id, record_id=record_id),
                )

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def sync_single_record(self, base_id: str, table_id: str, record_id: str) -> RecordSyncOutcome:
        """
        Pull one Airtable record into its local response.

        Never raises: missing credentials skip, any other failure marks the
        response failed (when one exists) and returns FAILED.
        """
        log_ctx = build_log_context(base_id=base_id, table_id=table_id, record_id=record_id)

        async with self.record_locks.hold(record_id):
            form = self.forms.find_active_by_table(base_id, table_id)
            if form is None:
                logger.warning("No active form for record sync", extra=log_ctx)
                return RecordSyncOutcome.SKIPPED

            access_token = self._access_token_for(form)
            if not access_token:
                logger.warning("Owner credentials unavailable, skipping record sync", extra=log_ctx)
                return RecordSyncOutcome.SKIPPED

            form_id, owner_id, questions = form.id, form.owner_id, list(form.questions or [])

            try:
                existing = self.responses.find_by_external_id(record_id)
                if existing is not None and existing.is_deleted:
                    # deleted is terminal; later record changes do not revive it
                    logger.info("Response deleted locally, skipping record sync", extra=log_ctx)
                    return RecordSyncOutcome.SKIPPED

                client = self.client_factory(access_token)
                record = await client.get_record(base_id, table_id, record_id)
                if not record:
                    raise RecordNotFoundError("Resource not found in Airtable.", status_code=404)

                # No awaits past this point: the session is shared by the batch.
                now = _now_utc()
                answers = record_to_answers(questions, record.get("fields") or {}, now)
                response = self.responses.find_by_external_id(record_id)
                if response is not None:
                    response.answers = answers
                    response.record_sync_result(True)
                    self.responses.save(response)
                else:
                    response = FormResponse(
                        form_id=form_id,
                        owner_id=owner_id,
                        external_record_id=record_id,
                        status=ResponseStatus.SYNCED.value,
                        answers=answers,
                        last_synced_at=now,
                        sync_attempts=1,
                    )
                    self.responses.add(response)
            except Exception as exc:
                logger.error("Failed to sync record: %s", exc, extra=log_ctx)
                self._record_inbound_failure(record_id, str(exc))
                return RecordSyncOutcome.FAILED

        logger.info("Synced record", extra=log_ctx)
        return RecordSyncOutcome.SYNCED

    def _record_inbound_failure(self, record_id: str, error: str) -> None:
        try:
            response = self.responses.find_by_external_id(record_id)
            if response is not None:
                response.record_sync_result(False, error)
                self.responses.save(response)
        except Exception:
            logger.exception(
                "Failed to record sync error", extra=build_log_context(record_id=record_id)
            )

    async def sync_all_records_for_form(self, form_id: UUID) -> FullSyncResult:
        """
        Full resync of a form's table, one page at a time.

        A page fetch failure counts one error and ends the run.

        Raises:
            NotFoundError: form does not exist
            CredentialUnavailableError: owner token missing or expired
        """
        form = self.forms.find_by_id(form_id)
        if form is None:
            raise NotFoundError("Form not found")

        access_token = self._access_token_for(form)
        if not access_token:
            raise CredentialUnavailableError("Owner token expired or missing")

        base_id, table_id = form.airtable_base_id, form.airtable_table_id
        log_ctx = build_log_context(form_id=form.id, base_id=base_id, table_id=table_id)
        logger.info("Starting full sync", extra=log_ctx)

        client = self.client_factory(access_token)
        result = FullSyncResult()
        page_token: str | None = None

        while True:
            try:
                page = await client.list_records(
                    base_id, table_id, page_token=page_token, page_size=self.policy.page_size
                )
            except Exception as exc:
                logger.error("Full sync page fetch failed: %s", exc, extra=log_ctx)
                result.error_count += 1
                break

            result.pages += 1
            for record in page.records:
                outcome = await self.sync_single_record(base_id, table_id, record["id"])
                if outcome is RecordSyncOutcome.SYNCED:
                    result.synced_count += 1
                elif outcome is RecordSyncOutcome.SKIPPED:
                    result.skipped_count += 1
                else:
                    result.error_count += 1

            page_token = page.next_page_token
            if not page_token:
                break
            await self.policy.pause(self.policy.page_delay)

        logger.info(
            "Full sync completed: %s synced, %s errors",
            result.synced_count,
            result.error_count,
            extra=log_ctx,
        )
        return result

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def push_response_to_external(self, response: FormResponse) -> dict[str, Any]:
        """
        Write a local response to Airtable.

        Creates a record while the response only has a local placeholder id
        (adopting the returned id), otherwise updates the record in place.
        Failures are recorded on the response and re-raised.
        """
        if response.is_deleted:
            raise NotFoundError("Response not found or deleted")

        form = self.forms.find_by_id(response.form_id)
        if form is None:
            raise NotFoundError("Form not found")

        log_ctx = build_log_context(
            form_id=form.id, response_id=response.id, record_id=response.external_record_id
        )

        async with self.record_locks.hold(response.external_record_id):
            try:
                access_token = self._access_token_for(form)
                if not access_token:
                    raise CredentialUnavailableError("Owner token expired or not found")

                fields = answers_to_fields(form.questions or [], response.answers or [])
                client = self.client_factory(access_token)
                if response.has_external_record:
                    record = await client.update_record(
                        form.airtable_base_id,
                        form.airtable_table_id,
                        response.external_record_id,
                        fields,
                    )
                else:
                    record = await client.create_record(
                        form.airtable_base_id, form.airtable_table_id, fields
                    )
                    response.external_record_id = record["id"]

                response.record_sync_result(True)
                self.responses.save(response)
            except Exception as exc:
                logger.error("Failed to push response to Airtable: %s", exc, extra=log_ctx)
                self._record_outbound_failure(response, str(exc))
                raise

        logger.info("Pushed response to Airtable", extra=log_ctx)
        return record

    def _record_outbound_failure(self, response: FormResponse, error: str) -> None:
        try:
            response.record_sync_result(False, error)
            self.responses.save(response)
        except Exception:
            logger.exception(
                "Failed to record push error", extra=build_log_context(response_id=response.id)
            )


def _parse_record_ids(webhook: Mapping[str, Any], *, require_table: bool) -> _RecordIds:
    table_id = webhook.get("tableId")
    record_ids = webhook.get("recordIds")
    if require_table and not table_id:
        raise InvalidWebhookPayload("Invalid records payload: tableId is required")
    if not isinstance(record_ids, list):
        raise InvalidWebhookPayload("Invalid records payload: recordIds must be a list")
    if not all(isinstance(r, str) and r for r in record_ids):
        raise InvalidWebhookPayload("Invalid records payload: recordIds must be strings")
    return _RecordIds(table_id=table_id, record_ids=record_ids)
