"""Bounded retry of failed outbound syncs.

A response is retried while `sync_attempts < max_retries`. Once the cap is
reached it stays `failed` and is never selected again; recovering it needs
an explicit edit or resubmission.
"""

import logging
from dataclasses import dataclass

from formbridge.core.structured_logging import build_log_context
from formbridge.services.repositories import (
    FormRepository,
    OwnerRepository,
    ResponseRepository,
)
from formbridge.services.sync_service import SyncOrchestrator, SyncPolicy
from formbridge.services.token_service import get_access_token

logger = logging.getLogger(__name__)


@dataclass
class RetryResult:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


class RetryCoordinator:
    def __init__(
        self,
        sync: SyncOrchestrator,
        forms: FormRepository,
        owners: OwnerRepository,
        responses: ResponseRepository,
        policy: SyncPolicy | None = None,
    ):
        self.sync = sync
        self.forms = forms
        self.owners = owners
        self.responses = responses
        self.policy = policy or sync.policy

    async def retry_failed_syncs(self, limit: int = 100) -> RetryResult:
        candidates = self.responses.find_retryable(self.policy.max_retries, limit)
        logger.info("Retrying %s failed syncs", len(candidates))

        result = RetryResult()
        for index, response in enumerate(candidates):
            if index:
                await self.policy.pause(self.policy.retry_delay)

            log_ctx = build_log_context(form_id=response.form_id, response_id=response.id)
            form = self.forms.find_by_id(response.form_id)
            if form is None:
                logger.warning("Retry skipped: form missing", extra=log_ctx)
                result.skipped += 1
                continue

            if not get_access_token(self.owners.find_by_id(form.owner_id)):
                logger.warning("Retry skipped: owner credentials unavailable", extra=log_ctx)
                result.skipped += 1
                continue

            result.attempted += 1
            try:
                await self.sync.push_response_to_external(response)
                result.succeeded += 1
            except Exception as exc:
                logger.error("Retry failed: %s", exc, extra=log_ctx)
                result.failed += 1

        logger.info(
            "Retry completed: %s succeeded, %s failed, %s skipped",
            result.succeeded,
            result.failed,
            result.skipped,
        )
        return result
