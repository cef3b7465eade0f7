"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any

from formbridge.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for API, worker, and CLI entry points."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )


def build_log_context(
    *,
    form_id: str | None = None,
    response_id: str | None = None,
    record_id: str | None = None,
    base_id: str | None = None,
    table_id: str | None = None,
    action: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict for `extra=`."""
    context: dict[str, Any] = {}
    if form_id:
        context["form_id"] = str(form_id)
    if response_id:
        context["response_id"] = str(response_id)
    if record_id:
        context["record_id"] = record_id
    if base_id:
        context["base_id"] = base_id
    if table_id:
        context["table_id"] = table_id
    if action:
        context["action"] = action
    return context
