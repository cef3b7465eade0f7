"""Schemas for form responses and sync results."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Answer(BaseModel):
    question_key: str
    value: Any = None
    submitted_at: datetime | None = None


class ResponseSubmit(BaseModel):
    answers: dict[str, Any]
    metadata: dict[str, Any] | None = None


class ResponseUpdate(BaseModel):
    answers: dict[str, Any]


class ResponseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    form_id: UUID
    external_record_id: str
    status: str
    answers: list[Answer]
    last_synced_at: datetime | None = None
    sync_attempts: int = 0
    sync_error: str | None = None
    created_at: datetime
    updated_at: datetime


class SubmissionRead(BaseModel):
    response: ResponseRead
    synced: bool
    message: str
    sync_error: str | None = None


class ResponseList(BaseModel):
    items: list[ResponseRead]
    total: int
    by_status: dict[str, int] = Field(default_factory=dict)


class FullSyncRead(BaseModel):
    success: bool = True
    synced_count: int
    error_count: int


class RetrySweepRead(BaseModel):
    attempted: int
    succeeded: int
    failed: int
    skipped: int
