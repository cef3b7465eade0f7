"""Schemas for forms, questions, and conditional rules."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class QuestionOption(BaseModel):
    value: str
    label: str


class ValidationRules(BaseModel):
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None


# Operator and logic stay plain strings here; the rule engine validates them
# so that authors get every problem reported at once.
class RuleCondition(BaseModel):
    question_key: str | None = None
    operator: str | None = None
    value: Any = None


class ConditionalRule(BaseModel):
    logic: str = "AND"
    conditions: list[RuleCondition] = Field(default_factory=list)


class Question(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str = Field(..., min_length=1, max_length=100)
    external_field_id: str = Field(..., min_length=1, max_length=64)
    label: str = Field(..., min_length=1, max_length=200)
    type: str
    required: bool = False
    placeholder: str | None = None
    help_text: str | None = None
    options: list[QuestionOption] = Field(default_factory=list)
    validation_rules: ValidationRules | None = None
    conditional_rule: ConditionalRule | None = None
    order: int = Field(0, ge=0)


class FormSettings(BaseModel):
    submit_text: str = "Submit"
    success_message: str = "Thank you for your submission!"
    allow_multiple_submissions: bool = False
    enable_progress_bar: bool = True


class FormCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=500)
    airtable_base_id: str = Field(..., min_length=1)
    airtable_table_id: str = Field(..., min_length=1)
    questions: list[Question]
    settings: FormSettings | None = None


class FormUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=500)
    questions: list[Question] | None = None
    settings: FormSettings | None = None


class FormRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    title: str
    description: str | None = None
    airtable_base_id: str
    airtable_table_id: str
    airtable_table_name: str
    questions: list[Question]
    settings: dict[str, Any] = Field(default_factory=dict)
    is_active: bool
    published_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class PublicFormRead(BaseModel):
    """Form definition exposed to respondents (no Airtable identifiers)."""

    id: UUID
    title: str
    description: str | None = None
    questions: list[dict[str, Any]]
    settings: dict[str, Any] = Field(default_factory=dict)


class FormStats(BaseModel):
    total_responses: int
    by_status: dict[str, int]
    last_response_at: datetime | None = None
    question_count: int
    version: int
    published: bool


class RuleCheckResult(BaseModel):
    valid: bool
    errors: list[dict[str, Any]] = Field(default_factory=list)
    cycles: list[list[str]] = Field(default_factory=list)
    # question key -> keys of the questions whose visibility it controls
    dependents: dict[str, list[str]] = Field(default_factory=dict)
