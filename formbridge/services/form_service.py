"""Form service: question-set validation, lifecycle, and stats."""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from formbridge.core.errors import FormConfigurationError, NotFoundError
from formbridge.db.enums import SELECT_QUESTION_TYPES
from formbridge.db.models import Form, Owner
from formbridge.schemas.forms import FormCreate, FormStats, FormUpdate, Question, RuleCheckResult
from formbridge.services import conditional_logic, response_service
from formbridge.services.airtable_client import AirtableClient, AirtableTable
from formbridge.services.field_mapper import SUPPORTED_QUESTION_TYPES, TableField

logger = logging.getLogger(__name__)

PUBLIC_QUESTION_KEYS = (
    "key",
    "label",
    "type",
    "required",
    "placeholder",
    "help_text",
    "options",
    "validation_rules",
    "conditional_rule",
    "order",
)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Validation
# =============================================================================


def validate_questions(questions: list[Question], table_fields: list[TableField]) -> list[str]:
    """Check a question set against the columns of its Airtable table."""
    errors: list[str] = []
    used_keys: set[str] = set()
    used_field_ids: set[str] = set()
    fields_by_id = {f.id: f for f in table_fields}

    for index, question in enumerate(questions):
        if question.key in used_keys:
            errors.append(f'Question {index}: duplicate key "{question.key}"')
        used_keys.add(question.key)

        if question.external_field_id in used_field_ids:
            errors.append(
                f'Question {index}: duplicate external_field_id "{question.external_field_id}"'
            )
        used_field_ids.add(question.external_field_id)

        if not question.label.strip():
            errors.append(f"Question {index}: label is required")

        if question.type not in SUPPORTED_QUESTION_TYPES:
            errors.append(
                f"Question {index}: type must be one of: {', '.join(SUPPORTED_QUESTION_TYPES)}"
            )

        table_field = fields_by_id.get(question.external_field_id)
        if table_field is None:
            errors.append(
                f'Question {index}: Airtable field "{question.external_field_id}" not found'
            )
        elif table_field.type is None:
            errors.append(
                f'Question {index}: Airtable field type "{table_field.airtable_type}" is not supported'
            )
        elif table_field.type != question.type:
            errors.append(
                f'Question {index}: type "{question.type}" doesn\'t match '
                f'Airtable field type "{table_field.airtable_type}"'
            )

        if question.type in SELECT_QUESTION_TYPES:
            if not question.options:
                errors.append(f"Question {index}: options cannot be empty for select fields")
            for opt_index, option in enumerate(question.options):
                if not option.value:
                    errors.append(f"Question {index}, option {opt_index}: value is required")
                if not option.label:
                    errors.append(f"Question {index}, option {opt_index}: label is required")

        rules = question.validation_rules
        if rules:
            if rules.min_length is not None and rules.min_length < 0:
                errors.append(f"Question {index}: validation_rules.min_length must be >= 0")
            if (
                rules.min_length is not None
                and rules.max_length is not None
                and rules.min_length > rules.max_length
            ):
                errors.append(
                    f"Question {index}: validation_rules.min_length exceeds max_length"
                )
            if rules.pattern is not None:
                try:
                    re.compile(rules.pattern)
                except re.error:
                    errors.append(f"Question {index}: validation_rules.pattern is not a valid regex")

    return errors


def check_question_rules(questions: list[Any]) -> RuleCheckResult:
    """
    Validate every conditional rule and the rule graph as a whole.

    A rule may only reference the other questions of the form.
    """
    question_dicts = [
        q.model_dump(mode="json") if isinstance(q, Question) else dict(q) for q in questions
    ]
    keys = [q["key"] for q in question_dicts]
    errors: list[dict[str, Any]] = []

    for index, question in enumerate(question_dicts):
        rule = question.get("conditional_rule")
        if rule is None:
            continue
        others = [k for k in keys if k != question["key"]]
        result = conditional_logic.validate_rules(rule, others)
        if not result.valid:
            errors.append(
                {"question_index": index, "question_key": question["key"], "errors": result.errors}
            )

    cycles = conditional_logic.detect_cycles(question_dicts)
    dependents = {}
    for key in keys:
        controlled = conditional_logic.dependents_of(key, question_dicts)
        if controlled:
            dependents[key] = controlled
    return RuleCheckResult(
        valid=not errors and not cycles.has_cycles,
        errors=errors,
        cycles=cycles.cycles,
        dependents=dependents,
    )


def validate_question_rules(questions: list[Any]) -> None:
    """Raise FormConfigurationError for invalid rules or a cyclic rule graph."""
    check = check_question_rules(questions)
    if check.errors:
        raise FormConfigurationError("Invalid conditional logic", details=check.errors)
    if check.cycles:
        raise FormConfigurationError(
            "Circular dependency detected in conditional logic",
            details=[{"cycle": cycle} for cycle in check.cycles],
        )


async def _resolve_table(client: AirtableClient, base_id: str, table_id: str) -> AirtableTable:
    table = await client.get_table(base_id, table_id)
    if table is None:
        raise NotFoundError("Table not found in Airtable")
    return table


def _prepare_questions(questions: list[Question], table: AirtableTable) -> list[dict[str, Any]]:
    errors = validate_questions(questions, table.fields)
    if errors:
        raise FormConfigurationError("Invalid questions configuration", details=errors)
    validate_question_rules(questions)
    return [q.model_dump(mode="json") | {"order": index} for index, q in enumerate(questions)]


# =============================================================================
# CRUD
# =============================================================================


def get_form(db: Session, form_id: uuid.UUID, owner_id: uuid.UUID | None = None) -> Form | None:
    """Active form by id, optionally scoped to its owner."""
    query = db.query(Form).filter(Form.id == form_id, Form.is_active.is_(True))
    if owner_id:
        query = query.filter(Form.owner_id == owner_id)
    return query.first()


def list_forms(db: Session, owner_id: uuid.UUID) -> list[Form]:
    return (
        db.query(Form)
        .filter(Form.owner_id == owner_id, Form.is_active.is_(True))
        .order_by(Form.updated_at.desc())
        .all()
    )


async def create_form(db: Session, owner: Owner, payload: FormCreate, client: AirtableClient) -> Form:
    """Validate against the live table and store a published form."""
    table = await _resolve_table(client, payload.airtable_base_id, payload.airtable_table_id)
    questions = _prepare_questions(payload.questions, table)

    form = Form(
        owner_id=owner.id,
        title=payload.title,
        description=payload.description,
        airtable_base_id=payload.airtable_base_id,
        airtable_table_id=payload.airtable_table_id,
        airtable_table_name=table.name,
        questions=questions,
        settings=payload.settings.model_dump() if payload.settings else {},
        published_at=_now_utc(),
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    logger.info("Form created: form_id=%s questions=%s", form.id, len(questions))
    return form


async def update_form(db: Session, form: Form, payload: FormUpdate, client: AirtableClient) -> Form:
    """Apply a partial update; a new question set is revalidated in full."""
    if payload.questions is not None:
        table = await _resolve_table(client, form.airtable_base_id, form.airtable_table_id)
        form.questions = _prepare_questions(payload.questions, table)
        form.airtable_table_name = table.name
    if payload.title is not None:
        form.title = payload.title
    if payload.description is not None:
        form.description = payload.description
    if payload.settings is not None:
        form.settings = payload.settings.model_dump()

    form.version += 1
    db.commit()
    db.refresh(form)
    return form


def publish_form(db: Session, form: Form) -> Form:
    form.published_at = _now_utc()
    db.commit()
    db.refresh(form)
    return form


def unpublish_form(db: Session, form: Form) -> Form:
    form.published_at = None
    db.commit()
    db.refresh(form)
    return form


def retire_form(db: Session, form: Form) -> Form:
    """Soft delete: responses are kept, submission is disabled."""
    form.is_active = False
    form.published_at = None
    db.commit()
    db.refresh(form)
    return form


def duplicate_form(db: Session, form: Form, title: str | None = None) -> Form:
    """Unpublished copy at version 1."""
    copy = Form(
        owner_id=form.owner_id,
        title=title or f"{form.title} (Copy)",
        description=form.description,
        airtable_base_id=form.airtable_base_id,
        airtable_table_id=form.airtable_table_id,
        airtable_table_name=form.airtable_table_name,
        questions=[dict(q) for q in form.questions or []],
        settings=dict(form.settings or {}),
        version=1,
    )
    db.add(copy)
    db.commit()
    db.refresh(copy)
    return copy


# =============================================================================
# Public view
# =============================================================================


def get_public_form(db: Session, form_id: uuid.UUID) -> Form | None:
    """Active and published form, or None."""
    return (
        db.query(Form)
        .filter(
            Form.id == form_id,
            Form.is_active.is_(True),
            Form.published_at.is_not(None),
        )
        .first()
    )


def public_form_view(form: Form) -> dict[str, Any]:
    """Form definition without Airtable identifiers."""
    questions = sorted(form.questions or [], key=lambda q: q.get("order", 0))
    return {
        "id": form.id,
        "title": form.title,
        "description": form.description,
        "questions": [{k: q.get(k) for k in PUBLIC_QUESTION_KEYS} for q in questions],
        "settings": form.settings or {},
    }


def form_stats(db: Session, form: Form) -> FormStats:
    stats = response_service.response_stats(db, form.id)
    return FormStats(
        total_responses=stats.total,
        by_status=stats.by_status,
        last_response_at=stats.last_response_at,
        question_count=len(form.questions or []),
        version=form.version,
        published=form.is_published,
    )
