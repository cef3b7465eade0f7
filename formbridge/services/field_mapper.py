"""Airtable field <-> form question mapping.

Covers:
- Airtable field type -> internal question type
- Normalizing table fields from the metadata API
- Record fields -> answers (inbound sync)
- Answers -> record fields (outbound push)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from formbridge.db.enums import QuestionType

AIRTABLE_TYPE_MAP: dict[str, str] = {
    "singleLineText": QuestionType.SHORT_TEXT.value,
    "email": QuestionType.SHORT_TEXT.value,
    "url": QuestionType.SHORT_TEXT.value,
    "multilineText": QuestionType.LONG_TEXT.value,
    "richText": QuestionType.LONG_TEXT.value,
    "singleSelect": QuestionType.SINGLE_SELECT.value,
    "multipleSelects": QuestionType.MULTI_SELECT.value,
    "multipleAttachments": QuestionType.ATTACHMENT.value,
}

SUPPORTED_QUESTION_TYPES = tuple(t.value for t in QuestionType)


@dataclass(frozen=True)
class FieldOption:
    value: str
    label: str
    color: str | None = None


@dataclass
class TableField:
    """A column of an Airtable table, as seen by the form builder."""

    id: str
    name: str
    airtable_type: str
    type: str | None
    description: str = ""
    options: list[FieldOption] = field(default_factory=list)
    validation: dict[str, Any] | None = None

    @property
    def is_supported(self) -> bool:
        return self.type is not None


def map_field_type(airtable_type: str | None) -> str | None:
    """Internal question type for an Airtable field type, None if unsupported."""
    if not airtable_type:
        return None
    return AIRTABLE_TYPE_MAP.get(airtable_type)


def is_supported(airtable_type: str | None) -> bool:
    return map_field_type(airtable_type) is not None


def map_field(airtable_field: Mapping[str, Any]) -> TableField:
    """Normalize one field from GET /meta/bases/{base}/tables."""
    airtable_type = airtable_field.get("type", "")
    raw_options = airtable_field.get("options") or {}

    options = [
        FieldOption(
            value=choice.get("id", ""),
            label=choice.get("name", ""),
            color=choice.get("color"),
        )
        for choice in raw_options.get("choices") or []
    ]

    validation = None
    if raw_options:
        validation = {
            "min_length": raw_options.get("minLength"),
            "max_length": raw_options.get("maxLength"),
            "pattern": raw_options.get("pattern"),
        }

    return TableField(
        id=airtable_field.get("id", ""),
        name=airtable_field.get("name", ""),
        description=airtable_field.get("description") or "",
        airtable_type=airtable_type,
        type=map_field_type(airtable_type),
        options=options,
        validation=validation,
    )


def supported_fields(fields: Iterable[TableField]) -> list[TableField]:
    return [f for f in fields if f.is_supported]


def record_to_answers(
    questions: Iterable[Mapping[str, Any]],
    record_fields: Mapping[str, Any],
    submitted_at: datetime,
) -> list[dict[str, Any]]:
    """
    Build the answer list for a record pulled from Airtable.

    Only questions whose field is present in the record produce an answer;
    absent fields are omitted rather than defaulted.
    """
    answers = []
    for question in questions:
        field_id = question.get("external_field_id")
        if field_id and field_id in record_fields:
            answers.append(
                {
                    "question_key": question["key"],
                    "value": record_fields[field_id],
                    "submitted_at": submitted_at.isoformat(),
                }
            )
    return answers


def answers_to_fields(
    questions: Iterable[Mapping[str, Any]],
    answers: Iterable[Mapping[str, Any]],
) -> dict[str, Any]:
    """Airtable `fields` payload for a response's answers."""
    field_ids = {q["key"]: q.get("external_field_id") for q in questions}
    fields: dict[str, Any] = {}
    for answer in answers:
        field_id = field_ids.get(answer.get("question_key"))
        if field_id:
            fields[field_id] = answer.get("value")
    return fields
