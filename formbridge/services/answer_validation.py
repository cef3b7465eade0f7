"""Per-question answer checks and normalization."""

import re
from dataclasses import dataclass
from typing import Any, Mapping

from formbridge.db.enums import QuestionType


@dataclass(frozen=True)
class AnswerCheck:
    is_valid: bool
    error: str | None = None


def is_blank(value: Any) -> bool:
    return value is None or value == ""


def _option_values(question: Mapping[str, Any]) -> set[str]:
    return {opt.get("value") for opt in question.get("options") or []}


def validate_answer(question: Mapping[str, Any], value: Any) -> AnswerCheck:
    """Check one answer against its question's type, options, and rules."""
    if is_blank(value):
        if question.get("required"):
            return AnswerCheck(False, "This field is required")
        return AnswerCheck(True)

    question_type = question.get("type")

    if question_type in (QuestionType.SHORT_TEXT.value, QuestionType.LONG_TEXT.value):
        if not isinstance(value, str):
            return AnswerCheck(False, "Must be text")
        rules = question.get("validation_rules") or {}
        min_length = rules.get("min_length")
        max_length = rules.get("max_length")
        if min_length and len(value) < min_length:
            return AnswerCheck(False, f"Minimum {min_length} characters required")
        if max_length and len(value) > max_length:
            return AnswerCheck(False, f"Maximum {max_length} characters allowed")
        pattern = rules.get("pattern")
        if pattern and not re.search(pattern, value):
            return AnswerCheck(False, "Invalid format")
        return AnswerCheck(True)

    if question_type == QuestionType.SINGLE_SELECT.value:
        if not isinstance(value, str):
            return AnswerCheck(False, "Must be a single selection")
        if value not in _option_values(question):
            return AnswerCheck(False, "Invalid selection")
        return AnswerCheck(True)

    if question_type == QuestionType.MULTI_SELECT.value:
        if not isinstance(value, list):
            return AnswerCheck(False, "Must be an array of selections")
        if question.get("required") and not value:
            return AnswerCheck(False, "This field is required")
        allowed = _option_values(question)
        if any(item not in allowed for item in value):
            return AnswerCheck(False, "Contains invalid selections")
        return AnswerCheck(True)

    if question_type == QuestionType.ATTACHMENT.value:
        if not isinstance(value, list):
            return AnswerCheck(False, "Must be an array of file information")
        if question.get("required") and not value:
            return AnswerCheck(False, "This field is required")
        for item in value:
            if not isinstance(item, Mapping) or not item.get("url") or not item.get("filename"):
                return AnswerCheck(False, "Each file must have url and filename")
        return AnswerCheck(True)

    return AnswerCheck(False, f"Unsupported question type: {question_type}")


def sanitize_answer(question: Mapping[str, Any], value: Any) -> Any:
    """Normalize a validated answer for storage and Airtable writes."""
    if value is None:
        return ""

    question_type = question.get("type")
    if question_type in (QuestionType.SHORT_TEXT.value, QuestionType.LONG_TEXT.value):
        return str(value).strip()
    if question_type == QuestionType.SINGLE_SELECT.value:
        return str(value)
    if question_type == QuestionType.MULTI_SELECT.value:
        if isinstance(value, list):
            return [str(item) for item in value]
        return [str(value)]
    if question_type == QuestionType.ATTACHMENT.value:
        if not isinstance(value, list):
            return []
        return [
            {
                "filename": str(item.get("filename") or ""),
                "url": str(item.get("url") or ""),
                "size": _to_int(item.get("size")),
                "type": str(item.get("type") or ""),
            }
            for item in value
        ]
    return value


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
