"""Pydantic schemas for API request/response models."""

from formbridge.schemas.forms import (
    ConditionalRule,
    FormCreate,
    FormRead,
    FormSettings,
    FormStats,
    FormUpdate,
    PublicFormRead,
    Question,
    QuestionOption,
    RuleCheckResult,
    RuleCondition,
    ValidationRules,
)
from formbridge.schemas.responses import (
    Answer,
    FullSyncRead,
    ResponseList,
    ResponseRead,
    ResponseSubmit,
    ResponseUpdate,
    RetrySweepRead,
    SubmissionRead,
)

__all__ = [
    "Answer",
    "ConditionalRule",
    "FormCreate",
    "FormRead",
    "FormSettings",
    "FormStats",
    "FormUpdate",
    "FullSyncRead",
    "PublicFormRead",
    "Question",
    "QuestionOption",
    "ResponseList",
    "ResponseRead",
    "ResponseSubmit",
    "ResponseUpdate",
    "RetrySweepRead",
    "RuleCheckResult",
    "RuleCondition",
    "SubmissionRead",
    "ValidationRules",
]
