"""Enum definitions for application constants."""

from enum import Enum


class QuestionType(str, Enum):
    """Internal question types supported by the form builder."""

    SHORT_TEXT = "shortText"
    LONG_TEXT = "longText"
    SINGLE_SELECT = "singleSelect"
    MULTI_SELECT = "multiSelect"
    ATTACHMENT = "attachment"


SELECT_QUESTION_TYPES = (QuestionType.SINGLE_SELECT.value, QuestionType.MULTI_SELECT.value)


class RuleLogic(str, Enum):
    """How a conditional rule combines its conditions."""

    AND = "AND"
    OR = "OR"


class ConditionOperator(str, Enum):
    """Operators for conditional visibility rules."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"


class ResponseStatus(str, Enum):
    """
    Lifecycle of a form response.

    pending   - awaiting first sync attempt
    submitted - created by an end user, not yet reconciled
    synced    - confirmed to match the Airtable record
    failed    - last Airtable read/write errored
    deleted   - soft-deleted (terminal, kept for audit)
    """

    PENDING = "pending"
    SUBMITTED = "submitted"
    SYNCED = "synced"
    FAILED = "failed"
    DELETED = "deleted"


class WebhookAction(str, Enum):
    """Airtable webhook actions handled by the sync engine."""

    CREATED_RECORDS = "createdRecords"
    UPDATED_RECORDS = "updatedRecords"
    DELETED_RECORDS = "deletedRecords"


DEFAULT_RESPONSE_STATUS = ResponseStatus.SUBMITTED.value
LOCAL_RECORD_PREFIX = "local_"
