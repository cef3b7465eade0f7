"""Exception types shared by the service layer and routers."""

from __future__ import annotations

from typing import Any


class FormbridgeError(Exception):
    """Base class for application errors."""


class NotFoundError(FormbridgeError):
    """A form, response, or owner does not exist (or is not visible)."""


class FormConfigurationError(FormbridgeError):
    """
    Invalid question set or conditional logic.

    Raised at form save time; the configuration is never stored.
    """

    def __init__(self, message: str, details: list[Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ResponseValidationError(FormbridgeError):
    """Submitted answers failed validation against the form definition."""

    def __init__(self, details: list[dict[str, str]]):
        super().__init__("Validation failed")
        self.details = details


class CredentialUnavailableError(FormbridgeError):
    """The form owner's Airtable credentials are missing or expired."""


class InvalidWebhookPayload(FormbridgeError):
    """Webhook body is missing required keys or has the wrong shape."""


class ExternalApiError(FormbridgeError):
    """
    Airtable API call failed.

    status_code is 0 for transport errors (timeout, connection refused).
    """

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RateLimitedError(ExternalApiError):
    """Airtable answered 429."""


class RecordNotFoundError(ExternalApiError):
    """Airtable answered 404 for a record or table."""
