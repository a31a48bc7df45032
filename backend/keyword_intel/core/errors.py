"""Error taxonomy shared by stores, providers, engines and the workflow.

Every error carries a structured ErrorKind set where the error is raised.
Callers branch on ``error.kind`` (e.g. skip caching on QUOTA_EXCEEDED);
nothing downstream inspects message text.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Structured classification of pipeline errors."""

    VALIDATION = "validation"
    PROVIDER = "provider"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    QUOTA_EXCEEDED = "quota_exceeded"
    STORE = "store"
    SCHEMA_VALIDATION = "schema_validation"
    WORKFLOW = "workflow"


class KeywordIntelError(Exception):
    """Base exception for the keyword intelligence pipeline."""

    kind: ErrorKind = ErrorKind.PROVIDER

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    @property
    def is_quota_exceeded(self) -> bool:
        return self.kind is ErrorKind.QUOTA_EXCEEDED


class ValidationError(KeywordIntelError):
    """Raised when caller input is invalid. Never retried."""

    kind = ErrorKind.VALIDATION

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(f"Validation error for {field}: {message}")
        self.field = field
        self.value = value
        self.message = message


class ProviderError(KeywordIntelError):
    """Non-2xx or malformed response from an external provider."""

    kind = ErrorKind.PROVIDER

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        request_id: str | None = None,
        kind: ErrorKind | None = None,
    ) -> None:
        super().__init__(message, kind=kind)
        self.status_code = status_code
        self.response_body = response_body
        self.request_id = request_id


class ProviderTimeoutError(ProviderError):
    """Raised when a provider request times out."""

    kind = ErrorKind.TIMEOUT


class ProviderRateLimitError(ProviderError):
    """Raised when rate limited (429) after retries are exhausted."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        response_body: str | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            status_code=429,
            response_body=response_body,
            request_id=request_id,
        )
        self.retry_after = retry_after


class ProviderAuthError(ProviderError):
    """Raised when provider authentication fails (401/403)."""

    kind = ErrorKind.AUTH


class QuotaExceededError(ProviderError):
    """Raised when a provider reports its quota is exhausted."""

    kind = ErrorKind.QUOTA_EXCEEDED


class StoreError(KeywordIntelError):
    """Raised when the document store cannot complete an operation."""

    kind = ErrorKind.STORE

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class StoreQuotaExceededError(StoreError):
    """Raised when the document store refuses writes for lack of space."""

    kind = ErrorKind.QUOTA_EXCEEDED


class SchemaValidationError(KeywordIntelError):
    """Raised when a cached document does not match its schema."""

    kind = ErrorKind.SCHEMA_VALIDATION

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class WorkflowError(KeywordIntelError):
    """AI clustering or persistence failure inside the clustering workflow."""

    kind = ErrorKind.WORKFLOW
