"""Core utilities and configuration."""

from keyword_intel.core.config import Settings, get_settings
from keyword_intel.core.database import Base, DatabaseManager, transaction
from keyword_intel.core.document_store import (
    DocumentStore,
    InMemoryDocumentStore,
    RedisDocumentStore,
    StoredDocument,
)
from keyword_intel.core.errors import (
    ErrorKind,
    KeywordIntelError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    QuotaExceededError,
    SchemaValidationError,
    StoreError,
    StoreQuotaExceededError,
    ValidationError,
    WorkflowError,
)
from keyword_intel.core.logging import db_logger, get_logger, setup_logging, store_logger
from keyword_intel.core.redis import RedisManager

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "Base",
    "DatabaseManager",
    "transaction",
    # Document store
    "DocumentStore",
    "InMemoryDocumentStore",
    "RedisDocumentStore",
    "StoredDocument",
    # Errors
    "ErrorKind",
    "KeywordIntelError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "QuotaExceededError",
    "SchemaValidationError",
    "StoreError",
    "StoreQuotaExceededError",
    "ValidationError",
    "WorkflowError",
    # Logging
    "db_logger",
    "get_logger",
    "setup_logging",
    "store_logger",
    # Redis
    "RedisManager",
]
