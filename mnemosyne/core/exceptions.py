"""
Exception Hierarchy

Defines all exceptions used by the knowledge core.
Exceptions are organized by domain and include context for debugging.

Design decisions:
- All exceptions inherit from MnemosyneError for easy catching
- Exceptions carry structured context, not just messages
- Error codes enable programmatic handling
"""

from typing import Any


class MnemosyneError(Exception):
    """
    Base exception for all Mnemosyne errors.

    Provides structured error information including:
    - Human-readable message
    - Machine-readable error code
    - Additional context for debugging
    """

    error_code: str = "MNEMOSYNE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.error_code
        self.context = context or {}
        self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "context": self.context,
        }


# ============================================================
# Configuration Errors
# ============================================================

class ConfigurationError(MnemosyneError):
    """Error in configuration or settings."""

    error_code = "CONFIGURATION_ERROR"


# ============================================================
# Knowledge / Retrieval Errors
# ============================================================

class KnowledgeError(MnemosyneError):
    """Base error for ingestion and retrieval issues."""

    error_code = "KNOWLEDGE_ERROR"


class StoreNotInitializedError(KnowledgeError):
    """Operation attempted before the content store was initialized."""

    error_code = "STORE_NOT_INITIALIZED"


class ItemNotFoundError(KnowledgeError):
    """Lookup by id found no matching item."""

    error_code = "ITEM_NOT_FOUND"

    def __init__(self, message: str, *, item_id: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.item_id = item_id


class InvalidItemError(KnowledgeError):
    """Item violates a storage invariant (e.g. wrong vector dimension)."""

    error_code = "INVALID_ITEM"


class EmbeddingUnavailableError(KnowledgeError):
    """A query embedding could not be produced."""

    error_code = "EMBEDDING_UNAVAILABLE"


class EngineFailureError(KnowledgeError):
    """The delegated vector engine raised."""

    error_code = "ENGINE_FAILURE"

    def __init__(self, message: str, *, operation: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.operation = operation


class MetadataParseError(KnowledgeError):
    """Stored metadata could not be decoded."""

    error_code = "METADATA_PARSE_ERROR"


class IngestionError(KnowledgeError):
    """Error while turning extracted content into a stored item."""

    error_code = "INGESTION_ERROR"
