"""
Core Module

Contains fundamental types, exceptions and interfaces used across
all other modules.

The interfaces module defines protocols for cross-module communication,
preventing circular dependencies.
"""

from mnemosyne.core.types import (
    Item,
    ItemSummary,
    ItemView,
    SearchOptions,
    SearchResult,
    SourceType,
)
from mnemosyne.core.exceptions import (
    ConfigurationError,
    EmbeddingUnavailableError,
    EngineFailureError,
    IngestionError,
    InvalidItemError,
    ItemNotFoundError,
    KnowledgeError,
    MetadataParseError,
    MnemosyneError,
    StoreNotInitializedError,
)
from mnemosyne.core.interfaces import (
    ContentStoreProtocol,
    EmbeddingProtocol,
    MemoryProbeProtocol,
)

__all__ = [
    # Types
    "Item",
    "ItemSummary",
    "ItemView",
    "SearchOptions",
    "SearchResult",
    "SourceType",
    # Exceptions
    "ConfigurationError",
    "EmbeddingUnavailableError",
    "EngineFailureError",
    "IngestionError",
    "InvalidItemError",
    "ItemNotFoundError",
    "KnowledgeError",
    "MetadataParseError",
    "MnemosyneError",
    "StoreNotInitializedError",
    # Interfaces
    "ContentStoreProtocol",
    "EmbeddingProtocol",
    "MemoryProbeProtocol",
]
