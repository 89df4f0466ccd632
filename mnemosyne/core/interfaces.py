"""
Core Interfaces and Protocols

Defines the contracts between components to prevent circular dependencies.
All cross-component interactions should use these interfaces.

Design decisions:
- Protocol-based for structural subtyping
- Minimal interface surface
- No implementation details leak through
"""

from typing import Any, Protocol, runtime_checkable

from mnemosyne.core.types import Item, ItemSummary, ItemView


# =============================================================================
# EMBEDDING PROTOCOL
# =============================================================================

@runtime_checkable
class EmbeddingProtocol(Protocol):
    """
    Interface for embedding generators.

    Implemented by: HashEmbeddings, OpenAIEmbeddings, LocalEmbeddings
    Used by: ContentIngester, KnowledgeBase
    """

    @property
    def dimension(self) -> int:
        """Length of every produced vector."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts, preserving order and length."""
        ...


# =============================================================================
# CONTENT STORE PROTOCOL
# =============================================================================

@runtime_checkable
class ContentStoreProtocol(Protocol):
    """
    Interface for item storage and nearest-neighbor retrieval.

    Implemented by: ContentStore, CachedContentStore
    Used by: SemanticSearch, KnowledgeBase
    """

    async def initialize(self) -> None:
        """Open or create the backing collection."""
        ...

    async def add_item(self, item: Item) -> Item:
        """Persist an item."""
        ...

    async def delete_item(self, item_id: str) -> bool:
        """Remove an item; False when nothing matched."""
        ...

    async def list_items(self) -> list[ItemSummary]:
        """Project every stored item."""
        ...

    async def vector_search(
        self,
        query_vector: list[float],
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        """Nearest rows to the query, each annotated with a score."""
        ...

    async def get_item_by_id(
        self,
        item_id: str,
        *,
        include_content: bool = False,
        include_vector: bool = False,
    ) -> ItemView:
        """Look up a single item."""
        ...


# =============================================================================
# MEMORY PROBE PROTOCOL
# =============================================================================

@runtime_checkable
class MemoryProbeProtocol(Protocol):
    """
    Interface for runtime memory inspection.

    Implemented by: PsutilMemoryProbe
    Used by: QueryCache
    """

    def current_heap_utilization(self) -> float:
        """Memory utilization as a ratio in [0, 1]."""
        ...
