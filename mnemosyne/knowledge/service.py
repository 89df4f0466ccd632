"""
Knowledge Base

Caller-facing facade over ingestion, storage and semantic search.
"""

from mnemosyne.config.settings import SearchSettings
from mnemosyne.core.exceptions import (
    EmbeddingUnavailableError,
    KnowledgeError,
    StoreNotInitializedError,
)
from mnemosyne.core.interfaces import ContentStoreProtocol, EmbeddingProtocol
from mnemosyne.core.types import Item, ItemSummary, ItemView, SearchOptions, SearchResult
from mnemosyne.knowledge.ingestion import ContentIngester, ExtractedContent
from mnemosyne.knowledge.search import SemanticSearch
from mnemosyne.observability.logging import get_logger
from mnemosyne.observability.metrics import MetricsCollector, get_metrics_collector

logger = get_logger("mnemosyne.knowledge")


class KnowledgeBase:
    """
    Ingest content and retrieve it semantically.

    Usage:
        kb = create_knowledge_base()
        await kb.initialize()
        item = await kb.ingest(ExtractedContent(title="Notes", extracted_text=text))
        results = await kb.search("what did the notes say?")
    """

    def __init__(
        self,
        store: ContentStoreProtocol,
        embeddings: EmbeddingProtocol,
        ingester: ContentIngester,
        search: SemanticSearch,
        settings: SearchSettings | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._embeddings = embeddings
        self._ingester = ingester
        self._search = search
        self._settings = settings or SearchSettings()
        self._metrics = metrics or get_metrics_collector()

    @property
    def store(self) -> ContentStoreProtocol:
        return self._store

    async def initialize(self) -> None:
        """Open or create the backing collection."""
        await self._store.initialize()

    async def ingest(self, content: Item | ExtractedContent) -> Item:
        """
        Store an item, building it first when given extracted content.

        Returns:
            The stored item
        """
        if isinstance(content, ExtractedContent):
            item = await self._ingester.build_item(content)
        else:
            item = content

        return await self._store.add_item(item)

    async def ingest_batch(self, contents: list[Item | ExtractedContent]) -> list[Item]:
        """
        Ingest several items, skipping the ones that fail.

        Returns:
            The items that were stored, in input order
        """
        stored = []

        for content in contents:
            try:
                stored.append(await self.ingest(content))
            except StoreNotInitializedError:
                raise
            except KnowledgeError as e:
                self._metrics.counter("ingestion_failures_total").inc()
                logger.error(
                    "Failed to ingest item",
                    error=e,
                    source_identifier=getattr(content, "source_identifier", None),
                    code=e.code,
                )

        logger.info("Batch ingestion finished", requested=len(contents), stored=len(stored))
        return stored

    async def remove(self, item_id: str) -> bool:
        """Delete an item. Returns False when it did not exist."""
        return await self._store.delete_item(item_id)

    async def list_all(self) -> list[ItemSummary]:
        return await self._store.list_items()

    async def get_by_id(
        self,
        item_id: str,
        *,
        include_content: bool = False,
        include_vector: bool = False,
    ) -> ItemView:
        return await self._store.get_item_by_id(
            item_id,
            include_content=include_content,
            include_vector=include_vector,
        )

    async def _embed_query(self, text: str) -> list[float]:
        vector = await self._embeddings.embed(text)
        if not vector or not any(vector):
            raise EmbeddingUnavailableError(
                "No usable embedding for query",
                context={"query": text[:50]},
            )
        return vector

    async def search(
        self,
        query_text: str,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """
        Semantic search over stored items.

        An unavailable query embedding yields no results.
        """
        try:
            vector = await self._embed_query(query_text)
        except EmbeddingUnavailableError as e:
            logger.warning("Query embedding unavailable, returning no results", error=e.message)
            return []

        return await self._search.semantic_search(query_text, vector, options)

    async def recommend(
        self,
        item_id: str | None = None,
        query: str | None = None,
        limit: int = 3,
    ) -> list[SearchResult]:
        """
        Items related to a stored item or to a query.

        Uses a stricter relevance threshold than search and omits
        content. The source item is never recommended.

        Raises:
            ValueError: If neither item_id nor query is given
            ItemNotFoundError: If item_id does not exist
        """
        if not item_id and not query:
            raise ValueError("Either item_id or query is required")

        limit = max(1, min(limit, self._settings.max_limit))

        if item_id:
            view = await self.get_by_id(item_id, include_vector=True)
            vector = view.vector
            if not vector or not any(vector):
                logger.warning("Item has no usable vector, nothing to recommend", item_id=item_id)
                return []
        else:
            try:
                vector = await self._embed_query(query)
            except EmbeddingUnavailableError as e:
                logger.warning("Query embedding unavailable, returning no results", error=e.message)
                return []

        options = SearchOptions(
            # One extra slot for the source item itself
            limit=limit + 1 if item_id else limit,
            min_relevance_score=self._settings.recommend_min_relevance_score,
            include_content=False,
            include_summary=True,
            deduplicate=True,
        )

        results = await self._search.semantic_search(query or "", vector, options)
        return [r for r in results if r.item_id != item_id][:limit]
