"""
Content Store

Persist items in a vector engine and retrieve them by id or similarity.

Design decisions:
- The store owns its engine and collection handles (no module globals)
- New collections are seeded with one zero-vector placeholder row,
  which is never returned to callers
- Listing and id lookup scan with a zero query vector, capped at
  `scan_limit` rows; engines offer no cheaper full scan
- Every engine exception surfaces as EngineFailureError
"""

import json
from pathlib import Path
from typing import Any, Awaitable, TypeVar

from mnemosyne.core.exceptions import (
    EngineFailureError,
    InvalidItemError,
    ItemNotFoundError,
    MetadataParseError,
    MnemosyneError,
    StoreNotInitializedError,
)
from mnemosyne.core.types import Item, ItemSummary, ItemView, SourceType
from mnemosyne.knowledge.engines import SCORE_FIELD, VECTOR_FIELD, VectorCollection, VectorEngine
from mnemosyne.observability.logging import get_logger
from mnemosyne.observability.metrics import MetricsCollector, get_metrics_collector

logger = get_logger("mnemosyne.store")

T = TypeVar("T")

PLACEHOLDER_ID = "__placeholder__"


def parse_metadata(raw: Any) -> dict[str, Any]:
    """
    Decode stored metadata into a dict.

    Raises:
        MetadataParseError: If the blob is not a JSON object
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw

    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MetadataParseError(f"Invalid metadata JSON: {e}", cause=e)

    if not isinstance(value, dict):
        raise MetadataParseError(
            "Metadata must decode to an object",
            context={"decoded_type": type(value).__name__},
        )
    return value


def metadata_or_empty(raw: Any, item_id: str | None = None) -> dict[str, Any]:
    """Decode metadata, logging and substituting {} when it is malformed."""
    try:
        return parse_metadata(raw)
    except MetadataParseError as e:
        logger.warning("Unreadable item metadata, using empty metadata", item_id=item_id, error=e.message)
        return {}


def row_content(row: dict[str, Any]) -> str:
    """Passages joined by blank lines, else the extracted text."""
    passages = row.get("passages") or []
    if passages:
        return "\n\n".join(passages)
    return row.get("extracted_text") or ""


class ContentStore:
    """
    Item storage over a pluggable vector engine.

    Usage:
        store = ContentStore(InMemoryEngine(), "./data/vector_db", dimension=384)
        await store.initialize()
        await store.add_item(item)
        rows = await store.vector_search(query_vector, limit=5)
    """

    def __init__(
        self,
        engine: VectorEngine,
        path: str,
        collection_name: str = "knowledge_items",
        dimension: int = 384,
        scan_limit: int = 1000,
        metrics: MetricsCollector | None = None,
    ):
        self._engine = engine
        self._path = Path(path)
        self._collection_name = collection_name
        self._dimension = dimension
        self._scan_limit = scan_limit
        self._metrics = metrics or get_metrics_collector()

        self._collection: VectorCollection | None = None

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_initialized(self) -> bool:
        return self._collection is not None

    def _placeholder_row(self) -> dict[str, Any]:
        return {
            "id": PLACEHOLDER_ID,
            "source_type": SourceType.OTHER.value,
            "source_identifier": "",
            "title": "",
            "original_path": "",
            "extracted_text": "",
            "passages": [],
            VECTOR_FIELD: [0.0] * self._dimension,
            "metadata": "{}",
        }

    def _require_collection(self) -> VectorCollection:
        if self._collection is None:
            raise StoreNotInitializedError(
                "Content store is not initialized",
                context={"collection": self._collection_name},
            )
        return self._collection

    async def _call(self, operation: str, call: Awaitable[T]) -> T:
        """Await an engine call, translating its failures."""
        try:
            return await call
        except MnemosyneError:
            raise
        except Exception as e:
            self._metrics.counter("engine_errors_total").inc(operation=operation)
            logger.error(
                "Vector engine operation failed",
                error=e,
                operation=operation,
                collection=self._collection_name,
            )
            raise EngineFailureError(
                str(e),
                operation=operation,
                context={"collection": self._collection_name},
                cause=e,
            )

    async def initialize(self) -> None:
        """Open the collection, creating it with a placeholder row if missing."""
        if self._collection is not None:
            return

        self._path.mkdir(parents=True, exist_ok=True)

        await self._call("connect", self._engine.connect(str(self._path)))
        existing = await self._call("list_collections", self._engine.list_collections())

        if self._collection_name in existing:
            self._collection = await self._call(
                "open_collection",
                self._engine.open_collection(self._collection_name),
            )
            logger.info("Opened collection", collection=self._collection_name)
        else:
            self._collection = await self._call(
                "create_collection",
                self._engine.create_collection(self._collection_name, [self._placeholder_row()]),
            )
            logger.info("Created collection", collection=self._collection_name, dimension=self._dimension)

    async def add_item(self, item: Item) -> Item:
        """Persist an item and return it."""
        collection = self._require_collection()

        if item.id == PLACEHOLDER_ID:
            raise InvalidItemError("Item id is reserved", context={"item_id": item.id})
        if len(item.primary_vector) != self._dimension:
            raise InvalidItemError(
                f"Expected vector dimension {self._dimension}, got {len(item.primary_vector)}",
                context={"item_id": item.id},
            )

        await self._call("add_item", collection.insert([item.to_row()]))

        self._metrics.counter("items_ingested_total").inc(source_type=item.source_type.value)
        logger.info(
            "Item stored",
            item_id=item.id,
            source_type=item.source_type.value,
            passages=len(item.passages),
        )
        return item

    async def delete_item(self, item_id: str) -> bool:
        """Delete an item by id. Returns False when nothing matched."""
        collection = self._require_collection()

        if item_id == PLACEHOLDER_ID:
            return False

        deleted = await self._call("delete_item", collection.delete_where({"id": item_id}))

        logger.info("Item deleted", item_id=item_id, deleted=deleted)
        return deleted > 0

    async def _scan(self, operation: str) -> list[dict[str, Any]]:
        """Every stored row (up to scan_limit), placeholder excluded."""
        collection = self._require_collection()

        rows = await self._call(
            operation,
            collection.nearest_neighbors([0.0] * self._dimension, self._scan_limit),
        )

        if len(rows) >= self._scan_limit:
            logger.warning(
                "Scan reached its row cap; results may be incomplete",
                operation=operation,
                scan_limit=self._scan_limit,
            )

        return [row for row in rows if row.get("id") != PLACEHOLDER_ID]

    async def list_items(self) -> list[ItemSummary]:
        """Summaries of stored items, capped at scan_limit."""
        rows = await self._scan("list_items")
        return [
            ItemSummary(
                id=row["id"],
                title=row.get("title") or "",
                source_type=row.get("source_type") or SourceType.OTHER.value,
            )
            for row in rows
        ]

    async def vector_search(
        self,
        query_vector: list[float],
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        """
        Nearest items to the query vector.

        Returns rows (without their vectors) ordered by descending
        `score`, at most `limit` of them.
        """
        collection = self._require_collection()

        if limit <= 0:
            return []

        # One extra in case the placeholder is among the neighbors
        rows = await self._call("vector_search", collection.nearest_neighbors(query_vector, limit + 1))

        results = []
        for row in rows:
            if row.get("id") == PLACEHOLDER_ID:
                continue
            result = {k: v for k, v in row.items() if k not in (VECTOR_FIELD, SCORE_FIELD)}
            result["score"] = row.get(SCORE_FIELD, 0.0)
            results.append(result)

        return results[:limit]

    async def get_item_by_id(
        self,
        item_id: str,
        *,
        include_content: bool = False,
        include_vector: bool = False,
    ) -> ItemView:
        """
        Look up one item by exact id.

        Raises:
            ItemNotFoundError: If no stored item has that id
        """
        rows = await self._scan("get_item_by_id")
        row = next((r for r in rows if r.get("id") == item_id), None)

        if row is None:
            raise ItemNotFoundError(f"Item not found: {item_id}", item_id=item_id)

        vector = row.get(VECTOR_FIELD)

        return ItemView(
            id=row["id"],
            source_type=row.get("source_type") or SourceType.OTHER.value,
            source_identifier=row.get("source_identifier") or "",
            title=row.get("title") or "",
            original_path=row.get("original_path") or "",
            extracted_text=row.get("extracted_text") or "",
            passages=list(row.get("passages") or []),
            metadata=metadata_or_empty(row.get("metadata"), item_id),
            content=row_content(row) if include_content else None,
            vector=[float(v) for v in vector] if include_vector and vector is not None else None,
        )
