"""
Test Fixtures

Fakes shared across the test suite.
"""

from collections import Counter
from typing import Any

from mnemosyne.knowledge.embeddings import EmbeddingService
from mnemosyne.knowledge.engines import InMemoryEngine, VectorCollection, VectorEngine

DIMENSION = 32


class FixedMemoryProbe:
    """Memory probe reporting a settable utilization."""

    def __init__(self, utilization: float = 0.10):
        self.utilization = utilization
        self.gc_requests = 0

    def current_heap_utilization(self) -> float:
        return self.utilization

    def request_gc(self) -> int:
        self.gc_requests += 1
        return 0


class CountingCollection(VectorCollection):
    """Collection wrapper that counts calls and can be told to fail."""

    def __init__(self, inner: VectorCollection, calls: Counter):
        super().__init__(inner.name)
        self._inner = inner
        self._calls = calls
        self.fail_with: Exception | None = None

    def _enter(self, operation: str) -> None:
        self._calls[operation] += 1
        if self.fail_with is not None:
            raise self.fail_with

    async def insert(self, rows: list[dict[str, Any]]) -> int:
        self._enter("insert")
        return await self._inner.insert(rows)

    async def delete_where(self, filter: dict[str, Any]) -> int:
        self._enter("delete_where")
        return await self._inner.delete_where(filter)

    async def nearest_neighbors(self, vector: list[float], k: int) -> list[dict[str, Any]]:
        self._enter("nearest_neighbors")
        return await self._inner.nearest_neighbors(vector, k)

    async def count(self) -> int:
        return await self._inner.count()


class CountingEngine(VectorEngine):
    """In-memory engine that records every collection call."""

    def __init__(self):
        self._inner = InMemoryEngine(persist=False)
        self.calls: Counter = Counter()
        self.collection: CountingCollection | None = None

    async def connect(self, path: str) -> None:
        self.calls["connect"] += 1
        await self._inner.connect(path)

    async def list_collections(self) -> list[str]:
        return await self._inner.list_collections()

    async def create_collection(self, name: str, seed_rows: list[dict[str, Any]]) -> VectorCollection:
        self.calls["create_collection"] += 1
        inner = await self._inner.create_collection(name, seed_rows)
        self.collection = CountingCollection(inner, self.calls)
        return self.collection

    async def open_collection(self, name: str) -> VectorCollection:
        self.calls["open_collection"] += 1
        inner = await self._inner.open_collection(name)
        self.collection = CountingCollection(inner, self.calls)
        return self.collection


class StubStore:
    """Content store returning canned vector search rows."""

    def __init__(self, rows: list[dict[str, Any]] | None = None):
        self.rows = rows or []
        self.requested_limits: list[int] = []

    async def initialize(self) -> None:
        pass

    async def vector_search(self, query_vector: list[float], limit: int = 5) -> list[dict[str, Any]]:
        self.requested_limits.append(limit)
        return [dict(row) for row in self.rows[:limit]]


class ExplodingEmbeddings(EmbeddingService):
    """Provider whose every call fails."""

    def __init__(self, dimension: int = DIMENSION):
        super().__init__(dimension)
        self.attempts = 0

    async def _generate(self, text: str) -> list[float]:
        self.attempts += 1
        raise RuntimeError("model unavailable")


class RecordingEmbeddings(EmbeddingService):
    """Provider that records each batch call and rejects batches holding "poison"."""

    def __init__(self, dimension: int = DIMENSION, batch_size: int = 20):
        super().__init__(dimension, batch_size)
        self.batch_calls: list[list[str]] = []

    async def _generate(self, text: str) -> list[float]:
        return [float(len(text))]

    async def _generate_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        if "poison" in texts:
            raise RuntimeError("batch rejected")
        return [await self._generate(text) for text in texts]


class ShortEmbeddings(EmbeddingService):
    """Provider returning vectors shorter than the configured dimension."""

    async def _generate(self, text: str) -> list[float]:
        return [1.0, 2.0, 3.0]


def make_row(
    item_id: str,
    score: float,
    *,
    passages: list[str] | None = None,
    extracted_text: str = "",
    source_type: str = "other",
    metadata: Any = "{}",
    title: str = "",
) -> dict[str, Any]:
    """A vector search row as returned by the content store."""
    return {
        "id": item_id,
        "source_type": source_type,
        "source_identifier": f"source-{item_id}",
        "title": title or f"Item {item_id}",
        "original_path": "",
        "extracted_text": extracted_text,
        "passages": passages if passages is not None else [],
        "metadata": metadata,
        "score": score,
    }
