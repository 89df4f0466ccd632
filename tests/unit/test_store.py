"""
Unit Tests - Content Store

Tests for item persistence and retrieval over a vector engine.
"""

import pytest

from mnemosyne.core.exceptions import (
    EngineFailureError,
    InvalidItemError,
    ItemNotFoundError,
    MetadataParseError,
    StoreNotInitializedError,
)
from mnemosyne.core.types import Item, SourceType
from mnemosyne.knowledge.engines import InMemoryEngine
from mnemosyne.knowledge.store import PLACEHOLDER_ID, ContentStore, parse_metadata
from mnemosyne.observability.logging import LogLevel
from tests.fixtures import DIMENSION, CountingEngine


def unit_vector(index: int) -> list[float]:
    vector = [0.0] * DIMENSION
    vector[index] = 1.0
    return vector


def make_item(item_id: str, index: int = 0, **kwargs) -> Item:
    return Item(
        id=item_id,
        title=kwargs.pop("title", f"Item {item_id}"),
        extracted_text=kwargs.pop("extracted_text", f"Text of {item_id}."),
        passages=kwargs.pop("passages", [f"Text of {item_id}."]),
        primary_vector=unit_vector(index),
        **kwargs,
    )


class TestInitialization:
    """Tests for store lifecycle."""

    @pytest.mark.asyncio
    async def test_operations_require_initialize(self, metrics, tmp_path):
        """Every operation fails before initialize."""
        store = ContentStore(CountingEngine(), str(tmp_path), dimension=DIMENSION, metrics=metrics)

        with pytest.raises(StoreNotInitializedError):
            await store.add_item(make_item("a"))
        with pytest.raises(StoreNotInitializedError):
            await store.list_items()
        with pytest.raises(StoreNotInitializedError):
            await store.vector_search(unit_vector(0))

    @pytest.mark.asyncio
    async def test_creates_collection_with_placeholder(self, engine, store):
        """A new collection is seeded with one hidden row."""
        assert engine.calls["create_collection"] == 1
        assert await engine.collection.count() == 1
        assert await store.list_items() == []

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, engine, store):
        await store.initialize()
        assert engine.calls["connect"] == 1

    @pytest.mark.asyncio
    async def test_reopens_existing_collection(self, metrics, tmp_path):
        """A persisted collection is opened, not recreated."""
        path = str(tmp_path / "db")

        first = ContentStore(InMemoryEngine(persist=True), path, dimension=DIMENSION, metrics=metrics)
        await first.initialize()
        await first.add_item(make_item("kept"))

        second = ContentStore(InMemoryEngine(persist=True), path, dimension=DIMENSION, metrics=metrics)
        await second.initialize()

        assert [s.id for s in await second.list_items()] == ["kept"]


class TestAddAndList:
    """Tests for writes and listing."""

    @pytest.mark.asyncio
    async def test_add_then_list(self, store, metrics):
        await store.add_item(make_item("a", 0, source_type=SourceType.PDF))
        await store.add_item(make_item("b", 1))

        summaries = await store.list_items()

        assert [(s.id, s.source_type) for s in summaries] == [("a", "pdf"), ("b", "other")]
        assert metrics.counter("items_ingested_total").get(source_type="pdf") == 1

    @pytest.mark.asyncio
    async def test_rejects_wrong_dimension(self, store):
        item = Item(id="bad", primary_vector=[1.0, 0.0])
        with pytest.raises(InvalidItemError):
            await store.add_item(item)

    @pytest.mark.asyncio
    async def test_rejects_reserved_id(self, store):
        with pytest.raises(InvalidItemError):
            await store.add_item(make_item(PLACEHOLDER_ID))

    @pytest.mark.asyncio
    async def test_list_capped_by_scan_limit(self, metrics, tmp_path, log_buffer):
        """Listing is a bounded scan."""
        store = ContentStore(
            CountingEngine(), str(tmp_path), dimension=DIMENSION, scan_limit=3, metrics=metrics
        )
        await store.initialize()
        for i in range(5):
            await store.add_item(make_item(f"item-{i}", i))

        summaries = await store.list_items()

        assert len(summaries) <= 3
        assert any("row cap" in m for m in log_buffer.messages(LogLevel.WARNING))


class TestDelete:
    """Tests for deletion."""

    @pytest.mark.asyncio
    async def test_delete_existing(self, store):
        await store.add_item(make_item("a"))

        assert await store.delete_item("a") is True
        assert await store.list_items() == []

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, store):
        assert await store.delete_item("missing") is False

    @pytest.mark.asyncio
    async def test_placeholder_cannot_be_deleted(self, engine, store):
        assert await store.delete_item(PLACEHOLDER_ID) is False
        assert await engine.collection.count() == 1


class TestVectorSearch:
    """Tests for nearest-neighbor retrieval."""

    @pytest.mark.asyncio
    async def test_orders_by_score(self, store):
        await store.add_item(make_item("x", 0))
        await store.add_item(make_item("y", 1))

        rows = await store.vector_search(unit_vector(1), limit=2)

        assert [r["id"] for r in rows] == ["y", "x"]
        assert rows[0]["score"] == pytest.approx(1.0)
        assert rows[1]["score"] == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_excludes_placeholder_and_vectors(self, store):
        await store.add_item(make_item("x", 0))

        rows = await store.vector_search(unit_vector(0), limit=5)

        assert [r["id"] for r in rows] == ["x"]
        assert "vector" not in rows[0]
        assert "_score" not in rows[0]

    @pytest.mark.asyncio
    async def test_respects_limit(self, store):
        for i in range(4):
            await store.add_item(make_item(f"i{i}", i))
        assert len(await store.vector_search(unit_vector(0), limit=2)) == 2


class TestGetItemById:
    """Tests for id lookup."""

    @pytest.mark.asyncio
    async def test_found(self, store):
        await store.add_item(make_item("a", 3, passages=["One.", "Two."], extracted_text="One. Two.", metadata={"k": 1}))

        view = await store.get_item_by_id("a", include_content=True, include_vector=True)

        assert view.id == "a"
        assert view.metadata == {"k": 1}
        assert view.content == "One.\n\nTwo."
        assert view.vector == unit_vector(3)

    @pytest.mark.asyncio
    async def test_content_and_vector_omitted_by_default(self, store):
        await store.add_item(make_item("a"))

        view = await store.get_item_by_id("a")

        assert view.content is None
        assert view.vector is None

    @pytest.mark.asyncio
    async def test_not_found(self, store):
        with pytest.raises(ItemNotFoundError) as exc_info:
            await store.get_item_by_id("nope")
        assert exc_info.value.item_id == "nope"

    @pytest.mark.asyncio
    async def test_bad_metadata_becomes_empty(self, store, log_buffer):
        """Malformed metadata is logged and replaced."""
        await store.add_item(make_item("a", metadata="{not json"))

        view = await store.get_item_by_id("a")

        assert view.metadata == {}
        assert log_buffer.messages(LogLevel.WARNING)


class TestEngineFailures:
    """Tests for engine error translation."""

    @pytest.mark.asyncio
    async def test_engine_errors_wrapped(self, engine, store, metrics):
        """Engine exceptions surface as EngineFailureError with the cause kept."""
        original = RuntimeError("disk on fire")
        engine.collection.fail_with = original

        with pytest.raises(EngineFailureError) as exc_info:
            await store.vector_search(unit_vector(0))

        error = exc_info.value
        assert error.message == "disk on fire"
        assert error.__cause__ is original
        assert error.operation == "vector_search"
        assert metrics.counter("engine_errors_total").get(operation="vector_search") == 1


class TestParseMetadata:
    """Tests for metadata decoding."""

    def test_accepts_dicts_and_json(self):
        assert parse_metadata({"a": 1}) == {"a": 1}
        assert parse_metadata('{"a": 1}') == {"a": 1}
        assert parse_metadata("") == {}
        assert parse_metadata(None) == {}

    def test_rejects_invalid(self):
        with pytest.raises(MetadataParseError):
            parse_metadata("{oops")
        with pytest.raises(MetadataParseError):
            parse_metadata("[1, 2]")
