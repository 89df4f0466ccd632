"""
Test Configuration

Shared fixtures and test utilities.
"""

import pytest

from mnemosyne.config.settings import CacheSettings
from mnemosyne.knowledge.embeddings import HashEmbeddings
from mnemosyne.knowledge.query_cache import QueryCache
from mnemosyne.knowledge.store import ContentStore
from mnemosyne.observability.logging import BufferHandler, LogLevel, get_logger
from mnemosyne.observability.metrics import MetricsCollector
from tests.fixtures import DIMENSION, CountingEngine, FixedMemoryProbe

LOGGER_NAMES = (
    "mnemosyne.chunking",
    "mnemosyne.embeddings",
    "mnemosyne.engines",
    "mnemosyne.store",
    "mnemosyne.query_cache",
    "mnemosyne.search",
    "mnemosyne.ingestion",
    "mnemosyne.knowledge",
)


@pytest.fixture
def metrics():
    """Isolated metrics collector."""
    return MetricsCollector()


@pytest.fixture
def log_buffer():
    """Capture records from every component logger."""
    buffer = BufferHandler()
    loggers = [get_logger(name) for name in LOGGER_NAMES]
    levels = [logger.level for logger in loggers]

    for logger in loggers:
        logger.level = LogLevel.DEBUG
        logger.handlers.append(buffer)

    yield buffer

    for logger, level in zip(loggers, levels):
        logger.level = level
        if buffer in logger.handlers:
            logger.handlers.remove(buffer)


@pytest.fixture
def embeddings():
    """Deterministic test embeddings."""
    return HashEmbeddings(dimension=DIMENSION)


@pytest.fixture
def engine():
    """Call-counting in-memory engine."""
    return CountingEngine()


@pytest.fixture
async def store(engine, metrics, tmp_path):
    """Initialized content store over the counting engine."""
    store = ContentStore(
        engine,
        str(tmp_path / "vector_db"),
        collection_name="test_items",
        dimension=DIMENSION,
        metrics=metrics,
    )
    await store.initialize()
    return store


@pytest.fixture
def memory_probe():
    """Memory probe well below the high-water mark."""
    return FixedMemoryProbe(utilization=0.10)


@pytest.fixture
def cache(memory_probe, metrics):
    """Query cache with default TTLs."""
    return QueryCache(CacheSettings(), memory_probe=memory_probe, metrics=metrics)
