"""
Knowledge Base Factory

Assembles a KnowledgeBase from settings.
Provides a clean API for wiring engines, caches and embeddings.
"""

from mnemosyne.config.settings import EmbeddingSettings, Settings, get_settings
from mnemosyne.core.exceptions import ConfigurationError
from mnemosyne.core.interfaces import MemoryProbeProtocol
from mnemosyne.knowledge.chunking import get_chunker
from mnemosyne.knowledge.embeddings import (
    EmbeddingService,
    HashEmbeddings,
    LocalEmbeddings,
    OpenAIEmbeddings,
)
from mnemosyne.knowledge.engines import VectorEngine, create_engine
from mnemosyne.knowledge.ingestion import ContentIngester
from mnemosyne.knowledge.query_cache import CachedContentStore, PsutilMemoryProbe, QueryCache
from mnemosyne.knowledge.search import SemanticSearch
from mnemosyne.knowledge.service import KnowledgeBase
from mnemosyne.knowledge.store import ContentStore
from mnemosyne.observability.logging import configure_logging
from mnemosyne.observability.metrics import MetricsCollector, get_metrics_collector


def create_embedding_service(settings: EmbeddingSettings | None = None) -> EmbeddingService:
    """Create the configured embedding provider."""
    settings = settings or EmbeddingSettings()

    if settings.provider == "hash":
        return HashEmbeddings(dimension=settings.dimension, batch_size=settings.batch_size)

    if settings.provider == "openai":
        api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
        return OpenAIEmbeddings(
            dimension=settings.dimension,
            api_key=api_key,
            model=settings.openai_model,
            batch_size=settings.batch_size,
        )

    if settings.provider == "local":
        return LocalEmbeddings(
            dimension=settings.dimension,
            model_name=settings.local_model,
            device=settings.local_device,
            batch_size=settings.batch_size,
        )

    raise ConfigurationError(f"Unknown embedding provider: {settings.provider}")


def create_knowledge_base(
    settings: Settings | None = None,
    *,
    engine: VectorEngine | None = None,
    embeddings: EmbeddingService | None = None,
    memory_probe: MemoryProbeProtocol | None = None,
    metrics: MetricsCollector | None = None,
) -> KnowledgeBase:
    """
    Create a KnowledgeBase wired from settings.

    Components passed explicitly replace the configured ones, which
    is mostly useful in tests.

    Args:
        settings: Root settings (defaults to get_settings())
        engine: Vector engine override
        embeddings: Embedding service override
        memory_probe: Memory probe override (defaults to psutil)
        metrics: Metrics collector override

    Returns:
        Configured, uninitialized KnowledgeBase
    """
    settings = settings or get_settings()

    configure_logging(
        level=settings.observability.log_level,
        json_output=settings.observability.log_format == "json",
        log_file=settings.observability.log_file,
    )

    if metrics is None:
        # Disabled metrics still need somewhere to go
        metrics = get_metrics_collector() if settings.observability.enable_metrics else MetricsCollector()

    embeddings = embeddings or create_embedding_service(settings.embedding)

    store = ContentStore(
        engine=engine or create_engine(settings.store),
        path=settings.store.path,
        collection_name=settings.store.collection,
        dimension=embeddings.dimension,
        scan_limit=settings.store.scan_limit,
        metrics=metrics,
    )

    cache = None
    served_store = store
    if settings.cache.enabled:
        cache = QueryCache(
            settings.cache,
            memory_probe=memory_probe or PsutilMemoryProbe(),
            metrics=metrics,
        )
        served_store = CachedContentStore(store, cache)

    ingester = ContentIngester(
        embeddings,
        get_chunker(settings.chunking),
        clean=settings.chunking.clean_text,
    )

    search = SemanticSearch(served_store, cache=cache, settings=settings.search, metrics=metrics)

    return KnowledgeBase(
        store=served_store,
        embeddings=embeddings,
        ingester=ingester,
        search=search,
        settings=settings.search,
        metrics=metrics,
    )
