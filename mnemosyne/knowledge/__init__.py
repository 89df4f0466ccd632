"""
Knowledge Module

Chunking, embedding, storage and semantic retrieval of ingested content.
"""

from mnemosyne.knowledge.chunking import (
    CharacterChunker,
    ChunkingStrategy,
    MarkdownChunker,
    ParagraphChunker,
    chunk_by_characters,
    chunk_by_markdown,
    chunk_by_paragraphs,
    get_chunker,
)
from mnemosyne.knowledge.embeddings import (
    EmbeddingService,
    HashEmbeddings,
    LocalEmbeddings,
    OpenAIEmbeddings,
)
from mnemosyne.knowledge.engines import (
    FAISSEngine,
    InMemoryEngine,
    MilvusEngine,
    VectorCollection,
    VectorEngine,
    create_engine,
)
from mnemosyne.knowledge.ingestion import ContentIngester, ExtractedContent
from mnemosyne.knowledge.query_cache import (
    CachedContentStore,
    PsutilMemoryProbe,
    QueryCache,
)
from mnemosyne.knowledge.search import SemanticSearch
from mnemosyne.knowledge.service import KnowledgeBase
from mnemosyne.knowledge.store import ContentStore

__all__ = [
    # Chunking
    "CharacterChunker",
    "ChunkingStrategy",
    "MarkdownChunker",
    "ParagraphChunker",
    "chunk_by_characters",
    "chunk_by_markdown",
    "chunk_by_paragraphs",
    "get_chunker",
    # Embeddings
    "EmbeddingService",
    "HashEmbeddings",
    "LocalEmbeddings",
    "OpenAIEmbeddings",
    # Engines
    "FAISSEngine",
    "InMemoryEngine",
    "MilvusEngine",
    "VectorCollection",
    "VectorEngine",
    "create_engine",
    # Storage and caching
    "CachedContentStore",
    "ContentStore",
    "PsutilMemoryProbe",
    "QueryCache",
    # Ingestion and retrieval
    "ContentIngester",
    "ExtractedContent",
    "KnowledgeBase",
    "SemanticSearch",
]
