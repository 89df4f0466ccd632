"""
Settings Management

Provides centralized, type-safe configuration using Pydantic.
Supports environment variables, .env files, and hierarchical config.

Design decisions:
- Using pydantic-settings for validation and type coercion
- Immutable settings after initialization (frozen model)
- Separate concerns: storage vs. chunking vs. caching vs. search
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Content store and vector engine configuration."""

    model_config = SettingsConfigDict(env_prefix="MNEMOSYNE_STORE_")

    engine: Literal["memory", "faiss", "milvus"] = "memory"
    path: str = Field(default="./data/vector_db", description="Backing storage directory")
    collection: str = Field(default="knowledge_items")

    # Full-scan workaround: zero-vector query capped at this many rows
    scan_limit: int = Field(default=1000, ge=1)

    # Memory engine only: write collections to JSON under `path`
    persist: bool = Field(default=True)


class ChunkingSettings(BaseSettings):
    """Passage segmentation configuration."""

    model_config = SettingsConfigDict(env_prefix="MNEMOSYNE_CHUNKING_")

    strategy: Literal["characters", "paragraphs", "markdown"] = "paragraphs"
    chunk_size: int = Field(default=1000, ge=1, description="Characters per passage")
    chunk_overlap: int = Field(default=200, ge=0)
    min_chunk_size: int = Field(default=0, ge=0)
    clean_text: bool = Field(default=True)


class EmbeddingSettings(BaseSettings):
    """Embedding generator configuration."""

    model_config = SettingsConfigDict(env_prefix="MNEMOSYNE_EMBEDDING_")

    provider: Literal["hash", "openai", "local"] = "hash"
    dimension: int = Field(default=384, ge=1)
    batch_size: int = Field(default=20, ge=1, description="Texts per provider call")

    # OpenAI settings
    openai_model: str = Field(default="text-embedding-3-small")
    openai_api_key: SecretStr | None = Field(default=None)

    # sentence-transformers settings
    local_model: str = Field(default="all-MiniLM-L6-v2")
    local_device: str = Field(default="cpu")


class CacheSettings(BaseSettings):
    """Query cache and memory-pressure configuration."""

    model_config = SettingsConfigDict(env_prefix="MNEMOSYNE_CACHE_")

    enabled: bool = Field(default=True)

    # Per-operation TTLs (seconds); similarity rankings go stale fastest
    list_items_ttl: float = Field(default=300.0, gt=0)
    get_item_ttl: float = Field(default=600.0, gt=0)
    vector_search_ttl: float = Field(default=60.0, gt=0)
    semantic_search_ttl: float = Field(default=120.0, gt=0)

    max_entries: int = Field(default=256, ge=1)
    memory_high_water: float = Field(default=0.70, gt=0.0, le=1.0)

    # Key signatures
    vector_prefix_length: int = Field(default=5, ge=1)
    vector_precision: int = Field(default=4, ge=0)
    text_prefix_length: int = Field(default=50, ge=1)

    invalidate_on_write: bool = Field(default=True)


class SearchSettings(BaseSettings):
    """Semantic search defaults."""

    model_config = SettingsConfigDict(env_prefix="MNEMOSYNE_SEARCH_")

    default_limit: int = Field(default=5, ge=1)
    max_limit: int = Field(default=10, ge=1)
    min_relevance_score: float = Field(default=0.6)
    recommend_min_relevance_score: float = Field(default=0.65)
    candidate_cap: int = Field(default=20, ge=1)
    chars_per_token: float = Field(default=4.0, gt=0)


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(env_prefix="MNEMOSYNE_OBS_")

    enable_metrics: bool = Field(default=True)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: str | None = Field(default=None)


class Settings(BaseSettings):
    """
    Master settings aggregator.

    This is the single source of truth for all configuration.
    Sub-settings are composed here to maintain clear boundaries.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,  # Immutable after creation
    )

    app_name: str = Field(default="Mnemosyne")
    environment: Literal["development", "staging", "production"] = "development"

    # Component settings (composed)
    store: StoreSettings = Field(default_factory=StoreSettings)
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Safe to share because settings are frozen.
    """
    return Settings()
