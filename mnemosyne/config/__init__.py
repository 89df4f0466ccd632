"""
Configuration Module

Type-safe settings loaded from the environment and .env files.
"""

from mnemosyne.config.settings import (
    CacheSettings,
    ChunkingSettings,
    EmbeddingSettings,
    ObservabilitySettings,
    SearchSettings,
    Settings,
    StoreSettings,
    get_settings,
)

__all__ = [
    "CacheSettings",
    "ChunkingSettings",
    "EmbeddingSettings",
    "ObservabilitySettings",
    "SearchSettings",
    "Settings",
    "StoreSettings",
    "get_settings",
]
