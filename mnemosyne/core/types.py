"""
Core Type Definitions

Fundamental data models shared by ingestion, storage and retrieval.

Design decisions:
- Pydantic for validation and serialization
- Items are the unit of storage; passages are the unit of retrieval
- Search results are derived, never persisted
- Metadata travels as a JSON string blob at the storage boundary
"""

import json
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class SourceType(str, Enum):
    """Origin of a stored document."""

    PDF = "pdf"
    URL = "url"
    YOUTUBE = "youtube"
    OTHER = "other"


class Item(BaseModel):
    """
    A stored document.

    Combines source information, the full extracted text, its
    chunked passages and the primary vector used for retrieval.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    source_type: SourceType = SourceType.OTHER
    source_identifier: str = ""
    title: str = ""
    original_path: str = ""

    # Content
    extracted_text: str = ""
    passages: list[str] = Field(default_factory=list)

    # Retrieval vector (embedding of the first passage)
    primary_vector: list[float] = Field(default_factory=list)

    # Open key/value map, or its serialized form
    metadata: dict[str, Any] | str = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_passages(self) -> "Item":
        if self.extracted_text.strip() and not self.passages:
            raise ValueError("passages must not be empty when extracted_text has content")
        return self

    def serialized_metadata(self) -> str:
        """Metadata as the string blob used for storage transport."""
        if isinstance(self.metadata, str):
            return self.metadata
        return json.dumps(self.metadata, default=str)

    def to_row(self) -> dict[str, Any]:
        """Convert to an engine row."""
        return {
            "id": self.id,
            "source_type": self.source_type.value,
            "source_identifier": self.source_identifier,
            "title": self.title,
            "original_path": self.original_path,
            "extracted_text": self.extracted_text,
            "passages": list(self.passages),
            "vector": list(self.primary_vector),
            "metadata": self.serialized_metadata(),
        }


class ItemSummary(BaseModel):
    """Lightweight projection of an item for listings."""

    id: str
    title: str = ""
    source_type: str = SourceType.OTHER.value


class ItemView(BaseModel):
    """Full view of a stored item, as returned by id lookups."""

    id: str
    source_type: str = SourceType.OTHER.value
    source_identifier: str = ""
    title: str = ""
    original_path: str = ""
    extracted_text: str = ""
    passages: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Populated on request
    content: str | None = None
    vector: list[float] | None = None


class SearchOptions(BaseModel):
    """Options controlling semantic search result shaping."""

    limit: int = Field(default=5, ge=1)
    min_relevance_score: float = 0.6
    include_content: bool = True
    include_summary: bool = False
    deduplicate: bool = True
    max_total_tokens: int = Field(default=0, ge=0)
    source_type: SourceType | None = None

    def signature(self) -> str:
        """Stable serialization of the option flags."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True)


class SearchResult(BaseModel):
    """A single semantic search hit."""

    item_id: str
    title: str = ""
    source_type: str = SourceType.OTHER.value
    source_identifier: str = ""
    score: float = 0.0
    content: str | None = None
    summary: str | None = None
    estimated_token_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
