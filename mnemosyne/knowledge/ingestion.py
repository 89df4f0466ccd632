"""
Content Ingestion Pipeline

Turn extracted content into storable items.

Design decisions:
- Extraction happens upstream; this module starts from plain text
- Pipeline pattern for composable preprocessing
- The first passage's embedding is the item's retrieval vector
- Source tracking for attribution
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from mnemosyne.core.exceptions import IngestionError
from mnemosyne.core.interfaces import EmbeddingProtocol
from mnemosyne.core.types import Item, SourceType
from mnemosyne.knowledge.chunking import ChunkingStrategy, clean_text
from mnemosyne.observability.logging import get_logger

logger = get_logger("mnemosyne.ingestion")

_HTML_TAG = re.compile(r"<[a-zA-Z/][^>]*>")


class ExtractedContent(BaseModel):
    """Output of an extraction adapter (PDF, URL, YouTube, ...)."""

    id: str | None = None
    source_type: SourceType = SourceType.OTHER
    source_identifier: str = ""
    title: str = ""
    original_path: str = ""
    extracted_text: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class TextPreprocessor(ABC):
    """Abstract text preprocessor."""

    @abstractmethod
    def process(self, content: ExtractedContent) -> ExtractedContent:
        """Process extracted content."""
        pass


class WhitespaceNormalizer(TextPreprocessor):
    """Normalize line breaks and runs of whitespace."""

    def process(self, content: ExtractedContent) -> ExtractedContent:
        return content.model_copy(update={"extracted_text": clean_text(content.extracted_text)})


class HTMLStripper(TextPreprocessor):
    """Remove leftover HTML markup from web extractions."""

    def process(self, content: ExtractedContent) -> ExtractedContent:
        if content.source_type != SourceType.URL or not _HTML_TAG.search(content.extracted_text):
            return content

        text = re.sub(r"<script[^>]*>.*?</script>", "", content.extracted_text, flags=re.DOTALL)
        text = re.sub(r"<style[^>]*>.*?</style>", "", text, flags=re.DOTALL)
        text = re.sub(r"<[^>]+>", " ", text)
        text = re.sub(r"&nbsp;", " ", text)
        text = re.sub(r"&[a-z]+;", "", text)

        return content.model_copy(update={"extracted_text": text.strip()})


class ContentIngester:
    """
    Content ingestion pipeline.

    Orchestrates preprocessing, chunking and embedding of extracted
    content into an Item ready for the content store.
    """

    def __init__(
        self,
        embeddings: EmbeddingProtocol,
        chunker: ChunkingStrategy,
        clean: bool = True,
        preprocessors: list[TextPreprocessor] | None = None,
    ):
        self._embeddings = embeddings
        self._chunker = chunker

        if preprocessors is not None:
            self._preprocessors = preprocessors
        else:
            self._preprocessors = [HTMLStripper()]
            if clean:
                self._preprocessors.append(WhitespaceNormalizer())

    @property
    def chunker(self) -> ChunkingStrategy:
        return self._chunker

    async def build_item(self, extraction: ExtractedContent) -> Item:
        """
        Build a storable item from extracted content.

        Args:
            extraction: Text and source information from an extractor

        Returns:
            Item with passages and primary vector populated

        Raises:
            IngestionError: If the item cannot be assembled
        """
        content = extraction
        for preprocessor in self._preprocessors:
            content = preprocessor.process(content)

        passages = self._chunker.split(content.extracted_text)
        vectors = await self._embeddings.embed_batch(passages)

        if vectors:
            primary_vector = vectors[0]
        else:
            primary_vector = [0.0] * self._embeddings.dimension

        fields: dict[str, Any] = {
            "source_type": content.source_type,
            "source_identifier": content.source_identifier,
            "title": content.title,
            "original_path": content.original_path,
            "extracted_text": content.extracted_text,
            "passages": passages,
            "primary_vector": primary_vector,
            "metadata": {
                **content.metadata,
                "passage_count": len(passages),
                "chunking_strategy": self._chunker.name,
                "ingested_at": datetime.now(timezone.utc).isoformat(),
            },
        }
        if content.id:
            fields["id"] = content.id

        try:
            item = Item(**fields)
        except ValidationError as e:
            raise IngestionError(
                "Could not assemble item from extracted content",
                context={"source_identifier": content.source_identifier},
                cause=e,
            )

        logger.debug(
            "Built item",
            item_id=item.id,
            source_type=item.source_type.value,
            passages=len(passages),
            text_length=len(item.extracted_text),
        )
        return item
