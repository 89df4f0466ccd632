"""
Chunking Strategies

Split extracted text into passages, the unit of retrieval.
Every strategy is pure and deterministic.

Design decisions:
- Plain functions for the algorithms, strategy classes for configuration
- Prefer natural boundaries: sentences, then words, then a hard cut
- Paragraphs and markdown sections are kept whole when they fit
- Whitespace-only passages are never produced; nothing else is dropped
"""

import re
from abc import ABC, abstractmethod

from mnemosyne.config.settings import ChunkingSettings
from mnemosyne.observability.logging import get_logger

logger = get_logger("mnemosyne.chunking")

SENTENCE_TERMINATORS = frozenset(".!?")

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_HEADING = re.compile(r"^(#{1,6})[ \t]+(.+)$", re.MULTILINE)


def clean_text(text: str) -> str:
    """Normalize line breaks and collapse runs of horizontal whitespace."""
    text = text.replace("\r\n", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def _last_sentence_break(text: str, start: int, end: int) -> int:
    """Position just after the last terminator followed by whitespace in [start, end), or -1."""
    for i in range(end - 2, start - 1, -1):
        if text[i] in SENTENCE_TERMINATORS and text[i + 1].isspace():
            return i + 1
    return -1


def chunk_by_characters(text: str, target_size: int, overlap: int = 0) -> list[str]:
    """
    Split text into windows of at most `target_size` characters.

    Each window is cut at the last sentence boundary past the first
    quarter of the window, else at the last space past that point,
    else at the hard boundary. Consecutive windows share up to
    `overlap` characters.

    Args:
        text: Text to split
        target_size: Maximum passage length
        overlap: Characters repeated between consecutive windows

    Returns:
        Ordered, trimmed, non-empty passages
    """
    if target_size <= 0:
        raise ValueError("target_size must be positive")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    if len(text) <= target_size:
        return [text] if text.strip() else []

    chunks: list[str] = []
    threshold = target_size // 4
    start = 0

    while start < len(text):
        end = min(start + target_size, len(text))

        if end < len(text):
            sentence_end = _last_sentence_break(text, start, end)
            if sentence_end > start + threshold:
                end = sentence_end
            else:
                last_space = text.rfind(" ", start, end)
                if last_space > start + threshold:
                    end = last_space + 1

        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)

        if end >= len(text):
            break

        # Step back by the overlap, but always move forward
        next_start = end - overlap
        start = next_start if next_start > start else end

    logger.debug(
        "Split text by characters",
        text_length=len(text),
        target_size=target_size,
        overlap=overlap,
        chunks=len(chunks),
    )
    return chunks


def _merge_short(chunks: list[str], min_size: int, max_size: int) -> list[str]:
    """Fold passages shorter than `min_size` into a neighbor when it fits."""
    merged: list[str] = []

    for chunk in chunks:
        if merged:
            previous = merged[-1]
            fits = len(previous) + 2 + len(chunk) <= max_size
            if fits and (len(chunk) < min_size or len(previous) < min_size):
                merged[-1] = f"{previous}\n\n{chunk}"
                continue
        merged.append(chunk)

    return merged


def chunk_by_paragraphs(text: str, max_size: int, min_size: int = 0) -> list[str]:
    """
    Split text on blank lines, packing paragraphs up to `max_size`.

    Paragraphs are returned one per passage when they all fit and no
    minimum size is requested. Oversized paragraphs are split by
    characters with a 10% overlap.
    """
    if max_size <= 0:
        raise ValueError("max_size must be positive")

    paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(text)]
    paragraphs = [p for p in paragraphs if p]

    if not paragraphs:
        return []

    if min_size <= 0 and all(len(p) <= max_size for p in paragraphs):
        return paragraphs

    chunks: list[str] = []
    current = ""

    for paragraph in paragraphs:
        if len(paragraph) > max_size:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(chunk_by_characters(paragraph, max_size, max_size // 10))
            continue

        if current and len(current) + len(paragraph) + 2 > max_size:
            chunks.append(current)
            current = paragraph
        else:
            current = f"{current}\n\n{paragraph}" if current else paragraph

    if current:
        chunks.append(current)

    if min_size > 0:
        chunks = _merge_short(chunks, min_size, max_size)

    logger.debug(
        "Split text by paragraphs",
        paragraphs=len(paragraphs),
        chunks=len(chunks),
        max_size=max_size,
    )
    return chunks


def chunk_by_markdown(text: str, max_size: int) -> list[str]:
    """
    Split markdown into one passage per heading section.

    Oversized sections are re-chunked by paragraphs, and every piece
    repeats the section heading so it stays self-describing.
    """
    headings = list(_HEADING.finditer(text))

    if not headings:
        return chunk_by_paragraphs(text, max_size)

    chunks: list[str] = []

    preamble = text[: headings[0].start()].strip()
    if preamble:
        chunks.append(preamble)

    for i, heading in enumerate(headings):
        section_end = headings[i + 1].start() if i + 1 < len(headings) else len(text)
        section = text[heading.start():section_end].strip()

        if len(section) <= max_size:
            chunks.append(section)
            continue

        prefix = f"{heading.group(1)} {heading.group(2).strip()}\n\n"
        if len(prefix) >= max_size:
            # No room for a repeated heading; split the section as plain text
            chunks.extend(chunk_by_characters(section, max_size))
            continue

        body = text[heading.end():section_end]
        chunks.extend(prefix + piece for piece in chunk_by_paragraphs(body, max_size - len(prefix)))

    return chunks


class ChunkingStrategy(ABC):
    """
    Abstract chunking strategy.

    Chunking determines how documents are split for retrieval.
    Good chunking balances:
    - Passage size (too small = missing context, too large = noise)
    - Semantic coherence (passages should be meaningful units)
    - Overlap (prevent information loss at boundaries)
    """

    name: str = "abstract"

    @abstractmethod
    def split(self, text: str) -> list[str]:
        """Split text into passages."""
        pass


class CharacterChunker(ChunkingStrategy):
    """Sliding character windows with boundary-seeking cuts."""

    name = "characters"

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200):
        self._chunk_size = chunk_size
        self._overlap = chunk_overlap

    def split(self, text: str) -> list[str]:
        return chunk_by_characters(text, self._chunk_size, self._overlap)


class ParagraphChunker(ChunkingStrategy):
    """Blank-line paragraphs, packed and merged by size."""

    name = "paragraphs"

    def __init__(self, max_chunk_size: int = 1000, min_chunk_size: int = 0):
        self._max_size = max_chunk_size
        self._min_size = min_chunk_size

    def split(self, text: str) -> list[str]:
        return chunk_by_paragraphs(text, self._max_size, self._min_size)


class MarkdownChunker(ChunkingStrategy):
    """Heading sections, falling back to paragraphs."""

    name = "markdown"

    def __init__(self, max_chunk_size: int = 1000):
        self._max_size = max_chunk_size

    def split(self, text: str) -> list[str]:
        return chunk_by_markdown(text, self._max_size)


def get_chunker(settings: ChunkingSettings | None = None) -> ChunkingStrategy:
    """Build the configured chunking strategy."""
    settings = settings or ChunkingSettings()

    if settings.strategy == "characters":
        return CharacterChunker(settings.chunk_size, settings.chunk_overlap)
    if settings.strategy == "markdown":
        return MarkdownChunker(settings.chunk_size)
    return ParagraphChunker(settings.chunk_size, settings.min_chunk_size)
