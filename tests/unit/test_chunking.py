"""
Unit Tests - Chunking

Tests for passage segmentation strategies.
"""

import pytest

from mnemosyne.config.settings import ChunkingSettings
from mnemosyne.knowledge.chunking import (
    CharacterChunker,
    MarkdownChunker,
    ParagraphChunker,
    chunk_by_characters,
    chunk_by_markdown,
    chunk_by_paragraphs,
    clean_text,
    get_chunker,
)


def squeeze(text: str) -> str:
    """Text with all whitespace removed."""
    return "".join(text.split())


class TestChunkByCharacters:
    """Tests for sliding-window character chunking."""

    def test_short_text_returned_whole(self):
        """Text within the target size is a single passage."""
        assert chunk_by_characters("short", 1000, 0) == ["short"]

    def test_passages_never_exceed_target_size(self):
        """Every passage respects the size bound."""
        text = "word " * 24
        assert len(text) == 120

        chunks = chunk_by_characters(text, 30, 10)

        assert len(chunks) > 1
        assert all(0 < len(c) <= 30 for c in chunks)

    def test_cuts_at_sentence_boundary(self):
        """A sentence end past the first quarter wins over a space."""
        text = "Alpha beta gamma. Delta epsilon zeta eta theta iota."
        chunks = chunk_by_characters(text, 30, 0)
        assert chunks[0] == "Alpha beta gamma."

    def test_hard_cut_without_boundaries(self):
        """Unbroken text is cut exactly at the window size."""
        chunks = chunk_by_characters("a" * 100, 30, 0)
        assert chunks == ["a" * 30, "a" * 30, "a" * 30, "a" * 10]

    def test_overlap_as_large_as_window_still_progresses(self):
        """Windows always move forward."""
        chunks = chunk_by_characters("a" * 100, 10, 10)
        assert len(chunks) == 10

    def test_empty_and_blank_text(self):
        """No whitespace-only passages are produced."""
        assert chunk_by_characters("", 10) == []
        assert chunk_by_characters("   ", 10) == []

    def test_invalid_sizes(self):
        """Non-positive sizes and negative overlaps are rejected."""
        with pytest.raises(ValueError):
            chunk_by_characters("text", 0)
        with pytest.raises(ValueError):
            chunk_by_characters("text", 10, -1)


class TestChunkByParagraphs:
    """Tests for paragraph chunking."""

    def test_paragraphs_preserved_exactly(self):
        """Paragraphs that fit come back verbatim, one per passage."""
        text = "Para one.\n\nPara two.\n\nPara three."
        assert chunk_by_paragraphs(text, 1000) == ["Para one.", "Para two.", "Para three."]

    def test_min_size_packs_paragraphs(self):
        """Requesting a minimum size packs small paragraphs together."""
        text = "Para one.\n\nPara two.\n\nPara three."
        assert chunk_by_paragraphs(text, 1000, min_size=50) == [
            "Para one.\n\nPara two.\n\nPara three."
        ]

    def test_accumulates_up_to_max_size(self):
        """Packing starts a new passage when the next paragraph would overflow."""
        text = "aaaa aaaa\n\nbbbb bbbb\n\ncccc cccc"
        chunks = chunk_by_paragraphs(text, 25, min_size=1)
        assert chunks == ["aaaa aaaa\n\nbbbb bbbb", "cccc cccc"]

    def test_oversized_paragraph_split_by_characters(self):
        """A paragraph longer than the maximum is windowed."""
        text = "short intro\n\n" + "x" * 50
        chunks = chunk_by_paragraphs(text, 20)

        assert chunks[0] == "short intro"
        assert all(len(c) <= 20 for c in chunks)
        assert len(chunks) > 2

    def test_blank_lines_with_whitespace_split(self):
        """Lines holding only spaces count as blank."""
        assert chunk_by_paragraphs("one\n   \ntwo", 100) == ["one", "two"]

    def test_empty_text(self):
        assert chunk_by_paragraphs("", 100) == []
        assert chunk_by_paragraphs("\n\n\n", 100) == []


class TestChunkByMarkdown:
    """Tests for heading-aware markdown chunking."""

    def test_one_passage_per_section(self):
        """Each heading starts its own passage."""
        text = "# Title A\nBody a.\n\n# Title B\nBody b."
        chunks = chunk_by_markdown(text, 1000)

        assert len(chunks) == 2
        assert chunks[0].startswith("# Title A")
        assert chunks[1].startswith("# Title B")
        assert "Body a." in chunks[0]

    def test_leading_text_is_its_own_passage(self):
        """Text before the first heading is kept."""
        chunks = chunk_by_markdown("Intro text.\n\n## Section\nBody", 1000)
        assert chunks == ["Intro text.", "## Section\nBody"]

    def test_oversized_section_repeats_heading(self):
        """Pieces of a large section stay labeled with its heading."""
        body = "\n\n".join(f"Paragraph number {i} here." for i in range(10))
        text = f"# Big\n\n{body}"

        chunks = chunk_by_markdown(text, 60)

        assert len(chunks) > 1
        assert all(c.startswith("# Big\n\n") for c in chunks)
        assert all(len(c) <= 60 for c in chunks)

    def test_without_headings_falls_back_to_paragraphs(self):
        text = "First.\n\nSecond."
        assert chunk_by_markdown(text, 1000) == chunk_by_paragraphs(text, 1000)

    def test_hash_without_space_is_not_a_heading(self):
        """Tags like #python are body text."""
        assert chunk_by_markdown("#python is fun", 1000) == ["#python is fun"]

    def test_heading_longer_than_max_size(self):
        """A heading with no room to repeat is split with its section as plain text."""
        heading = "# " + "H" * 70
        body = " ".join(["lorem"] * 50)

        chunks = chunk_by_markdown(f"{heading}\n\n{body}", 60)

        assert all(0 < len(c) <= 60 for c in chunks)
        assert len(chunks) < 10
        assert squeeze("".join(chunks)) == squeeze(f"{heading}\n\n{body}")


class TestChunkCoverage:
    """Passages joined back together reproduce the input, whitespace aside."""

    def test_character_cuts_cover_text(self):
        """Sentence, space and hard cuts neither drop nor repeat text."""
        text = "Alpha beta gamma. delta epsilon zeta eta theta " + "x" * 60

        chunks = chunk_by_characters(text, 30, 0)

        assert chunks == [
            "Alpha beta gamma.",
            "delta epsilon zeta eta theta",
            "x" * 30,
            "x" * 30,
        ]
        assert squeeze("".join(chunks)) == squeeze(text)

    def test_character_cuts_cover_prose(self):
        text = " ".join(f"Sentence {i} has several words in it." for i in range(40))
        chunks = chunk_by_characters(text, 75, 0)
        assert squeeze("".join(chunks)) == squeeze(text)

    @pytest.mark.parametrize("min_size", [0, 40])
    def test_paragraphs_cover_text(self, min_size):
        text = "\n\n".join(f"Paragraph {i} says something short." for i in range(12))
        chunks = chunk_by_paragraphs(text, 120, min_size=min_size)
        assert squeeze("".join(chunks)) == squeeze(text)

    def test_markdown_sections_cover_text(self):
        text = "Preamble line.\n\n# One\nFirst body.\n\n## Two\nSecond body.\n\n### Three\nThird."
        chunks = chunk_by_markdown(text, 1000)
        assert squeeze("".join(chunks)) == squeeze(text)


class TestCleanText:
    """Tests for text normalization."""

    def test_normalizes_whitespace(self):
        assert clean_text("a\r\nb\n\n\n\nc   d\t\te ") == "a\nb\n\nc d e"


class TestGetChunker:
    """Tests for strategy selection."""

    def test_default_is_paragraphs(self):
        assert isinstance(get_chunker(), ParagraphChunker)

    def test_strategies_by_name(self):
        assert isinstance(get_chunker(ChunkingSettings(strategy="markdown")), MarkdownChunker)
        assert isinstance(get_chunker(ChunkingSettings(strategy="characters")), CharacterChunker)

    def test_character_chunker_uses_settings(self):
        chunker = get_chunker(ChunkingSettings(strategy="characters", chunk_size=10, chunk_overlap=0))
        assert chunker.split("a" * 25) == ["a" * 10, "a" * 10, "a" * 5]
