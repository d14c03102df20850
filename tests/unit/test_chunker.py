"""Tests for TextChunker."""

import pytest

from raggy.ai.parsers.base import DocumentSection
from raggy.ai.rag.chunker import ChunkerConfig, ChunkMetadata, TextChunker


class TestChunkerConfig:
    """Tests for ChunkerConfig."""

    def test_default_config(self):
        """Defaults are 1000 characters with 200 of overlap."""
        config = ChunkerConfig()
        assert config.chunk_size == 1000
        assert config.chunk_overlap == 200

    def test_overlap_must_be_smaller_than_size(self):
        """An overlap as large as the window is rejected."""
        with pytest.raises(ValueError):
            ChunkerConfig(chunk_size=100, chunk_overlap=100)

    def test_sizes_must_be_positive(self):
        with pytest.raises(ValueError):
            ChunkerConfig(chunk_size=0, chunk_overlap=0)


class TestTextChunker:
    """Tests for TextChunker."""

    @pytest.fixture
    def chunker(self):
        return TextChunker(ChunkerConfig(chunk_size=50, chunk_overlap=20))

    def test_empty_text_has_no_chunks(self, chunker):
        """Whitespace-only text produces nothing."""
        assert chunker.split_text("") == []
        assert chunker.split_text("   \n\n  ") == []

    def test_short_text_single_chunk(self, chunker):
        """Text under the window size stays whole."""
        assert chunker.split_text("The sky is blue.") == ["The sky is blue."]

    def test_windows_never_exceed_chunk_size(self, chunker):
        """Every window fits in chunk_size characters."""
        text = " ".join(f"word{i}" for i in range(200))
        windows = chunker.split_text(text)

        assert len(windows) > 1
        assert all(len(w) <= 50 for w in windows)

    def test_consecutive_windows_overlap(self, chunker):
        """The tail of one window starts the next one."""
        text = " ".join(f"w{i:03d}" for i in range(60))
        windows = chunker.split_text(text)

        for previous, current in zip(windows, windows[1:]):
            first_word = current.split()[0]
            assert first_word in previous.split()

    def test_overlap_stays_within_limit(self, chunker):
        """Shared words between neighbours total at most chunk_overlap characters."""
        text = " ".join(f"w{i:03d}" for i in range(60))
        windows = chunker.split_text(text)

        for previous, current in zip(windows, windows[1:]):
            shared = [w for w in current.split() if w in previous.split()]
            assert len(" ".join(shared)) <= 20

    def test_all_words_are_covered(self, chunker):
        """No word is lost between windows."""
        words = [f"w{i:03d}" for i in range(60)]
        windows = chunker.split_text(" ".join(words))

        covered = set()
        for window in windows:
            covered.update(window.split())
        assert covered == set(words)

    def test_prefers_paragraph_boundaries(self):
        """Paragraphs that fit are not cut in the middle."""
        chunker = TextChunker(ChunkerConfig(chunk_size=40, chunk_overlap=5))
        text = "First paragraph is here.\n\nSecond paragraph is here."

        windows = chunker.split_text(text)

        assert windows == ["First paragraph is here.", "Second paragraph is here."]

    def test_hard_split_for_unbroken_text(self, chunker):
        """Text without separators is cut into fixed windows that still overlap."""
        windows = chunker.split_text("x" * 120)

        assert [len(w) for w in windows] == [50, 50, 50, 30]

    def test_hard_split_windows_share_overlap(self):
        chunker = TextChunker(ChunkerConfig(chunk_size=100, chunk_overlap=20))
        text = "".join(chr(0x4E00 + i) for i in range(250))

        windows = chunker.split_text(text)

        assert [len(w) for w in windows] == [100, 100, 90]
        for previous, current in zip(windows, windows[1:]):
            assert previous[-20:] == current[:20]
        assert windows[-1].endswith(text[-1])

    def test_chunk_sections_keeps_section_metadata(self, chunker):
        """Windows never span sections and carry the section's metadata."""
        sections = [
            DocumentSection(index=0, text="Page one text.", metadata={"page_number": 1}),
            DocumentSection(index=1, text="Page two text.", metadata={"page_number": 2}),
        ]

        chunks = chunker.chunk_sections(sections, resource_id="r1", filename="doc.pdf")

        assert [c.text for c in chunks] == ["Page one text.", "Page two text."]
        assert [c.metadata.chunk_index for c in chunks] == [0, 1]
        assert all(c.metadata.total_chunks == 2 for c in chunks)
        assert chunks[1].metadata.section_index == 1
        assert chunks[1].metadata.extra == {"page_number": 2}
        assert chunks[0].metadata.resource_id == "r1"

    def test_chunk_ids_are_unique(self, chunker):
        chunks = chunker.chunk_text(" ".join(f"w{i}" for i in range(100)))
        assert len({c.id for c in chunks}) == len(chunks)


class TestChunkMetadata:
    """Tests for the vector store metadata shape."""

    def test_to_dict_flattens_extra(self):
        """Extra values become scalars and never shadow core keys."""
        metadata = ChunkMetadata(
            resource_id="r1",
            filename="data.json",
            chunk_index=3,
            total_chunks=4,
            extra={"json_pointer": "/a/0", "tags": ["x"], "chunk_index": 99, "none": None},
        )

        data = metadata.to_dict()

        assert data["json_pointer"] == "/a/0"
        assert data["tags"] == "['x']"
        assert data["chunk_index"] == 3
        assert "none" not in data

    def test_missing_ids_become_empty_strings(self):
        data = ChunkMetadata().to_dict()
        assert data["resource_id"] == ""
        assert data["filename"] == ""


def test_chunk_text_with_explicit_sizes():
    chunker = TextChunker(ChunkerConfig(chunk_size=100, chunk_overlap=10))
    chunks = chunker.chunk_text("a " * 300)

    assert len(chunks) > 1
    assert all(len(c.text) <= 100 for c in chunks)
