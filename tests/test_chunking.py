"""
Tests for line-preserving chunking.
"""

import pytest

from brainpipe.ingest.chunking import (
    DEFAULT_MAX_CHUNK_SIZE,
    Chunk,
    Document,
    chunk_document,
    chunk_documents,
)


def _doc(content, path="/notes/2025-08-15.md"):
    return Document(path=path, content=content, modified_time=0.0)


class TestChunkDataclass:
    """Tests for the Chunk dataclass."""

    def test_defaults(self):
        """A bare chunk is the only chunk of its document."""
        chunk = Chunk(file_path="a.md", content="hello")
        assert chunk.chunk_index == 0
        assert chunk.total_chunks == 1
        assert chunk.is_partial is False

    def test_position_is_one_based(self):
        chunk = Chunk(file_path="a.md", content="x", chunk_index=1, total_chunks=5)
        assert chunk.position == "2/5"
        assert chunk.is_partial is True

    def test_len(self):
        """__len__ should return character count."""
        assert len(Chunk(file_path="a.md", content="hello world")) == 11


class TestSmallDocuments:
    """Documents that fit in one chunk."""

    def test_single_chunk(self):
        content = "## 09:00:00\n- [ ] Buy milk\n- call John"
        chunks = chunk_document(_doc(content))
        assert len(chunks) == 1
        assert chunks[0].content == content
        assert chunks[0].total_chunks == 1

    def test_empty_document(self):
        """Empty content still yields exactly one (empty) chunk."""
        chunks = chunk_document(_doc(""))
        assert len(chunks) == 1
        assert chunks[0].content == ""

    def test_exactly_at_limit(self):
        content = "a" * 10
        chunks = chunk_document(_doc(content), max_chunk_size=10)
        assert len(chunks) == 1

    def test_file_path_carried(self):
        chunks = chunk_document(_doc("x", path="/inbox/note.md"))
        assert chunks[0].file_path == "/inbox/note.md"

    def test_default_size(self):
        content = "x" * DEFAULT_MAX_CHUNK_SIZE
        assert len(chunk_document(_doc(content))) == 1


class TestLargeDocuments:
    """Documents that need splitting."""

    def test_greedy_packing(self):
        """Lines are packed until the next one would overflow."""
        chunks = chunk_document(_doc("aaaa\nbbbb\ncccc"), max_chunk_size=9)
        assert [c.content for c in chunks] == ["aaaa\nbbbb", "cccc"]

    def test_roundtrip_reproduces_content(self):
        """Joining chunk contents with newlines gives back the document."""
        lines = [f"- task number {i} with some words" for i in range(400)]
        content = "\n".join(lines)
        chunks = chunk_document(_doc(content), max_chunk_size=500)

        assert len(chunks) > 1
        assert "\n".join(c.content for c in chunks) == content

    def test_chunks_respect_limit(self):
        content = "\n".join(f"line {i}" for i in range(1000))
        chunks = chunk_document(_doc(content), max_chunk_size=100)
        assert all(len(c) <= 100 for c in chunks)

    def test_indices_and_totals(self):
        """Indices are contiguous and every chunk agrees on the total."""
        content = "\n".join("x" * 30 for _ in range(20))
        chunks = chunk_document(_doc(content), max_chunk_size=100)

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert {c.total_chunks for c in chunks} == {len(chunks)}

    def test_oversized_line_gets_own_chunk(self):
        """A line longer than the limit is never truncated."""
        long_line = "y" * 50
        content = f"short\n{long_line}\nend"
        chunks = chunk_document(_doc(content), max_chunk_size=20)

        assert long_line in [c.content for c in chunks]
        assert "\n".join(c.content for c in chunks) == content

    def test_empty_lines_preserved(self):
        content = "ab\n\n\ncd"
        chunks = chunk_document(_doc(content), max_chunk_size=3)

        assert len(chunks) > 1
        assert "\n".join(c.content for c in chunks) == content

    def test_leading_empty_line_preserved(self):
        content = "\n" + "z" * 10
        chunks = chunk_document(_doc(content), max_chunk_size=5)
        assert "\n".join(c.content for c in chunks) == content


class TestValidation:
    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            chunk_document(_doc("abc"), max_chunk_size=0)


class TestChunkDocuments:
    def test_preserves_document_order(self):
        docs = [_doc("first", path="/a.md"), _doc("second", path="/b.md")]
        chunks = chunk_documents(docs)
        assert [c.file_path for c in chunks] == ["/a.md", "/b.md"]

    def test_empty_list(self):
        assert chunk_documents([]) == []
