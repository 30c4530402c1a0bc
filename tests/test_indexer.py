"""Tests for the report indexing pipeline."""

from __future__ import annotations

from unittest.mock import MagicMock

import numpy as np
import pytest

from labinsight.errors import IndexingFailed
from labinsight.index.indexer import ContextIndexer
from labinsight.index.storage import IndexRegistry
from labinsight.models import Document

from conftest import FailingEmbedder, HashingEmbedder


class TestWindows:
    """Tests for ContextIndexer.windows."""

    def test_window_count(self, embedder: HashingEmbedder, registry: IndexRegistry) -> None:
        indexer = ContextIndexer(embedder, registry, window_chars=1000, overlap=200)

        windows = indexer.windows("r1", "A" * 2500)

        assert len(windows) == 3
        assert [window.index for window in windows] == [0, 1, 2]
        assert all(window.total == 3 for window in windows)
        assert all(window.document_id == "r1" for window in windows)


class TestIndex:
    """Tests for ContextIndexer.index."""

    def test_builds_and_registers_index(
        self, embedder: HashingEmbedder, registry: IndexRegistry, report_text: str
    ) -> None:
        indexer = ContextIndexer(embedder, registry, window_chars=120, overlap=20)

        index = indexer.index("r1", report_text, {"file_name": "cbc.pdf"})

        assert registry.get("r1") is index
        assert len(index) > 1
        assert index.dimension == embedder.dimension

    def test_record_metadata(
        self, embedder: HashingEmbedder, registry: IndexRegistry, report_text: str
    ) -> None:
        """Each window carries the report metadata plus its position."""
        indexer = ContextIndexer(embedder, registry, window_chars=120, overlap=20)

        index = indexer.index("r1", report_text, {"file_name": "cbc.pdf", "user_id": "u1"})

        for position, record in enumerate(index.records):
            assert record.metadata["file_name"] == "cbc.pdf"
            assert record.metadata["user_id"] == "u1"
            assert record.metadata["document_id"] == "r1"
            assert record.metadata["chunk_index"] == position
            assert record.metadata["total_chunks"] == len(index)

    def test_reindex_replaces(self, embedder: HashingEmbedder, registry: IndexRegistry) -> None:
        """Indexing the same text twice yields one equivalent index."""
        indexer = ContextIndexer(embedder, registry, window_chars=100, overlap=10)
        text = "Glucose 98 mg/dL fasting. " * 20

        first = indexer.index("r1", text)
        second = indexer.index("r1", text)

        assert len(registry) == 1
        assert registry.get("r1") is second
        assert [r.text for r in first.records] == [r.text for r in second.records]
        for a, b in zip(first.records, second.records):
            np.testing.assert_array_equal(a.vector, b.vector)

    def test_batches_embedding_calls(self, embedder: HashingEmbedder, registry: IndexRegistry) -> None:
        indexer = ContextIndexer(embedder, registry, window_chars=100, overlap=0, batch_size=2)

        index = indexer.index("r1", "word " * 100)

        assert len(index) == 5
        assert [len(batch) for batch in embedder.calls] == [2, 2, 1]

    def test_embedding_failure_leaves_no_index(self, registry: IndexRegistry) -> None:
        """A failed embedding call raises and keeps the previous state."""
        indexer = ContextIndexer(FailingEmbedder(), registry)

        with pytest.raises(IndexingFailed) as excinfo:
            indexer.index("r1", "Hemoglobin 13.5 g/dL")

        assert excinfo.value.document_id == "r1"
        assert "quota exceeded" in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert registry.get("r1") is None

    def test_failure_keeps_previous_index(
        self, embedder: HashingEmbedder, registry: IndexRegistry
    ) -> None:
        ContextIndexer(embedder, registry).index("r1", "old text")
        previous = registry.get("r1")

        with pytest.raises(IndexingFailed):
            ContextIndexer(FailingEmbedder(), registry).index("r1", "new text")

        assert registry.get("r1") is previous

    def test_partial_batch_failure(self, registry: IndexRegistry) -> None:
        """A failure on a later batch still publishes nothing."""
        good = HashingEmbedder()
        flaky = MagicMock()
        flaky.embed.side_effect = [good.embed(["a", "b"]), RuntimeError("timeout")]
        indexer = ContextIndexer(flaky, registry, window_chars=100, overlap=0, batch_size=2)

        with pytest.raises(IndexingFailed):
            indexer.index("r1", "word " * 100)

        assert "r1" not in registry

    def test_vector_count_mismatch(self, registry: IndexRegistry) -> None:
        short = MagicMock()
        short.embed.return_value = np.ones((1, 4), dtype="float32")
        indexer = ContextIndexer(short, registry, window_chars=100, overlap=0)

        with pytest.raises(IndexingFailed, match="expected 5 embeddings"):
            indexer.index("r1", "word " * 100)

    def test_empty_text(self, embedder: HashingEmbedder, registry: IndexRegistry) -> None:
        with pytest.raises(IndexingFailed, match="no text"):
            ContextIndexer(embedder, registry).index("r1", "   ")
        assert embedder.calls == []


class TestIndexDocument:
    """Tests for ContextIndexer.index_document."""

    def test_adds_title_and_owner(self, embedder: HashingEmbedder, registry: IndexRegistry) -> None:
        document = Document(
            document_id="r1",
            text="Vitamin D 22 ng/mL LOW",
            owner="u1",
            title="vitamins.pdf",
            metadata={"source": "upload"},
        )

        index = ContextIndexer(embedder, registry).index_document(document)

        metadata = index.records[0].metadata
        assert metadata["file_name"] == "vitamins.pdf"
        assert metadata["user_id"] == "u1"
        assert metadata["source"] == "upload"
