"""Tests for context retrieval."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from labinsight.errors import ContextUnavailable, IndexingFailed
from labinsight.index.indexer import ContextIndexer
from labinsight.index.search import ContextRetriever, SearchResult
from labinsight.index.storage import IndexRegistry

from conftest import FailingEmbedder, HashingEmbedder


@pytest.fixture
def retriever(embedder: HashingEmbedder, registry: IndexRegistry) -> ContextRetriever:
    indexer = ContextIndexer(embedder, registry, window_chars=120, overlap=20)
    return ContextRetriever(embedder, registry, indexer)


class TestRetrieve:
    """Tests for ContextRetriever.retrieve."""

    def test_window_text_is_its_own_best_match(
        self, retriever: ContextRetriever, report_text: str
    ) -> None:
        """Querying with a window's exact text ranks that window first."""
        index = retriever.indexer.index("r1", report_text)

        for record in index.records:
            results = retriever.retrieve("r1", record.text, top_k=1)
            assert results[0].text == record.text
            assert results[0].score == pytest.approx(1.0, abs=1e-5)

    def test_returns_search_results(self, retriever: ContextRetriever, report_text: str) -> None:
        retriever.indexer.index("r1", report_text, {"file_name": "panel.pdf"})

        results = retriever.retrieve("r1", "cholesterol LDL", top_k=2)

        assert len(results) == 2
        assert all(isinstance(result, SearchResult) for result in results)
        assert "cholesterol" in results[0].text.lower()
        assert results[0].score >= results[1].score
        assert results[0].metadata["file_name"] == "panel.pdf"
        assert results[0].document_id == "r1"

    def test_top_k_bounds_result_count(self, retriever: ContextRetriever, report_text: str) -> None:
        index = retriever.indexer.index("r1", report_text)

        assert len(retriever.retrieve("r1", "thyroid", top_k=1)) == 1
        assert len(retriever.retrieve("r1", "thyroid", top_k=100)) == len(index)

    def test_top_k_zero(self, retriever: ContextRetriever, report_text: str) -> None:
        retriever.indexer.index("r1", report_text)
        assert retriever.retrieve("r1", "thyroid", top_k=0) == []

    def test_top_k_zero_still_requires_index(self, retriever: ContextRetriever) -> None:
        with pytest.raises(ContextUnavailable):
            retriever.retrieve("missing", "thyroid", top_k=0)

    def test_missing_index_without_text(self, retriever: ContextRetriever) -> None:
        with pytest.raises(ContextUnavailable) as excinfo:
            retriever.retrieve("missing", "thyroid")
        assert excinfo.value.document_id == "missing"

    def test_indexes_on_demand(
        self, retriever: ContextRetriever, registry: IndexRegistry, report_text: str
    ) -> None:
        """A report with text but no index is indexed before retrieval."""
        results = retriever.retrieve("r1", "liver ALT", top_k=1, text=report_text)

        assert "r1" in registry
        assert "ALT" in results[0].text

    def test_cached_index_is_reused(self, retriever: ContextRetriever, report_text: str) -> None:
        retriever.indexer.index("r1", report_text)
        retriever.indexer = MagicMock()

        retriever.retrieve("r1", "liver", text=report_text)

        retriever.indexer.index.assert_not_called()

    def test_whitespace_text_is_not_indexed(self, retriever: ContextRetriever, registry: IndexRegistry) -> None:
        """Blank fallback text reports missing context instead of indexing."""
        with pytest.raises(ContextUnavailable):
            retriever.retrieve("r1", "liver", text=" \n\t ")
        assert "r1" not in registry

    def test_on_demand_indexing_failure(self, registry: IndexRegistry) -> None:
        retriever = ContextRetriever(FailingEmbedder(), registry)

        with pytest.raises(IndexingFailed):
            retriever.retrieve("r1", "liver", text="ALT 32 U/L")
        assert "r1" not in registry

    def test_default_indexer(self, embedder: HashingEmbedder, registry: IndexRegistry) -> None:
        retriever = ContextRetriever(embedder, registry)
        assert retriever.indexer.registry is registry
