"""Tests for data models and error types."""

from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from labinsight.errors import (
    AnalysisUnavailable,
    ContextUnavailable,
    IndexingFailed,
    LabInsightError,
    PerChunkAnalysisFailed,
)
from labinsight.models import Chunk, Document, EmbeddingRecord


class TestModels:
    """Tests for Document, Chunk and EmbeddingRecord."""

    def test_document_defaults(self) -> None:
        document = Document(document_id="r1", text="TSH 2.1")

        assert document.page_count == 1
        assert document.owner is None
        assert document.metadata == {}

    def test_chunk_is_immutable(self) -> None:
        chunk = Chunk(document_id="r1", index=0, total=1, text="TSH 2.1")
        with pytest.raises(dataclasses.FrozenInstanceError):
            chunk.text = "changed"  # type: ignore[misc]

    def test_record_properties(self) -> None:
        chunk = Chunk(document_id="r1", index=2, total=3, text="ALT 32")
        record = EmbeddingRecord(chunk=chunk, vector=np.zeros(3), metadata={})

        assert record.text == "ALT 32"
        assert record.chunk_index == 2


class TestErrors:
    """Tests for the error hierarchy."""

    @pytest.mark.parametrize(
        "error",
        [
            IndexingFailed("r1", "timeout"),
            ContextUnavailable("r1"),
            PerChunkAnalysisFailed(3, "timeout"),
            AnalysisUnavailable("no findings", state="synthesis"),
        ],
    )
    def test_share_base_class(self, error: Exception) -> None:
        assert isinstance(error, LabInsightError)

    def test_messages(self) -> None:
        assert str(IndexingFailed("r1", "timeout")) == "Failed to index report r1: timeout"
        assert str(ContextUnavailable("r1")) == "Vector index not found for report r1"
        assert PerChunkAnalysisFailed(3, "timeout").index == 3
        assert AnalysisUnavailable("x", state="synthesis").state == "synthesis"
