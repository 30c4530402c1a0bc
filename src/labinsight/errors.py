"""Exceptions raised by the LabInsight pipeline."""

from __future__ import annotations


class LabInsightError(RuntimeError):
    """Base class for pipeline failures surfaced to callers."""


class ChunkingDegenerate(LabInsightError):
    """Splitting produced no chunks. Handled inside the chunker."""


class IndexingFailed(LabInsightError):
    """An embedding call failed while building a report index."""

    def __init__(self, document_id: str, message: str) -> None:
        super().__init__(f"Failed to index report {document_id}: {message}")
        self.document_id = document_id


class ContextUnavailable(LabInsightError):
    """No index exists for a report and none could be built."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Vector index not found for report {document_id}")
        self.document_id = document_id


class PerChunkAnalysisFailed(LabInsightError):
    """The extraction call for a single chunk failed."""

    def __init__(self, index: int, message: str) -> None:
        super().__init__(f"Analysis of chunk {index} failed: {message}")
        self.index = index


class AnalysisUnavailable(LabInsightError):
    """No analysis could be produced for a report."""

    def __init__(self, message: str, *, state: str | None = None) -> None:
        super().__init__(message)
        self.state = state


class LLMConfigurationError(LabInsightError):
    """No usable LLM provider is configured."""
