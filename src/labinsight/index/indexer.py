"""Report indexing pipeline."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence

import numpy as np

from labinsight.embedding.encoder import Embedder
from labinsight.errors import IndexingFailed
from labinsight.index.storage import IndexRegistry, ReportIndex
from labinsight.models import Chunk, Document, EmbeddingRecord
from labinsight.utils.text import split_windows

LOGGER = logging.getLogger(__name__)


class ContextIndexer:
    """Splits report text into overlapping windows and indexes their embeddings."""

    def __init__(
        self,
        embedder: Embedder,
        registry: IndexRegistry,
        *,
        window_chars: int = 1000,
        overlap: int = 200,
        batch_size: int = 32,
    ) -> None:
        self.embedder = embedder
        self.registry = registry
        self.window_chars = window_chars
        self.overlap = overlap
        self.batch_size = max(batch_size, 1)

    def windows(self, document_id: str, text: str) -> List[Chunk]:
        pieces = split_windows(text, window_chars=self.window_chars, overlap=self.overlap)
        return [
            Chunk(document_id=document_id, index=idx, total=len(pieces), text=piece)
            for idx, piece in enumerate(pieces)
        ]

    def index(
        self,
        document_id: str,
        text: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> ReportIndex:
        """Build a fresh index for a report and replace any previous one.

        Raises:
            IndexingFailed: if the text yields no windows or any embedding
                call fails. The registry is left untouched in that case.
        """
        LOGGER.info("Indexing report %s, content length: %d", document_id, len(text))
        chunks = self.windows(document_id, text)
        if not chunks:
            raise IndexingFailed(document_id, "report has no text to index")
        LOGGER.debug("Split report %s into %d windows", document_id, len(chunks))

        try:
            vectors = self._embed([chunk.text for chunk in chunks])
        except Exception as exc:
            LOGGER.error("Embedding failed while indexing report %s: %s", document_id, exc)
            raise IndexingFailed(document_id, str(exc)) from exc

        if vectors.shape[0] != len(chunks):
            raise IndexingFailed(
                document_id,
                f"expected {len(chunks)} embeddings, got {vectors.shape[0]}",
            )

        base: Dict[str, Any] = dict(metadata or {})
        records = [
            EmbeddingRecord(
                chunk=chunk,
                vector=vector,
                metadata={
                    **base,
                    "document_id": document_id,
                    "chunk_index": chunk.index,
                    "total_chunks": chunk.total,
                },
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        index = ReportIndex(document_id, records)
        self.registry.put(index)
        LOGGER.info("Indexed report %s (%d windows)", document_id, len(index))
        return index

    def index_document(self, document: Document) -> ReportIndex:
        metadata: Dict[str, Any] = dict(document.metadata)
        if document.title:
            metadata.setdefault("file_name", document.title)
        if document.owner:
            metadata.setdefault("user_id", document.owner)
        return self.index(document.document_id, document.text, metadata)

    def _embed(self, texts: Sequence[str]) -> np.ndarray:
        batches = [
            np.asarray(self.embedder.embed(texts[start : start + self.batch_size]), dtype="float32")
            for start in range(0, len(texts), self.batch_size)
        ]
        return np.vstack(batches)
