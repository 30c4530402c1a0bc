"""Context retrieval over per-report indexes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping

import numpy as np

from labinsight.embedding.encoder import Embedder
from labinsight.errors import ContextUnavailable
from labinsight.index.indexer import ContextIndexer
from labinsight.index.storage import IndexRegistry, ReportIndex

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SearchResult:
    document_id: str
    chunk_index: int
    score: float
    text: str
    metadata: dict


class ContextRetriever:
    """Finds the report windows most similar to a question."""

    def __init__(
        self,
        embedder: Embedder,
        registry: IndexRegistry,
        indexer: ContextIndexer | None = None,
    ) -> None:
        self.embedder = embedder
        self.registry = registry
        self.indexer = indexer or ContextIndexer(embedder, registry)

    def resolve_index(
        self,
        document_id: str,
        text: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ReportIndex:
        index = self.registry.get(document_id)
        if index is not None:
            LOGGER.debug("Using cached index for report %s", document_id)
            return index
        if text and text.strip():
            LOGGER.info("Creating index on demand for report %s", document_id)
            return self.indexer.index(document_id, text, metadata)
        LOGGER.warning("Index not found for report %s", document_id)
        raise ContextUnavailable(document_id)

    def retrieve(
        self,
        document_id: str,
        query: str,
        *,
        top_k: int = 3,
        text: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> List[SearchResult]:
        """Return up to ``top_k`` windows in descending similarity order.

        ``text`` and ``metadata`` let the retriever index the report on demand
        when no index exists yet.
        """
        index = self.resolve_index(document_id, text, metadata)
        if top_k <= 0:
            return []

        # Same call as indexing so a window's own text scores highest.
        embedding = np.asarray(self.embedder.embed([query]), dtype="float32")[0]
        rows = index.search(embedding, top_k=top_k)
        LOGGER.info(
            "Found %d relevant windows for query: %r", len(rows), query[:50]
        )
        return [
            SearchResult(
                document_id=row["document_id"],
                chunk_index=row["chunk_index"],
                score=row["score"],
                text=row["text"],
                metadata=row["metadata"],
            )
            for row in rows
        ]
