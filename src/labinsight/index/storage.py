"""In-memory per-report vector indexes."""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Sequence

import numpy as np

from labinsight.models import EmbeddingRecord


class ReportIndex:
    """Immutable set of embedded windows for one report."""

    def __init__(self, document_id: str, records: Sequence[EmbeddingRecord]) -> None:
        self.document_id = document_id
        self.records = tuple(records)
        if self.records:
            matrix = np.vstack([np.asarray(r.vector, dtype="float32") for r in self.records])
        else:
            matrix = np.zeros((0, 0), dtype="float32")
        self._matrix = _normalize_rows(matrix)
        self._chunk_indices = np.array([r.chunk_index for r in self.records], dtype=np.int64)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def dimension(self) -> int:
        return int(self._matrix.shape[1]) if self._matrix.ndim == 2 else 0

    def search(self, embedding: np.ndarray, *, top_k: int = 3) -> List[dict]:
        """Rank windows by cosine similarity to ``embedding``.

        Ties are broken by ascending chunk index.
        """
        if top_k <= 0 or not self.records:
            return []
        query = np.asarray(embedding, dtype="float32").reshape(-1)
        if query.shape[0] != self.dimension:
            raise ValueError(
                f"Query dimension {query.shape[0]} does not match index dimension {self.dimension}"
            )
        norm = float(np.linalg.norm(query))
        if norm > 0:
            query = query / norm
        scores = self._matrix @ query

        # lexsort orders by the last key first.
        order = np.lexsort((self._chunk_indices, -scores))[:top_k]

        results: List[dict] = []
        for idx in order:
            record = self.records[idx]
            results.append(
                {
                    "document_id": self.document_id,
                    "chunk_index": record.chunk_index,
                    "text": record.text,
                    "metadata": dict(record.metadata),
                    "score": float(scores[idx]),
                }
            )
        return results


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    if matrix.size == 0:
        return matrix
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return (matrix / norms).astype("float32", copy=False)


class IndexRegistry:
    """Process-wide mapping from report id to its index.

    Writers serialise on ``lock`` and publish a fresh copy of the mapping, so
    readers never take the lock and always see either the old or the new
    index for a report, never a partial one.
    """

    def __init__(self, lock: threading.Lock | None = None) -> None:
        self._lock = lock or threading.Lock()
        self._indexes: Dict[str, ReportIndex] = {}

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._indexes

    def __len__(self) -> int:
        return len(self._indexes)

    def get(self, document_id: str) -> ReportIndex | None:
        return self._indexes.get(document_id)

    def put(self, index: ReportIndex) -> None:
        with self._lock:
            updated = dict(self._indexes)
            updated[index.document_id] = index
            self._indexes = updated

    def remove(self, document_id: str) -> bool:
        with self._lock:
            if document_id not in self._indexes:
                return False
            updated = dict(self._indexes)
            del updated[document_id]
            self._indexes = updated
            return True

    def clear(self) -> None:
        with self._lock:
            self._indexes = {}

    def stats(self) -> Dict[str, Any]:
        snapshot = self._indexes
        return {
            "cached_reports": len(snapshot),
            "report_ids": list(snapshot),
            "windows": sum(len(index) for index in snapshot.values()),
        }
