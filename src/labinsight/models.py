"""Core LabInsight data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np


@dataclass(slots=True)
class Document:
    """Full extracted text of one uploaded report."""

    document_id: str
    text: str
    page_count: int = 1
    owner: Optional[str] = None
    title: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Chunk:
    """Contiguous piece of a document's text."""

    document_id: str
    index: int
    total: int
    text: str


@dataclass(slots=True, frozen=True)
class EmbeddingRecord:
    """Chunk text paired with its embedding vector and metadata."""

    chunk: Chunk
    vector: np.ndarray
    metadata: Dict[str, Any]

    @property
    def text(self) -> str:
        return self.chunk.text

    @property
    def chunk_index(self) -> int:
        return self.chunk.index
