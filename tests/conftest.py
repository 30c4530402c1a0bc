"""Shared fixtures: deterministic stand-ins for the embedding and chat services."""

from __future__ import annotations

import hashlib
import re
from typing import Callable, Iterable, List, Sequence, Tuple

import fitz
import numpy as np
import pytest

from labinsight.config import AppConfig
from labinsight.index.storage import IndexRegistry

TOKEN_RE = re.compile(r"\w+")


class HashingEmbedder:
    """Bag-of-words vectors hashed into a fixed number of buckets."""

    def __init__(self, dimension: int = 64) -> None:
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def embed(self, texts: Iterable[str]) -> np.ndarray:
        batch = list(texts)
        self.calls.append(batch)
        matrix = np.zeros((len(batch), self.dimension), dtype="float32")
        for row, text in enumerate(batch):
            for token in TOKEN_RE.findall(text.lower()):
                bucket = int(hashlib.sha256(token.encode("utf-8")).hexdigest(), 16) % self.dimension
                matrix[row, bucket] += 1.0
        return matrix


class FailingEmbedder:
    def __init__(self, message: str = "quota exceeded") -> None:
        self.message = message

    def embed(self, texts: Iterable[str]) -> np.ndarray:
        raise RuntimeError(self.message)


def make_pdf(pages: List[str]) -> bytes:
    """Build a real PDF with one text line per page."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


Call = Tuple[list, float, int]


class ScriptedChat:
    """Chat service double that records calls and answers via ``responder``."""

    def __init__(self, responder: Callable[[str], str] | None = None) -> None:
        self.calls: List[Call] = []
        self.responder = responder or (lambda prompt: f"findings: {prompt[-40:]}")

    def complete(self, messages: Sequence, *, temperature: float = 0.5, max_tokens: int = 2048) -> str:
        self.calls.append((list(messages), temperature, max_tokens))
        return self.responder(messages[-1].content)

    def prompts(self) -> List[str]:
        return [messages[-1].content for messages, _, _ in self.calls]


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def chat() -> ScriptedChat:
    return ScriptedChat()


@pytest.fixture
def registry() -> IndexRegistry:
    return IndexRegistry()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(groq_api_key="test-key")


@pytest.fixture
def report_text() -> str:
    return (
        "Complete Blood Count. Hemoglobin 13.5 g/dL reference 12-16. "
        "White blood cells 7.2 normal.\n\n"
        "Lipid Panel. Total cholesterol 245 mg/dL HIGH reference below 200. "
        "LDL cholesterol 160 mg/dL HIGH.\n\n"
        "Liver Function. ALT 32 U/L normal. AST 28 U/L normal. Bilirubin 0.8 mg/dL.\n\n"
        "Thyroid Panel. TSH 2.1 mIU/L within range. Free T4 1.2 ng/dL."
    )
