"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Literal, Mapping

from labinsight.embedding.encoder import DEFAULT_MODEL, GOOGLE_EMBEDDING_MODEL

GROQ_DEFAULT_MODEL = "llama-3.3-70b-versatile"
GEMINI_DEFAULT_MODEL = "gemini-2.0-flash"

ENV_PREFIX = "LABINSIGHT_"
EMBEDDING_BACKENDS = ("torch", "onnx", "openvino")


@dataclass(slots=True)
class AppConfig:
    model_name: str = DEFAULT_MODEL
    embedding_provider: Literal["local", "google"] = "local"
    embedding_backend: Literal["torch", "onnx", "openvino"] = "torch"
    google_embedding_model: str = GOOGLE_EMBEDDING_MODEL
    groq_model: str = GROQ_DEFAULT_MODEL
    gemini_model: str = GEMINI_DEFAULT_MODEL
    groq_api_key: str | None = None
    google_api_key: str | None = None
    # Orchestrator
    chunk_chars: int = 6000
    single_pass_threshold: int = 5000
    max_concurrency: int = 1
    # Indexer
    window_chars: int = 1000
    overlap: int = 200
    embed_batch_size: int = 32
    # External calls
    call_timeout: float = 60.0
    max_retries: int = 2

    def __post_init__(self) -> None:
        if self.chunk_chars <= 0:
            raise ValueError("chunk_chars must be a positive integer")
        if self.window_chars <= 0:
            raise ValueError("window_chars must be a positive integer")
        if not 0 <= self.overlap < self.window_chars:
            raise ValueError("overlap must be non-negative and smaller than window_chars")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.embedding_backend not in EMBEDDING_BACKENDS:
            raise ValueError(f"embedding_backend must be one of {EMBEDDING_BACKENDS}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppConfig":
        """Build a config from ``LABINSIGHT_*`` variables and provider API keys."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for item in fields(cls):
            raw = env.get(ENV_PREFIX + item.name.upper())
            if raw is None or raw == "":
                continue
            default = item.default
            if isinstance(default, int):
                values[item.name] = int(raw)
            elif isinstance(default, float):
                values[item.name] = float(raw)
            else:
                values[item.name] = raw

        values.setdefault("groq_api_key", env.get("GROQ_API_KEY") or None)
        values.setdefault(
            "google_api_key", env.get("GOOGLE_API_KEY") or env.get("GEMINI_API_KEY") or None
        )
        return cls(**values)  # type: ignore[arg-type]
