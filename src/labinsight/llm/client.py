"""Chat-completion client with Groq as primary provider and Gemini as fallback."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Protocol, Sequence, Tuple

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage

from labinsight.config import AppConfig
from labinsight.errors import LLMConfigurationError

LOGGER = logging.getLogger(__name__)


class ChatService(Protocol):
    """Contract the pipeline needs from a chat/completion backend."""

    def complete(
        self,
        messages: Sequence[BaseMessage],
        *,
        temperature: float = 0.5,
        max_tokens: int = 2048,
    ) -> str:
        ...


def create_llm(config: AppConfig, *, temperature: float = 0.5, max_tokens: int = 2048) -> BaseChatModel:
    """Create a chat model using GROQ_API_KEY (primary) or GOOGLE_API_KEY (fallback).

    Every model carries ``config.call_timeout`` so a slow provider surfaces
    as a failed call instead of blocking the request.

    Raises:
        LLMConfigurationError: If neither key is configured.
    """
    if config.groq_api_key:
        from langchain_groq import ChatGroq

        return ChatGroq(
            model=config.groq_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=config.call_timeout,
            max_retries=config.max_retries,
            api_key=config.groq_api_key,
        )
    if config.google_api_key:
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(
            model=config.gemini_model,
            temperature=temperature,
            max_output_tokens=max_tokens,
            timeout=config.call_timeout,
            max_retries=config.max_retries,
            google_api_key=config.google_api_key,
        )
    raise LLMConfigurationError(
        "No LLM API key found. Set GROQ_API_KEY or GOOGLE_API_KEY in the environment."
    )


ModelFactory = Callable[..., BaseChatModel]


class ChatClient:
    """Sends role-tagged messages to the configured chat model."""

    def __init__(self, config: AppConfig, factory: ModelFactory | None = None) -> None:
        self.config = config
        self._factory = factory or create_llm
        self._models: Dict[Tuple[float, int], BaseChatModel] = {}
        self._lock = threading.Lock()

    def _model(self, temperature: float, max_tokens: int) -> BaseChatModel:
        key = (temperature, max_tokens)
        with self._lock:
            model = self._models.get(key)
            if model is None:
                model = self._factory(self.config, temperature=temperature, max_tokens=max_tokens)
                self._models[key] = model
            return model

    def complete(
        self,
        messages: Sequence[BaseMessage],
        *,
        temperature: float = 0.5,
        max_tokens: int = 2048,
    ) -> str:
        model = self._model(temperature, max_tokens)
        response = model.invoke(list(messages))
        return _content_text(response.content)


def _content_text(content: Any) -> str:
    """Flatten a message payload that may be a string or a list of parts."""
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(str(part.get("text", "")))
    return "".join(parts)
