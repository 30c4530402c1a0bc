"""Question answering over one report using retrieved context."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from labinsight.analysis import prompts
from labinsight.index.search import ContextRetriever
from labinsight.llm.client import ChatService
from labinsight.models import Document

LOGGER = logging.getLogger(__name__)

BROAD_QUESTION_TERMS = ("summary", "overall", "all")
BROAD_TOP_K = 6
DEFAULT_TOP_K = 4
PREVIEW_CHARS = 150
CHAT_PARAMS = (0.3, 2048)
FOLLOW_UP_PARAMS = (0.5, 512)

DEFAULT_FOLLOW_UPS = [
    "What do my test results mean?",
    "Are any of my values abnormal?",
    "What should I do about my results?",
]


@dataclass(slots=True)
class ChatTurn:
    role: Literal["user", "assistant"]
    content: str


@dataclass(slots=True)
class ChatAnswer:
    answer: str
    sources: List[dict] = field(default_factory=list)


def top_k_for(question: str) -> int:
    """Broad questions get more context windows."""
    lowered = question.lower()
    return BROAD_TOP_K if any(term in lowered for term in BROAD_QUESTION_TERMS) else DEFAULT_TOP_K


def _history_messages(history: Sequence[ChatTurn]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for turn in history:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    return messages


class ReportChat:
    """Retrieval-augmented chat about an uploaded report."""

    def __init__(self, retriever: ContextRetriever, chat: ChatService) -> None:
        self.retriever = retriever
        self.chat = chat

    def ask(
        self,
        document: Document,
        question: str,
        history: Sequence[ChatTurn] = (),
        analysis: str | None = None,
    ) -> ChatAnswer:
        """Answer ``question`` from the windows most relevant to it.

        Raises:
            ContextUnavailable / IndexingFailed: from the retriever.
        """
        results = self.retriever.retrieve(
            document.document_id,
            question,
            top_k=top_k_for(question),
            text=document.text,
            metadata=document.metadata,
        )
        context = "\n\n".join(result.text for result in results)
        LOGGER.info(
            "Retrieved %d windows for report %s, context length: %d chars",
            len(results),
            document.document_id,
            len(context),
        )
        if len(context) < 100:
            LOGGER.warning("Very little context retrieved for report %s", document.document_id)

        messages: List[BaseMessage] = [
            SystemMessage(content=prompts.chat_system_prompt(context, analysis)),
            *_history_messages(history),
            HumanMessage(content=question),
        ]
        temperature, max_tokens = CHAT_PARAMS
        answer = self.chat.complete(messages, temperature=temperature, max_tokens=max_tokens)

        sources = [
            {
                "chunk_index": result.chunk_index,
                "score": result.score,
                "preview": result.text[:PREVIEW_CHARS] + "...",
            }
            for result in results
        ]
        return ChatAnswer(answer=answer, sources=sources)

    def suggest_questions(self, text: str, analysis: str | None = None) -> List[str]:
        """Suggest up to three follow-up questions, or fixed defaults on failure."""
        temperature, max_tokens = FOLLOW_UP_PARAMS
        try:
            reply = self.chat.complete(
                prompts.follow_up_messages(text, analysis),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as exc:
            LOGGER.error("Error generating follow-up questions: %s", exc)
            return list(DEFAULT_FOLLOW_UPS)
        questions = [line.strip(" -\t") for line in reply.splitlines() if len(line.strip()) > 10]
        return questions[:3] or list(DEFAULT_FOLLOW_UPS)
