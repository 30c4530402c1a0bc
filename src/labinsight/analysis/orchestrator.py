"""Single-pass or multi-stage analysis of extracted report text."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Sequence

from labinsight.analysis import prompts
from labinsight.config import AppConfig
from labinsight.errors import AnalysisUnavailable, PerChunkAnalysisFailed
from labinsight.llm.client import ChatService
from labinsight.utils.text import chunk_report_text

LOGGER = logging.getLogger(__name__)

# (temperature, max_tokens) per call kind
SINGLE_PASS_PARAMS = (0.5, 2048)
CHUNK_PARAMS = (0.1, 3000)
SYNTHESIS_PARAMS = (0.4, 4000)


class AnalysisState(str, Enum):
    RECEIVED = "received"
    CHUNKING = "chunking"
    PER_CHUNK_ANALYSIS = "per_chunk_analysis"
    SYNTHESIS = "synthesis"
    COMPLETE = "complete"


@dataclass(slots=True)
class ChunkOutcome:
    """Result or error of one per-chunk call."""

    index: int
    findings: str | None = None
    error: PerChunkAnalysisFailed | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.findings is not None


@dataclass(slots=True)
class AnalysisResult:
    text: str
    mode: str
    state: AnalysisState = AnalysisState.COMPLETE
    outcomes: List[ChunkOutcome] = field(default_factory=list)
    calls: int = 1

    @property
    def failed_chunks(self) -> List[int]:
        return [outcome.index for outcome in self.outcomes if not outcome.ok]


ChunkTask = Callable[[int, str], str]


class AnalysisOrchestrator:
    """Chooses between one summarisation call and chunked extraction plus synthesis."""

    def __init__(
        self,
        chat: ChatService,
        *,
        chunk_chars: int = 6000,
        single_pass_threshold: int = 5000,
        max_concurrency: int = 1,
    ) -> None:
        self.chat = chat
        self.chunk_chars = chunk_chars
        self.single_pass_threshold = single_pass_threshold
        self.max_concurrency = max(max_concurrency, 1)

    @classmethod
    def from_config(cls, chat: ChatService, config: AppConfig) -> "AnalysisOrchestrator":
        return cls(
            chat,
            chunk_chars=config.chunk_chars,
            single_pass_threshold=config.single_pass_threshold,
            max_concurrency=config.max_concurrency,
        )

    def uses_single_pass(self, text: str, page_count: int) -> bool:
        return page_count == 1 and len(text) < self.single_pass_threshold

    def analyze(
        self,
        text: str,
        *,
        page_count: int = 1,
        file_name: str | None = None,
    ) -> AnalysisResult:
        """Analyze report text and return a best-effort consolidated answer.

        Raises:
            AnalysisUnavailable: on empty input, when the single-pass call
                fails, or when every per-chunk call fails.
        """
        LOGGER.info(
            "Starting analysis for %s (%d pages, %d chars)",
            file_name or "report",
            page_count,
            len(text),
        )
        if not text.strip():
            raise AnalysisUnavailable("Report has no text to analyze", state=AnalysisState.CHUNKING.value)

        if self.uses_single_pass(text, page_count):
            LOGGER.info("Using single-pass analysis for small report")
            # The one call doubles as the synthesis stage.
            temperature, max_tokens = SINGLE_PASS_PARAMS
            try:
                answer = self.chat.complete(
                    prompts.single_pass_messages(text, file_name),
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except Exception as exc:
                LOGGER.error("Single-pass analysis failed: %s", exc)
                raise AnalysisUnavailable(
                    f"Analysis call failed: {exc}", state=AnalysisState.SYNTHESIS.value
                ) from exc
            return AnalysisResult(text=answer, mode="single_pass")

        LOGGER.debug("State %s", AnalysisState.CHUNKING.value)
        chunks = chunk_report_text(text, self.chunk_chars)
        LOGGER.info("Using multi-stage analysis: %d chunks", len(chunks))

        LOGGER.debug("State %s", AnalysisState.PER_CHUNK_ANALYSIS.value)
        outcomes = self.run_chunks(chunks, self._chunk_task(len(chunks), file_name))
        findings = [outcome.findings for outcome in outcomes if outcome.ok]

        LOGGER.debug("State %s", AnalysisState.SYNTHESIS.value)
        if not findings:
            LOGGER.error("All %d chunk analyses failed; skipping synthesis", len(chunks))
            raise AnalysisUnavailable(
                f"All {len(chunks)} chunk analyses failed",
                state=AnalysisState.SYNTHESIS.value,
            )
        if len(findings) < len(chunks):
            LOGGER.warning(
                "Synthesizing %d of %d chunk analyses", len(findings), len(chunks)
            )

        temperature, max_tokens = SYNTHESIS_PARAMS
        try:
            answer = self.chat.complete(
                prompts.synthesis_messages(findings, file_name),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as exc:
            LOGGER.error("Synthesis failed, returning section findings: %s", exc)
            answer = "\n\n".join(findings)

        return AnalysisResult(
            text=answer,
            mode="multi_stage",
            outcomes=outcomes,
            calls=len(chunks) + 1,
        )

    def _chunk_task(self, total: int, file_name: str | None) -> ChunkTask:
        temperature, max_tokens = CHUNK_PARAMS

        def task(index: int, chunk: str) -> str:
            LOGGER.info("Analyzing chunk %d/%d", index + 1, total)
            return self.chat.complete(
                prompts.chunk_messages(chunk, index + 1, total, file_name),
                temperature=temperature,
                max_tokens=max_tokens,
            )

        return task

    def run_chunks(self, chunks: Sequence[str], task: ChunkTask) -> List[ChunkOutcome]:
        """Run ``task`` over every chunk and collect outcomes ordered by chunk index."""

        def run(index: int, chunk: str) -> ChunkOutcome:
            try:
                findings = task(index, chunk)
            except Exception as exc:
                error = PerChunkAnalysisFailed(index, str(exc))
                error.__cause__ = exc
                LOGGER.warning("%s", error)
                return ChunkOutcome(index=index, error=error)
            if not findings or not findings.strip():
                error = PerChunkAnalysisFailed(index, "empty response")
                LOGGER.warning("%s", error)
                return ChunkOutcome(index=index, error=error)
            return ChunkOutcome(index=index, findings=findings)

        if self.max_concurrency == 1 or len(chunks) < 2:
            outcomes = [run(index, chunk) for index, chunk in enumerate(chunks)]
        else:
            workers = min(self.max_concurrency, len(chunks))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = list(pool.map(run, range(len(chunks)), chunks))
        return sorted(outcomes, key=lambda outcome: outcome.index)
