"""Upload, analysis and chat workflow for lab reports."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence

from labinsight.analysis.extraction import extract_test_results
from labinsight.analysis.orchestrator import AnalysisOrchestrator, AnalysisResult
from labinsight.chat import ChatAnswer, ChatTurn, ReportChat
from labinsight.config import AppConfig
from labinsight.embedding.encoder import Embedder, create_embedder
from labinsight.errors import ContextUnavailable, LabInsightError
from labinsight.index.indexer import ContextIndexer
from labinsight.index.search import ContextRetriever, SearchResult
from labinsight.index.storage import IndexRegistry
from labinsight.ingestion.pdf_loader import extract_report
from labinsight.llm.client import ChatClient, ChatService
from labinsight.models import Document

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class StoredReport:
    document: Document
    uploaded_at: str
    analysis: str | None = None
    analysis_mode: str | None = None
    windows: int = 0
    test_results: List[Dict[str, Any]] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.document.document_id,
            "file_name": self.document.title,
            "uploaded_at": self.uploaded_at,
            "page_count": self.document.page_count,
            "raw_text_length": len(self.document.text),
            "analysis_mode": self.analysis_mode,
            "ai_analysis": self.analysis,
            "indexed_windows": self.windows,
            "tests_found": len(self.test_results),
        }


class LabReportService:
    """Keeps uploaded reports in memory and wires them through the pipeline."""

    def __init__(
        self,
        config: AppConfig,
        embedder: Embedder,
        chat: ChatService,
        *,
        registry: IndexRegistry | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or IndexRegistry()
        self.indexer = ContextIndexer(
            embedder,
            self.registry,
            window_chars=config.window_chars,
            overlap=config.overlap,
            batch_size=config.embed_batch_size,
        )
        self.retriever = ContextRetriever(embedder, self.registry, self.indexer)
        self.orchestrator = AnalysisOrchestrator.from_config(chat, config)
        self.report_chat = ReportChat(self.retriever, chat)
        self._reports: Dict[str, StoredReport] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AppConfig) -> "LabReportService":
        return cls(config, create_embedder(config), ChatClient(config))

    def upload(
        self,
        source: Path | bytes,
        *,
        file_name: str | None = None,
        owner: str | None = None,
        document_id: str | None = None,
        extract_values: bool = False,
    ) -> StoredReport:
        """Extract, analyze and index a PDF report.

        Analysis and indexing failures are logged and do not fail the upload;
        a report without an index is indexed again on its first question.
        """
        extracted = extract_report(source, name=file_name)
        document = Document(
            document_id=document_id or uuid.uuid4().hex,
            text=extracted.text,
            page_count=extracted.page_count,
            owner=owner,
            title=file_name or extracted.title,
        )
        return self.add_document(document, extract_values=extract_values)

    def add_document(self, document: Document, *, extract_values: bool = False) -> StoredReport:
        uploaded_at = datetime.now(timezone.utc).isoformat()
        document.metadata.setdefault("report_id", document.document_id)
        document.metadata.setdefault("file_name", document.title)
        document.metadata.setdefault("uploaded_at", uploaded_at)
        if document.owner:
            document.metadata.setdefault("user_id", document.owner)

        report = StoredReport(document=document, uploaded_at=uploaded_at)

        try:
            result = self.orchestrator.analyze(
                document.text, page_count=document.page_count, file_name=document.title
            )
            report.analysis, report.analysis_mode = result.text, result.mode
            LOGGER.info("Generated %s analysis (%d characters)", result.mode, len(result.text))
        except LabInsightError as exc:
            LOGGER.error("AI analysis failed for report %s: %s", document.document_id, exc)

        if extract_values:
            report.test_results = extract_test_results(self.orchestrator, document.text)[
                "test_results"
            ]

        try:
            index = self.indexer.index(document.document_id, document.text, document.metadata)
            report.windows = len(index)
        except LabInsightError as exc:
            LOGGER.error("Vector index build failed for report %s: %s", document.document_id, exc)

        with self._lock:
            self._reports[document.document_id] = report
        return report

    def get(self, document_id: str) -> StoredReport:
        report = self._reports.get(document_id)
        if report is None:
            raise ContextUnavailable(document_id)
        return report

    def list_reports(self) -> List[StoredReport]:
        return list(self._reports.values())

    def ask(
        self,
        document_id: str,
        question: str,
        history: Sequence[ChatTurn] = (),
    ) -> ChatAnswer:
        report = self.get(document_id)
        return self.report_chat.ask(report.document, question, history, report.analysis)

    def search(self, document_id: str, query: str, *, top_k: int = 3) -> List[SearchResult]:
        report = self.get(document_id)
        return self.retriever.retrieve(
            document_id,
            query,
            top_k=top_k,
            text=report.document.text,
            metadata=report.document.metadata,
        )

    def forget(self, document_id: str) -> bool:
        """Drop a report and its index."""
        with self._lock:
            removed = self._reports.pop(document_id, None) is not None
        return self.registry.remove(document_id) or removed

    def suggest_questions(self, document_id: str) -> List[str]:
        report = self.get(document_id)
        return self.report_chat.suggest_questions(report.document.text, report.analysis)

    def reanalyze(self, document_id: str) -> AnalysisResult:
        """Run the analysis again and store the new result on the report."""
        report = self.get(document_id)
        document = report.document
        result = self.orchestrator.analyze(
            document.text, page_count=document.page_count, file_name=document.title
        )
        with self._lock:
            report.analysis, report.analysis_mode = result.text, result.mode
        LOGGER.info("Re-analyzed report %s (%s)", document_id, result.mode)
        return result
