"""FastAPI application exposing report upload, analysis and chat."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from functools import lru_cache
from typing import Any, List

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from labinsight import __version__
from labinsight.chat import ChatTurn
from labinsight.config import AppConfig
from labinsight.errors import (
    AnalysisUnavailable,
    ContextUnavailable,
    IndexingFailed,
    LLMConfigurationError,
)
from labinsight.ingestion.pdf_loader import PDFExtractionError
from labinsight.service import LabReportService

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="LabInsight", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class HistoryItem(BaseModel):
    role: str = Field(pattern="^(user|assistant)$")
    content: str


class ChatPayload(BaseModel):
    question: str
    conversation_history: List[HistoryItem] = Field(default_factory=list)


class SearchPayload(BaseModel):
    query: str
    top_k: int = 3


@lru_cache()
def get_service() -> LabReportService:
    """Return the process-wide service instance."""
    return LabReportService.from_config(AppConfig.from_env())


def _is_pdf(upload: UploadFile) -> bool:
    return upload.content_type == "application/pdf" or (upload.filename or "").lower().endswith(".pdf")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/reports")
async def upload_report(
    file: UploadFile = File(...),
    file_name: str | None = Form(None),
    user_id: str | None = Form(None),
    extract_values: bool = Form(False),
    service: LabReportService = Depends(get_service),
) -> dict[str, Any]:
    if not _is_pdf(file):
        raise HTTPException(status_code=400, detail="Only PDF files are supported")
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="No file provided")

    try:
        report = await asyncio.to_thread(
            service.upload,
            data,
            file_name=file_name or file.filename,
            owner=user_id,
            extract_values=extract_values,
        )
    except PDFExtractionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True, "lab_report": report.summary()}


@app.get("/reports")
async def list_reports(service: LabReportService = Depends(get_service)) -> dict[str, Any]:
    return {"reports": [report.summary() for report in service.list_reports()]}


@app.post("/reports/{report_id}/chat")
async def chat_with_report(
    report_id: str,
    payload: ChatPayload,
    service: LabReportService = Depends(get_service),
) -> dict[str, Any]:
    question = payload.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Empty question")

    history = [ChatTurn(role=item.role, content=item.content) for item in payload.conversation_history]  # type: ignore[arg-type]
    try:
        result = await asyncio.to_thread(service.ask, report_id, question, history)
    except ContextUnavailable as exc:
        raise HTTPException(status_code=404, detail="Lab report not found") from exc
    except (IndexingFailed, LLMConfigurationError) as exc:
        LOGGER.error("Chat failed for report %s: %s", report_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except Exception as exc:
        LOGGER.exception("Failed to get answer from AI: %s", exc)
        raise HTTPException(status_code=502, detail="Failed to get answer from AI") from exc
    return {"success": True, "answer": result.answer, "sources": result.sources}


@app.post("/reports/{report_id}/search")
async def search_report(
    report_id: str,
    payload: SearchPayload,
    service: LabReportService = Depends(get_service),
) -> dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")
    top_k = max(1, min(payload.top_k, 20))
    try:
        results = await asyncio.to_thread(service.search, report_id, query, top_k=top_k)
    except ContextUnavailable as exc:
        raise HTTPException(status_code=404, detail="Lab report not found") from exc
    except IndexingFailed as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"results": [asdict(result) for result in results]}


@app.post("/reports/{report_id}/analysis")
async def reanalyze_report(
    report_id: str,
    service: LabReportService = Depends(get_service),
) -> dict[str, Any]:
    try:
        result = await asyncio.to_thread(service.reanalyze, report_id)
    except ContextUnavailable as exc:
        raise HTTPException(status_code=404, detail="Lab report not found") from exc
    except AnalysisUnavailable as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {
        "analysis": result.text,
        "mode": result.mode,
        "failed_chunks": result.failed_chunks,
    }


@app.get("/reports/{report_id}/questions")
async def suggested_questions(
    report_id: str,
    service: LabReportService = Depends(get_service),
) -> dict[str, Any]:
    try:
        questions = await asyncio.to_thread(service.suggest_questions, report_id)
    except ContextUnavailable as exc:
        raise HTTPException(status_code=404, detail="Lab report not found") from exc
    return {"questions": questions}


@app.delete("/reports/{report_id}")
async def delete_report(
    report_id: str,
    service: LabReportService = Depends(get_service),
) -> dict[str, Any]:
    if not service.forget(report_id):
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found")
    return {"status": "ok", "deleted_id": report_id}


@app.get("/index/stats")
async def index_stats(service: LabReportService = Depends(get_service)) -> dict[str, Any]:
    return service.registry.stats()
