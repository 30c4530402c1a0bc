"""Structured lab-value extraction across report chunks."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from labinsight.analysis import prompts
from labinsight.analysis.orchestrator import CHUNK_PARAMS, AnalysisOrchestrator
from labinsight.utils.text import chunk_report_text

LOGGER = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


class LabValue(BaseModel):
    """One lab parameter as reported by the extraction call."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    category: str | None = None
    name: str
    value: str
    unit: str | None = None
    reference_range: str | None = Field(default=None, alias="referenceRange")
    status: str | None = None


def parse_test_results(payload: str) -> List[LabValue]:
    """Parse a JSON reply into test results, skipping malformed entries."""
    data = json.loads(_FENCE_RE.sub("", payload.strip()) or "{}")
    rows = data.get("testResults") if isinstance(data, dict) else None
    if not isinstance(rows, list):
        return []
    results: List[LabValue] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        if row.get("value") is not None:
            row = {**row, "value": str(row["value"])}
        try:
            results.append(LabValue.model_validate(row))
        except ValidationError as exc:
            LOGGER.debug("Skipping malformed test result %r: %s", row, exc)
    return results


def extract_test_results(orchestrator: AnalysisOrchestrator, text: str) -> Dict[str, Any]:
    """Extract every lab value from report text, one JSON call per chunk.

    Chunks whose call or JSON parsing fails contribute nothing.
    """
    if not text.strip():
        return {"test_results": [], "extracted_count": 0}

    chunks = chunk_report_text(text, orchestrator.chunk_chars)
    LOGGER.info("Extracting structured data from %d chunks", len(chunks))
    temperature, max_tokens = CHUNK_PARAMS

    def task(index: int, chunk: str) -> str:
        reply = orchestrator.chat.complete(
            prompts.extraction_messages(chunk),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        # Fail inside the task so bad JSON is recorded as a chunk failure.
        parse_test_results(reply)
        return reply

    results: List[LabValue] = []
    for outcome in orchestrator.run_chunks(chunks, task):
        if outcome.ok and outcome.findings is not None:
            results.extend(parse_test_results(outcome.findings))

    LOGGER.info("Extracted %d test results total", len(results))
    return {
        "test_results": [result.model_dump() for result in results],
        "extracted_count": len(results),
    }
