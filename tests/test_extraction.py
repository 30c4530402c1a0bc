"""Tests for structured lab-value extraction."""

from __future__ import annotations

import json

import pytest

from labinsight.analysis.extraction import LabValue, extract_test_results, parse_test_results
from labinsight.analysis.orchestrator import CHUNK_PARAMS, AnalysisOrchestrator

from conftest import ScriptedChat

HEMOGLOBIN = {
    "category": "Complete Blood Count",
    "name": "Hemoglobin",
    "value": "13.5",
    "unit": "g/dL",
    "referenceRange": "12-16",
    "status": "normal",
}


def _reply(*rows: dict) -> str:
    return json.dumps({"testResults": list(rows)})


class TestParseTestResults:
    """Tests for parse_test_results."""

    def test_parses_rows(self) -> None:
        results = parse_test_results(_reply(HEMOGLOBIN))

        assert results == [
            LabValue(
                category="Complete Blood Count",
                name="Hemoglobin",
                value="13.5",
                unit="g/dL",
                reference_range="12-16",
                status="normal",
            )
        ]

    def test_strips_code_fences(self) -> None:
        payload = "```json\n" + _reply(HEMOGLOBIN) + "\n```"
        assert parse_test_results(payload)[0].name == "Hemoglobin"

    def test_numeric_values_become_strings(self) -> None:
        results = parse_test_results(_reply({"name": "Glucose", "value": 98}))
        assert results[0].value == "98"

    def test_skips_malformed_rows(self) -> None:
        results = parse_test_results(_reply({"unit": "mg/dL"}, "junk", HEMOGLOBIN))
        assert [r.name for r in results] == ["Hemoglobin"]

    def test_missing_key(self) -> None:
        assert parse_test_results('{"results": []}') == []

    def test_invalid_json(self) -> None:
        with pytest.raises(json.JSONDecodeError):
            parse_test_results("Here are the results: Hemoglobin 13.5")


class TestExtractTestResults:
    """Tests for extract_test_results."""

    def test_single_chunk(self) -> None:
        chat = ScriptedChat(lambda prompt: _reply(HEMOGLOBIN))
        orchestrator = AnalysisOrchestrator(chat)

        data = extract_test_results(orchestrator, "Hemoglobin 13.5 g/dL (12-16)")

        assert data["extracted_count"] == 1
        assert data["test_results"][0]["reference_range"] == "12-16"
        _, temperature, max_tokens = chat.calls[0]
        assert (temperature, max_tokens) == CHUNK_PARAMS

    def test_combines_chunks_in_order(self) -> None:
        def respond(prompt: str) -> str:
            name = "First" if "A" * 10 in prompt else "Second"
            return _reply({"name": name, "value": "1"})

        orchestrator = AnalysisOrchestrator(ScriptedChat(respond), chunk_chars=150)

        data = extract_test_results(orchestrator, "A" * 100 + "\n\n" + "B" * 100)

        assert [row["name"] for row in data["test_results"]] == ["First", "Second"]

    def test_bad_chunk_is_skipped(self) -> None:
        def respond(prompt: str) -> str:
            return "not json" if "B" * 10 in prompt else _reply(HEMOGLOBIN)

        orchestrator = AnalysisOrchestrator(ScriptedChat(respond), chunk_chars=150)

        data = extract_test_results(orchestrator, "A" * 100 + "\n\n" + "B" * 100)

        assert data["extracted_count"] == 1

    def test_empty_text(self) -> None:
        chat = ScriptedChat()
        data = extract_test_results(AnalysisOrchestrator(chat), "  ")

        assert data == {"test_results": [], "extracted_count": 0}
        assert chat.calls == []
