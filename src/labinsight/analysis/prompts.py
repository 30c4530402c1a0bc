"""Prompt templates for report analysis, extraction and chat."""

from __future__ import annotations

from typing import List, Sequence

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

PLAIN_TEXT_RULES = """IMPORTANT FORMATTING:
- Do NOT use markdown (no asterisks, hashtags, or backticks)
- Use plain text with line breaks
- Use simple dashes for bullet points: "- Item"
- Always remind the patient to discuss results with their clinician"""

ANALYST_SYSTEM = (
    "You are a helpful medical AI assistant that analyzes lab reports and provides "
    "clear, patient-friendly explanations."
)
EXTRACTOR_SYSTEM = (
    "You are a medical data extraction expert. Extract all lab values precisely. "
    "Be thorough and accurate."
)
JSON_EXTRACTOR_SYSTEM = (
    "You are a data extraction expert. Return ONLY valid JSON, no explanation. "
    "Extract all lab values precisely."
)

SINGLE_PASS_TEMPLATE = """You are a clinical assistant helping patients understand lab test results.

FILE NAME: {file_name}

EXTRACTED LAB REPORT TEXT:
{text}

TASKS:
1. Summarize the overall picture in simple, reassuring language.
2. Call out any clearly abnormal values and what they might mean in broad terms (no diagnoses).
3. Group results into sections (blood counts, kidney function, liver function, cholesterol, glucose) when possible.
4. Suggest 3-5 specific follow-up questions the patient could ask their clinician.
5. Do NOT give treatment plans, prescriptions, or specific medical diagnoses.

{rules}"""

CHUNK_TEMPLATE = """You are analyzing PART {part} of {total} of a lab test report.
{file_line}
REPORT SECTION:
{text}

TASKS FOR THIS SECTION:
1. Extract ALL test parameters with their values, units, and reference ranges
2. Identify abnormal values (mark as HIGH, LOW, or CRITICAL)
3. Note test categories (CBC, Lipid Panel, Liver Function, etc.)
4. Identify any critical findings that need immediate attention
5. List patient information if present (name, age, date)

Provide structured output focused on data extraction and immediate observations."""

SYNTHESIS_TEMPLATE = """You are a clinical assistant. A lab report was analyzed in {count} sections. Create one comprehensive, patient-friendly analysis.
{file_line}
SECTIONAL ANALYSES:
{sections}

Cover: an overview summary, key findings grouped by category with every abnormal value explained, health insights across results, urgent notes, 3-5 follow-up questions, and lifestyle recommendations.

{rules}"""

EXTRACTION_TEMPLATE = """Extract ALL lab test data from this report section into JSON format.

{text}

Return ONLY valid JSON with this structure:
{{
  "testResults": [
    {{
      "category": "Complete Blood Count",
      "name": "Hemoglobin",
      "value": "13.5",
      "unit": "g/dL",
      "referenceRange": "12-16",
      "status": "normal"
    }}
  ]
}}"""

CHAT_SYSTEM_TEMPLATE = """You are an expert medical AI assistant analyzing a patient's lab report. You have ALREADY RECEIVED the lab report data below.

PATIENT'S LAB REPORT DATA:
{context}
{analysis}
Answer using the specific values, units and reference ranges from the data above. Explain abnormal values in simple terms. If a test is not in this report, say "That test is not included in this report". Use plain conversational language without markdown and remind the patient to discuss results with their healthcare provider."""

FOLLOW_UP_TEMPLATE = """Based on this lab report, suggest 3 specific questions the patient might want to ask:

LAB REPORT EXCERPT:
{text}
{analysis}
Format as a simple list, one question per line, without numbering or markdown."""


def _file_line(file_name: str | None) -> str:
    return f"\nFILE: {file_name}\n" if file_name else ""


def single_pass_messages(text: str, file_name: str | None = None) -> List[BaseMessage]:
    prompt = SINGLE_PASS_TEMPLATE.format(
        file_name=file_name or "Lab report", text=text, rules=PLAIN_TEXT_RULES
    )
    return [SystemMessage(content=ANALYST_SYSTEM), HumanMessage(content=prompt)]


def chunk_messages(text: str, part: int, total: int, file_name: str | None = None) -> List[BaseMessage]:
    prompt = CHUNK_TEMPLATE.format(
        part=part, total=total, file_line=_file_line(file_name), text=text
    )
    return [SystemMessage(content=EXTRACTOR_SYSTEM), HumanMessage(content=prompt)]


def synthesis_messages(findings: Sequence[str], file_name: str | None = None) -> List[BaseMessage]:
    sections = "\n\n".join(
        f"=== SECTION {number} ANALYSIS ===\n{finding}"
        for number, finding in enumerate(findings, start=1)
    )
    prompt = SYNTHESIS_TEMPLATE.format(
        count=len(findings),
        file_line=_file_line(file_name),
        sections=sections,
        rules=PLAIN_TEXT_RULES,
    )
    return [SystemMessage(content=ANALYST_SYSTEM), HumanMessage(content=prompt)]


def extraction_messages(text: str) -> List[BaseMessage]:
    return [
        SystemMessage(content=JSON_EXTRACTOR_SYSTEM),
        HumanMessage(content=EXTRACTION_TEMPLATE.format(text=text)),
    ]


def chat_system_prompt(context: str, analysis: str | None = None) -> str:
    block = f"\nAI ANALYSIS SUMMARY:\n{analysis}\n" if analysis else ""
    return CHAT_SYSTEM_TEMPLATE.format(context=context, analysis=block)


def follow_up_messages(text: str, analysis: str | None = None) -> List[BaseMessage]:
    block = f"\nANALYSIS:\n{analysis[:1000]}\n" if analysis else ""
    return [HumanMessage(content=FOLLOW_UP_TEMPLATE.format(text=text[:3000], analysis=block))]
