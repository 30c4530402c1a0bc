"""Command line interface for LabInsight."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from labinsight.analysis.extraction import extract_test_results
from labinsight.analysis.orchestrator import AnalysisOrchestrator
from labinsight.config import AppConfig
from labinsight.errors import LabInsightError
from labinsight.ingestion.pdf_loader import ExtractedReport, PDFExtractionError, extract_report
from labinsight.llm.client import ChatClient
from labinsight.models import Document
from labinsight.service import LabReportService
from labinsight.utils.files import is_pdf, report_id_for
from labinsight.utils.text import chunk_report_text

console = Console()
app = typer.Typer(help="LabInsight - chunked AI analysis and chat for lab report PDFs")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load(pdf: Path) -> ExtractedReport:
    if not is_pdf(pdf):
        raise typer.BadParameter(f"Not a PDF file: {pdf}")
    try:
        return extract_report(pdf)
    except PDFExtractionError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _document(pdf: Path, report: ExtractedReport) -> Document:
    return Document(
        document_id=report_id_for(pdf),
        text=report.text,
        page_count=report.page_count,
        title=pdf.name,
        metadata={"file_name": pdf.name},
    )


@app.command()
def chunks(
    pdf: Path = typer.Argument(..., help="Lab report PDF", resolve_path=True),
    chunk_chars: int = typer.Option(AppConfig().chunk_chars, min=1, help="Maximum chunk size in characters"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show how a report would be split for multi-stage analysis."""
    _setup_logging(verbose)
    report = _load(pdf)
    pieces = chunk_report_text(report.text, chunk_chars)

    console.print(f"[bold]{pdf.name}[/bold]: {report.page_count} pages, {len(report.text)} chars")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Chunk")
    table.add_column("Chars")
    table.add_column("Starts with")
    for idx, piece in enumerate(pieces):
        table.add_row(str(idx), str(len(piece)), piece[:80].replace("\n", " "))
    console.print(table)


@app.command()
def analyze(
    pdf: Path = typer.Argument(..., help="Lab report PDF", resolve_path=True),
    chunk_chars: int = typer.Option(AppConfig().chunk_chars, help="Maximum chunk size in characters"),
    threshold: int = typer.Option(
        AppConfig().single_pass_threshold, help="Largest single-page report analyzed in one call"
    ),
    concurrency: int = typer.Option(1, help="Parallel per-chunk calls"),
    extract_values: bool = typer.Option(False, "--extract-values", help="Also extract lab values"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Analyze a lab report PDF."""
    _setup_logging(verbose)
    try:
        config = replace(
            AppConfig.from_env(),
            chunk_chars=chunk_chars,
            single_pass_threshold=threshold,
            max_concurrency=concurrency,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    report = _load(pdf)
    orchestrator = AnalysisOrchestrator.from_config(ChatClient(config), config)
    try:
        result = orchestrator.analyze(report.text, page_count=report.page_count, file_name=pdf.name)
    except LabInsightError as exc:
        console.print(f"[red]Analysis failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(f"[bold]Mode:[/bold] {result.mode} ({result.calls} calls)")
    if result.failed_chunks:
        console.print(f"[yellow]Chunks without findings: {result.failed_chunks}[/yellow]")
    console.print(result.text)

    if extract_values:
        values = extract_test_results(orchestrator, report.text)["test_results"]
        table = Table(show_header=True, header_style="bold magenta")
        for column in ("Test", "Value", "Unit", "Reference", "Status"):
            table.add_column(column)
        for row in values:
            table.add_row(
                row["name"],
                row["value"],
                row.get("unit") or "",
                row.get("reference_range") or "",
                row.get("status") or "",
            )
        console.print(table)


@app.command()
def search(
    pdf: Path = typer.Argument(..., help="Lab report PDF", resolve_path=True),
    query: str = typer.Argument(..., help="Query text"),
    top_k: int = typer.Option(3, help="Number of windows to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show the report windows most similar to a query."""
    _setup_logging(verbose)
    report = _load(pdf)
    document = _document(pdf, report)
    service = LabReportService.from_config(AppConfig.from_env())

    try:
        results = service.retriever.retrieve(
            document.document_id, query, top_k=top_k, text=document.text, metadata=document.metadata
        )
    except LabInsightError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Window")
    table.add_column("Snippet")
    for result in results:
        snippet = result.text.replace("\n", " ")
        table.add_row(f"{result.score:.4f}", str(result.chunk_index), snippet[:180])
    console.print(table)


@app.command()
def ask(
    pdf: Path = typer.Argument(..., help="Lab report PDF", resolve_path=True),
    question: str = typer.Argument(..., help="Question about the report"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Ask a question about a lab report."""
    _setup_logging(verbose)
    report = _load(pdf)
    document = _document(pdf, report)
    service = LabReportService.from_config(AppConfig.from_env())

    try:
        answer = service.report_chat.ask(document, question)
    except LabInsightError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    console.print(answer.answer)
    sources = ", ".join(str(source["chunk_index"]) for source in answer.sources)
    console.print(f"[dim]Sources: windows {sources}[/dim]")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from labinsight.web.app import app as web_app

    console.print(f"Starting LabInsight API on http://{host}:{port}")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")


if __name__ == "__main__":
    app()
