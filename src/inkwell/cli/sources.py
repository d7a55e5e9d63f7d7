"""inkwell add / sources / remove — source lifecycle.

Source type detection for ``inkwell add``:
  https:// / http://      → article (fetched, SSRF-guarded)
  .pdf                    → pdf (text extracted with pypdf)
  .txt .md .markdown .rst → text (read as-is)
  anything else           → needs --type plus --text-file (e.g. a youtube
                            or audio transcript)
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from inkwell.cli.common import (
    DEFAULT_DB,
    DEFAULT_PROJECT,
    DbOption,
    ProjectOption,
    console,
    load_config_or_exit,
    open_db,
    require_api_key,
    short_id,
    vec_table_for,
)
from inkwell.cli.errors import (
    err_ambiguous_id,
    err_ingest_failed,
    err_source_not_found,
    err_ssrf_blocked,
)
from inkwell.db.models import SOURCE_TYPES, Source
from inkwell.db.repository import Repository
from inkwell.ingest.chunker import SentenceChunker
from inkwell.ingest.embedding_writer import EmbeddingWriter
from inkwell.ingest.pipeline import IngestError, ProcessResult, SourceProcessor
from inkwell.ingest.summarizer import SourceAnalyzer
from inkwell.ingest.web import SsrfError
from inkwell.rag.llm_client import litellm_completer, litellm_embedder, validate_api_key

_TEXT_EXTS = {".txt", ".md", ".markdown", ".rst", ".text"}
_STATUS_STYLE = {
    "ready": "green",
    "processing": "cyan",
    "uploading": "dim",
    "failed": "red",
}


def add_cmd(
    target: Annotated[
        str | None, typer.Argument(help="File path or URL of the source.")
    ] = None,
    title: Annotated[str | None, typer.Option("--title", "-t", help="Display title.")] = None,
    source_type: Annotated[
        str | None,
        typer.Option("--type", help=f"Source type: {', '.join(sorted(SOURCE_TYPES))}."),
    ] = None,
    text_file: Annotated[
        Path | None,
        typer.Option("--text-file", help="File holding the source text (e.g. a transcript)."),
    ] = None,
    retry: Annotated[
        str | None,
        typer.Option("--retry", help="Re-process an existing source (id or id prefix)."),
    ] = None,
    analyze: Annotated[
        bool, typer.Option("--analyze/--no-analyze", help="Generate summary and key concepts.")
    ] = True,
    project: ProjectOption = DEFAULT_PROJECT,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Add a source to a project and make it searchable."""
    if target is None and retry is None:
        console.print("[red]Error:[/] Give a file path or URL, or --retry <id>.")
        raise typer.Exit(1)

    cfg = load_config_or_exit(db)
    require_api_key(cfg.embedding.model)

    conn = open_db(db, create=retry is None)
    repo = Repository(conn)
    try:
        if retry is not None:
            source = _resolve_source(repo, retry)
        else:
            source = _register(repo, project, target or "", title, source_type, text_file)
            console.print(
                f"[green]✓[/] Registered [bold]{source.title}[/] ({source.source_type})"
            )

        analyzer = None
        if analyze:
            try:
                validate_api_key(cfg.generation.analysis_model)
                analyzer = SourceAnalyzer(
                    repo, litellm_completer(cfg.generation, cfg.generation.analysis_model)
                )
            except EnvironmentError as exc:
                console.print(f"[yellow]Skipping summary:[/] {exc}")

        processor = SourceProcessor(
            repo,
            SentenceChunker(
                cfg.chunking.chunk_size, cfg.chunking.overlap, cfg.chunking.chars_per_token
            ),
            EmbeddingWriter(repo, litellm_embedder(cfg.embedding), cfg.embedding),
            vec_table_for(conn, cfg),
            analyzer=analyzer,
        )
        result = _process_with_progress(processor, source)
        _print_result(result)
    finally:
        conn.close()


def sources_cmd(project: ProjectOption = DEFAULT_PROJECT, db: DbOption = DEFAULT_DB) -> None:
    """List the sources of a project."""
    conn = open_db(db)
    repo = Repository(conn)
    try:
        sources = repo.list_sources(project)
        if not sources:
            console.print(f"[dim]No sources in project '{project}'.[/]")
            return
        table = Table(title=f"Sources — {project}", show_lines=False)
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Type")
        table.add_column("Status")
        table.add_column("Chunks", justify="right")
        table.add_column("Pending", justify="right")
        for s in sources:
            style = _STATUS_STYLE.get(s.status, "")
            pending = repo.count_pending_chunks(s.id)
            table.add_row(
                short_id(s.id),
                s.title,
                s.source_type,
                f"[{style}]{s.status}[/]" if style else s.status,
                str(repo.count_chunks_by_source(s.id)),
                f"[yellow]{pending}[/]" if pending else "0",
            )
        console.print(table)
    finally:
        conn.close()


def remove_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id (or unique id prefix).")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Remove a source with its chunks and embeddings."""
    conn = open_db(db)
    repo = Repository(conn)
    try:
        source = _resolve_source(repo, source_id, missing_exit=0)
        chunk_count = repo.count_chunks_by_source(source.id)
        console.print(f"\nRemove source: [bold]{source.title}[/]")
        console.print(f"  Chunks: {chunk_count}  |  Project: {source.project_id}")

        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        repo.delete_source(source.id)
        console.print(f"\n[green]✓[/] Removed: {source.title} ({chunk_count} chunks)")
    finally:
        conn.close()


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _register(
    repo: Repository,
    project: str,
    target: str,
    title: str | None,
    source_type: str | None,
    text_file: Path | None,
) -> Source:
    stype = source_type or _detect_type(target)
    if stype is None:
        console.print(
            f"[red]Error:[/] Cannot tell the type of '{target}'.\n"
            "  Use --type together with --text-file for transcripts and other media."
        )
        raise typer.Exit(1)
    if stype not in SOURCE_TYPES:
        console.print(
            f"[red]Error:[/] Unknown type '{stype}'. "
            f"Choose one of: {', '.join(sorted(SOURCE_TYPES))}."
        )
        raise typer.Exit(1)

    raw: str | None = None
    if text_file is not None:
        raw = text_file.read_text(encoding="utf-8", errors="replace")
    elif stype == "text":
        path = Path(target)
        if not path.is_file():
            console.print(f"[red]Error:[/] File not found: '{target}'")
            raise typer.Exit(1)
        raw = path.read_text(encoding="utf-8", errors="replace")
    elif stype not in ("pdf", "article"):
        console.print(f"[red]Error:[/] A {stype} source needs its text: pass --text-file.")
        raise typer.Exit(1)

    source = Source(
        id=str(uuid.uuid4()),
        project_id=project,
        title=title or _default_title(target),
        source_type=stype,
        location=target or None,
        raw_content=raw,
    )
    repo.add_source(source)
    return source


def _process_with_progress(processor: SourceProcessor, source: Source) -> ProcessResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task("Processing…", total=None)

        def _on_chunk(idx: int) -> None:
            prog.update(task, description="Embedding…", completed=idx + 1)

        try:
            return processor.process(source.id, on_progress=_on_chunk)
        except IngestError as exc:
            prog.stop()
            cause = exc.__cause__
            if isinstance(cause, SsrfError):
                console.print(err_ssrf_blocked(source.location or ""))
            else:
                console.print(err_ingest_failed(source.title, str(exc)))
            raise typer.Exit(1) from exc


def _print_result(result: ProcessResult) -> None:
    embedded = sum(1 for c in result.chunks if c.embedded)
    console.print(
        f"[green]✓[/] {result.source.title}: {len(result.chunks)} chunks, "
        f"{embedded} embedded  [dim](id {short_id(result.source.id)})[/]"
    )
    if result.report.failed:
        console.print(
            f"  [yellow]⚠ {len(result.report.failed)} chunks still pending.[/] "
            f"Retry:  inkwell add --retry {short_id(result.source.id)}"
        )
    if result.source.summary:
        console.print(f"  [dim]{result.source.summary}[/]")
    if result.source.key_concepts:
        console.print(f"  Key concepts: {', '.join(result.source.key_concepts)}")


def _resolve_source(repo: Repository, ref: str, missing_exit: int = 1) -> Source:
    source = repo.get_source(ref)
    if source is not None:
        return source
    matches = [s for s in repo.list_sources() if s.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        console.print(err_ambiguous_id("source", ref, len(matches)))
        raise typer.Exit(1)
    console.print(err_source_not_found(ref))
    raise typer.Exit(missing_exit)


def _detect_type(target: str) -> str | None:
    if target.startswith(("https://", "http://")):
        return "article"
    ext = Path(target).suffix.lower()
    if ext == ".pdf":
        return "pdf"
    if ext in _TEXT_EXTS:
        return "text"
    return None


def _default_title(target: str) -> str:
    if target.startswith(("https://", "http://")):
        return target
    return Path(target).stem or target
