"""inkwell voice — voice pattern analysis and readiness.

  inkwell voice add interview-03.txt      analyze a transcript, record its patterns
  inkwell voice add patterns.json --json  record already-extracted patterns
  inkwell voice status                    per-aspect confidence and readiness
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
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
)
from inkwell.cli.errors import err_voice_analysis
from inkwell.db.repository import Repository
from inkwell.rag.llm_client import litellm_completer
from inkwell.voice.analyzer import VoiceAnalyzer
from inkwell.voice.confidence import READY_SCORE, VOICE_ASPECTS, get_confidence
from inkwell.voice.patterns import PatternValidationError, parse_patterns, record_patterns

voice_app = typer.Typer(help="Voice pattern analysis and readiness.", no_args_is_help=True)


@voice_app.command("add")
def voice_add_cmd(
    transcript: Annotated[
        Path, typer.Argument(exists=True, dir_okay=False, help="Transcript text file.")
    ],
    transcript_id: Annotated[
        str | None,
        typer.Option("--id", help="Transcript id (defaults to the file name)."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="File already holds pattern JSON; skip the model call."),
    ] = False,
    project: ProjectOption = DEFAULT_PROJECT,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Extract voice patterns from a transcript and update confidence scores."""
    cfg = load_config_or_exit(db)
    text = transcript.read_text(encoding="utf-8", errors="replace")
    tid = transcript_id or transcript.stem

    if not as_json:
        require_api_key(cfg.generation.model)

    conn = open_db(db, create=True)
    repo = Repository(conn)
    try:
        try:
            if as_json:
                patterns = parse_patterns(text, project, tid)
            else:
                with console.status("Analyzing transcript…"):
                    patterns = VoiceAnalyzer(litellm_completer(cfg.generation)).analyze(
                        text, project, tid
                    )
        except PatternValidationError as exc:
            console.print(err_voice_analysis(str(exc)))
            raise typer.Exit(1) from exc
        except Exception as exc:
            console.print(err_voice_analysis(f"Model call failed: {exc}"))
            raise typer.Exit(1) from exc

        result = record_patterns(repo, project, patterns)
        console.print(
            f"[green]✓[/] {len(patterns)} patterns recorded from '{tid}' "
            f"({result.transcripts} transcripts, ceiling {result.ceiling})"
        )
        _print_status(repo, project)
    finally:
        conn.close()


@voice_app.command("status")
def voice_status_cmd(
    project: ProjectOption = DEFAULT_PROJECT, db: DbOption = DEFAULT_DB
) -> None:
    """Show per-aspect voice confidence and whether the voice model is ready."""
    conn = open_db(db)
    repo = Repository(conn)
    try:
        _print_status(repo, project)
    finally:
        conn.close()


def _print_status(repo: Repository, project: str) -> None:
    report = get_confidence(repo, project)
    by_aspect = {a.aspect: a for a in report.aspects}

    table = Table(title=f"Voice confidence — {project}")
    table.add_column("Aspect")
    table.add_column("Score", justify="right")
    table.add_column("Target", justify="right")
    for name in VOICE_ASPECTS:
        row = by_aspect.get(name)
        if row is None:
            table.add_row(name.replace("_", " "), "[dim]—[/]", "[dim]—[/]")
            continue
        style = "green" if row.current_score >= READY_SCORE else "yellow"
        table.add_row(
            name.replace("_", " "),
            f"[{style}]{row.current_score}[/]",
            str(row.target_score),
        )
    console.print(table)

    verdict = "[green]Ready[/]" if report.is_ready else "[yellow]Not ready[/]"
    console.print(
        Panel(
            f"{verdict}  |  Average: [bold]{report.average_score}[/]  |  "
            f"Transcripts analyzed: [bold]{report.transcripts_analyzed}[/]",
            expand=False,
        )
    )
