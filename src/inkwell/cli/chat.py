"""inkwell chat / sessions — grounded Q&A over a project's sources.

Usage:
  inkwell chat "What does the author say about habits?"
  inkwell chat --session 3f2a9c1e "And how does that tie to chapter two?"
  inkwell sessions list
  inkwell sessions show 3f2a9c1e
  inkwell sessions delete 3f2a9c1e --yes
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from inkwell.cli.common import (
    DEFAULT_DB,
    DEFAULT_PROJECT,
    DbOption,
    ProjectOption,
    build_index,
    console,
    load_config_or_exit,
    open_db,
    require_api_key,
    short_id,
    token_counter,
)
from inkwell.cli.errors import (
    err_ambiguous_id,
    err_empty_message,
    err_generation_failed,
    err_session_not_found,
    warn_degraded_retrieval,
)
from inkwell.db.models import ChatMessage, ChatSession, Citation
from inkwell.db.repository import Repository
from inkwell.rag.chat import (
    ChatInputError,
    ChatOrchestrator,
    GenerationError,
    SessionNotFoundError,
)
from inkwell.rag.llm_client import litellm_completer

sessions_app = typer.Typer(help="List, show and delete chat sessions.", no_args_is_help=True)


def chat_cmd(
    message: Annotated[str, typer.Argument(help="Your question.")],
    session: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Continue a session (id or id prefix)."),
    ] = None,
    project: ProjectOption = DEFAULT_PROJECT,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Ask a question answered only from the project's sources."""
    if not message.strip():
        console.print(err_empty_message())
        raise typer.Exit(1)

    cfg = load_config_or_exit(db)
    require_api_key(cfg.embedding.model)
    require_api_key(cfg.generation.model)

    conn = open_db(db)
    repo = Repository(conn)
    try:
        session_id = _resolve_session_id(repo, session) if session else None
        orchestrator = ChatOrchestrator(
            repo,
            build_index(repo, cfg),
            litellm_completer(cfg.generation),
            token_counter(cfg),
            retrieval=cfg.retrieval,
            chat=cfg.chat,
        )
        with console.status("Thinking…"):
            try:
                turn = orchestrator.send_message(project, message, session_id)
            except GenerationError as exc:
                console.print(err_generation_failed(short_id(exc.session_id), str(exc)))
                raise typer.Exit(1) from exc
            except SessionNotFoundError as exc:
                console.print(err_session_not_found(session or ""))
                raise typer.Exit(1) from exc
            except ChatInputError as exc:
                console.print(f"[red]Error:[/] {exc}")
                raise typer.Exit(1) from exc

        if turn.degraded:
            console.print(warn_degraded_retrieval())
        console.print(
            Panel(
                Markdown(turn.assistant_message.content),
                title=f"[bold]{turn.session.title or 'Chat'}[/]",
                subtitle=f"[dim]session {short_id(turn.session_id)}[/]",
            )
        )
        _print_citations(turn.assistant_message.citations or [])
    finally:
        conn.close()


@sessions_app.command("list")
def sessions_list_cmd(
    project: ProjectOption = DEFAULT_PROJECT, db: DbOption = DEFAULT_DB
) -> None:
    """List chat sessions, most recent first."""
    conn = open_db(db)
    repo = Repository(conn)
    try:
        sessions = repo.list_sessions(project)
        if not sessions:
            console.print(f"[dim]No chat sessions in project '{project}'.[/]")
            return
        table = Table(title=f"Chat sessions — {project}")
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Messages", justify="right")
        table.add_column("Last activity")
        for s in sessions:
            table.add_row(
                short_id(s.id),
                s.title or "",
                str(repo.count_messages(s.id)),
                s.updated_at or "",
            )
        console.print(table)
    finally:
        conn.close()


@sessions_app.command("show")
def sessions_show_cmd(
    session_id: Annotated[str, typer.Argument(help="Session id (or unique id prefix).")],
    db: DbOption = DEFAULT_DB,
) -> None:
    """Print a session's transcript with citations."""
    conn = open_db(db)
    repo = Repository(conn)
    try:
        session = _load_session(repo, session_id)
        _print_transcript(session, repo.list_messages(session.id))
    finally:
        conn.close()


@sessions_app.command("delete")
def sessions_delete_cmd(
    session_id: Annotated[str, typer.Argument(help="Session id (or unique id prefix).")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Delete a session and all of its messages."""
    conn = open_db(db)
    repo = Repository(conn)
    try:
        session = _load_session(repo, session_id)
        if not yes and not typer.confirm(f"Delete session '{session.title}'?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)
        repo.delete_session(session.id)
        console.print(f"[green]✓[/] Deleted session: {session.title}")
    finally:
        conn.close()


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _resolve_session_id(repo: Repository, ref: str) -> str:
    if repo.get_session(ref) is not None:
        return ref
    matches = repo.find_session_ids(ref)
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        console.print(err_ambiguous_id("session", ref, len(matches)))
        raise typer.Exit(1)
    # Unknown ids are left to the orchestrator, which reports them.
    return ref


def _load_session(repo: Repository, ref: str) -> ChatSession:
    session = repo.get_session(_resolve_session_id(repo, ref))
    if session is None:
        console.print(err_session_not_found(ref))
        raise typer.Exit(1)
    return session


def _print_citations(citations: list[Citation]) -> None:
    if not citations:
        console.print("[dim]No sources cited.[/]")
        return
    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Source")
    table.add_column("Snippet", style="dim")
    for i, c in enumerate(citations, start=1):
        table.add_row(str(i), c.source_title, c.snippet.replace("\n", " "))
    console.print(table)


def _print_transcript(session: ChatSession, messages: list[ChatMessage]) -> None:
    console.print(
        f"[bold]{session.title or 'Chat'}[/]  [dim]{short_id(session.id)} · "
        f"{session.project_id} · {session.created_at}[/]\n"
    )
    if not messages:
        console.print("[dim](no messages)[/]")
        return
    for m in messages:
        if m.role == "user":
            console.print(f"[bold cyan]You:[/] {m.content}")
        else:
            console.print(Panel(Markdown(m.content), title="Assistant", title_align="left"))
            _print_citations(m.citations or [])
        console.print()
