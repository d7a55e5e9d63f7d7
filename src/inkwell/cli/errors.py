"""Inkwell rich error messages.

Every error shown to the user contains:
  1. What went wrong
  2. What to do about it

Usage:
    from inkwell.cli.errors import err_no_db
    console.print(err_no_db(".inkwell.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

_PROVIDER_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
}


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'anthropic'. Set:  export ANTHROPIC_API_KEY=...
    """
    env_var = _PROVIDER_ENV.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return f"[red]Error:[/] No API key for '{provider}'.\n  Set:  export {env_var}=..."


def err_no_db(db_path: str = ".inkwell.db") -> str:
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Add a source first:  inkwell add <file-or-url>"
    )


def err_config(message: str) -> str:
    return f"[red]Error:[/] Invalid configuration.\n  {message}"


def err_source_not_found(source: str) -> str:
    return (
        f"[yellow]Source not found:[/] '{source}'.\n"
        "  Run:  inkwell sources  to see all sources and their ids."
    )


def err_ambiguous_id(kind: str, prefix: str, matches: int) -> str:
    return (
        f"[red]Error:[/] '{prefix}' matches {matches} {kind}s.\n"
        "  Use more characters of the id."
    )


def err_session_not_found(session_id: str) -> str:
    return (
        f"[yellow]Chat session not found:[/] '{session_id}'.\n"
        "  Run:  inkwell sessions list  to see your sessions."
    )


def err_ssrf_blocked(url: str) -> str:
    return (
        f"[red]Error:[/] URL resolves to a private address (SSRF protection): '{url}'\n"
        "  Use a publicly reachable URL."
    )


def err_ingest_failed(title: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Could not process '{title}'.\n"
        f"  {reason}\n"
        "  The source is marked failed. Retry with  inkwell add --retry <id>  "
        "or remove it with  inkwell remove <id>."
    )


def err_generation_failed(session_id: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Couldn't generate a response.\n"
        f"  {reason}\n"
        "  Your question was saved. Continue with:\n"
        f"    inkwell chat --session {session_id} \"...\""
    )


def err_empty_message() -> str:
    return '[red]Error:[/] Message is empty.\n  Usage:  inkwell chat "your question"'


def err_voice_analysis(reason: str) -> str:
    return (
        f"[red]Error:[/] Voice analysis failed.\n  {reason}\n"
        "  Check the transcript and try again."
    )


def warn_degraded_retrieval() -> str:
    return (
        "[yellow]⚠[/] Similarity search unavailable: the answer used unranked sources.\n"
        "  Re-run  inkwell add --retry <id>  for sources with pending embeddings."
    )
