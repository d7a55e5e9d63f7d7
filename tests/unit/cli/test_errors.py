"""Tests for inkwell rich error messages."""

from __future__ import annotations

import pytest

from inkwell.cli.errors import (
    err_ambiguous_id,
    err_config,
    err_empty_message,
    err_generation_failed,
    err_ingest_failed,
    err_no_api_key,
    err_no_db,
    err_session_not_found,
    err_source_not_found,
    err_ssrf_blocked,
    err_voice_analysis,
    warn_degraded_retrieval,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _has_what_and_action(msg: str) -> bool:
    """Every error must contain a cause AND an actionable instruction."""
    lower = msg.lower()
    keywords = ["run:", "set:", "use ", "usage:", "export ", "inkwell ", "retry", "try again"]
    return any(kw in lower for kw in keywords)


# ---------------------------------------------------------------------------
# err_no_api_key
# ---------------------------------------------------------------------------


def test_err_no_api_key_contains_provider() -> None:
    assert "anthropic" in err_no_api_key("anthropic")


@pytest.mark.parametrize(
    "provider,env_var",
    [("openai", "OPENAI_API_KEY"), ("anthropic", "ANTHROPIC_API_KEY"), ("groq", "GROQ_API_KEY")],
)
def test_err_no_api_key_names_env_var(provider: str, env_var: str) -> None:
    assert f"export {env_var}=" in err_no_api_key(provider)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def test_err_no_db_contains_path_and_hint() -> None:
    msg = err_no_db("/tmp/x/.inkwell.db")
    assert "/tmp/x/.inkwell.db" in msg
    assert "inkwell add" in msg


def test_err_source_not_found_points_to_listing() -> None:
    msg = err_source_not_found("abc123")
    assert "abc123" in msg
    assert "inkwell sources" in msg


def test_err_session_not_found_points_to_listing() -> None:
    msg = err_session_not_found("3f2a")
    assert "3f2a" in msg
    assert "inkwell sessions list" in msg


def test_err_ambiguous_id_counts_matches() -> None:
    msg = err_ambiguous_id("session", "ab", 3)
    assert "'ab' matches 3 sessions" in msg


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


def test_err_generation_failed_offers_resume() -> None:
    msg = err_generation_failed("3f2a9c1e", "rate limited")
    assert "Couldn't generate a response" in msg
    assert "rate limited" in msg
    assert "inkwell chat --session 3f2a9c1e" in msg


def test_err_ingest_failed_mentions_retry_and_remove() -> None:
    msg = err_ingest_failed("Deep Work", "no text")
    assert "Deep Work" in msg
    assert "--retry" in msg
    assert "inkwell remove" in msg


def test_err_ssrf_blocked_contains_url() -> None:
    msg = err_ssrf_blocked("http://10.0.0.1/")
    assert "http://10.0.0.1/" in msg
    assert "SSRF" in msg


# ---------------------------------------------------------------------------
# All messages are actionable
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "msg",
    [
        err_no_api_key("openai"),
        err_no_db(),
        err_source_not_found("x"),
        err_session_not_found("x"),
        err_ambiguous_id("source", "x", 2),
        err_ssrf_blocked("http://x/"),
        err_ingest_failed("T", "r"),
        err_generation_failed("s", "r"),
        err_empty_message(),
        err_voice_analysis("r"),
        warn_degraded_retrieval(),
    ],
)
def test_all_errors_are_actionable(msg: str) -> None:
    assert _has_what_and_action(msg), f"Message lacks an actionable hint: {msg!r}"


def test_err_config_includes_detail() -> None:
    assert "overlap must be" in err_config("overlap must be smaller than chunk_size")
