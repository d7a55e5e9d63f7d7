"""Tests for shared CLI helpers."""

from __future__ import annotations

from unittest.mock import patch

from inkwell.cli.common import short_id, token_counter
from inkwell.config import InkwellConfig


def test_token_counter_uses_generation_model() -> None:
    cfg = InkwellConfig()
    count = token_counter(cfg)

    with patch("inkwell.rag.llm_client.litellm.token_counter", return_value=12) as mock:
        assert count("How do habits form?") == 12

    assert mock.call_args.kwargs["model"] == cfg.generation.model


def test_short_id() -> None:
    assert short_id("a1b2c3d4-e5f6") == "a1b2c3d4"
