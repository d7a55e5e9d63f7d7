"""LiteLLM client wrapper: the embedding and completion capabilities.

Everything outside this module sees two narrow callables:

  Embedder:   embed(text) -> list[float]
  Completer:  complete(messages, system=None) -> str

so tests and callers can substitute fakes. Every call carries a timeout; a
timeout surfaces as an exception like any other provider failure. Retry
policy belongs to the caller (the embedding writer retries, chat does not),
so LiteLLM's own retries are off unless requested.
"""

from __future__ import annotations

import os
from typing import Protocol

import litellm

from inkwell.config import EmbeddingCfg, GenerationCfg

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


class Embedder(Protocol):
    def __call__(self, text: str) -> list[float]: ...


class Completer(Protocol):
    def __call__(self, messages: list[dict], system: str | None = None) -> str: ...


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    system: str | None = None,
    max_tokens: int = 2_000,
    temperature: float = 0.0,
    timeout: float = 60.0,
    num_retries: int = 0,
) -> str:
    """Call litellm.completion() once. Returns the content string.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style message list (user/assistant turns).
        system: Optional system instruction, sent as the leading system message.
        max_tokens: Maximum output tokens.
        temperature: Sampling temperature (0 = deterministic).
        timeout: Seconds before the request is abandoned.
        num_retries: LiteLLM-level retries on transient errors.

    Raises:
        litellm.exceptions.APIError: On API failure or timeout.
    """
    payload = [{"role": "system", "content": system}, *messages] if system else list(messages)
    response = litellm.completion(
        model=model,
        messages=payload,
        max_tokens=max_tokens,
        temperature=temperature,
        timeout=timeout,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


def embed(model: str, text: str, timeout: float = 30.0, num_retries: int = 0) -> list[float]:
    """Call litellm.embedding() once. Returns the embedding vector."""
    response = litellm.embedding(
        model=model,
        input=[text],
        timeout=timeout,
        num_retries=num_retries,
    )
    return response.data[0]["embedding"]


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to character-based approximation (4 chars ≈ 1 token) if the model
    is not supported by litellm.token_counter().
    """
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        return max(1, len(text) // 4)


# ------------------------------------------------------------------
# Capability factories
# ------------------------------------------------------------------


def litellm_embedder(cfg: EmbeddingCfg) -> Embedder:
    """Bind the configured embedding model into an Embedder."""

    def _embed(text: str) -> list[float]:
        return embed(cfg.model, text, timeout=cfg.timeout)

    return _embed


def litellm_completer(cfg: GenerationCfg, model: str | None = None) -> Completer:
    """Bind a completion model (default: the generation model) into a Completer."""
    bound_model = model or cfg.model

    def _complete(messages: list[dict], system: str | None = None) -> str:
        return complete(
            bound_model,
            messages,
            system=system,
            max_tokens=cfg.max_tokens,
            timeout=cfg.timeout,
        )

    return _complete
