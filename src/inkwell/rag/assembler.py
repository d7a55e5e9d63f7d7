"""Prompt assembler: grounding context, token budget, message list.

Pipeline:
  1. Apply token budget: keep retrieved chunks (in retrieval order) until the
     next one would overflow ``token_budget``. Only kept chunks are shown to
     the model, and only they become citations.
  2. Render the grounding block, each snippet labelled ``[Source n: title]``.
     With nothing to show, the block says so explicitly.
  3. Build the message list: history ({role, content} only), then a final user
     turn holding the grounding block followed by the live question.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from inkwell.db.models import ChatMessage, Citation
from inkwell.rag.retriever import RetrievedChunk

SYSTEM_PROMPT = (
    "You are a research assistant helping an author work with their own source material.\n\n"
    "Answer using ONLY the information in the provided context. "
    "If the context does not contain what is needed to answer, say so clearly "
    "instead of guessing.\n"
    "Reference sources naturally in your answer, for example "
    '"According to <source title>, ...".'
)

NO_SOURCES = "No relevant sources found for this query."
_CONTEXT_HEADER = "Here is relevant information from the author's sources:\n\n"

TokenCounter = Callable[[str], int]


@dataclass
class AssembledPrompt:
    system: str
    messages: list[dict] = field(default_factory=list)
    included: list[RetrievedChunk] = field(default_factory=list)
    context_tokens: int = 0


def apply_token_budget(
    chunks: Sequence[RetrievedChunk],
    count_tokens: TokenCounter,
    budget: int,
) -> tuple[list[RetrievedChunk], int]:
    """Select chunks that fit within *budget* tokens. Returns (selected, total_tokens)."""
    selected: list[RetrievedChunk] = []
    total = 0
    for chunk in chunks:
        tokens = count_tokens(chunk.content)
        if total + tokens > budget:
            break
        selected.append(chunk)
        total += tokens
    return selected, total


def build_grounding_context(chunks: Sequence[RetrievedChunk]) -> str:
    if not chunks:
        return NO_SOURCES
    body = "".join(
        f"[Source {i + 1}: {c.source_title}]\n{c.content}\n\n" for i, c in enumerate(chunks)
    )
    return _CONTEXT_HEADER + body.rstrip("\n")


def compose_messages(
    question: str,
    history: Sequence[ChatMessage],
    chunks: Sequence[RetrievedChunk],
    *,
    count_tokens: TokenCounter,
    token_budget: int = 8_192,
) -> AssembledPrompt:
    """Assemble system prompt and message list for one chat turn.

    Args:
        question: The live user message.
        history: Prior messages, oldest first (already bounded by the caller).
        chunks: Retrieved grounding, best first.
        count_tokens: Token counter for the generation model.
        token_budget: Max tokens of grounding text.
    """
    included, total = apply_token_budget(chunks, count_tokens, token_budget)
    context = build_grounding_context(included)
    messages = [{"role": m.role, "content": m.content} for m in history]
    messages.append({"role": "user", "content": f"{context}\n\n---\n\nUser Question: {question}"})
    return AssembledPrompt(
        system=SYSTEM_PROMPT,
        messages=messages,
        included=included,
        context_tokens=total,
    )


def build_citations(chunks: Sequence[RetrievedChunk], snippet_chars: int = 200) -> list[Citation]:
    """One citation per chunk that was shown to the model, in prompt order."""
    return [
        Citation(
            chunk_id=c.chunk_id,
            source_id=c.source_id,
            source_title=c.source_title,
            snippet=_snippet(c.content, snippet_chars),
        )
        for c in chunks
    ]


def _snippet(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text
