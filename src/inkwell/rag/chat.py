"""Grounded chat orchestrator.

One call to ``send_message`` turns one user message into one assistant
message with citations. Steps run strictly in order:

  1. resolve (or create) the session
  2. load the last ``history_limit`` messages, oldest first
  3. persist the user message
  4. retrieve grounding (degrades, never aborts)
  5. compose the prompt
  6. generate once, no retries here
  7. build citations from the chunks that were in the prompt
  8. persist the assistant message and touch the session

A generation failure raises GenerationError after step 3, so the transcript
keeps the question and the session can be resumed.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from inkwell.config import ChatCfg, RetrievalCfg
from inkwell.db.models import ChatMessage, ChatSession
from inkwell.db.repository import Repository
from inkwell.rag.assembler import TokenCounter, build_citations, compose_messages
from inkwell.rag.llm_client import Completer
from inkwell.rag.retriever import EmbeddingError, EmbeddingIndex

logger = logging.getLogger(__name__)


class ChatInputError(ValueError):
    """Missing project or empty message; raised before anything is written."""


class SessionNotFoundError(LookupError):
    """The session does not exist (or belongs to another project)."""


class GenerationError(RuntimeError):
    """The turn was aborted after the user message was stored.

    Attributes:
        session_id: Session holding the stored user message.
        user_message: The persisted user message.
    """

    def __init__(self, message: str, session_id: str, user_message: ChatMessage) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.user_message = user_message


@dataclass
class ChatTurn:
    session: ChatSession
    user_message: ChatMessage
    assistant_message: ChatMessage
    degraded: bool = False

    @property
    def session_id(self) -> str:
        return self.session.id


def session_title(message: str, limit: int = 50) -> str:
    text = " ".join(message.split())
    return text[:limit] + "..." if len(text) > limit else text


class ChatOrchestrator:
    """Run grounded chat turns.

    Args:
        repo: Open Repository.
        index: Embedding index used for grounding.
        completer: Generation capability.
        count_tokens: Token counter for the generation model (budget check).
        retrieval: top_k and token budget.
        chat: History, title and snippet bounds.
    """

    def __init__(
        self,
        repo: Repository,
        index: EmbeddingIndex,
        completer: Completer,
        count_tokens: TokenCounter,
        retrieval: RetrievalCfg | None = None,
        chat: ChatCfg | None = None,
    ) -> None:
        self._repo = repo
        self._index = index
        self._completer = completer
        self._count_tokens = count_tokens
        self._retrieval = retrieval or RetrievalCfg()
        self._chat = chat or ChatCfg()

    def send_message(
        self, project_id: str, message: str, session_id: str | None = None
    ) -> ChatTurn:
        """Answer *message* from the project's sources.

        Raises:
            ChatInputError: Missing project or empty message.
            SessionNotFoundError: *session_id* is unknown for this project.
            GenerationError: Query embedding or generation failed; the user
                message is already stored.
        """
        if not project_id:
            raise ChatInputError("project_id is required")
        if not message or not message.strip():
            raise ChatInputError("Message must not be empty")

        session = self._resolve_session(project_id, message, session_id)
        history = self._repo.recent_messages(session.id, self._chat.history_limit)

        user_message = self._repo.add_message(
            ChatMessage(id=str(uuid.uuid4()), session_id=session.id, role="user", content=message)
        )

        try:
            result = self._index.query(project_id, message, self._retrieval.top_k)
        except EmbeddingError as exc:
            logger.error("Could not embed question for session %s: %s", session.id, exc)
            raise GenerationError(
                f"Couldn't generate a response: {exc}", session.id, user_message
            ) from exc

        prompt = compose_messages(
            message,
            history,
            result.chunks,
            count_tokens=self._count_tokens,
            token_budget=self._retrieval.token_budget,
        )

        try:
            reply = self._completer(prompt.messages, system=prompt.system)
        except Exception as exc:
            logger.error("Generation failed for session %s: %s", session.id, exc)
            raise GenerationError(
                f"Couldn't generate a response: {exc}", session.id, user_message
            ) from exc
        if not reply or not reply.strip():
            logger.error("Generation returned an empty response for session %s", session.id)
            raise GenerationError(
                "Couldn't generate a response: the model returned no text",
                session.id,
                user_message,
            )

        citations = build_citations(prompt.included, self._chat.snippet_chars)
        retrieved = {c.chunk_id for c in result.chunks}
        assert all(c.chunk_id in retrieved for c in citations), (
            "citation references a chunk that was not retrieved"
        )

        assistant_message = self._repo.add_message(
            ChatMessage(
                id=str(uuid.uuid4()),
                session_id=session.id,
                role="assistant",
                content=reply,
                citations=citations,
            )
        )
        self._repo.touch_session(session.id)
        return ChatTurn(
            session=self._repo.get_session(session.id) or session,
            user_message=user_message,
            assistant_message=assistant_message,
            degraded=result.degraded,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def list_sessions(self, project_id: str) -> list[ChatSession]:
        return self._repo.list_sessions(project_id)

    def get_transcript(self, session_id: str) -> tuple[ChatSession, list[ChatMessage]]:
        """Return a session and all of its messages, oldest first."""
        session = self._repo.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Chat session '{session_id}' not found")
        return session, self._repo.list_messages(session_id)

    def delete_session(self, session_id: str) -> None:
        if not self._repo.delete_session(session_id):
            raise SessionNotFoundError(f"Chat session '{session_id}' not found")

    def _resolve_session(
        self, project_id: str, message: str, session_id: str | None
    ) -> ChatSession:
        if session_id is not None:
            session = self._repo.get_session(session_id)
            if session is None or session.project_id != project_id:
                raise SessionNotFoundError(
                    f"Chat session '{session_id}' not found in project '{project_id}'"
                )
            return session

        session = ChatSession(
            id=str(uuid.uuid4()),
            project_id=project_id,
            title=session_title(message, self._chat.title_chars),
        )
        self._repo.add_session(session)
        logger.debug("Created chat session %s for project %s", session.id, project_id)
        return self._repo.get_session(session.id) or session
