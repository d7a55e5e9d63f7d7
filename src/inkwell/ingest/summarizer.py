"""Source analyzer: generate a summary and key concepts per source.

Called once per ingested source after its chunks are stored. Failure is
non-fatal: the source stays usable for retrieval without a summary.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from inkwell.db.repository import Repository
from inkwell.rag.llm_client import Completer

logger = logging.getLogger(__name__)

_ANALYSIS_PROMPT = """\
You are a content analyst helping an author organize research material.

Analyze the content below and return ONLY JSON in this format:
{{"summary": "2-3 sentence summary of the main points", \
"keyConcepts": ["3-5 main topics or ideas"]}}

Source type: {source_type}

CONTENT (first 8000 characters):
{text}"""

_MIN_CHARS = 50
_MAX_INPUT_CHARS = 8_000


@dataclass
class SourceAnalysis:
    summary: str = ""
    key_concepts: list[str] = field(default_factory=list)


class SourceAnalyzer:
    """Generate and persist a summary plus key concepts for a source.

    Args:
        repo:      Open Repository instance.
        completer: Completion capability bound to the analysis model.
    """

    def __init__(self, repo: Repository, completer: Completer) -> None:
        self._repo = repo
        self._completer = completer

    def analyze(self, source_id: str, text: str, source_type: str = "text") -> SourceAnalysis:
        """Analyze *text* and store the result on *source_id*.

        Returns an empty SourceAnalysis (and stores nothing) when the text is
        too short or the model call or its JSON fails.
        """
        if len(text.strip()) < _MIN_CHARS:
            return SourceAnalysis()
        prompt = _ANALYSIS_PROMPT.format(source_type=source_type, text=text[:_MAX_INPUT_CHARS])
        try:
            raw = self._completer([{"role": "user", "content": prompt}])
            analysis = _parse_analysis(raw)
        except Exception as exc:
            logger.warning("Analysis of source %s failed: %s", source_id, exc)
            return SourceAnalysis()
        self._repo.set_source_analysis(source_id, analysis.summary, analysis.key_concepts)
        return analysis


def _parse_analysis(raw: str) -> SourceAnalysis:
    start = raw.index("{")
    end = raw.rindex("}") + 1
    data = json.loads(raw[start:end])
    if not isinstance(data, dict):
        raise ValueError("analysis is not a JSON object")
    concepts = data.get("keyConcepts") or data.get("key_concepts") or []
    return SourceAnalysis(
        summary=str(data.get("summary") or "").strip(),
        key_concepts=[str(c).strip() for c in concepts if isinstance(c, str) and c.strip()],
    )
