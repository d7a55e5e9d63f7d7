"""Transcript analyzer: extract voice patterns from a transcript via the completion capability."""

from __future__ import annotations

import logging

from inkwell.db.models import VoicePattern
from inkwell.rag.llm_client import Completer
from inkwell.voice.patterns import parse_patterns

logger = logging.getLogger(__name__)

MIN_TRANSCRIPT_CHARS = 100

_ANALYSIS_PROMPT = """\
You are a voice analyst. Identify the speaker's recurring speech patterns in the \
transcript below, in these categories:

- "phrase": signature phrases and catchphrases
- "rhythm": sentence structure, pacing, rhetorical devices
- "teaching": how concepts are explained (analogies, lesson structure)
- "story": how stories are set up and paid off
- "quote": memorable one-liners worth preserving

Return ONLY JSON in this format:
{{"patterns": [{{"category": "phrase|rhythm|teaching|story|quote", \
"pattern": "...", "context": "...", "frequency": 1-10, "confidenceScore": 0.0-1.0}}]}}

TRANSCRIPT:
{transcript}"""


class VoiceAnalyzer:
    """Turn transcript text into validated VoicePattern records.

    Args:
        completer: Completion capability (analysis model).
    """

    def __init__(self, completer: Completer) -> None:
        self._completer = completer

    def analyze(
        self, transcript: str, project_id: str, transcript_id: str
    ) -> list[VoicePattern]:
        """Return the patterns found in *transcript*.

        Transcripts shorter than MIN_TRANSCRIPT_CHARS yield no patterns.

        Raises:
            PatternValidationError: The model's reply is not valid pattern JSON.
        """
        if len(transcript.strip()) < MIN_TRANSCRIPT_CHARS:
            logger.info("Transcript %s too short for voice analysis", transcript_id)
            return []
        raw = self._completer(
            [{"role": "user", "content": _ANALYSIS_PROMPT.format(transcript=transcript)}]
        )
        patterns = parse_patterns(raw, project_id, transcript_id)
        logger.debug("Transcript %s yielded %d voice patterns", transcript_id, len(patterns))
        return patterns
