"""Voice confidence aggregator.

Rolls a project's voice patterns up into one score per fixed aspect:

  per-pattern score = (frequency / 10) * 20 + confidence * 30   (max 50)
  aspect score      = sum of its pattern scores,
                      clamped to [0, ceiling], rounded half-up
  ceiling           = min(100, 25 * distinct_transcripts + 25)

The ceiling ties the score to evidence volume: one transcript can never push
an aspect past 50 however many patterns it repeats.

Ready means all five aspect rows exist and every one scores >= 80.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from inkwell.db.models import VoiceConfidenceAspect, VoicePattern
from inkwell.db.repository import Repository

logger = logging.getLogger(__name__)

VOICE_ASPECTS: tuple[str, ...] = (
    "signature_phrases",
    "speech_rhythms",
    "teaching_patterns",
    "story_structures",
    "memorable_quotes",
)

CATEGORY_TO_ASPECT: dict[str, str] = {
    "phrase": "signature_phrases",
    "rhythm": "speech_rhythms",
    "teaching": "teaching_patterns",
    "story": "story_structures",
    "quote": "memorable_quotes",
}

TARGET_SCORE = 95
READY_SCORE = 80
MAX_SCORE = 100
_BASE_CEILING = 25
_CEILING_PER_TRANSCRIPT = 25


@dataclass(frozen=True)
class AspectScores:
    """Result of scoring a pattern set; ``scores`` always holds all five aspects."""

    scores: dict[str, int]
    transcripts: int
    ceiling: int


@dataclass
class ConfidenceReport:
    aspects: list[VoiceConfidenceAspect] = field(default_factory=list)
    is_ready: bool = False
    average_score: int = 0
    transcripts_analyzed: int = 0


def pattern_score(frequency: int, confidence: float) -> float:
    return (frequency / 10) * 20 + confidence * 30


def evidence_ceiling(transcripts: int) -> int:
    return min(MAX_SCORE, transcripts * _CEILING_PER_TRANSCRIPT + _BASE_CEILING)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_aspects(patterns: Iterable[VoicePattern]) -> AspectScores:
    """Score *patterns* per aspect. Unknown categories are skipped.

    Every pattern with a transcript id counts toward evidence volume,
    including those whose category is not scored.
    """
    sums = dict.fromkeys(VOICE_ASPECTS, 0.0)
    transcripts: set[str] = set()
    for p in patterns:
        if p.source_transcript_id:
            transcripts.add(p.source_transcript_id)
        aspect = CATEGORY_TO_ASPECT.get(p.category)
        if aspect is None:
            continue
        sums[aspect] += pattern_score(p.frequency, p.confidence_score)

    ceiling = evidence_ceiling(len(transcripts))
    scores = {
        aspect: _round_half_up(min(max(total, 0.0), ceiling)) for aspect, total in sums.items()
    }
    return AspectScores(scores=scores, transcripts=len(transcripts), ceiling=ceiling)


def recompute(repo: Repository, project_id: str) -> AspectScores:
    """Re-score *project_id* from its stored patterns and upsert all five rows.

    Idempotent: a second call with no new patterns leaves every row unchanged.
    """
    result = score_aspects(repo.list_patterns(project_id))
    for aspect in VOICE_ASPECTS:
        repo.upsert_confidence(
            VoiceConfidenceAspect(
                project_id=project_id,
                aspect=aspect,
                current_score=result.scores[aspect],
                target_score=TARGET_SCORE,
                transcripts_analyzed=result.transcripts,
            )
        )
    logger.debug(
        "Voice confidence for %s: %s (ceiling %d, %d transcripts)",
        project_id,
        result.scores,
        result.ceiling,
        result.transcripts,
    )
    return result


def is_ready(aspects: Sequence[VoiceConfidenceAspect]) -> bool:
    by_name = {a.aspect: a for a in aspects}
    if any(name not in by_name for name in VOICE_ASPECTS):
        return False
    return all(by_name[name].current_score >= READY_SCORE for name in VOICE_ASPECTS)


def get_confidence(repo: Repository, project_id: str) -> ConfidenceReport:
    """Read the stored aspect rows for *project_id* (does not recompute)."""
    aspects = [a for a in repo.list_confidence(project_id) if a.aspect in VOICE_ASPECTS]
    if not aspects:
        return ConfidenceReport()
    average = _round_half_up(sum(a.current_score for a in aspects) / len(aspects))
    return ConfidenceReport(
        aspects=aspects,
        is_ready=is_ready(aspects),
        average_score=average,
        transcripts_analyzed=max(a.transcripts_analyzed for a in aspects),
    )
