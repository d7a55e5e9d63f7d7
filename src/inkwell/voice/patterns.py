"""Voice pattern validation and recording.

Analyzer output is untrusted JSON. ``parse_patterns`` turns it into
VoicePattern records or rejects it; nothing loosely typed gets past here.
"""

from __future__ import annotations

import json
import math
import uuid
from typing import Any

from inkwell.db.models import VoicePattern
from inkwell.db.repository import Repository
from inkwell.voice.confidence import AspectScores, recompute


class PatternValidationError(ValueError):
    """Analyzer output could not be turned into voice patterns."""


def parse_patterns(
    raw: str | list[Any] | dict[str, Any],
    project_id: str,
    transcript_id: str | None = None,
) -> list[VoicePattern]:
    """Validate analyzer output into VoicePattern records.

    Accepts JSON text, a ``{"patterns": [...]}`` object, or a bare list.
    Frequency is rounded and clamped to [1, 10] (default 1); confidence is
    clamped to [0, 1] (default 0.5). Categories are lower-cased but not
    remapped, so unknown ones are stored and later ignored by scoring.

    Raises:
        PatternValidationError: Unparseable text, wrong shape, or an item
            without a non-empty ``pattern`` and ``category``.
    """
    items = _pattern_items(_load(raw) if isinstance(raw, str) else raw)
    return [_to_pattern(i, item, project_id, transcript_id) for i, item in enumerate(items)]


def record_patterns(
    repo: Repository, project_id: str, patterns: list[VoicePattern]
) -> AspectScores:
    """Store *patterns* for *project_id* and recompute its confidence rows.

    Patterns carrying a transcript id replace whatever that transcript
    contributed before, so recording the same transcript twice leaves the
    scores unchanged.
    """
    foreign = [p.id for p in patterns if p.project_id != project_id]
    if foreign:
        raise PatternValidationError(
            f"{len(foreign)} pattern(s) belong to another project than '{project_id}'"
        )
    if patterns:
        repo.add_patterns(patterns, replace=True)
    return recompute(repo, project_id)


def _load(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    # Models sometimes wrap the JSON in prose or a code fence.
    try:
        start = text.index("{")
        end = text.rindex("}") + 1
        return json.loads(text[start:end])
    except (ValueError, json.JSONDecodeError) as exc:
        raise PatternValidationError(f"Analyzer output is not valid JSON: {exc}") from exc


def _pattern_items(data: Any) -> list[Any]:
    if isinstance(data, dict):
        data = data.get("patterns", [])
    if not isinstance(data, list):
        raise PatternValidationError(
            f"Expected a list of patterns, got {type(data).__name__}"
        )
    return data


def _to_pattern(
    index: int, item: Any, project_id: str, transcript_id: str | None
) -> VoicePattern:
    if not isinstance(item, dict):
        raise PatternValidationError(f"Pattern #{index} must be an object")

    pattern = item.get("pattern")
    category = item.get("category")
    if not isinstance(pattern, str) or not pattern.strip():
        raise PatternValidationError(f"Pattern #{index} has no 'pattern' text")
    if not isinstance(category, str) or not category.strip():
        raise PatternValidationError(f"Pattern #{index} has no 'category'")

    context = item.get("context")
    if not isinstance(context, str) or not context.strip():
        context = None

    frequency = _number(item.get("frequency"), index, "frequency") or 1
    confidence = _number(
        item.get("confidenceScore", item.get("confidence_score", item.get("confidence"))),
        index,
        "confidence",
    )
    if confidence is None:
        confidence = 0.5

    return VoicePattern(
        id=str(uuid.uuid4()),
        project_id=project_id,
        category=category.strip().lower(),
        pattern=pattern.strip(),
        context=context.strip() if context else None,
        frequency=min(10, max(1, math.floor(frequency + 0.5))),
        confidence_score=min(1.0, max(0.0, float(confidence))),
        source_transcript_id=transcript_id,
    )


def _number(value: Any, index: int, name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PatternValidationError(
            f"Pattern #{index}: '{name}' must be a number, got {value!r}"
        )
    if not math.isfinite(value):
        raise PatternValidationError(
            f"Pattern #{index}: '{name}' must be finite, got {value!r}"
        )
    return float(value)
