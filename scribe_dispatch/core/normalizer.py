"""
Result normalizer: engine output artifact → TranscriptResult.

Engines write a JSON document ``{"text", "language", "segments": [{"start",
"end", "text"}, ...]}``. Python-based engines happily emit ``NaN`` and
``Infinity`` tokens, so every numeric leaf is sanitized to ``None`` before
anything else looks at the data. Extra fields are ignored.
"""

import json
import logging
import math
from pathlib import Path
from typing import Any

from scribe_dispatch.core.errors import OutputParseError
from scribe_dispatch.core.interfaces import TranscriptResult, TranscriptSegment

logger = logging.getLogger(__name__)


def sanitize(obj: Any) -> Any:
    """
    Recursively replace non-finite floats (NaN, +Inf, -Inf) with None.

    Works on any tree of dicts, lists and tuples; other leaves pass through.
    """
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return obj
    if isinstance(obj, dict):
        return {k: sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize(v) for v in obj]
    return obj


def load_artifact(output_path: Path) -> dict[str, Any]:
    """Read and sanitize the engine's JSON artifact."""
    path = Path(output_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise OutputParseError(f"Could not read engine output: {e}", str(path)) from e

    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError is a ValueError; so are over-long integer literals
        raise OutputParseError(f"Engine output is not valid JSON: {e}", str(path)) from e

    if not isinstance(data, dict):
        raise OutputParseError(
            f"Engine output must be a JSON object, got {type(data).__name__}", str(path)
        )
    try:
        return sanitize(data)
    except RecursionError as e:
        raise OutputParseError("Engine output is nested too deeply", str(path)) from e


def _as_time(value: Any, field: str, path: Path) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise OutputParseError(f"Segment '{field}' must be a number, got {value!r}", str(path))
    try:
        return float(value)
    except OverflowError as e:
        raise OutputParseError(f"Segment '{field}' is out of range: {value}", str(path)) from e


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_segments(raw_segments: Any, path: Path) -> tuple[TranscriptSegment, ...]:
    if raw_segments is None:
        return ()
    if not isinstance(raw_segments, list):
        raise OutputParseError("'segments' must be a list", str(path))

    segments: list[TranscriptSegment] = []
    for i, seg in enumerate(raw_segments):
        if not isinstance(seg, dict):
            raise OutputParseError(f"Segment {i} must be an object, got {type(seg).__name__}", str(path))
        segments.append(
            TranscriptSegment(
                start=_as_time(seg.get("start"), "start", path),
                end=_as_time(seg.get("end"), "end", path),
                text=_as_text(seg.get("text")),
            )
        )
    return tuple(segments)


def parse_result(
    output_path: Path,
    model_used: str,
    declared_language: str | None = None,
) -> TranscriptResult:
    """
    Parse an engine artifact into the unified result shape.

    Args:
        output_path: JSON artifact written by the engine.
        model_used: Exact model variant the engine ran with.
        declared_language: Language the caller asked for; used when the engine
            does not report one ("auto" does not count as a language).

    Raises:
        OutputParseError: the artifact is unreadable or has the wrong shape.
    """
    path = Path(output_path)
    data = load_artifact(path)

    language = data.get("language")
    if not isinstance(language, str) or not language.strip():
        language = declared_language if declared_language and declared_language != "auto" else None
    else:
        language = language.strip()

    segments = parse_segments(data.get("segments"), path)
    result = TranscriptResult(
        text=_as_text(data.get("text")),
        language=language,
        model_used=model_used,
        segments=segments,
    )
    logger.debug(f"Parsed {len(segments)} segments from {path}")
    return result
