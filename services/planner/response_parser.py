"""Turn free-form model text into a structured `Analysis`.

Parsing happens in two stages. `extract_json_candidate` locates a JSON-looking
substring (a ```json fence, then any fence opening with a brace, then the first
span opened by the first brace). `parse_analysis` then decodes it and coerces it onto the
Analysis shape. Parsing never raises. Unusable text yields `default_analysis`
with the original text kept in `raw_text`.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from models.analysis import Analysis, Category, Issue, Recommendation

LOGGER = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```json[ \t]*\r?\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\r?\n?(\{.*?)```", re.DOTALL)

_ANALYSIS_KEYS = (
    "current_assessment",
    "improvement_recommendations",
    "recommendations",
    "urban_planning_principles",
    "principles",
    "overall_description",
    "identified_issues",
)

DEFAULT_PRINCIPLES = (
    "Improved walkability",
    "Enhanced public spaces",
    "Increased greenery",
    "Better sustainability",
)


def default_analysis(raw_text: str) -> Analysis:
    """Return the generic analysis used when the model output is unusable."""
    return Analysis(
        overall_description="Urban space requiring improvements",
        identified_issues=(
            Issue(Category.OTHER, "Please see the full analysis text below"),
        ),
        recommendations=(
            Recommendation(
                Category.OTHER,
                "See full analysis text",
                "Multiple benefits detailed in analysis",
            ),
        ),
        principles=DEFAULT_PRINCIPLES,
        raw_text=raw_text,
    )


def _first_balanced_span(text: str) -> Optional[str]:
    """Return the `{...}` span opened by the first brace, ignoring braces in strings.

    Returns None when that brace never closes, as with output cut off at the
    token limit. Later braces are not tried: they open inner objects.
    """
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        char = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]
    return None


def extract_json_candidate(text: str) -> Optional[str]:
    """Locate the substring most likely to hold the analysis JSON."""
    if not text:
        return None
    match = _JSON_FENCE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    match = _ANY_FENCE.search(text)
    if match:
        return match.group(1).strip()
    return _first_balanced_span(text)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _issue(item: Any) -> Issue:
    if isinstance(item, dict):
        return Issue(Category.coerce(item.get("category")), _as_text(item.get("details")))
    return Issue(Category.OTHER, _as_text(item))


def _recommendation(item: Any) -> Recommendation:
    if isinstance(item, dict):
        return Recommendation(
            category=Category.coerce(item.get("category")),
            recommendation=_as_text(item.get("recommendation")),
            expected_benefits=_as_text(item.get("expected_benefits")),
        )
    return Recommendation(Category.OTHER, _as_text(item))


def _coerce(data: Dict[str, Any]) -> Analysis:
    """Map decoded JSON onto an Analysis, keeping whatever fields are usable."""
    assessment = data.get("current_assessment")
    if not isinstance(assessment, dict):
        assessment = data
    recommendations = data.get("improvement_recommendations", data.get("recommendations"))
    principles = data.get("urban_planning_principles", data.get("principles"))
    return Analysis(
        overall_description=_as_text(assessment.get("overall_description")),
        identified_issues=tuple(_issue(i) for i in _as_list(assessment.get("identified_issues"))),
        recommendations=tuple(_recommendation(r) for r in _as_list(recommendations)),
        principles=tuple(_as_text(p) for p in _as_list(principles)),
    )


def parse_analysis(raw_text: str) -> Analysis:
    """Return the structured analysis contained in `raw_text`.

    Args:
        raw_text: Text returned by the analysis model.

    Returns:
        The decoded Analysis, or `default_analysis(raw_text)` when no usable
        JSON object is present.
    """
    text = raw_text if isinstance(raw_text, str) else _as_text(raw_text)
    candidate = extract_json_candidate(text)
    if candidate is None:
        LOGGER.warning("ParseDegradation: no JSON found in analysis response (%d chars)", len(text))
        return default_analysis(text)

    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, RecursionError) as exc:
        LOGGER.warning("ParseDegradation: analysis JSON did not decode: %s", exc)
        return default_analysis(text)

    if not isinstance(data, dict):
        LOGGER.warning("ParseDegradation: analysis JSON is a %s, not an object", type(data).__name__)
        return default_analysis(text)

    if not any(key in data for key in _ANALYSIS_KEYS):
        LOGGER.warning("ParseDegradation: analysis JSON has none of the expected sections")
        return default_analysis(text)

    return _coerce(data)
