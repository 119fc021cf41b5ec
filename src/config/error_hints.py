"""Remediation hints for configuration errors.

Hints are looked up by the dotted error location first (the longest
matching pattern wins) and then by the pydantic error type.
"""

from typing import Final

from src.config.schemas.base import SourceMethod
from src.store.models import Tone, Topic


def _choices(values: list[str]) -> str:
    return ", ".join(values)


_TOPICS = _choices([t.value for t in Topic])

# Location patterns; "*" stands for a list index.
LOCATION_HINTS: Final[dict[str, str]] = {
    "sources.*.id": "Use lowercase letters, digits, '-' or '_' (e.g. 'hn-front').",
    "sources.*.url": "Use a full feed URL such as 'https://example.com/feed.xml'.",
    "sources.*.method": f"Pick one of: {_choices([m.value for m in SourceMethod])}.",
    "sources.*.trust": "Trust is a weight from 0.0 (ignore) to 1.0 (authoritative).",
    "sources.*.headers": "Secrets belong in environment variables, not headers.",
    "topics.*.topic": f"Pick one of: {_TOPICS}.",
    "topics.*.keywords": "List at least one non-empty keyword.",
    "topics.*.salience": "Salience is a weight from 0.0 to 1.0.",
    "scoring.recency_half_life_hours": "The half-life is in hours and must be positive.",
    "schedule.slot_tolerance_minutes": "Tolerance must be at least one minute.",
    "recalibration.floor": "The weight floor is between 0.0 and 1.0.",
    "recalibration.ceiling": "The weight ceiling is between 1.0 and 10.0.",
    "subscribers.*.interests": f"List 1 to 4 distinct topics from: {_TOPICS}.",
    "subscribers.*.delivery_slots": "List one or two local times as HH:MM, e.g. '08:00'.",
    "subscribers.*.timezone": "Use an IANA zone name such as 'Europe/Berlin'.",
    "subscribers.*.tone": f"Pick one of: {_choices([t.value for t in Tone])}.",
    "subscribers.*.email": "Use a single address such as 'name@example.com'.",
    "subscribers.*.min_importance_score": "The threshold is on the 0 to 10 scale.",
}

ERROR_TYPE_HINTS: Final[dict[str, str]] = {
    "missing": "Add this required key.",
    "extra_forbidden": "Remove the key or check its spelling; unknown keys are rejected.",
    "enum": "Use one of the listed values.",
    "int_type": "Use a whole number.",
    "int_parsing": "Use a whole number.",
    "float_type": "Use a number.",
    "float_parsing": "Use a number.",
    "bool_type": "Use true or false.",
    "list_type": "Use a YAML list.",
    "dict_type": "Use a YAML mapping.",
    "greater_than": "Raise the value above the minimum.",
    "greater_than_equal": "Raise the value to at least the minimum.",
    "less_than": "Lower the value below the maximum.",
    "less_than_equal": "Lower the value to at most the maximum.",
    "too_short": "Add more entries.",
    "too_long": "Remove entries.",
    "string_too_short": "The value cannot be empty.",
    "string_pattern_mismatch": "The value does not match the required format.",
    "file_not_found": "Check the path passed to --config or --subscribers.",
    "yaml_parse_error": "Fix the YAML syntax; indentation is the usual culprit.",
}

DEFAULT_HINT: Final = "Compare this entry with the shipped example files under config/."


def _matches(pattern: str, parts: list[str]) -> bool:
    wanted = pattern.split(".")
    for start in range(len(parts) - len(wanted) + 1):
        window = parts[start : start + len(wanted)]
        if all(
            want == got or (want == "*" and got.isdigit())
            for want, got in zip(wanted, window, strict=True)
        ):
            return True
    return False


def get_error_hint(error_type: str, location: str | None = None) -> str:
    """Get the remediation hint for a configuration error.

    Args:
        error_type: The pydantic (or loader) error type.
        location: Dotted error location, e.g. ``sources.0.url``.

    Returns:
        Hint text.
    """
    if location:
        parts = location.split(".")
        candidates = [p for p in LOCATION_HINTS if _matches(p, parts)]
        if candidates:
            best = max(candidates, key=lambda p: p.count("."))
            return LOCATION_HINTS[best]

    return ERROR_TYPE_HINTS.get(error_type, DEFAULT_HINT)


def format_validation_error(
    location: str,
    message: str,
    error_type: str,
    *,
    include_hint: bool = True,
) -> str:
    """Format one configuration error for display.

    Args:
        location: Dotted error location.
        message: Error message.
        error_type: Error type.
        include_hint: Append a ``Hint:`` line.

    Returns:
        Formatted error.
    """
    line = f"{location}: {message}"
    if not include_hint:
        return line
    return f"{line}\n    Hint: {get_error_hint(error_type, location)}"
