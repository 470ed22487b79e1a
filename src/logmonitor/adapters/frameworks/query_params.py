"""Query parameter parsing shared by the HTTP adapters."""

import math

VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def parse_since_param(params: dict[str, list[str]]) -> float:
    """Parse the ``since`` parameter.

    Returns:
        The timestamp, or 0.0 when missing, malformed, negative or not finite.
    """
    try:
        value = float(params.get("since", ["0"])[0])
    except ValueError:
        return 0.0
    if value < 0 or not math.isfinite(value):
        return 0.0
    return value


def parse_level_param(params: dict[str, list[str]]) -> str | None:
    """Return the upper-cased ``level`` parameter, or None if unknown."""
    values = params.get("level") or [""]
    level = values[0].upper()
    return level if level in VALID_LEVELS else None
