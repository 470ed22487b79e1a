"""Typed access to reader-specific source options."""

from collections.abc import Mapping

from logmonitor.core.errors import SourceError

# Identifiers starting with this prefix are reserved for non-file readers
RESERVED_PREFIX = ":"


def is_reserved(source: str) -> bool:
    return source.startswith(RESERVED_PREFIX)


def option_bool(
    source: str, options: Mapping[str, object], name: str, default: bool
) -> bool:
    value = options.get(name, default)
    if not isinstance(value, bool):
        raise SourceError(source, f"option {name!r} must be a boolean")
    return value


def option_float(
    source: str, options: Mapping[str, object], name: str, default: float
) -> float:
    """Return a strictly positive number option.

    Raises:
        SourceError: If the option is not a positive number.
    """
    value = options.get(name, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise SourceError(source, f"option {name!r} must be a positive number")
    return float(value)


def option_str(
    source: str, options: Mapping[str, object], name: str, default: str | None
) -> str | None:
    value = options.get(name, default)
    if value is not None and (not isinstance(value, str) or not value):
        raise SourceError(source, f"option {name!r} must be a non-empty string")
    return value
