"""NDJSON encoding of the engine's own log records for ``/logs``."""

import json
from collections.abc import AsyncIterable
from typing import Any

from logmonitor.core.models import LogEntry


def entry_to_dict(entry: LogEntry) -> dict[str, Any]:
    return {
        "timestamp": entry.timestamp,
        "level": entry.level,
        "message": entry.message,
        "attributes": entry.attributes,
    }


async def encode_logs(entries: AsyncIterable[LogEntry]) -> str:
    """Render entries as one JSON object per line.

    Attribute values that JSON cannot represent are rendered with ``str``.
    Returns an empty string when there are no entries, otherwise the text
    ends with a newline.
    """
    lines = [json.dumps(entry_to_dict(e), default=str) async for e in entries]
    return "".join(f"{line}\n" for line in lines)
