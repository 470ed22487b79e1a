"""FastAPI adapter for embedding logmonitor endpoints in another app."""

import json
from collections.abc import Iterable

from fastapi import APIRouter, Query, Response

from logmonitor.adapters.frameworks.asgi import (
    JSON_CONTENT_TYPE,
    NDJSON_CONTENT_TYPE,
    StatusProvider,
)
from logmonitor.adapters.frameworks.query_params import VALID_LEVELS
from logmonitor.core.encoding.ndjson import encode_logs
from logmonitor.core.encoding.prometheus import CONTENT_TYPE, encode_families
from logmonitor.core.ports import CollectorPort, LogStoragePort


def create_logmonitor_router(
    collectors: Iterable[CollectorPort],
    log_storage: LogStoragePort | None = None,
    status_provider: StatusProvider | None = None,
) -> APIRouter:
    """Create a FastAPI router with /metrics, /status and /logs endpoints.

    ``/status`` and ``/logs`` are only mounted when their backing object is
    given.
    """
    collectors = tuple(collectors)
    router = APIRouter()

    @router.get("/metrics")
    async def get_metrics() -> Response:
        """Return metrics in Prometheus text format."""
        families = [f for collector in collectors for f in collector.collect()]
        return Response(content=encode_families(families), media_type=CONTENT_TYPE)

    if status_provider is not None:

        @router.get("/status")
        async def get_status() -> Response:
            """Return the status of every source."""
            statuses = {s: status.value for s, status in status_provider().items()}
            return Response(content=json.dumps(statuses), media_type=JSON_CONTENT_TYPE)

    if log_storage is not None:

        @router.get("/logs")
        async def get_logs(
            since: float = Query(default=0, ge=0),
            level: str | None = Query(default=None),
        ) -> Response:
            """Return engine log records in NDJSON format."""
            wanted = level.upper() if level else None
            if wanted not in VALID_LEVELS:
                wanted = None
            body = await encode_logs(log_storage.read(since=since, level=wanted))
            return Response(content=body, media_type=NDJSON_CONTENT_TYPE)

    return router
