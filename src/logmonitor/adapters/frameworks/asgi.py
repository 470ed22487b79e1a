"""ASGI application exposing metrics, source status and engine logs.

Framework-agnostic: runs under any ASGI server (uvicorn, hypercorn) without
FastAPI installed.
"""

import json
from collections.abc import Callable, Coroutine, Iterable, Mapping
from typing import Any
from urllib.parse import parse_qs

from logmonitor.adapters.frameworks.query_params import (
    parse_level_param,
    parse_since_param,
)
from logmonitor.core.encoding.ndjson import encode_logs
from logmonitor.core.encoding.prometheus import CONTENT_TYPE, encode_families
from logmonitor.core.logs import log_context, log_exception
from logmonitor.core.models import SourceStatus
from logmonitor.core.ports import CollectorPort, LogStoragePort

Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]
StatusProvider = Callable[[], Mapping[str, SourceStatus]]

NDJSON_CONTENT_TYPE = "application/x-ndjson"
JSON_CONTENT_TYPE = "application/json"


def _parse_query_params(scope: Scope) -> dict[str, list[str]]:
    query_string = scope.get("query_string", b"").decode(errors="replace")
    return parse_qs(query_string)


async def _send_response(send: Send, status: int, content_type: str, body: str) -> None:
    headers = [(b"content-type", content_type.encode())]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body.encode()})


async def _handle_endpoint(
    send: Send,
    endpoint_func: Callable[[], Coroutine[Any, Any, str]],
    content_type: str,
    log_message: str,
) -> None:
    """Run an endpoint and send its body, or a JSON 500 if it raises."""
    try:
        body = await endpoint_func()
    except Exception:
        log_exception(log_message)
        error_body = json.dumps({"error": "Internal Server Error"})
        await _send_response(send, 500, JSON_CONTENT_TYPE, error_body)
        return
    await _send_response(send, 200, content_type, body)


def create_asgi_app(
    collectors: Iterable[CollectorPort],
    log_storage: LogStoragePort | None = None,
    status_provider: StatusProvider | None = None,
) -> ASGIApp:
    """Create an ASGI app with /metrics, /status and /logs endpoints.

    Args:
        collectors: Objects whose families are rendered on every scrape, in
            order (for example the Supervisor).
        log_storage: Source of the engine's own log records for ``/logs``;
            the endpoint answers 404 when omitted.
        status_provider: Callable returning the status of every source for
            ``/status``; the endpoint answers 404 when omitted.

    Returns:
        ASGI application callable.
    """
    collectors = tuple(collectors)

    async def render_metrics() -> str:
        families = [f for collector in collectors for f in collector.collect()]
        return encode_families(families)

    async def render_status() -> str:
        assert status_provider is not None
        statuses = status_provider()
        return json.dumps({source: status.value for source, status in statuses.items()})

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"]
        with log_context(path=path):
            if path == "/metrics":
                await _handle_endpoint(
                    send, render_metrics, CONTENT_TYPE, "Error encoding metrics endpoint"
                )
            elif path == "/status" and status_provider is not None:
                await _handle_endpoint(
                    send, render_status, JSON_CONTENT_TYPE, "Error encoding status endpoint"
                )
            elif path == "/logs" and log_storage is not None:
                params = _parse_query_params(scope)
                since = parse_since_param(params)
                level = parse_level_param(params)
                await _handle_endpoint(
                    send,
                    lambda: encode_logs(log_storage.read(since=since, level=level)),
                    NDJSON_CONTENT_TYPE,
                    "Error encoding logs endpoint",
                )
            else:
                await _send_response(send, 404, "text/plain", "Not Found")

    return app
