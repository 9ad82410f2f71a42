"""
HTTP server for the change finder.

This module exposes the change finder over a small JSON API so that sync
clients and operators can poll for changes:

    POST /v1/changes        - Changes since a watermark for X-Principal
    GET  /v1/upper-bound    - Current safe upper bound for repositories
    GET  /v1/health         - Health check

Invariants:
    - /v1/changes requires X-Principal and X-Repository-ID headers
    - The server never stores watermarks; clients send their own cursor
    - Store outages map to 503 so clients retry with the same cursor

How to change safely:
    - Keep the response shape stable; clients persist upper_bound as-is
    - Version the API if breaking changes are needed
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from aiohttp import web

from ..changes import ChangeFinder, Principal
from ..config import ConfigurationError, HttpConfig
from ..logstore import LogStore, TransientStoreError

logger = logging.getLogger(__name__)


def _bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": message, "error_code": "INVALID_ARGUMENT"}),
        content_type="application/json",
    )


def create_http_app(
    finder: ChangeFinder,
    log_store: LogStore,
    config: HttpConfig | None = None,
) -> web.Application:
    """Create an HTTP application for the change finder.

    Args:
        finder: ChangeFinder serving requests
        log_store: Log store, probed by the health check
        config: HTTP server configuration

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()
    app = web.Application()

    app.router.add_post("/v1/changes", lambda r: handle_changes(r, finder))
    app.router.add_get("/v1/upper-bound", lambda r: handle_upper_bound(r, finder))
    app.router.add_get("/v1/health", lambda r: handle_health(r, log_store))

    def add_cors_headers(request: web.Request, headers: Any) -> None:
        origin = request.headers.get("Origin", "*")
        if "*" in config.cors_origins or origin in config.cors_origins:
            headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        headers["Access-Control-Allow-Headers"] = "Content-Type, X-Principal, X-Repository-ID"

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                add_cors_headers(request, e.headers)
                raise

        add_cors_headers(request, response.headers)
        return response

    app.middlewares.append(cors_middleware)

    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except ConfigurationError as e:
            return web.json_response(
                {"error": str(e), "error_code": "INVALID_ARGUMENT"},
                status=400,
            )
        except TransientStoreError as e:
            logger.warning(f"Audit log unavailable: {e}")
            return web.json_response(
                {"error": str(e), "error_code": "UNAVAILABLE"},
                status=503,
            )
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return web.json_response(
                {"error": str(e), "error_code": "INTERNAL"},
                status=500,
            )

    app.middlewares.insert(0, error_middleware)

    return app


def extract_principal(request: web.Request) -> Principal:
    """Extract the requesting principal from headers.

    Raises:
        web.HTTPBadRequest: If required headers are missing
    """
    name = request.headers.get("X-Principal")
    repository_id = request.headers.get("X-Repository-ID")

    if not name:
        raise _bad_request("X-Principal header is required")
    if not repository_id:
        raise _bad_request("X-Repository-ID header is required")

    return Principal(name=name, repository_id=repository_id)


def _int_field(
    body: dict[str, Any], name: str, default: Any, nullable: bool = False
) -> Any:
    value = body.get(name, default)
    if value is None:
        if not nullable:
            raise _bad_request(f"{name} must be an integer")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise _bad_request(f"{name} must be an integer")
    return value


def _str_list_field(body: dict[str, Any], name: str) -> list[str]:
    value = body.get(name) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise _bad_request(f"{name} must be a list of strings")
    return value


async def handle_changes(request: web.Request, finder: ChangeFinder) -> web.Response:
    """Handle POST /v1/changes - Changes since the caller's watermark."""
    principal = extract_principal(request)

    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise _bad_request("Invalid JSON body")
    if not isinstance(body, dict):
        raise _bad_request("JSON body must be an object")

    summary = await finder.find_changes(
        principal,
        roots=_str_list_field(body, "roots"),
        collection_member_ids=_str_list_field(body, "collection_member_ids"),
        lower_bound=_int_field(body, "lower_bound", -1),
        limit=_int_field(body, "limit", None, nullable=True),
    )
    return web.json_response(summary.to_dict())


async def handle_upper_bound(request: web.Request, finder: ChangeFinder) -> web.Response:
    """Handle GET /v1/upper-bound - Current safe upper bound."""
    repositories = request.query.getall("repository", [])
    upper_bound = await finder.get_upper_bound(repositories or None)
    return web.json_response({"upper_bound": upper_bound})


async def handle_health(request: web.Request, log_store: LogStore) -> web.Response:
    """Handle GET /v1/health - Health check."""
    healthy = log_store.is_connected
    return web.json_response({"healthy": healthy}, status=200 if healthy else 503)


class HttpServer:
    """Runs the HTTP application on an aiohttp AppRunner.

    Example:
        >>> server = HttpServer(create_http_app(finder, store), "0.0.0.0", 8081)
        >>> await server.start()
        >>> await server.stop()
    """

    def __init__(self, app: web.Application, host: str = "0.0.0.0", port: int = 8081) -> None:
        self.app = app
        self.host = host
        self.port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"HTTP server running on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP server stopped")
