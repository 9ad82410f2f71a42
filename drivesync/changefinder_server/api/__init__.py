"""
API module for the change finder server.

This module provides the external interface:
- HTTP server (JSON API over aiohttp)

Invariants:
    - Every change request names its principal and repository
    - Watermarks are owned by clients, never stored server-side

How to change safely:
    - Add new endpoints, don't modify existing response shapes
"""

from .http_server import HttpServer, create_http_app

__all__ = [
    "HttpServer",
    "create_http_app",
]
