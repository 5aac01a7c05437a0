"""FastAPI dependencies shared by the route modules."""

from __future__ import annotations

from starlette.requests import HTTPConnection

from livedraw.core.context import AppContext


def get_context(connection: HTTPConnection) -> AppContext:
    """The process-wide :class:`AppContext` stored on ``app.state``."""
    return connection.app.state.context
