"""ASGI middleware utilities for the AnyPage backend."""

from .request_context import RequestIdMiddleware, get_request_id
from .security import SecurityHeadersMiddleware

__all__ = ["RequestIdMiddleware", "SecurityHeadersMiddleware", "get_request_id"]
