"""Middleware package."""

from taskhub.middleware.request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
