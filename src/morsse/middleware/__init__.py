"""
Middleware: code that runs around every routed request.

    LoggingMiddleware   access log + X-Request-ID header

Custom middleware subclass Middleware or wrap a function with
FunctionMiddleware; see base.py for the calling convention.
"""

from .base import Middleware, MiddlewarePipeline, FunctionMiddleware, NextHandler, middleware
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "FunctionMiddleware",
    "NextHandler",
    "middleware",
    "LoggingMiddleware",
    "RequestLog",
]
