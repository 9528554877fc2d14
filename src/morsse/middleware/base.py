"""
=============================================================================
MIDDLEWARE
=============================================================================

Middleware wraps the router the way layers of an onion wrap its core:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  LoggingMiddleware                                                  │
    │  ┌───────────────────────────────────────────────────────────────┐  │
    │  │  SessionMiddleware (user-supplied, e.g. "login required")     │  │
    │  │  ┌─────────────────────────────────────────────────────────┐  │  │
    │  │  │        router.handle(request, response)                 │  │  │
    │  │  └─────────────────────────────────────────────────────────┘  │  │
    │  └───────────────────────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────────────────────┘

The request flows inward (first added runs first); after next() returns,
each layer can inspect ``response.status`` and add headers on the way out.

A middleware that wants to stop the request answers through the Response
and does not call next():

    def require_login(request, response, next):
        if "userId" not in request.get_session().data:
            response.set_cookie(Cookie("unauthorized", "true"))
            response.send(status_code=HTTPStatus.UNAUTHORIZED,
                          message="Unauthorized", redirect="/login")
            return
        next(request, response)
=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterator, List, Optional
import logging

from ..http.request import HTTPRequest
from ..http.response import Response


logger = logging.getLogger(__name__)

NextHandler = Callable[[HTTPRequest, Response], None]


class Middleware(ABC):
    """
    Base class for middleware.

    Subclasses implement __call__ and call ``next(request, response)`` to
    continue the chain, or answer through ``response`` to short-circuit.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, response: Response, next: NextHandler) -> None:
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Ordered middleware around a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())
        handler = pipeline.wrap(router.handle)
        handler(request, response)

    First added = outermost.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain around ``handler``.

        Given [MW1, MW2] the result calls MW1 → MW2 → handler, so wrapping
        happens in reverse.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(self, middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: HTTPRequest, response: Response) -> None:
            middleware(request, response, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)


class FunctionMiddleware(Middleware):
    """
    Adapts a plain function to the Middleware interface.

        def no_store(request, response, next):
            next(request, response)
            response.set_header("Cache-Control", "no-store")

        pipeline.add(FunctionMiddleware(no_store))
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, Response, NextHandler], None],
        name: Optional[str] = None,
    ):
        self._func = func
        self._name = name or getattr(func, "__name__", "FunctionMiddleware")

    def __call__(self, request: HTTPRequest, response: Response, next: NextHandler) -> None:
        self._func(request, response, next)

    @property
    def name(self) -> str:
        return self._name


def middleware(func: Callable[[HTTPRequest, Response, NextHandler], None]) -> FunctionMiddleware:
    """Decorator form of FunctionMiddleware."""
    return FunctionMiddleware(func, name=func.__name__)
