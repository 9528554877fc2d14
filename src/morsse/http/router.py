"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler and extracts named path parameters.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ROUTING FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   GET /lessons/42                                                   │
    │        │                                                            │
    │        ▼                                                            │
    │   Registered routes, scanned in order:                              │
    │     GET  /lessons          list          ✗ segment count            │
    │     GET  /lessons/new      new_form      ✗ "new" != "42"            │
    │     GET  /lessons/:id      show          ✓ {"id": "42"}  ← first    │
    │     POST /lessons          create           match wins             │
    │        │                                                            │
    │        ▼                                                            │
    │   request.path_params = {"id": "42"}                                │
    │   show(request, response)                                           │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PATTERNS
=============================================================================

    /lessons           literal segments, compared case-sensitively
    /lessons/:id       ":id" matches any single non-empty segment
    /a/:x/b/:y         any number of parameters

A pattern only matches paths with the same number of segments. There are
no wildcards. Parameter values are percent-decoded before binding, so
"/users/J%C3%BCrgen" binds {"name": "Jürgen"} and an encoded "%2F" stays
inside its segment.

=============================================================================
PRECEDENCE
=============================================================================

Matching is a linear scan in registration order. Literal siblings must be
registered before parameterized ones:

    router.get("/lessons/new", new_form)     # first
    router.get("/lessons/:id", show)         # then

Registered the other way round, "/lessons/new" would reach show() with
id="new". The router cannot reorder for you, but it notices: every new
route is compared with the earlier ones and a route that can never match
is reported to the on_ambiguity hook (a warning in the log by default).

An unknown path and a known path with the wrong method both give 404.

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote, unquote
import logging

from .request import HTTPRequest
from .response import Response, send_error
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)

Handler = Callable[[HTTPRequest, Response], None]


class RouteType(Enum):
    STATIC = "static"   # lessons - exact match
    PARAM = "param"     # :id - captures one segment


@dataclass(frozen=True)
class Segment:
    """One "/"-delimited piece of a route pattern."""

    type: RouteType
    value: str          # literal text, or the parameter name

    @classmethod
    def parse(cls, text: str) -> "Segment":
        if text.startswith(":"):
            name = text[1:]
            if not name:
                raise ValueError("Route parameter needs a name: ':'")
            return cls(RouteType.PARAM, name)
        return cls(RouteType.STATIC, text)

    @property
    def is_param(self) -> bool:
        return self.type is RouteType.PARAM

    def covers(self, other: "Segment") -> bool:
        """True if every segment value ``other`` matches, this one matches too."""
        return self.is_param or (not other.is_param and self.value == other.value)

    def overlaps(self, other: "Segment") -> bool:
        """True if some segment value matches both."""
        return self.is_param or other.is_param or self.value == other.value


@dataclass
class Route:
    """
    A registered route.

        Route(method="GET", path="/lessons/:id", handler=show,
              segments=(Segment(STATIC, "lessons"), Segment(PARAM, "id")))
    """

    method: str
    path: str
    handler: Handler
    name: Optional[str] = None
    segments: Tuple[Segment, ...] = field(default=(), repr=False)
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def param_names(self) -> List[str]:
        return [s.value for s in self.segments if s.is_param]

    @property
    def is_static(self) -> bool:
        return not any(s.is_param for s in self.segments)

    def match(self, parts: List[str]) -> Optional[Dict[str, str]]:
        """
        Match raw (still percent-encoded) path segments.

        Returns the bound parameters, or None.
        """
        if len(parts) != len(self.segments):
            return None

        params: Dict[str, str] = {}
        for segment, part in zip(self.segments, parts):
            if segment.is_param:
                if not part:
                    return None
                params[segment.value] = unquote(part)
            elif unquote(part) != segment.value:
                return None

        return params

    def shadows(self, other: "Route") -> bool:
        """True if this route matches every request ``other`` could match."""
        return (
            self.method == other.method
            and len(self.segments) == len(other.segments)
            and all(a.covers(b) for a, b in zip(self.segments, other.segments))
        )

    def overlaps(self, other: "Route") -> bool:
        """True if at least one request matches both routes."""
        return (
            self.method == other.method
            and len(self.segments) == len(other.segments)
            and all(a.overlaps(b) for a, b in zip(self.segments, other.segments))
        )


@dataclass
class RouteMatch:
    """
    Result of a successful match.

        Pattern: /lessons/:id
        Path:    /lessons/42
        Result:  RouteMatch(route=<Route>, params={"id": "42"})
    """

    route: Route
    params: Dict[str, str]

    @property
    def handler(self) -> Handler:
        return self.route.handler


@dataclass(frozen=True)
class RouteAmbiguity:
    """
    Two routes that can match the same request.

    ``shadowed`` is True when ``later`` can never be reached because
    ``earlier`` matches everything it matches.
    """

    earlier: Route
    later: Route
    shadowed: bool

    def describe(self) -> str:
        verb = "shadows" if self.shadowed else "overlaps"
        return (
            f"{self.earlier.method} {self.earlier.path} {verb} "
            f"{self.later.method} {self.later.path}"
        )


def _warn_ambiguity(ambiguity: RouteAmbiguity) -> None:
    logger.warning(
        f"Unreachable route: {ambiguity.describe()}; "
        f"register literal routes before parameterized ones"
    )


def normalize_path(path: str) -> str:
    """"lessons/" → "/lessons", "" → "/" """
    return "/" + path.strip("/") if path.strip("/") else "/"


def split_path(path: str) -> List[str]:
    normalized = normalize_path(path)
    if normalized == "/":
        return []
    return normalized[1:].split("/")


class Router:
    """
    Method + path-pattern router.

    Routes can be registered directly or with decorators:

        router = Router()

        router.get("/login", auth.get_login_form)

        @router.post("/lessons")
        def create_lesson(request, response):
            response.send(status_code=HTTPStatus.CREATED, message="Created",
                          redirect="/lessons")

    Args:
        on_ambiguity: Called with a RouteAmbiguity whenever a new route is
                      shadowed by an earlier one. Defaults to a log warning.
    """

    def __init__(self, on_ambiguity: Optional[Callable[[RouteAmbiguity], None]] = None):
        self._routes: List[Route] = []
        self._named_routes: Dict[str, Route] = {}
        self.on_ambiguity = on_ambiguity or _warn_ambiguity

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(
        self,
        method: str,
        path: str,
        handler: Handler,
        name: Optional[str] = None,
        **meta: Any
    ) -> Route:
        """
        Register ``handler`` for ``method`` requests matching ``path``.

        Raises:
            ValueError: On an unnamed parameter (":") or a name already used.
        """
        path = normalize_path(path)
        route = Route(
            method=method.upper(),
            path=path,
            handler=handler,
            name=name,
            segments=tuple(Segment.parse(part) for part in split_path(path)),
            meta=meta,
        )

        if name:
            if name in self._named_routes:
                raise ValueError(f"Route name already registered: {name!r}")
            self._named_routes[name] = route

        for earlier in self._routes:
            if earlier.shadows(route):
                self.on_ambiguity(RouteAmbiguity(earlier, route, shadowed=True))

        self._routes.append(route)
        return route

    def route(
        self,
        method: str,
        path: str,
        handler: Optional[Handler] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Any:
        """
        Register directly when ``handler`` is given, otherwise return a
        decorator that registers the function it wraps.
        """
        if handler is not None:
            self.add_route(method, path, handler, name, **meta)
            return handler

        def decorator(func: Handler) -> Handler:
            self.add_route(method, path, func, name, **meta)
            return func
        return decorator

    def get(self, path: str, handler: Optional[Handler] = None, name: Optional[str] = None, **meta: Any) -> Any:
        return self.route("GET", path, handler, name, **meta)

    def post(self, path: str, handler: Optional[Handler] = None, name: Optional[str] = None, **meta: Any) -> Any:
        return self.route("POST", path, handler, name, **meta)

    def put(self, path: str, handler: Optional[Handler] = None, name: Optional[str] = None, **meta: Any) -> Any:
        return self.route("PUT", path, handler, name, **meta)

    def delete(self, path: str, handler: Optional[Handler] = None, name: Optional[str] = None, **meta: Any) -> Any:
        return self.route("DELETE", path, handler, name, **meta)

    def patch(self, path: str, handler: Optional[Handler] = None, name: Optional[str] = None, **meta: Any) -> Any:
        return self.route("PATCH", path, handler, name, **meta)

    # =========================================================================
    # MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        First route, in registration order, matching method and path.

        ``path`` should be the raw request path (percent-encoded); literal
        segments are compared after decoding, parameters are decoded
        before binding.
        """
        method = method.upper()
        parts = split_path(path)

        for route in self._routes:
            if route.method != method:
                continue
            params = route.match(parts)
            if params is not None:
                return RouteMatch(route=route, params=params)

        return None

    def handle(self, request: HTTPRequest, response: Response) -> None:
        """
        Route a request and run its handler.

        Uses the form-overridden method (``_method``) and the raw path.
        No match sends a 404 through send_error().
        """
        found = self.match(request.effective_method, request.raw_path)

        if found is None:
            send_error(request, response, HTTPStatus.NOT_FOUND)
            return

        request.path_params = found.params
        found.handler(request, response)

    # =========================================================================
    # DIAGNOSTICS / INTROSPECTION
    # =========================================================================

    def find_ambiguities(self) -> List[RouteAmbiguity]:
        """
        Every pair of routes that can match the same request.

        Overlaps are often intentional (/lessons/new before /lessons/:id);
        pairs with ``shadowed=True`` are always a mistake.
        """
        found: List[RouteAmbiguity] = []
        for i, earlier in enumerate(self._routes):
            for later in self._routes[i + 1:]:
                if earlier.overlaps(later):
                    found.append(RouteAmbiguity(
                        earlier, later, shadowed=earlier.shadows(later)
                    ))
        return found

    def url_for(self, name: str, /, **params: Any) -> str:
        """
        Build the path of a named route.

            router.get("/lessons/:id", show, name="lesson")
            router.url_for("lesson", id=42)   # "/lessons/42"

        Raises:
            KeyError: Unknown route name.
            ValueError: Missing parameter.
        """
        route = self._named_routes[name]

        parts = []
        for segment in route.segments:
            if not segment.is_param:
                parts.append(segment.value)
                continue
            if segment.value not in params:
                raise ValueError(f"Missing parameter {segment.value!r} for route {name!r}")
            parts.append(quote(str(params[segment.value]), safe=""))

        return "/" + "/".join(parts)

    def routes(self) -> List[Route]:
        """All routes, in registration (matching) order."""
        return list(self._routes)

    def __len__(self) -> int:
        return len(self._routes)
