"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the transport, the HTTP layer and the session registry together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   SocketServer ──► ThreadPool ──► _process_connection (per socket)  │
    │                                        │                            │
    │                                        │ keep-alive loop            │
    │                                        ▼                            │
    │                             RequestParser.parse()                   │
    │                                        │  HTTPRequest               │
    │                                        │  (cookies parsed,          │
    │                                        │   SessionManager attached) │
    │                                        ▼                            │
    │                                dispatch(request)                    │
    │                                        │                            │
    │                 middleware ──► Router.handle ──► controller handler │
    │                                        │                            │
    │                                        ▼                            │
    │                         Response.build() ──► HTTPResponse bytes     │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST ISOLATION
=============================================================================

Every request gets its own HTTPRequest and Response. The only state shared
between worker threads is the SessionManager, which locks internally.

    handler raises                  → logged, generic 500 for this request
    handler sends twice             → ResponseAlreadySentError, same as above
    handler never sends             → logged, generic 500
    malformed request bytes         → 400/405/413/505, connection closed

None of these stop the server or touch other connections.

=============================================================================
SESSION COOKIE
=============================================================================

With eager_sessions (the default) each request resolves its session before
routing. A session created during the request is announced to the browser
with its cookie, unless the handler already queued a cookie of that name
(for example the expired one written by a logout).
=============================================================================
"""

import logging
from typing import Any, Dict, Optional

from .config import ServerConfig
from .controller import Controller
from .core import SocketServer, Connection, ConnectionState, ThreadPool, RequestTooLarge
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, Response, ResponseBuilder, HTTPStatus,
    Router, send_error,
)
from .middleware import MiddlewarePipeline, Middleware, NextHandler
from .rendering import Renderer
from .sessions import SessionManager


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Thread-pool HTTP/1.1 server with cookie-backed sessions.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(ServerConfig(port=8000), renderer=render)

        server.register(AuthController(db))
        server.register(LessonController(db))
        server.use(LoggingMiddleware())

        server.run()        # blocks until Ctrl+C / SIGTERM

    Handlers registered directly work too:

        @server.get("/")
        def home(request, response):
            response.send(message="Homepage!", template="HomeView")

    =========================================================================

    Args:
        config: Server configuration; defaults to ServerConfig().
        renderer: Template renderer used by send(template=...).
        session_manager: Session registry. Built from the config when not
                         given; pass one in to share or inspect it in tests.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        renderer: Optional[Renderer] = None,
        session_manager: Optional[SessionManager] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self.renderer = renderer
        if session_manager is None:
            session_manager = SessionManager(
                ttl=self.config.session_ttl,
                cookie_name=self.config.session_cookie_name,
            )
        self.sessions = session_manager

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(
            max_request_size=self.config.max_request_size,
            session_manager=self.sessions,
        )

        self._router = Router()
        self._middleware = MiddlewarePipeline()
        self._handler: Optional[NextHandler] = None

        self._running = False

    # =========================================================================
    # APPLICATION SETUP
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    def register(self, controller: Controller) -> "HTTPServer":
        """
        Let a controller register its routes.

        Registration order is matching order, across controllers too.
        """
        controller.register_routes(self._router)
        logger.debug(f"Registered {type(controller).__name__}")
        return self

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add middleware; the first added runs outermost."""
        self._middleware.add(middleware)
        self._handler = None
        return self

    def get(self, path: str, handler=None, **kwargs):
        return self._router.get(path, handler, **kwargs)

    def post(self, path: str, handler=None, **kwargs):
        return self._router.post(path, handler, **kwargs)

    def put(self, path: str, handler=None, **kwargs):
        return self._router.put(path, handler, **kwargs)

    def delete(self, path: str, handler=None, **kwargs):
        return self._router.delete(path, handler, **kwargs)

    def patch(self, path: str, handler=None, **kwargs):
        return self._router.patch(path, handler, **kwargs)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """
        Run one parsed request through middleware, router and handler.

        Never raises for handler faults; they become a 500 response.
        Usable without sockets, which is how most tests drive the server.
        """
        if request.session_manager is None:
            request.session_manager = self.sessions

        if self.config.eager_sessions:
            request.get_session()

        if self._handler is None:
            self._handler = self._middleware.wrap(self._router.handle)

        response = self._new_response(request)

        try:
            self._handler(request, response)
        except Exception as e:
            logger.exception(f"Handler error on {request.method} {request.path}: {e}")
            response = self._error_response(request, response)
        else:
            if not response.sent:
                logger.error(f"No response sent for {request.method} {request.path}")
                response = self._error_response(request, response)

        self._issue_session_cookie(request, response)
        return response.build()

    def _new_response(self, request: HTTPRequest) -> Response:
        return Response(
            json_client=request.wants_json,
            renderer=self.renderer,
            context=lambda: self._render_context(request),
        )

    def _error_response(self, request: HTTPRequest, failed: Response) -> Response:
        # Whatever the handler queued is discarded, except correlation headers
        response = self._new_response(request)
        request_id = failed.headers.get("X-Request-ID")
        if request_id:
            response.set_header("X-Request-ID", request_id)
        send_error(request, response, HTTPStatus.INTERNAL_SERVER_ERROR)
        return response

    def _render_context(self, request: HTTPRequest) -> Dict[str, Any]:
        if not request.has_session:
            return {}
        session = request.get_session()
        if session.is_destroyed:
            return {"session": {}}
        return {"session": dict(session.data)}

    def _issue_session_cookie(self, request: HTTPRequest, response: Response) -> None:
        if not request.has_session:
            return

        session = request.get_session()
        if not session.is_new or session.is_destroyed:
            return
        if response.has_cookie(self.sessions.cookie_name):
            return

        response.set_cookie(session.cookie)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def address(self):
        """(host, port) actually bound; the configured one before run()."""
        return self._socket_server.address

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Serve until shutdown (blocking).

        Args:
            host: Override config.host.
            port: Override config.port.
        """
        if host:
            self.config.host = host
        if port:
            self.config.port = port

        self._setup_logging()

        self._handler = self._middleware.wrap(self._router.handle)
        self._thread_pool.start()

        if self.config.session_sweep_interval > 0:
            self.sessions.start_sweeper(self.config.session_sweep_interval)

        self._running = True
        logger.info(
            f"Starting {self.config.server_name} on {self.config.host}:{self.config.port} "
            f"({len(self._router)} routes, {self.config.min_workers}-{self.config.max_workers} workers)"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. For code that runs the server in a thread."""
        return self._socket_server.ready.wait(timeout)

    def stop(self):
        """Ask a running server to stop; run() returns shortly after."""
        self._socket_server.shutdown()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("morsse").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self.sessions.stop_sweeper()
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            timeout=self.config.timeout,
            on_expired=conn.close,
        )

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one connection (worker thread)."""
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        logger.info(f"[{conn.id}] Bad request: {e}")
                        self._send_error(conn, e.status_code, str(e))
                        break

                    conn.state = ConnectionState.PROCESSING
                    response = self.dispatch(request)

                    keep_alive = request.is_keep_alive and self.config.keep_alive
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    if not conn.send_response(response.to_bytes(self.config.server_name)):
                        break

                    if not keep_alive:
                        break

                    conn.set_keep_alive()

                except RequestTooLarge as e:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                    break

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break

                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _send_error(self, conn: Connection, status: int, message: str):
        """Error written straight to the socket, before any handler ran."""
        response = (ResponseBuilder(self.config.server_name)
            .status(status)
            .text(f"{int(status)} {message}")
            .close_connection()
            .build())

        conn.send_response(response.to_bytes(self.config.server_name))


def create_app(
    config: Optional[ServerConfig] = None,
    renderer: Optional[Renderer] = None,
    *controllers: Controller,
) -> HTTPServer:
    """Build a server and register the given controllers in order."""
    server = HTTPServer(config, renderer=renderer)
    for controller in controllers:
        server.register(controller)
    return server
