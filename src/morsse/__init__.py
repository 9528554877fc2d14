"""
=============================================================================
MORSSE - Server-rendered web apps on a hand-rolled HTTP/1.1 core
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   controllers        register_routes(router), handlers(req, res)    │
    │        │                                                            │
    │   http/              Router, HTTPRequest, Response, Cookie          │
    │        │                                                            │
    │   sessions/          SessionManager, Session                        │
    │        │                                                            │
    │   middleware/        LoggingMiddleware, pipeline                    │
    │        │                                                            │
    │   core/              SocketServer, Connection, ThreadPool           │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Quick start:

    from morsse import HTTPServer, ServerConfig
    from morsse.http import HTTPStatus

    server = HTTPServer(ServerConfig(port=8000))

    @server.get("/lessons/:id")
    def show_lesson(request, response):
        lesson_id = request.get_id()
        if lesson_id is None:
            response.send(status_code=HTTPStatus.BAD_REQUEST, message="Invalid ID")
            return
        response.send(message="Lesson retrieved", payload={"id": lesson_id})

    server.run()
=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer, create_app
from .config import ServerConfig
from .controller import Controller
from .rendering import Renderer, TemplateRenderError

__all__ = [
    "HTTPServer",
    "create_app",
    "ServerConfig",
    "Controller",
    "Renderer",
    "TemplateRenderError",
    "__version__",
]
