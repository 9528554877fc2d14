"""
Transport layer: sockets, connections and worker threads.

    SocketServer   listening socket + accept loop
    Connection     one client socket, read whole requests, write responses
    ThreadPool     bounded worker pool that runs each connection's loop

Nothing here knows about routes, cookies or sessions.
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTooLarge
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "ThreadPool",
]
