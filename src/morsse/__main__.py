"""
Command-line entry point.

    python -m morsse                          # demo app on 127.0.0.1:8080
    python -m morsse --port 3000
    python -m morsse --host 0.0.0.0 --workers 8
    python -m morsse --session-ttl 3600 --log-level DEBUG

Defaults come from MORSSE_* environment variables (see ServerConfig.from_env);
flags given on the command line win.
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import LOG_LEVELS, ServerConfig
from .demo import DemoController, demo_renderer
from .middleware import LoggingMiddleware
from .server import HTTPServer


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m morsse",
        description="Run the morsse demo application",
    )

    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host}, use 0.0.0.0 for containers)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})"
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Worker threads to start with; the pool grows to twice this"
    )
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=defaults.log_level,
        help=f"Logging level (default: {defaults.log_level})"
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=defaults.log_format,
        help="Access log format (default: text)"
    )
    parser.add_argument(
        "--session-ttl",
        type=float,
        default=defaults.session_ttl,
        help=f"Session lifetime in seconds (default: {int(defaults.session_ttl)})"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"morsse {__version__}"
    )

    return parser


def parse_config(argv: Optional[List[str]] = None) -> ServerConfig:
    """Environment defaults, overridden by command-line flags."""
    config = ServerConfig.from_env()
    args = build_parser(config).parse_args(argv)

    config.host = args.host
    config.port = args.port
    config.log_level = args.log_level
    config.log_format = args.log_format
    config.session_ttl = args.session_ttl

    if args.workers is not None:
        config.min_workers = args.workers
        config.max_workers = args.workers * 2

    return config


def main(argv: Optional[List[str]] = None) -> int:
    config = parse_config(argv)

    try:
        server = HTTPServer(config, renderer=demo_renderer())
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    server.use(LoggingMiddleware(log_format=config.log_format))
    server.register(DemoController())

    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
