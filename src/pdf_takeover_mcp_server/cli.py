"""
`pdf-takeover-mcp-server start-mcp-server`: launch the takeover server for an MCP host.

Options that only make sense per launch (settings file, viewer page) are handed to the
server as `PDF_TAKEOVER_*` variables for the duration of the run.
"""

from __future__ import annotations

import argparse
import os
from contextlib import contextmanager
from typing import Iterator, Mapping

SETTINGS_PATH_ENV = "PDF_TAKEOVER_SETTINGS_PATH"
VIEWER_URL_ENV = "PDF_TAKEOVER_VIEWER_URL"

_TRANSPORT_FLAGS = frozenset({"--stdio", "--sse", "--http", "--streamable-http", "--transport"})


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf-takeover-mcp-server",
        description="Launch the PDF auto-takeover decision server for an MCP host.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    start = commands.add_parser(
        "start-mcp-server",
        help="Serve the takeover tools (stdio unless a transport flag is given).",
        description=(
            "Serve the takeover tools: PDF detection, allow/block rules, settings and the "
            "declarative redirect rules. Any other arguments go to the server unchanged."
        ),
    )
    start.add_argument(
        "--settings-path",
        default=None,
        help=f"JSON file holding the takeover settings record (sets {SETTINGS_PATH_ENV}).",
    )
    start.add_argument(
        "--viewer-url",
        default=None,
        help=f"Viewer page that PDFs are opened in (sets {VIEWER_URL_ENV}).",
    )
    return parser


def _has_transport_flag(argv: list[str]) -> bool:
    return any(arg.split("=", 1)[0] in _TRANSPORT_FLAGS for arg in argv)


@contextmanager
def _scoped_env(overrides: Mapping[str, str | None]) -> Iterator[None]:
    """Apply non-blank overrides to `os.environ`, restoring the previous values afterwards."""
    applied = {name: value.strip() for name, value in overrides.items() if value is not None and value.strip()}
    previous = {name: os.environ.get(name) for name in applied}
    os.environ.update(applied)
    try:
        yield
    finally:
        for name, value in previous.items():
            if value is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = value


def main(argv: list[str] | None = None) -> None:
    from .server import main as server_main

    args, server_args = _build_arg_parser().parse_known_args(argv)

    if server_args and server_args[0] == "--":
        server_args = server_args[1:]
    if not _has_transport_flag(server_args):
        server_args = ["--stdio", *server_args]

    with _scoped_env({SETTINGS_PATH_ENV: args.settings_path, VIEWER_URL_ENV: args.viewer_url}):
        server_main(server_args)
