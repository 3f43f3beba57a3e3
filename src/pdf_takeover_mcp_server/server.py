from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP

from .content.resolver import resolve_pdf_url_for_open
from .detect import PdfDetector
from .models import EvaluateTakeoverResponse, ResolvePdfUrlResponse
from .rules import is_allowed
from .service import BOOTSTRAP_MESSAGE_TYPE, handle_bootstrap_message
from .settings import RuntimeSettings
from .store import JsonFilePersistence, SettingsStore
from .sync import InMemoryRuleHost, RuleSynchronizer
from .utils.logging import configure_logging
from .utils.urls import build_viewer_url, host_from_url, looks_like_pdf_url

configure_logging()
LOGGER = logging.getLogger(__name__)

mcp = FastMCP(
    "pdf-takeover",
    instructions=(
        "Decides whether a URL is a PDF and which viewer URL should open it, honoring the user's "
        "per-host allow/deny rules, and publishes the matching declarative redirect rules."
    ),
)

Transport = Literal["stdio", "sse", "streamable-http"]


@dataclass
class _ServerState:
    runtime: RuntimeSettings
    store: SettingsStore
    rule_host: InMemoryRuleHost
    synchronizer: RuleSynchronizer
    detector: PdfDetector
    bootstrapped: bool = False
    bootstrap_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


_STATE: _ServerState | None = None


def _get_state() -> _ServerState:
    global _STATE
    if _STATE is None:
        runtime = RuntimeSettings.from_env()
        rule_host = InMemoryRuleHost(supports_redirect_rules=runtime.declarative_rules_enabled)
        _STATE = _ServerState(
            runtime=runtime,
            store=SettingsStore(JsonFilePersistence(runtime.settings_path)),
            rule_host=rule_host,
            synchronizer=RuleSynchronizer(
                rule_host, viewer_url=runtime.viewer_url, enabled=runtime.declarative_rules_enabled
            ),
            detector=PdfDetector(timeout_seconds=runtime.probe_timeout_seconds),
        )
    return _STATE


async def _ready_state() -> _ServerState:
    """State for tool calls; the first call runs startup synchronization (settings + rules)."""
    state = _get_state()
    if not state.bootstrapped:
        async with state.bootstrap_lock:
            if not state.bootstrapped:
                # Failures are logged and answered with defaults until the next sync.
                await handle_bootstrap_message({"type": BOOTSTRAP_MESSAGE_TYPE}, state.store, state.synchronizer)
                state.bootstrapped = True
    return state


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-pdf-takeover",
        description="MCP server: PDF detection, takeover rules and viewer redirect decisions.",
    )

    transport_group = parser.add_mutually_exclusive_group()
    transport_group.add_argument(
        "--transport",
        choices=("stdio", "sse", "streamable-http"),
        help="Transport to use (default: stdio).",
    )
    transport_group.add_argument(
        "--stdio",
        dest="transport",
        action="store_const",
        const="stdio",
        help="Run using stdio transport (default).",
    )
    transport_group.add_argument(
        "--sse",
        dest="transport",
        action="store_const",
        const="sse",
        help="Run using SSE transport.",
    )
    transport_group.add_argument(
        "--http",
        "--streamable-http",
        dest="transport",
        action="store_const",
        const="streamable-http",
        help="Run using Streamable HTTP transport.",
    )

    parser.add_argument(
        "--host",
        default=None,
        help="Bind host for HTTP/SSE transports (overrides FASTMCP_HOST).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Bind port for HTTP/SSE transports (overrides FASTMCP_PORT).",
    )
    parser.add_argument(
        "--mount-path",
        default=None,
        help="Mount path for SSE transport (if supported by the runtime).",
    )
    return parser


def _resolve_transport(raw: str | None) -> Transport:
    if raw in ("stdio", "sse", "streamable-http"):
        return raw
    return "stdio"


def _resolve_host_port(host: str | None, port: int | None) -> tuple[str, int]:
    resolved_host = host or os.environ.get("FASTMCP_HOST", "127.0.0.1")
    resolved_port_raw = str(port) if port is not None else os.environ.get("FASTMCP_PORT", "8000")
    try:
        resolved_port = int(resolved_port_raw)
    except ValueError:
        resolved_port = 8000
    return resolved_host, resolved_port


def main(argv: list[str] | None = None) -> None:
    """
    Entrypoint for running the MCP server.

    Notes:
    - The browser-side shim usually launches the server via stdio.
    - HTTP/SSE transports are useful when the extension talks to a local gateway.
    """
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    transport = _resolve_transport(args.transport)

    if (
        transport == "stdio"
        and sys.stdin.isatty()
        and os.environ.get("MCP_ALLOW_TTY_STDIO", "").strip().lower() not in ("1", "true", "yes")
    ):
        print(
            "Error: `--stdio` transport is intended to be launched by an MCP client (stdin/stdout JSON-RPC).",
            file=sys.stderr,
        )
        print(
            "Tip: for manual testing, run with `--http` (Streamable HTTP) instead.",
            file=sys.stderr,
        )
        print(
            "Override: set MCP_ALLOW_TTY_STDIO=1 to force stdio even when stdin is a TTY.",
            file=sys.stderr,
        )
        raise SystemExit(2)

    if transport in ("sse", "streamable-http"):
        host, port = _resolve_host_port(args.host, args.port)
        # FastMCP settings are the source of truth for host/port in HTTP transports.
        for key, value in (("host", host), ("port", port)):
            if hasattr(mcp, "settings") and hasattr(mcp.settings, key):
                setattr(mcp.settings, key, value)

    try:
        mcp.run(transport=transport, mount_path=args.mount_path)
    except TypeError:
        # Older MCP SDKs may not accept `mount_path`.
        mcp.run(transport=transport)


@mcp.tool()
async def resolve_pdf_url(url: str) -> dict:
    """Resolve the PDF that a URL points at and build the viewer URL that opens it.

    Args:
    - url: A page URL, a direct PDF URL, or a viewer/wrapper URL carrying the PDF in its
      `file`/`src`/`url` query parameter or fragment.

    Returns:
    - `{"url": str, "pdf_url": str | null, "viewer_url": str | null}`

    Notes:
    - URL-shaped PDFs resolve without any network call; other URLs get a HEAD probe
      (`PDF_TAKEOVER_PROBE_TIMEOUT_SECONDS`, default 6) and fail closed.
    """
    state = await _ready_state()
    pdf_url = await resolve_pdf_url_for_open(url, state.detector)
    viewer_url = build_viewer_url(state.runtime.viewer_url, pdf_url) if pdf_url else None
    return ResolvePdfUrlResponse(url=url, pdf_url=pdf_url, viewer_url=viewer_url).model_dump()


@mcp.tool()
async def evaluate_auto_takeover(url: str) -> dict:
    """Report whether automatic takeover may run for a URL under the current allow/deny rules.

    Returns:
    - `{"url": str, "host": str | null, "allowed": bool, "looks_like_pdf": bool}`
    """
    state = await _ready_state()
    settings = await state.store.get()
    host = host_from_url(url)
    return EvaluateTakeoverResponse(
        url=url,
        host=host,
        allowed=is_allowed(host, settings),
        looks_like_pdf=looks_like_pdf_url(url),
    ).model_dump()


@mcp.tool()
async def get_settings() -> dict:
    """Return the normalized settings record (camelCase keys, as persisted)."""
    state = await _ready_state()
    settings = await state.store.get()
    return settings.to_record()


@mcp.tool()
async def update_settings(settings: dict[str, Any]) -> dict:
    """Normalize, persist and apply a settings record; returns the record as stored.

    Invalid fields fall back to defaults; rule entries are reduced to hostnames or `*.domain`.
    """
    state = await _ready_state()
    saved = await state.store.save(settings)
    await state.synchronizer.sync(saved)
    return saved.to_record()


@mcp.tool()
async def get_redirect_rules() -> dict:
    """Return the declarative redirect rules currently published for the browser host."""
    state = await _ready_state()
    return {"rules": state.rule_host.installed()}


@mcp.tool()
async def bootstrap_auto_rules() -> dict:
    """Re-run startup synchronization (settings normalization + redirect rules).

    Returns `{"ok": true}` or `{"ok": false, "error": str}`.
    """
    state = await _ready_state()
    response = await handle_bootstrap_message(
        {"type": BOOTSTRAP_MESSAGE_TYPE}, state.store, state.synchronizer
    )
    return response or {"ok": False, "error": "bootstrap failed"}
