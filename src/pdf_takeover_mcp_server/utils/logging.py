from __future__ import annotations

import logging
import os


def configure_logging() -> None:
    """
    Configure logging defaults for both local runs and MCP stdio hosts.

    Goals:
    - Keep `httpx` request logs out of the way while HEAD probes run.
    - Keep configuration idempotent so hosts can override it safely.
    """
    root = logging.getLogger()

    # Only set up basicConfig if nothing configured yet (common for scripts).
    if not root.handlers:
        level = os.environ.get("LOG_LEVEL", "WARNING").upper()
        logging.basicConfig(level=getattr(logging, level, logging.WARNING))

    noisy_loggers = (
        "httpx",
        "httpcore",
        "asyncio",
    )
    for name in noisy_loggers:
        # `asyncio` complains about slow callbacks while tabs are polled.
        level = logging.ERROR if name == "asyncio" else logging.WARNING
        logging.getLogger(name).setLevel(level)
