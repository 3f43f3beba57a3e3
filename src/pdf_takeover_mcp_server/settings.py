from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_VIEWER_URL = "chrome-extension://dark-pdf-reader/src/viewer/viewer.html"
DEFAULT_PROBE_TIMEOUT_SECONDS = 6.0
DEFAULT_REDIRECT_TTL_SECONDS = 8.0
DEFAULT_MAX_REDIRECT_ATTEMPTS = 3
DEFAULT_HINT_DURATION_SECONDS = 5.0


def _default_settings_path() -> str:
    return str(Path.home() / ".config" / "pdf-takeover" / "settings.json")


def _get_float_env(key: str, default: float, *, low: float, high: float) -> float:
    raw = (os.environ.get(key) or "").strip()
    try:
        value = float(raw) if raw else default
    except ValueError:
        value = default
    if value <= 0:
        value = default
    return max(low, min(value, high))


def _get_int_env(key: str, default: int, *, low: int, high: int) -> int:
    raw = (os.environ.get(key) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    if value <= 0:
        value = default
    return max(low, min(value, high))


def _get_bool_env(key: str, default: bool) -> bool:
    raw = (os.environ.get(key) or "").strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


@dataclass
class RuntimeSettings:
    """Runtime configuration (env-first).

    Note: keep this module lightweight; it is imported by tests.
    """

    viewer_url: str = DEFAULT_VIEWER_URL
    settings_path: str = ""
    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS
    redirect_ttl_seconds: float = DEFAULT_REDIRECT_TTL_SECONDS
    max_redirect_attempts: int = DEFAULT_MAX_REDIRECT_ATTEMPTS
    hint_duration_seconds: float = DEFAULT_HINT_DURATION_SECONDS
    declarative_rules_enabled: bool = True

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            viewer_url=(os.environ.get("PDF_TAKEOVER_VIEWER_URL") or "").strip() or DEFAULT_VIEWER_URL,
            settings_path=(os.environ.get("PDF_TAKEOVER_SETTINGS_PATH") or "").strip()
            or _default_settings_path(),
            probe_timeout_seconds=_get_float_env(
                "PDF_TAKEOVER_PROBE_TIMEOUT_SECONDS", DEFAULT_PROBE_TIMEOUT_SECONDS, low=0.5, high=60.0
            ),
            redirect_ttl_seconds=_get_float_env(
                "PDF_TAKEOVER_REDIRECT_TTL_SECONDS", DEFAULT_REDIRECT_TTL_SECONDS, low=1.0, high=300.0
            ),
            max_redirect_attempts=_get_int_env(
                "PDF_TAKEOVER_MAX_REDIRECT_ATTEMPTS", DEFAULT_MAX_REDIRECT_ATTEMPTS, low=1, high=10
            ),
            hint_duration_seconds=_get_float_env(
                "PDF_TAKEOVER_HINT_DURATION_SECONDS", DEFAULT_HINT_DURATION_SECONDS, low=0.5, high=60.0
            ),
            declarative_rules_enabled=_get_bool_env("PDF_TAKEOVER_DECLARATIVE_RULES", True),
        )
