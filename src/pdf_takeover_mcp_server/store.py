from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import urlsplit

from .models import (
    DEFAULT_CUSTOM_THEME_COLOR,
    DEFAULT_THEME_MODE,
    DEFAULT_THEME_PRESET_ID,
    PRESET_THEME_IDS,
    TakeoverSettings,
)
from .ports import SettingsPersistence

LOGGER = logging.getLogger(__name__)

SETTINGS_STORAGE_KEY = "autoTakeoverSettings"

_HEX_COLOR_RE = re.compile(r"^#?([0-9a-f]{6})$", re.IGNORECASE)
_RULE_SPLIT_RE = re.compile(r"[\n,]+")
_SCHEME_PREFIX_RE = re.compile(r"^https?://")
_PORT_SUFFIX_RE = re.compile(r"(?::\d+)+$")


def normalize_theme_mode(value: object) -> str:
    return "custom" if value == "custom" else DEFAULT_THEME_MODE


def normalize_theme_preset_id(value: object) -> str:
    normalized = str(value or "").strip().lower()
    return normalized if normalized in PRESET_THEME_IDS else DEFAULT_THEME_PRESET_ID


def normalize_hex_color(value: object) -> str | None:
    match = _HEX_COLOR_RE.match(str(value or "").strip().lower())
    return f"#{match.group(1)}" if match else None


def normalize_rule_entry(value: object) -> str | None:
    """Reduce a raw rule (hostname, URL, or `*.domain`) to its canonical form.

    Returns None when nothing usable is left. Normalizing the output again
    returns the same value.
    """
    if not isinstance(value, str):
        return None
    rule = value.strip().lower()
    if not rule:
        return None
    if rule == "*":
        return "*"

    if rule.startswith(("http://", "https://")):
        try:
            rule = (urlsplit(rule).hostname or "").lower()
        except ValueError:
            return None

    rule = _SCHEME_PREFIX_RE.sub("", rule)
    rule = rule.split("/")[0]
    rule = _PORT_SUFFIX_RE.sub("", rule).strip().lstrip(".")
    if not rule:
        return None

    if rule.startswith("*."):
        domain = rule[2:]
        return f"*.{domain}" if domain else None

    return rule


def _split_rule_string(value: str) -> list[str]:
    return [item.strip() for item in _RULE_SPLIT_RE.split(value) if item.strip()]


def normalize_rule_list(value: object) -> tuple[str, ...]:
    source: Iterable[object]
    if isinstance(value, str):
        source = _split_rule_string(value)
    elif isinstance(value, (list, tuple)):
        source = value
    else:
        source = ()

    # dict keeps first-seen order while dropping duplicates.
    rules: dict[str, None] = {}
    for item in source:
        normalized = normalize_rule_entry(item)
        if normalized:
            rules.setdefault(normalized, None)
    return tuple(rules)


def normalize_settings(raw: object) -> TakeoverSettings:
    """Total normalization of a persisted record; invalid fields fall back to defaults."""
    data: dict[str, Any] = raw if isinstance(raw, dict) else {}
    return TakeoverSettings(
        auto_takeover_enabled=data.get("autoTakeoverEnabled") is not False,
        auto_outline_auto_fit_enabled=data.get("autoOutlineAutoFitEnabled") is not False,
        theme_mode=normalize_theme_mode(data.get("themeMode")),
        theme_preset_id=normalize_theme_preset_id(data.get("themePresetId")),
        custom_theme_color=normalize_hex_color(data.get("customThemeColor")) or DEFAULT_CUSTOM_THEME_COLOR,
        whitelist=normalize_rule_list(data.get("whitelist")),
        blacklist=normalize_rule_list(data.get("blacklist")),
    )


class SettingsStore:
    """In-memory cache of the settings record, the single source of truth for the core."""

    def __init__(self, persistence: SettingsPersistence) -> None:
        self._persistence = persistence
        self._cache = TakeoverSettings()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def get(self) -> TakeoverSettings:
        return await self.reload(force=False)

    async def reload(self, force: bool = True) -> TakeoverSettings:
        if self._loaded and not force:
            return self._cache
        stored = await self._persistence.load()
        self._cache = normalize_settings(stored)
        self._loaded = True
        return self._cache

    def replace(self, raw: object) -> TakeoverSettings:
        """Swap the cache for a freshly persisted copy (storage change notification)."""
        self._cache = normalize_settings(raw)
        self._loaded = True
        return self._cache

    async def save(self, raw: object) -> TakeoverSettings:
        settings = normalize_settings(raw)
        await self._persistence.save(settings.to_record())
        self._cache = settings
        self._loaded = True
        return settings

    async def bootstrap(self) -> TakeoverSettings:
        """Load, normalize and write the normalized record back."""
        settings = await self.reload(force=True)
        await self._persistence.save(settings.to_record())
        return settings


class JsonFilePersistence:
    """Settings persistence backed by a JSON file holding `{"autoTakeoverSettings": {...}}`."""

    def __init__(self, path: str | Path, *, key: str = SETTINGS_STORAGE_KEY) -> None:
        self._path = Path(path)
        self._key = key

    def _read_all(self) -> dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            LOGGER.warning("Settings file %s is not valid JSON; using defaults.", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix="._settings_", suffix=".tmp", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
                json.dump(data, tmp_handle, indent=2, ensure_ascii=False)
                tmp_handle.flush()
                os.fsync(tmp_handle.fileno())
            os.replace(tmp_path, self._path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    async def load(self) -> dict[str, Any] | None:
        data = await asyncio.to_thread(self._read_all)
        value = data.get(self._key)
        return value if isinstance(value, dict) else None

    async def save(self, record: dict[str, Any]) -> None:
        def _update() -> None:
            data = self._read_all()
            data[self._key] = record
            self._write_all(data)

        await asyncio.to_thread(_update)
