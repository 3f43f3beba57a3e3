from __future__ import annotations

import re
from typing import Protocol
from urllib.parse import parse_qsl, unquote, urlsplit

from ..utils.urls import looks_like_pdf_url, normalize_http_url

_HINT_QUERY_KEYS = {"file", "src", "url"}
_EMBEDDED_HTTP_URL_RE = re.compile(r"""https?://[^\s"'<>]+""", re.IGNORECASE)
_MAX_DECODE_ROUNDS = 3


class _Detector(Protocol):
    async def is_pdf_url(self, url: str) -> bool: ...


def decode_wrapped_http_url(raw_value: str) -> str | None:
    """Unwrap a (possibly repeatedly) percent-encoded http(s) URL."""
    value = str(raw_value or "").strip()
    if not value:
        return None

    for _ in range(_MAX_DECODE_ROUNDS):
        normalized = normalize_http_url(value)
        if normalized:
            return normalized
        decoded = unquote(value)
        if decoded == value:
            break
        value = decoded.strip()

    match = _EMBEDDED_HTTP_URL_RE.search(value)
    return normalize_http_url(match.group(0)) if match else None


def _hint_candidates(raw_url: str) -> list[str]:
    try:
        parsed = urlsplit(str(raw_url))
    except ValueError:
        return []
    if not parsed.scheme:
        return []

    candidates: list[str] = []
    for key, value in parse_qsl(parsed.query, keep_blank_values=True):
        if key.lower() in _HINT_QUERY_KEYS or ".pdf" in value.lower():
            candidates.append(value)

    fragment = parsed.fragment.strip()
    if fragment:
        candidates.append(fragment)
    return candidates


def extract_embedded_pdf_url(raw_url: str) -> str | None:
    """Find a PDF URL carried in a wrapper URL's query (`file`/`src`/`url`, or `.pdf` values) or fragment."""
    if not raw_url:
        return None
    for candidate in _hint_candidates(raw_url):
        normalized = decode_wrapped_http_url(candidate)
        if normalized and looks_like_pdf_url(normalized):
            return normalized
    return None


def resolve_hint(raw_url: str) -> str | None:
    """
    Resolve the PDF a URL points at without touching the network.

    Stage 1: the URL itself is an http(s) PDF-shaped URL.
    Stage 2: a viewer/wrapper URL embeds one in its query string or fragment.
    """
    normalized = normalize_http_url(raw_url)
    if normalized and looks_like_pdf_url(normalized):
        return normalized
    return extract_embedded_pdf_url(raw_url)


async def resolve_pdf_url_for_open(raw_url: str, detector: _Detector) -> str | None:
    """Hint first; otherwise confirm the URL itself with a detector probe."""
    hinted = resolve_hint(raw_url)
    if hinted:
        return hinted
    normalized = normalize_http_url(raw_url)
    if not normalized:
        return None
    if await detector.is_pdf_url(normalized):
        return normalized
    return None
