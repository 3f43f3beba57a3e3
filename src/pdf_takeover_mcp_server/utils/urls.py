from __future__ import annotations

import re
from urllib.parse import urlencode, urlsplit, urlunsplit

_PDF_SUFFIX_RE = re.compile(r"\.pdf(?:$|[?#])", re.IGNORECASE)
_PDF_SEGMENT_RE = re.compile(r"/pdf(?:/|$)", re.IGNORECASE)
_SUPPORTED_PAGE_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_http_url(raw_url: object) -> str | None:
    """Return a canonical absolute http(s) URL, or None when `raw_url` is not one.

    Scheme and host are lowercased and an empty path becomes `/`; the rest of the
    URL is kept as given so that comparisons stay stable across events.
    """
    text = str(raw_url or "").strip()
    if not text:
        return None
    try:
        parsed = urlsplit(text)
        # Accessing `.port` validates the netloc (raises on garbage ports).
        parsed.port
    except ValueError:
        return None

    scheme = parsed.scheme.lower()
    if scheme not in ("http", "https") or not parsed.hostname:
        return None
    if any(ch.isspace() for ch in parsed.netloc):
        return None

    netloc = parsed.netloc
    userinfo, sep, hostport = netloc.rpartition("@")
    netloc = f"{userinfo}{sep}{hostport.lower()}"
    path = parsed.path or "/"
    return urlunsplit((scheme, netloc, path, parsed.query, parsed.fragment))


def is_supported_web_page(url: object) -> bool:
    return bool(_SUPPORTED_PAGE_RE.match(str(url or "")))


def host_from_url(url: object) -> str | None:
    normalized = normalize_http_url(url)
    if not normalized:
        return None
    host = urlsplit(normalized).hostname
    return host.lower() if host else None


def looks_like_pdf_url(url: object) -> bool:
    """Zero-network heuristic for "probably a PDF".

    True when the path+query+fragment ends with `.pdf` (optionally followed by
    `?`/`#`), or when the path has a `/pdf/` segment or ends with `/pdf`.
    The `/pdf/` rule also matches some abstract pages; the HEAD probe corrects
    those where it matters.
    """
    normalized = normalize_http_url(url)
    if not normalized:
        return False
    parsed = urlsplit(normalized)
    tail = parsed.path
    if parsed.query:
        tail += f"?{parsed.query}"
    if parsed.fragment:
        tail += f"#{parsed.fragment}"
    if _PDF_SUFFIX_RE.search(tail.lower()):
        return True
    return bool(_PDF_SEGMENT_RE.search(parsed.path))


def is_trackable_source_page(url: object) -> bool:
    return is_supported_web_page(url) and not looks_like_pdf_url(url)


def build_viewer_url(viewer_url: str, pdf_url: str, source_url: str | None = None) -> str:
    """Viewer launch URL: `url` carries the PDF, `from` the optional return target."""
    params = {"url": pdf_url}
    if source_url:
        params["from"] = source_url
    return f"{viewer_url}?{urlencode(params)}"


def is_viewer_url(url: object, viewer_url: str) -> bool:
    return bool(viewer_url) and str(url or "").startswith(viewer_url)
