from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import httpx

from ..settings import DEFAULT_PROBE_TIMEOUT_SECONDS
from ..utils.urls import looks_like_pdf_url, normalize_http_url

LOGGER = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"

_PROBE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


@dataclass(frozen=True)
class ProbeResult:
    is_pdf: bool
    status: int


def _header_field(header: Any, key: str) -> str:
    if isinstance(header, Mapping):
        value = header.get(key)
    else:
        value = getattr(header, key, None)
    return str(value or "")


def has_pdf_by_headers(response_headers: Iterable[Any] | None) -> bool:
    """
    Scan `[{name, value}, ...]` response headers for a PDF content-type.

    Header names are matched case-insensitively. Used by the header-received fast path, where
    the headers are already in hand and a second round-trip would be wasteful.
    """
    if response_headers is None or isinstance(response_headers, (str, bytes)):
        return False
    try:
        headers = list(response_headers)
    except TypeError:
        return False

    for header in headers:
        name = _header_field(header, "name")
        if not name or name.lower() != "content-type":
            continue
        if PDF_CONTENT_TYPE in _header_field(header, "value").lower():
            return True
    return False


async def probe_content_type(
    url: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> ProbeResult:
    """
    Issue a HEAD request and report whether the response declares `application/pdf`.

    Fails closed: network errors, timeouts and malformed URLs all report `is_pdf=False`
    with status 0.
    """

    async def _do_request(client: httpx.AsyncClient) -> ProbeResult:
        resp = await client.head(url, headers=_PROBE_HEADERS, timeout=timeout_seconds, follow_redirects=True)
        content_type = resp.headers.get("content-type", "")
        return ProbeResult(is_pdf=PDF_CONTENT_TYPE in content_type.lower(), status=resp.status_code)

    try:
        if http_client is None:
            async with httpx.AsyncClient(timeout=timeout_seconds) as client:
                return await _do_request(client)
        return await _do_request(http_client)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        LOGGER.debug("HEAD probe failed for %s: %s", url, type(exc).__name__)
        return ProbeResult(is_pdf=False, status=0)


class PdfDetector:
    """URL-shape heuristic first, then a HEAD probe (never both when the shape already decides)."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    ) -> None:
        self._http_client = http_client
        self._timeout_seconds = timeout_seconds

    def looks_like_pdf_url(self, url: str) -> bool:
        return looks_like_pdf_url(url)

    async def is_pdf_url(self, url: str) -> bool:
        normalized = normalize_http_url(url)
        if not normalized:
            return False
        if looks_like_pdf_url(normalized):
            return True
        result = await probe_content_type(
            normalized, http_client=self._http_client, timeout_seconds=self._timeout_seconds
        )
        return result.is_pdf


async def is_pdf_url(
    url: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> bool:
    return await PdfDetector(http_client=http_client, timeout_seconds=timeout_seconds).is_pdf_url(url)
