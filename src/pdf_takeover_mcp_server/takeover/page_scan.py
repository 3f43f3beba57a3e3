from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import urljoin

from ..models import Candidate
from ..ports import PageElement, PageSnapshot
from ..utils.urls import normalize_http_url

MAX_SCANNED_LINKS = 1200
MAX_SCANNED_EMBEDS = 100
MAX_COLLECTED_CANDIDATES = 40
MAX_VERIFICATION_CANDIDATES = 16
MAX_LABEL_CHARS = 120

CURRENT_PAGE_SCORE = 120
IN_PAGE_CURRENT_SCORE = 100
EMBED_PDF_SCORE = 95
LINK_PDF_SUFFIX_SCORE = 80
EMBED_OTHER_SCORE = 65
LINK_PDF_HINT_SCORE = 50

CURRENT_PAGE_LABEL = "Current page"

_WHITESPACE_RE = re.compile(r"\s+")
_EMBED_TAGS = {"iframe", "embed", "object"}


def normalize_label(value: object, fallback_url: str) -> str:
    normalized = _WHITESPACE_RE.sub(" ", str(value or "")).strip()
    return normalized[:MAX_LABEL_CHARS] if normalized else fallback_url


def merge_candidates(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Dedupe by normalized URL keeping the highest score (first seen wins ties), best first."""
    merged: dict[str, Candidate] = {}
    for candidate in candidates:
        url = normalize_http_url(candidate.url)
        if not url:
            continue
        existing = merged.get(url)
        if existing is None or candidate.score > existing.score:
            merged[url] = candidate.model_copy(update={"url": url, "label": normalize_label(candidate.label, url)})
    # sorted() is stable, so equal scores keep discovery order.
    return sorted(merged.values(), key=lambda item: item.score, reverse=True)


def _score_link(element: PageElement) -> int | None:
    href = element.url
    if not href or href.startswith("#") or href.lower().startswith("javascript:"):
        return None
    hint = f"{href} {element.text or element.title} {element.type}".lower()
    likely_pdf = ".pdf" in hint or "/pdf/" in hint or "application/pdf" in hint or " pdf" in hint
    if not likely_pdf:
        return None
    return LINK_PDF_SUFFIX_SCORE if ".pdf" in hint else LINK_PDF_HINT_SCORE


def _score_embed(element: PageElement) -> int | None:
    if not element.url:
        return None
    hint = f"{element.url} {element.type}".lower()
    if ".pdf" in hint or "/pdf/" in hint or "application/pdf" in hint:
        return EMBED_PDF_SCORE
    return EMBED_OTHER_SCORE


def extract_page_candidates(snapshot: PageSnapshot, *, limit: int = MAX_COLLECTED_CANDIDATES) -> list[Candidate]:
    """
    Score anchors and embedded viewers found on a page.

    Literal `.pdf` beats a looser PDF hint; embedded viewers beat plain links. The page itself is
    included at a fixed score. Relative URLs are resolved against the page URL.
    """
    max_count = max(5, min(limit, 80))
    found: dict[str, Candidate] = {}

    def add(raw_url: str, source: str, label: str, score: int) -> None:
        try:
            absolute = urljoin(snapshot.url, raw_url)
        except ValueError:
            return
        url = normalize_http_url(absolute)
        if not url:
            return
        existing = found.get(url)
        if existing is None or score > existing.score:
            found[url] = Candidate(url=url, source=source, label=normalize_label(label, url), score=score)

    add(snapshot.url, "current", snapshot.title or CURRENT_PAGE_LABEL, IN_PAGE_CURRENT_SCORE)

    links = [element for element in snapshot.elements if element.tag.lower() == "a"][:MAX_SCANNED_LINKS]
    for element in links:
        score = _score_link(element)
        if score is None:
            continue
        text = element.text or element.title
        add(element.url, "link", text or element.url, score)
        if len(found) >= max_count:
            break

    embeds = [element for element in snapshot.elements if element.tag.lower() in _EMBED_TAGS][:MAX_SCANNED_EMBEDS]
    for element in embeds:
        score = _score_embed(element)
        if score is None:
            continue
        add(element.url, "embed", element.title or element.name or element.url, score)
        if len(found) >= max_count:
            break

    return sorted(found.values(), key=lambda item: item.score, reverse=True)[:max_count]


def collect_candidates(
    snapshot: PageSnapshot,
    tab_url: str,
    *,
    limit: int = MAX_VERIFICATION_CANDIDATES,
) -> list[Candidate]:
    """Page candidates plus the tab's own URL at the baseline score, merged and capped for verification."""
    candidates = extract_page_candidates(snapshot)
    candidates.append(Candidate(url=tab_url, source="current", label=CURRENT_PAGE_LABEL, score=CURRENT_PAGE_SCORE))
    return merge_candidates(candidates)[:limit]
