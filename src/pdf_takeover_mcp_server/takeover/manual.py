from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence

from ..content.resolver import resolve_hint, resolve_pdf_url_for_open
from ..models import Candidate
from ..ports import CandidatePicker, PageScripting, PortError, TabInfo
from ..tabs.hints import HintPresenter
from ..utils.urls import is_supported_web_page
from .page_scan import MAX_SCANNED_EMBEDS, MAX_SCANNED_LINKS, collect_candidates
from .viewer import ViewerLauncher

LOGGER = logging.getLogger(__name__)

SCAN_FAILED_HINT = "Could not detect a PDF on this page. Copy the PDF link and open it in the viewer."
NOTHING_FOUND_HINT = "No accessible PDF link was found. Click the toolbar button again on the PDF page."
LINK_NOT_PDF_HINT = "This link is not an accessible PDF."
PAGE_NOT_PDF_HINT = "No accessible PDF was found for the current page."


class _Detector(Protocol):
    async def is_pdf_url(self, url: str) -> bool: ...


class ManualInvocationFlow:
    """Explicit user action on a tab: resolve the obvious cases, else scan, verify and let the user pick."""

    def __init__(
        self,
        *,
        detector: _Detector,
        scripting: PageScripting,
        picker: CandidatePicker,
        launcher: ViewerLauncher,
        hints: HintPresenter,
    ) -> None:
        self._detector = detector
        self._scripting = scripting
        self._picker = picker
        self._launcher = launcher
        self._hints = hints

    async def run(self, tab: TabInfo | None) -> str | None:
        """Toolbar click. Returns the PDF URL that was opened, if any."""
        if tab is None:
            await self._launcher.open_blank()
            return None

        tab_url = tab.url or ""
        embedded = resolve_hint(tab_url)
        if embedded:
            return await self._open(tab, embedded, tab_url or embedded)

        if not is_supported_web_page(tab_url):
            await self._launcher.open_blank()
            return None

        if await self._detector.is_pdf_url(tab_url):
            return await self._open(tab, tab_url, tab_url)

        try:
            snapshot = await self._scripting.scan_page(
                tab.id, max_links=MAX_SCANNED_LINKS, max_embeds=MAX_SCANNED_EMBEDS
            )
        except PortError as exc:
            LOGGER.warning("Failed to collect PDF candidates from page: %s", type(exc).__name__)
            await self._hints.show_page_hint(tab.id, SCAN_FAILED_HINT)
            return None

        candidates = collect_candidates(snapshot, tab_url)
        verified = await self.verify_candidates(candidates)
        if not verified:
            await self._hints.show_page_hint(tab.id, NOTHING_FOUND_HINT)
            return None

        selected = verified[0].url
        if len(verified) > 1:
            picked = await self.prompt_selection(tab.id, verified)
            if not picked:
                return None
            selected = picked

        return await self._open(tab, selected, tab_url)

    async def verify_candidates(self, candidates: Sequence[Candidate]) -> list[Candidate]:
        """Probe every candidate concurrently; keep verified ones in score order."""
        checks = await asyncio.gather(*(self._detector.is_pdf_url(candidate.url) for candidate in candidates))
        return [candidate for candidate, is_pdf in zip(candidates, checks) if is_pdf]

    async def prompt_selection(self, tab_id: int, candidates: Sequence[Candidate]) -> str | None:
        try:
            picked = await self._picker.choose(tab_id, candidates)
        except PortError as exc:
            LOGGER.warning("Failed to show candidate picker, using the best candidate: %s", type(exc).__name__)
            return candidates[0].url if candidates else None
        return picked if isinstance(picked, str) and picked else None

    async def open_link(self, tab: TabInfo, link_url: str) -> str | None:
        """Context menu on a link: open it in a new tab when it resolves to a PDF."""
        target = await resolve_pdf_url_for_open(link_url or "", self._detector)
        if not target:
            await self._hints.show_badge_hint(tab.id, LINK_NOT_PDF_HINT)
            return None
        opened = await self._launcher.open(
            tab_id=tab.id, pdf_url=target, source_url=tab.url or target, new_tab=True
        )
        return target if opened is not None else None

    async def open_current(self, tab: TabInfo, page_url: str | None = None) -> str | None:
        """Context menu on the page: open the current page's PDF in a new tab."""
        candidate = page_url or tab.url or ""
        target = await resolve_pdf_url_for_open(candidate, self._detector)
        if not target:
            await self._hints.show_badge_hint(tab.id, PAGE_NOT_PDF_HINT)
            return None
        opened = await self._launcher.open(tab_id=tab.id, pdf_url=target, source_url=candidate, new_tab=True)
        return target if opened is not None else None

    async def _open(self, tab: TabInfo, pdf_url: str, source_url: str) -> str | None:
        opened = await self._launcher.open(tab_id=tab.id, pdf_url=pdf_url, source_url=source_url, new_tab=False)
        return pdf_url if opened is not None else None
