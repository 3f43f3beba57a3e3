from __future__ import annotations

import logging

from ..ports import Clock, PortError, TabControl, TabInfo, TabNotFoundError
from ..tabs.hints import HintPresenter
from ..utils.urls import build_viewer_url, is_viewer_url, normalize_http_url

LOGGER = logging.getLogger(__name__)

CONFIRM_POLL_ATTEMPTS = 7
CONFIRM_POLL_INTERVAL_SECONDS = 0.12


class ViewerLauncher:
    """Open the viewer for a resolved PDF URL and confirm the target tab shows it."""

    def __init__(self, *, tabs: TabControl, clock: Clock, hints: HintPresenter, viewer_url: str) -> None:
        self._tabs = tabs
        self._clock = clock
        self._hints = hints
        self.viewer_url = viewer_url

    async def open_blank(self) -> bool:
        try:
            await self._tabs.create(self.viewer_url)
        except PortError as exc:
            LOGGER.warning("Failed to open blank viewer: %s", type(exc).__name__)
            return False
        return True

    async def open(
        self,
        *,
        tab_id: int | None,
        pdf_url: str,
        source_url: str | None,
        new_tab: bool,
        confirm: bool = False,
    ) -> TabInfo | None:
        """
        Open `pdf_url` in the viewer.

        A new tab is created when `new_tab` is set (the original tab is preserved); otherwise the
        given tab is navigated in place. With `confirm`, the opened tab is polled briefly and the
        open only counts once it reports the viewer URL. Returns the viewer tab, or None on failure.
        """
        normalized_pdf_url = normalize_http_url(pdf_url)
        if not normalized_pdf_url:
            await self._hints.show_badge_hint(tab_id, "The link is not a valid PDF address.")
            return None

        normalized_source = normalize_http_url(source_url) or normalized_pdf_url
        target_url = build_viewer_url(self.viewer_url, normalized_pdf_url, normalized_source)

        try:
            if new_tab or tab_id is None:
                opened = await self._tabs.create(target_url)
            else:
                opened = await self._tabs.update(tab_id, target_url)
        except PortError as exc:
            LOGGER.warning("Failed to open viewer tab: %s", type(exc).__name__)
            return None

        if confirm and not await self.confirm_showing_viewer(opened):
            return None
        return opened

    async def confirm_showing_viewer(self, tab: TabInfo) -> bool:
        if self._shows_viewer(tab):
            return True
        for _ in range(CONFIRM_POLL_ATTEMPTS):
            await self._clock.sleep(CONFIRM_POLL_INTERVAL_SECONDS)
            try:
                tab = await self._tabs.get(tab.id)
            except TabNotFoundError:
                return False
            except PortError:
                continue
            if self._shows_viewer(tab):
                return True
        return False

    def _shows_viewer(self, tab: TabInfo) -> bool:
        return is_viewer_url(tab.url, self.viewer_url) or is_viewer_url(tab.pending_url, self.viewer_url)
