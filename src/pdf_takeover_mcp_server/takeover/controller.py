from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Iterable, Protocol

from ..detect import has_pdf_by_headers
from ..ports import Clock, PortError, TabControl, TabInfo
from ..rules import is_allowed_url
from ..store import SettingsStore
from ..tabs.hints import HintPresenter
from ..tabs.state import PendingRedirect, TabState
from ..utils.urls import is_supported_web_page, is_trackable_source_page, looks_like_pdf_url
from .viewer import ViewerLauncher

LOGGER = logging.getLogger(__name__)

RESTORE_POLL_ATTEMPTS = 12
RESTORE_POLL_INTERVAL_SECONDS = 0.14
MAIN_FRAME_ID = 0


class _Detector(Protocol):
    async def is_pdf_url(self, url: str) -> bool: ...


def _valid_tab_id(tab_id: object) -> bool:
    return isinstance(tab_id, int) and not isinstance(tab_id, bool) and tab_id >= 0


class AutoTakeoverController:
    """
    Event-driven takeover: browser events in, at most one viewer open per tab out.

    Per tab: Idle -> Checking -> Queued -> {Opened | Abandoned}. Every handler re-validates
    the tab record after each await, since other events may have run in between.
    """

    def __init__(
        self,
        *,
        store: SettingsStore,
        detector: _Detector,
        tab_state: TabState,
        tabs: TabControl,
        launcher: ViewerLauncher,
        hints: HintPresenter,
        clock: Clock,
    ) -> None:
        self._store = store
        self._detector = detector
        self._tab_state = tab_state
        self._tabs = tabs
        self._launcher = launcher
        self._hints = hints
        self._clock = clock
        self._tasks: set[asyncio.Task[Any]] = set()

    # Background work.

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until spawned attempts and restorations have finished (used by hosts and tests)."""
        while True:
            running = [task for task in self._tasks if not task.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    # Events.

    async def on_tab_updated(
        self,
        tab_id: int,
        *,
        url: str | None = None,
        status: str | None = None,
        tab_url: str | None = None,
    ) -> None:
        """Tab update: `url` is the changed URL (if any), `tab_url` the tab's current URL."""
        if not _valid_tab_id(tab_id):
            return

        non_pdf_candidate = url or (tab_url if status == "complete" else "")
        if is_trackable_source_page(non_pdf_candidate):
            self._tab_state.remember_source_page(tab_id, non_pdf_candidate or "")

        candidate_url = url or (tab_url if status == "loading" else "")
        if not candidate_url or not looks_like_pdf_url(candidate_url):
            if status == "complete":
                pending = self._tab_state.pending_for(tab_id)
                if pending is not None:
                    # A navigation interrupted the earlier attempt; retry now the tab settled.
                    await self.attempt_queued_redirect(tab_id, pending.url)
            return

        await self.handle_potential_pdf(tab_id, candidate_url)

    async def on_navigation_committed(self, tab_id: int, url: str, *, frame_id: int = MAIN_FRAME_ID) -> None:
        if frame_id != MAIN_FRAME_ID or not _valid_tab_id(tab_id):
            return
        if is_trackable_source_page(url):
            self._tab_state.remember_source_page(tab_id, url)
            return
        if not looks_like_pdf_url(url):
            return
        await self.handle_potential_pdf(tab_id, url)

    async def on_headers_received(
        self,
        tab_id: int,
        url: str,
        *,
        status_code: int | None,
        response_headers: Iterable[Any] | None,
        frame_type: str = "main_frame",
    ) -> None:
        """Main-frame response headers: enqueue without a second network probe."""
        if frame_type != "main_frame" or not _valid_tab_id(tab_id):
            return
        if not is_supported_web_page(url):
            return
        if not looks_like_pdf_url(url) and not has_pdf_by_headers(response_headers):
            return
        if self._tab_state.was_recently_redirected(tab_id, url, self._clock.now()):
            return

        record = self._tab_state.ensure(tab_id)
        settings = await self._store.get()
        if self._tab_state.get(tab_id) is not record:
            return
        if not is_allowed_url(url, settings):
            return

        status = int(status_code or 0)
        if status >= 400:
            await self._hints.show_badge_hint(tab_id, f"PDF request failed ({status}); automatic takeover skipped.")
            return

        source_url = self._tab_state.source_page_for(tab_id, url) or url
        self.enqueue_redirect(tab_id, url, source_url)

    def on_tab_removed(self, tab_id: int) -> None:
        self._tab_state.discard(tab_id)

    # Detection.

    async def handle_potential_pdf(self, tab_id: int, url: str) -> None:
        if not _valid_tab_id(tab_id) or not is_supported_web_page(url):
            return
        if self._tab_state.was_recently_redirected(tab_id, url, self._clock.now()):
            return
        if not self._tab_state.begin_check(tab_id, url):
            LOGGER.debug("tab %s: detection already in flight for %s", tab_id, url)
            return

        try:
            settings = await self._store.get()
            if not is_allowed_url(url, settings):
                return
            if not await self._detector.is_pdf_url(url):
                return
            if not self._tab_state.is_checking(tab_id, url):
                # Tab closed (or the check was superseded) while probing.
                return
            source_url = self._tab_state.source_page_for(tab_id, url) or url
            self.enqueue_redirect(tab_id, url, source_url)
        finally:
            self._tab_state.end_check(tab_id, url)

    # Redirect queue.

    def enqueue_redirect(self, tab_id: int, url: str, source_url: str | None) -> PendingRedirect:
        pending, created = self._tab_state.enqueue(tab_id, url, source_url)
        if created:
            self._spawn(self.attempt_queued_redirect(tab_id, url))
        return pending

    async def attempt_queued_redirect(self, tab_id: int, url: str) -> bool:
        pending = self._tab_state.pending_for(tab_id)
        if pending is None or pending.url != url or pending.in_flight:
            return False

        pending.in_flight = True
        try:
            opened = await self._launcher.open(
                tab_id=tab_id,
                pdf_url=url,
                source_url=pending.source_url or url,
                new_tab=True,
                confirm=True,
            )
        finally:
            pending.in_flight = False

        if opened is not None:
            if self._tab_state.complete_redirect(tab_id, pending, self._clock.now()):
                self._spawn(self.restore_source_tab(tab_id, url))
            return True

        if self._tab_state.fail_redirect(tab_id, pending):
            LOGGER.warning("tab %s: giving up on automatic takeover of %s", tab_id, url)
            await self._hints.show_badge_hint(tab_id, "Automatic takeover failed; the current page was kept.")
        return False

    # Source tab restoration.

    async def restore_source_tab(self, tab_id: int, pdf_url: str) -> None:
        """
        Put the original tab back once the viewer opened elsewhere.

        Waits briefly for the tab to land on the raw PDF, then tries, in order: history back,
        the remembered source page, and closing the tab when something else opened it.
        """
        source_tab: TabInfo | None = None
        for attempt in range(RESTORE_POLL_ATTEMPTS):
            try:
                source_tab = await self._tabs.get(tab_id)
            except PortError:
                return
            if source_tab.url and looks_like_pdf_url(source_tab.url):
                break
            if attempt < RESTORE_POLL_ATTEMPTS - 1:
                await self._clock.sleep(RESTORE_POLL_INTERVAL_SECONDS)

        if source_tab is None or not source_tab.url or not looks_like_pdf_url(source_tab.url):
            return

        source_page = self._tab_state.source_page_for(tab_id, pdf_url)

        try:
            await self._tabs.go_back(tab_id)
            return
        except PortError:
            # No history to go back to.
            pass

        if source_page:
            try:
                await self._tabs.update(tab_id, source_page)
                return
            except PortError:
                pass

        if source_tab.opener_tab_id is not None:
            try:
                await self._tabs.remove(tab_id)
            except PortError:
                pass
