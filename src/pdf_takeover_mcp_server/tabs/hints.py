from __future__ import annotations

import asyncio
import logging

from ..ports import BadgeSurface, Clock, PageScripting, PortError
from ..settings import DEFAULT_HINT_DURATION_SECONDS
from .state import TabState

LOGGER = logging.getLogger(__name__)

PRODUCT_NAME = "Dark PDF Reader"
BADGE_TEXT = "!"
BADGE_COLOR = "#5f6670"


class HintPresenter:
    """Transient user hints: a self-clearing toolbar badge and an in-page toast."""

    def __init__(
        self,
        *,
        badge: BadgeSurface,
        scripting: PageScripting | None,
        clock: Clock,
        tab_state: TabState,
        duration_seconds: float = DEFAULT_HINT_DURATION_SECONDS,
    ) -> None:
        self._badge = badge
        self._scripting = scripting
        self._clock = clock
        self._tab_state = tab_state
        self._duration_seconds = duration_seconds
        self._clear_tasks: set[asyncio.Task[None]] = set()

    async def show_badge_hint(self, tab_id: int | None, message: str) -> None:
        if not isinstance(tab_id, int) or tab_id < 0:
            return

        record = self._tab_state.ensure(tab_id)
        self.cancel_timer(tab_id)
        try:
            await self._badge.show(tab_id, text=BADGE_TEXT, color=BADGE_COLOR, title=f"{PRODUCT_NAME}: {message}")
        except PortError:
            return

        if self._tab_state.get(tab_id) is not record:
            # The tab closed while the badge was being set.
            await self.clear_badge_hint(tab_id)
            return
        if record.hint_timer is not None:
            # Another hint for this tab landed while we were awaiting the badge.
            record.hint_timer.cancel()
        record.hint_timer = self._clock.call_later(self._duration_seconds, lambda: self._expire(tab_id))

    async def show_page_hint(self, tab_id: int, message: str) -> None:
        """In-page toast, falling back to the badge when the page refuses injection."""
        if self._scripting is None:
            await self.show_badge_hint(tab_id, message)
            return
        try:
            await self._scripting.show_toast(tab_id, message)
        except PortError:
            await self.show_badge_hint(tab_id, message)

    def cancel_timer(self, tab_id: int) -> None:
        record = self._tab_state.get(tab_id)
        if record is not None and record.hint_timer is not None:
            record.hint_timer.cancel()
            record.hint_timer = None

    async def clear_badge_hint(self, tab_id: int) -> None:
        self.cancel_timer(tab_id)
        try:
            await self._badge.clear(tab_id)
        except PortError:
            # The tab may already be gone.
            pass

    def _expire(self, tab_id: int) -> None:
        record = self._tab_state.get(tab_id)
        if record is not None:
            record.hint_timer = None
        task = asyncio.ensure_future(self.clear_badge_hint(tab_id))
        self._clear_tasks.add(task)
        task.add_done_callback(self._clear_tasks.discard)
