from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Iterator

from ..ports import TimerHandle
from ..settings import DEFAULT_MAX_REDIRECT_ATTEMPTS, DEFAULT_REDIRECT_TTL_SECONDS
from ..utils.urls import normalize_http_url

LOGGER = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    pass


class TabPhase(enum.Enum):
    IDLE = "idle"
    CHECKING = "checking"
    QUEUED = "queued"
    OPENED = "opened"
    ABANDONED = "abandoned"


_ALLOWED_TRANSITIONS: dict[TabPhase, frozenset[TabPhase]] = {
    TabPhase.IDLE: frozenset({TabPhase.CHECKING, TabPhase.QUEUED}),
    TabPhase.CHECKING: frozenset(
        {TabPhase.IDLE, TabPhase.CHECKING, TabPhase.QUEUED, TabPhase.OPENED, TabPhase.ABANDONED}
    ),
    TabPhase.QUEUED: frozenset({TabPhase.CHECKING, TabPhase.QUEUED, TabPhase.OPENED, TabPhase.ABANDONED}),
    TabPhase.OPENED: frozenset({TabPhase.IDLE, TabPhase.CHECKING, TabPhase.QUEUED}),
    TabPhase.ABANDONED: frozenset({TabPhase.IDLE, TabPhase.CHECKING, TabPhase.QUEUED}),
}


@dataclass
class PendingRedirect:
    url: str
    source_url: str = ""
    attempts: int = 0
    in_flight: bool = False


@dataclass(frozen=True)
class RecentRedirect:
    url: str
    timestamp: float


@dataclass
class TabRecord:
    tab_id: int
    phase: TabPhase = TabPhase.IDLE
    checking_url: str | None = None
    pending: PendingRedirect | None = None
    recent: RecentRedirect | None = None
    source_page: str | None = None
    hint_timer: TimerHandle | None = field(default=None, repr=False)


def transition(record: TabRecord, phase: TabPhase) -> TabRecord:
    """Move a tab record to `phase`, rejecting moves the takeover lifecycle never makes."""
    if phase not in _ALLOWED_TRANSITIONS[record.phase]:
        raise InvalidTransitionError(f"tab {record.tab_id}: {record.phase.value} -> {phase.value}")
    if phase is not record.phase:
        LOGGER.debug("tab %s: %s -> %s", record.tab_id, record.phase.value, phase.value)
    record.phase = phase
    return record


def _settled_phase(record: TabRecord) -> TabPhase:
    if record.pending is not None:
        return TabPhase.QUEUED
    return TabPhase.IDLE


class TabState:
    """Per-tab ephemeral memory. Records are created lazily and dropped when the tab closes."""

    def __init__(
        self,
        *,
        redirect_ttl_seconds: float = DEFAULT_REDIRECT_TTL_SECONDS,
        max_redirect_attempts: int = DEFAULT_MAX_REDIRECT_ATTEMPTS,
    ) -> None:
        self.redirect_ttl_seconds = redirect_ttl_seconds
        self.max_redirect_attempts = max_redirect_attempts
        self._records: dict[int, TabRecord] = {}

    def __contains__(self, tab_id: object) -> bool:
        return tab_id in self._records

    def __iter__(self) -> Iterator[TabRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def get(self, tab_id: int) -> TabRecord | None:
        return self._records.get(tab_id)

    def ensure(self, tab_id: int) -> TabRecord:
        record = self._records.get(tab_id)
        if record is None:
            record = TabRecord(tab_id=tab_id)
            self._records[tab_id] = record
        return record

    def phase(self, tab_id: int) -> TabPhase:
        record = self._records.get(tab_id)
        return record.phase if record else TabPhase.IDLE

    def discard(self, tab_id: int) -> TabRecord | None:
        """Drop every entry for a tab and cancel its timer."""
        record = self._records.pop(tab_id, None)
        if record is not None and record.hint_timer is not None:
            record.hint_timer.cancel()
            record.hint_timer = None
        return record

    # Source page memory.

    def remember_source_page(self, tab_id: int, url: str) -> None:
        self.ensure(tab_id).source_page = url

    def source_page_for(self, tab_id: int, pdf_url: str) -> str | None:
        record = self._records.get(tab_id)
        if record is None:
            return None
        source_url = normalize_http_url(record.source_page)
        if not source_url or source_url == normalize_http_url(pdf_url):
            return None
        return source_url

    # Loop suppression.

    def mark_recent_redirect(self, tab_id: int, url: str, now: float) -> None:
        self.ensure(tab_id).recent = RecentRedirect(url=normalize_http_url(url) or url, timestamp=now)

    def was_recently_redirected(self, tab_id: int, url: str, now: float) -> bool:
        record = self._records.get(tab_id)
        if record is None or record.recent is None:
            return False
        if now - record.recent.timestamp > self.redirect_ttl_seconds:
            record.recent = None
            return False
        return record.recent.url == (normalize_http_url(url) or url)

    # In-flight detection markers.

    def begin_check(self, tab_id: int, url: str) -> bool:
        """Mark a detection in flight; False when the same tab+URL check is already running."""
        record = self.ensure(tab_id)
        if record.checking_url == url:
            return False
        record.checking_url = url
        transition(record, TabPhase.CHECKING)
        return True

    def end_check(self, tab_id: int, url: str) -> None:
        record = self._records.get(tab_id)
        if record is None or record.checking_url != url:
            return
        record.checking_url = None
        if record.phase is TabPhase.CHECKING:
            transition(record, _settled_phase(record))

    def is_checking(self, tab_id: int, url: str) -> bool:
        record = self._records.get(tab_id)
        return record is not None and record.checking_url == url

    # Redirect queue.

    def pending_for(self, tab_id: int) -> PendingRedirect | None:
        record = self._records.get(tab_id)
        return record.pending if record else None

    def enqueue(self, tab_id: int, url: str, source_url: str | None) -> tuple[PendingRedirect, bool]:
        """
        Queue a redirect for the tab.

        Returns `(entry, created)`. Queuing the URL that is already pending only fills in a
        missing return target.
        """
        record = self.ensure(tab_id)
        pending = record.pending
        if pending is not None and pending.url == url:
            if not pending.source_url:
                pending.source_url = normalize_http_url(source_url) or ""
            return pending, False

        pending = PendingRedirect(url=url, source_url=normalize_http_url(source_url) or "")
        record.pending = pending
        if record.phase is not TabPhase.CHECKING:
            transition(record, TabPhase.QUEUED)
        return pending, True

    def complete_redirect(self, tab_id: int, pending: PendingRedirect, now: float) -> bool:
        record = self._records.get(tab_id)
        if record is None or record.pending is not pending:
            return False
        record.pending = None
        self.mark_recent_redirect(tab_id, pending.url, now)
        transition(record, TabPhase.OPENED)
        return True

    def fail_redirect(self, tab_id: int, pending: PendingRedirect) -> bool:
        """Count a failed attempt. Returns True when the entry was abandoned by this failure."""
        record = self._records.get(tab_id)
        if record is None or record.pending is not pending:
            return False
        pending.attempts += 1
        if pending.attempts < self.max_redirect_attempts:
            return False
        record.pending = None
        transition(record, TabPhase.ABANDONED)
        return True
