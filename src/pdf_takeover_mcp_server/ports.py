"""Host platform ports.

The core never touches a browser directly; every host capability (storage,
tabs, page scripting, badge, declarative redirect rules, time) is reached
through one of these request/response interfaces. Implementations signal
failure by raising `PortError` (or a subclass).
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

from .models import Candidate


class PortError(RuntimeError):
    pass


class TabNotFoundError(PortError):
    pass


class ScriptInjectionError(PortError):
    pass


@dataclass(frozen=True)
class TabInfo:
    id: int
    url: str = ""
    pending_url: str = ""
    opener_tab_id: int | None = None


@dataclass(frozen=True)
class PageElement:
    """One anchor/iframe/embed/object element as reported by the page scan."""

    tag: str
    url: str
    text: str = ""
    title: str = ""
    name: str = ""
    type: str = ""


@dataclass(frozen=True)
class PageSnapshot:
    url: str
    title: str = ""
    elements: tuple[PageElement, ...] = ()


class SettingsPersistence(Protocol):
    async def load(self) -> dict[str, Any] | None: ...

    async def save(self, record: dict[str, Any]) -> None: ...


class TabControl(Protocol):
    async def create(self, url: str) -> TabInfo: ...

    async def update(self, tab_id: int, url: str) -> TabInfo: ...

    async def get(self, tab_id: int) -> TabInfo: ...

    async def go_back(self, tab_id: int) -> None: ...

    async def remove(self, tab_id: int) -> None: ...


class PageScripting(Protocol):
    async def scan_page(self, tab_id: int, *, max_links: int, max_embeds: int) -> PageSnapshot: ...

    async def show_toast(self, tab_id: int, message: str) -> None: ...


class CandidatePicker(Protocol):
    """Present choices and await exactly one selection (a URL) or cancellation (None)."""

    async def choose(self, tab_id: int, candidates: Sequence[Candidate]) -> str | None: ...


class BadgeSurface(Protocol):
    async def show(self, tab_id: int, *, text: str, color: str, title: str) -> None: ...

    async def clear(self, tab_id: int) -> None: ...


class DeclarativeRuleHost(Protocol):
    supports_redirect_rules: bool

    async def update_dynamic_rules(
        self, *, remove_rule_ids: Sequence[int], add_rules: Sequence[dict[str, Any]]
    ) -> None: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def now(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class SystemClock:
    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)
