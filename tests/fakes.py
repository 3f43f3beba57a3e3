from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from pdf_takeover_mcp_server.models import Candidate
from pdf_takeover_mcp_server.ports import (
    PageSnapshot,
    PortError,
    ScriptInjectionError,
    TabInfo,
    TabNotFoundError,
)
from pdf_takeover_mcp_server.settings import RuntimeSettings

VIEWER_URL = "chrome-extension://test-viewer/src/viewer/viewer.html"


def make_runtime(**overrides: Any) -> RuntimeSettings:
    values: dict[str, Any] = {"viewer_url": VIEWER_URL, "settings_path": ""}
    values.update(overrides)
    return RuntimeSettings(**values)


class FakeTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Manual clock: `sleep` advances time, timers fire on `advance`."""

    def __init__(self, start: float = 1000.0) -> None:
        self.current = start
        self.timers: list[FakeTimer] = []

    def now(self) -> float:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.current += seconds
        await asyncio.sleep(0)

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.current + delay, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        self.current += seconds
        for timer in list(self.timers):
            if not timer.cancelled and timer.due <= self.current:
                self.timers.remove(timer)
                timer.callback()

    def live_timers(self) -> list[FakeTimer]:
        return [timer for timer in self.timers if not timer.cancelled]


class FakeTabs:
    def __init__(self) -> None:
        self.tabs: dict[int, TabInfo] = {}
        self.created: list[str] = []
        self.updated: list[tuple[int, str]] = []
        self.went_back: list[int] = []
        self.removed: list[int] = []
        self.fail_creates = 0
        self.fail_updates = 0
        self.go_back_fails = False
        self.created_url_override: str | None = None
        self._next_id = 100

    def add(self, tab_id: int, url: str, *, opener_tab_id: int | None = None) -> TabInfo:
        tab = TabInfo(id=tab_id, url=url, opener_tab_id=opener_tab_id)
        self.tabs[tab_id] = tab
        return tab

    async def create(self, url: str) -> TabInfo:
        self.created.append(url)
        if self.fail_creates > 0:
            self.fail_creates -= 1
            raise PortError("create failed")
        self._next_id += 1
        tab = TabInfo(id=self._next_id, url=self.created_url_override or url)
        self.tabs[tab.id] = tab
        return tab

    async def update(self, tab_id: int, url: str) -> TabInfo:
        self.updated.append((tab_id, url))
        if self.fail_updates > 0:
            self.fail_updates -= 1
            raise PortError("update failed")
        if tab_id not in self.tabs:
            raise TabNotFoundError(str(tab_id))
        tab = TabInfo(id=tab_id, url=url, opener_tab_id=self.tabs[tab_id].opener_tab_id)
        self.tabs[tab_id] = tab
        return tab

    async def get(self, tab_id: int) -> TabInfo:
        await asyncio.sleep(0)
        if tab_id not in self.tabs:
            raise TabNotFoundError(str(tab_id))
        return self.tabs[tab_id]

    async def go_back(self, tab_id: int) -> None:
        if self.go_back_fails:
            raise PortError("no history")
        self.went_back.append(tab_id)

    async def remove(self, tab_id: int) -> None:
        self.removed.append(tab_id)
        self.tabs.pop(tab_id, None)


class FakeScripting:
    def __init__(self, snapshot: PageSnapshot | None = None) -> None:
        self.snapshot = snapshot
        self.scan_fails = False
        self.toast_fails = False
        self.toasts: list[tuple[int, str]] = []
        self.scans: list[int] = []

    async def scan_page(self, tab_id: int, *, max_links: int, max_embeds: int) -> PageSnapshot:
        self.scans.append(tab_id)
        if self.scan_fails or self.snapshot is None:
            raise ScriptInjectionError("cannot inject")
        return self.snapshot

    async def show_toast(self, tab_id: int, message: str) -> None:
        if self.toast_fails:
            raise ScriptInjectionError("cannot inject")
        self.toasts.append((tab_id, message))


class FakePicker:
    def __init__(self, choice: str | None = None, *, fails: bool = False) -> None:
        self.choice = choice
        self.fails = fails
        self.calls: list[list[Candidate]] = []

    async def choose(self, tab_id: int, candidates: Sequence[Candidate]) -> str | None:
        self.calls.append(list(candidates))
        if self.fails:
            raise ScriptInjectionError("picker blocked")
        return self.choice


class FakeBadge:
    def __init__(self) -> None:
        self.shown: list[tuple[int, str]] = []
        self.cleared: list[int] = []
        self.gate: asyncio.Event | None = None

    async def show(self, tab_id: int, *, text: str, color: str, title: str) -> None:
        self.shown.append((tab_id, title))
        if self.gate is not None:
            await self.gate.wait()

    async def clear(self, tab_id: int) -> None:
        self.cleared.append(tab_id)


class FakePersistence:
    def __init__(self, record: dict[str, Any] | None = None) -> None:
        self.record = record
        self.loads = 0
        self.saves: list[dict[str, Any]] = []
        self.fail_load = False

    async def load(self) -> dict[str, Any] | None:
        self.loads += 1
        if self.fail_load:
            raise PortError("storage unavailable")
        return self.record

    async def save(self, record: dict[str, Any]) -> None:
        self.saves.append(record)
        self.record = record


@dataclass
class FakeRuleHost:
    supports_redirect_rules: bool = True
    fails: bool = False
    calls: list[tuple[list[int], list[dict[str, Any]]]] = field(default_factory=list)

    async def update_dynamic_rules(
        self, *, remove_rule_ids: Sequence[int], add_rules: Sequence[dict[str, Any]]
    ) -> None:
        self.calls.append((list(remove_rule_ids), list(add_rules)))
        if self.fails:
            raise PortError("rules rejected")


class FakeDetector:
    def __init__(self, pdf_urls: Sequence[str] = (), *, gate: asyncio.Event | None = None) -> None:
        self.pdf_urls = set(pdf_urls)
        self.gate = gate
        self.calls: list[str] = []

    async def is_pdf_url(self, url: str) -> bool:
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        return url in self.pdf_urls


@dataclass
class Harness:
    service: Any
    clock: FakeClock
    tabs: FakeTabs
    scripting: FakeScripting
    picker: FakePicker
    badge: FakeBadge
    persistence: FakePersistence
    rule_host: FakeRuleHost


def make_service(
    *,
    record: dict[str, Any] | None = None,
    snapshot: PageSnapshot | None = None,
    picker: FakePicker | None = None,
    http_client: Any = None,
    detector: Any = None,
    **runtime_overrides: Any,
) -> Harness:
    from pdf_takeover_mcp_server.service import TakeoverService

    clock = FakeClock()
    tabs = FakeTabs()
    scripting = FakeScripting(snapshot)
    picker = picker or FakePicker()
    badge = FakeBadge()
    persistence = FakePersistence(record)
    rule_host = FakeRuleHost()
    service = TakeoverService(
        persistence=persistence,
        tabs=tabs,
        scripting=scripting,
        picker=picker,
        badge=badge,
        rule_host=rule_host,
        clock=clock,
        http_client=http_client,
        runtime=make_runtime(**runtime_overrides),
        detector=detector,
    )
    return Harness(
        service=service,
        clock=clock,
        tabs=tabs,
        scripting=scripting,
        picker=picker,
        badge=badge,
        persistence=persistence,
        rule_host=rule_host,
    )
