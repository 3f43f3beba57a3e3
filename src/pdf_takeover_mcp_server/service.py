from __future__ import annotations

import logging
from typing import Any

import httpx

from .detect import PdfDetector
from .models import BootstrapResponse, TakeoverSettings
from .ports import (
    BadgeSurface,
    CandidatePicker,
    Clock,
    DeclarativeRuleHost,
    PageScripting,
    SettingsPersistence,
    SystemClock,
    TabControl,
)
from .settings import RuntimeSettings
from .store import SettingsStore
from .sync import RuleSynchronizer
from .tabs.hints import HintPresenter
from .tabs.state import TabState
from .takeover.controller import AutoTakeoverController
from .takeover.manual import ManualInvocationFlow
from .takeover.viewer import ViewerLauncher

LOGGER = logging.getLogger(__name__)

BOOTSTRAP_MESSAGE_TYPE = "bootstrap-auto-rules"


async def bootstrap_state(store: SettingsStore, synchronizer: RuleSynchronizer) -> TakeoverSettings:
    """Load + normalize + persist settings, then mirror them into declarative rules."""
    settings = await store.bootstrap()
    await synchronizer.sync(settings)
    return settings


async def handle_bootstrap_message(
    message: object, store: SettingsStore, synchronizer: RuleSynchronizer
) -> dict[str, Any] | None:
    """
    Answer a cross-context bootstrap request.

    Returns None for messages of any other type so that other handlers can claim them.
    """
    if not isinstance(message, dict) or message.get("type") != BOOTSTRAP_MESSAGE_TYPE:
        return None
    try:
        await bootstrap_state(store, synchronizer)
    except Exception as exc:
        detail = str(exc).strip() or "bootstrap failed"
        LOGGER.warning("Bootstrap failed: %s", type(exc).__name__)
        return BootstrapResponse(ok=False, error=detail).to_message()
    return BootstrapResponse(ok=True).to_message()


class TakeoverService:
    """
    One per process: owns the settings cache and per-tab state, wired to injected host ports.
    """

    def __init__(
        self,
        *,
        persistence: SettingsPersistence,
        tabs: TabControl,
        scripting: PageScripting,
        picker: CandidatePicker,
        badge: BadgeSurface,
        rule_host: DeclarativeRuleHost,
        clock: Clock | None = None,
        http_client: httpx.AsyncClient | None = None,
        runtime: RuntimeSettings | None = None,
        detector: PdfDetector | None = None,
    ) -> None:
        self.runtime = runtime or RuntimeSettings.from_env()
        self.clock = clock or SystemClock()
        self.store = SettingsStore(persistence)
        self.detector = detector or PdfDetector(
            http_client=http_client, timeout_seconds=self.runtime.probe_timeout_seconds
        )
        self.tab_state = TabState(
            redirect_ttl_seconds=self.runtime.redirect_ttl_seconds,
            max_redirect_attempts=self.runtime.max_redirect_attempts,
        )
        self.synchronizer = RuleSynchronizer(
            rule_host, viewer_url=self.runtime.viewer_url, enabled=self.runtime.declarative_rules_enabled
        )
        self.hints = HintPresenter(
            badge=badge,
            scripting=scripting,
            clock=self.clock,
            tab_state=self.tab_state,
            duration_seconds=self.runtime.hint_duration_seconds,
        )
        self.launcher = ViewerLauncher(tabs=tabs, clock=self.clock, hints=self.hints, viewer_url=self.runtime.viewer_url)
        self.controller = AutoTakeoverController(
            store=self.store,
            detector=self.detector,
            tab_state=self.tab_state,
            tabs=tabs,
            launcher=self.launcher,
            hints=self.hints,
            clock=self.clock,
        )
        self.manual = ManualInvocationFlow(
            detector=self.detector,
            scripting=scripting,
            picker=picker,
            launcher=self.launcher,
            hints=self.hints,
        )

    async def bootstrap(self) -> TakeoverSettings:
        return await bootstrap_state(self.store, self.synchronizer)

    async def handle_message(self, message: object) -> dict[str, Any] | None:
        return await handle_bootstrap_message(message, self.store, self.synchronizer)

    async def on_settings_changed(self, new_value: object) -> TakeoverSettings:
        """The persisted record changed elsewhere (e.g. the options page)."""
        settings = self.store.replace(new_value)
        await self.synchronizer.sync(settings)
        return settings

    def on_tab_removed(self, tab_id: int) -> None:
        self.controller.on_tab_removed(tab_id)
