from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ThemeMode = Literal["preset", "custom"]
CandidateSource = Literal["current", "link", "embed"]

PRESET_THEME_IDS = (
    "graphite-gray",
    "midnight-black",
    "deep-sea-blue",
    "pine-ink-green",
    "warm-umber-night",
)
DEFAULT_THEME_MODE: ThemeMode = "preset"
DEFAULT_THEME_PRESET_ID = "graphite-gray"
DEFAULT_CUSTOM_THEME_COLOR = "#121212"


class TakeoverSettings(BaseModel):
    """The persisted user configuration record (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    auto_takeover_enabled: bool = True
    auto_outline_auto_fit_enabled: bool = True
    theme_mode: ThemeMode = DEFAULT_THEME_MODE
    theme_preset_id: str = DEFAULT_THEME_PRESET_ID
    custom_theme_color: str = DEFAULT_CUSTOM_THEME_COLOR
    whitelist: tuple[str, ...] = ()
    blacklist: tuple[str, ...] = ()

    def to_record(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True)
        data["whitelist"] = list(self.whitelist)
        data["blacklist"] = list(self.blacklist)
        return data


class Candidate(BaseModel):
    url: str = Field(description="Absolute http(s) URL of the possible PDF.")
    source: CandidateSource = Field(description="Where the URL was found on the page.")
    label: str = Field(description="Human-readable label shown in the picker.")
    score: int = Field(default=0, description="Higher means more likely to be the wanted PDF.")


class RuleCondition(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    resource_types: list[str] = Field(default_factory=lambda: ["main_frame"])
    regex_filter: str
    request_domains: list[str] | None = None
    excluded_request_domains: list[str] | None = None


class RedirectAction(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    regex_substitution: str


class RuleAction(BaseModel):
    type: Literal["redirect"] = "redirect"
    redirect: RedirectAction


class RedirectRule(BaseModel):
    """Host-evaluated redirect rule (declarativeNetRequest dynamic rule shape)."""

    id: int
    priority: int = 1
    action: RuleAction
    condition: RuleCondition

    def to_host_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ResolvePdfUrlResponse(BaseModel):
    url: str = Field(description="The URL that was inspected.")
    pdf_url: str | None = Field(
        default=None, description="Absolute PDF URL to open in the viewer, or null when none was found."
    )
    viewer_url: str | None = Field(default=None, description="Viewer launch URL for `pdf_url`.")


class EvaluateTakeoverResponse(BaseModel):
    url: str
    host: str | None
    allowed: bool
    looks_like_pdf: bool


class BootstrapResponse(BaseModel):
    ok: bool
    error: str | None = None

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
