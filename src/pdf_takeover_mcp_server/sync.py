from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from .models import RedirectAction, RedirectRule, RuleAction, RuleCondition, TakeoverSettings
from .ports import DeclarativeRuleHost

LOGGER = logging.getLogger(__name__)

AUTO_RULE_IDS = (1001, 1002)
PDF_SUFFIX_FILTER = r"^https?://[^\s#?]+\.pdf(?:[?#].*)?$"
PDF_SEGMENT_FILTER = r"^https?://[^\s#]*/pdf/[^\s#]*$"

_DOMAIN_RE = re.compile(r"^[a-z0-9.-]+$")


@dataclass(frozen=True)
class DomainScope:
    disable_all: bool = False
    request_domains: tuple[str, ...] = ()
    excluded_request_domains: tuple[str, ...] = ()


def _rules_to_domains(rules: Iterable[str]) -> tuple[str, ...]:
    domains: dict[str, None] = {}
    for rule in rules:
        if rule == "*":
            domains.setdefault("*", None)
            continue
        domain = rule[2:] if rule.startswith("*.") else rule
        if _DOMAIN_RE.match(domain):
            domains.setdefault(domain, None)
    return tuple(domains)


def build_domain_scope(settings: TakeoverSettings) -> DomainScope:
    blacklist = _rules_to_domains(settings.blacklist)
    if "*" in blacklist:
        return DomainScope(disable_all=True)

    whitelist = _rules_to_domains(settings.whitelist)
    return DomainScope(
        request_domains=() if "*" in whitelist else whitelist,
        excluded_request_domains=blacklist,
    )


def build_auto_takeover_rules(settings: TakeoverSettings, viewer_url: str) -> list[RedirectRule]:
    """Two main-frame redirect rules (`.pdf` suffix and `/pdf/` segment) scoped by host lists."""
    if not settings.auto_takeover_enabled:
        return []

    scope = build_domain_scope(settings)
    if scope.disable_all:
        return []

    # `\0` is the whole regex match: the original URL lands in the viewer's fragment.
    action = RuleAction(redirect=RedirectAction(regex_substitution=f"{viewer_url}#\\0"))
    rules: list[RedirectRule] = []
    for rule_id, regex_filter in zip(AUTO_RULE_IDS, (PDF_SUFFIX_FILTER, PDF_SEGMENT_FILTER)):
        rules.append(
            RedirectRule(
                id=rule_id,
                priority=1,
                action=action,
                condition=RuleCondition(
                    regex_filter=regex_filter,
                    request_domains=list(scope.request_domains) or None,
                    excluded_request_domains=list(scope.excluded_request_domains) or None,
                ),
            )
        )
    return rules


class RuleSynchronizer:
    """Mirror the settings record into the host's declarative redirect rules."""

    def __init__(self, host: DeclarativeRuleHost, *, viewer_url: str, enabled: bool = True) -> None:
        self._host = host
        self._viewer_url = viewer_url
        self._enabled = enabled

    @property
    def capable(self) -> bool:
        return self._enabled and bool(getattr(self._host, "supports_redirect_rules", False))

    async def sync(self, settings: TakeoverSettings) -> list[RedirectRule]:
        """
        Replace the installed rule set. Never raises.

        Hosts that cannot pre-empt navigations get their rule ids cleared; the event-driven
        controller then carries the whole takeover.
        """
        if not self.capable:
            try:
                await self._host.update_dynamic_rules(remove_rule_ids=list(AUTO_RULE_IDS), add_rules=[])
            except Exception as exc:
                LOGGER.warning("Failed to clear declarative auto-takeover rules: %s", type(exc).__name__)
            return []

        rules = build_auto_takeover_rules(settings, self._viewer_url)
        try:
            await self._host.update_dynamic_rules(
                remove_rule_ids=list(AUTO_RULE_IDS),
                add_rules=[rule.to_host_dict() for rule in rules],
            )
        except Exception as exc:
            LOGGER.warning("Failed to sync auto-takeover rules: %s", type(exc).__name__)
            return []
        LOGGER.debug("Installed %d auto-takeover rule(s).", len(rules))
        return rules


@dataclass
class InMemoryRuleHost:
    """Rule host that keeps the installed rules in memory (published by the MCP server)."""

    supports_redirect_rules: bool = True
    rules: dict[int, dict[str, Any]] = field(default_factory=dict)

    async def update_dynamic_rules(
        self, *, remove_rule_ids: Sequence[int], add_rules: Sequence[dict[str, Any]]
    ) -> None:
        for rule_id in remove_rule_ids:
            self.rules.pop(rule_id, None)
        for rule in add_rules:
            self.rules[int(rule["id"])] = dict(rule)

    def installed(self) -> list[dict[str, Any]]:
        return [self.rules[rule_id] for rule_id in sorted(self.rules)]
