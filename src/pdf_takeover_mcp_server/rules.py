from __future__ import annotations

from typing import Iterable

from .models import TakeoverSettings
from .utils.urls import host_from_url


def matches_rule(host: str, rule: str) -> bool:
    """
    Match a lowercase hostname against one normalized rule.

    - `*` matches every host.
    - `*.example.com` matches subdomains of example.com (not example.com itself).
    - anything else must equal the host exactly.
    """
    if not rule:
        return False
    if rule == "*":
        return True
    if rule.startswith("*."):
        return host.endswith("." + rule[2:])
    return host == rule


def matches_any_rule(host: str, rules: Iterable[str]) -> bool:
    return any(matches_rule(host, rule) for rule in rules)


def is_allowed(host: str | None, settings: TakeoverSettings) -> bool:
    """Whether automatic takeover may run for `host` (blacklist wins over whitelist)."""
    if not settings.auto_takeover_enabled:
        return False
    if not host:
        return False
    host = host.lower()
    if matches_any_rule(host, settings.blacklist):
        return False
    if settings.whitelist:
        return matches_any_rule(host, settings.whitelist)
    return True


def is_allowed_url(url: str, settings: TakeoverSettings) -> bool:
    return is_allowed(host_from_url(url), settings)
