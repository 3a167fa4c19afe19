"""Heuristic user-agent classification for click events.

Each dimension is an ordered list of ``(pattern, label)`` rules evaluated
top to bottom; the first match wins. These are substring heuristics,
not a full UA parser; callers only depend on ``parse_user_agent``.
"""

import re
from typing import NamedTuple

__all__ = ["ClientInfo", "UNKNOWN", "parse_user_agent", "parse_device", "parse_browser", "parse_os"]

UNKNOWN = "unknown"
OTHER = "other"

Rule = tuple[re.Pattern[str], str]


def _rules(*pairs: tuple[str, str]) -> list[Rule]:
    return [(re.compile(pattern, re.IGNORECASE), label) for pattern, label in pairs]


DEVICE_RULES = _rules(
    (r"ipad|tablet", "tablet"),
    (r"mobile|android|iphone|phone", "mobile"),
)

# Edge and Opera UAs also contain "Chrome"; Chrome UAs also contain "Safari".
BROWSER_RULES = _rules(
    (r"edg", "Edge"),
    (r"opr/|opera", "Opera"),
    (r"chrome|crios", "Chrome"),
    (r"firefox|fxios", "Firefox"),
    (r"safari", "Safari"),
)

# Android UAs contain "Linux"; iOS UAs contain "like Mac OS X".
OS_RULES = _rules(
    (r"android", "Android"),
    (r"iphone|ipad|ipod|\bios\b", "iOS"),
    (r"windows", "Windows"),
    (r"macintosh|mac os", "macOS"),
    (r"linux", "Linux"),
)


class ClientInfo(NamedTuple):
    device: str
    browser: str
    os: str


def _classify(user_agent: str | None, rules: list[Rule], default: str) -> str:
    if not user_agent:
        return UNKNOWN
    for pattern, label in rules:
        if pattern.search(user_agent):
            return label
    return default


def parse_device(user_agent: str | None) -> str:
    return _classify(user_agent, DEVICE_RULES, "desktop")


def parse_browser(user_agent: str | None) -> str:
    return _classify(user_agent, BROWSER_RULES, OTHER)


def parse_os(user_agent: str | None) -> str:
    return _classify(user_agent, OS_RULES, OTHER)


def parse_user_agent(user_agent: str | None) -> ClientInfo:
    return ClientInfo(
        device=parse_device(user_agent),
        browser=parse_browser(user_agent),
        os=parse_os(user_agent),
    )
