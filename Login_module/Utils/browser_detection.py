"""
User-agent classification for session and login records.

The same rules run in the tracker client (for local display) and on the server
(re-derived from the request's User-Agent header); the server value is the one
that gets persisted.
"""
import re
from dataclasses import dataclass
from typing import Optional

MOBILE_PATTERN = re.compile(r"Mobile|Android|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)
TABLET_PATTERN = re.compile(r"iPad|Tablet", re.IGNORECASE)

UNKNOWN = "Unknown"


@dataclass(frozen=True)
class BrowserInfo:
    browser_name: str = UNKNOWN
    device_type: str = "desktop"
    operating_system: str = UNKNOWN

    def as_dict(self) -> dict:
        return {
            "browser_name": self.browser_name,
            "device_type": self.device_type,
            "operating_system": self.operating_system,
        }


def detect_browser_name(user_agent: str) -> str:
    # Edge and Opera carry "Chrome" too, so Chrome is only claimed without "Edg"
    if "Chrome" in user_agent and "Edg" not in user_agent:
        return "Chrome"
    if "Firefox" in user_agent:
        return "Firefox"
    if "Safari" in user_agent and "Chrome" not in user_agent:
        return "Safari"
    if "Edg" in user_agent:
        return "Edge"
    if "Opera" in user_agent or "OPR" in user_agent:
        return "Opera"
    return UNKNOWN


def detect_device_type(user_agent: str) -> str:
    if MOBILE_PATTERN.search(user_agent):
        return "tablet" if TABLET_PATTERN.search(user_agent) else "mobile"
    return "desktop"


def detect_operating_system(user_agent: str) -> str:
    # iOS agents contain "like Mac OS X" and Android agents contain "Linux",
    # so the more specific platforms are matched first
    if "Windows" in user_agent:
        return "Windows"
    if "iPhone" in user_agent or "iPad" in user_agent:
        return "iOS"
    if "Mac" in user_agent:
        return "macOS"
    if "Android" in user_agent:
        return "Android"
    if "Linux" in user_agent:
        return "Linux"
    return UNKNOWN


def resolve_browser(user_agent: Optional[str]) -> BrowserInfo:
    """Classify a raw user-agent string. Never raises; empty input maps to Unknown/desktop/Unknown."""
    if not user_agent:
        return BrowserInfo()
    return BrowserInfo(
        browser_name=detect_browser_name(user_agent),
        device_type=detect_device_type(user_agent),
        operating_system=detect_operating_system(user_agent),
    )
