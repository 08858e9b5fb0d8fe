"""User-agent parsing for click and interaction records."""

from dataclasses import dataclass
from typing import Optional

from user_agents import parse as parse_ua


@dataclass(frozen=True)
class DeviceInfo:
    device_type: str  # mobile | tablet | desktop | other | unknown
    browser: Optional[str]
    os: Optional[str]
    platform: Optional[str]


def _versioned(family: str, version: tuple) -> str:
    parts = [str(v) for v in version if v is not None and v != ""]
    if not parts:
        return family
    return f"{family} {'.'.join(parts)}"


def parse_device(user_agent: Optional[str]) -> DeviceInfo:
    if not user_agent or user_agent == "Unknown":
        return DeviceInfo(device_type="unknown", browser=None, os=None, platform=None)

    ua = parse_ua(user_agent)

    if ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "mobile"
    elif ua.is_pc:
        device_type = "desktop"
    elif ua.is_bot:
        device_type = "other"
    else:
        device_type = "desktop"

    return DeviceInfo(
        device_type=device_type,
        browser=_versioned(ua.browser.family, ua.browser.version),
        os=_versioned(ua.os.family, ua.os.version),
        platform=ua.device.family if ua.device.family != "Other" else None,
    )
