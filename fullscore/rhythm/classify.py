"""Device and traffic-origin classification written into every new slot."""

import re
from collections.abc import Mapping
from enum import IntEnum
from urllib.parse import urlsplit

_TABLET = re.compile(r"ipad|tablet|silk", re.IGNORECASE)
_ANDROID = re.compile(r"android", re.IGNORECASE)
_MOBILE = re.compile(r"mobi|iphone", re.IGNORECASE)


class DeviceClass(IntEnum):
    DESKTOP = 0
    MOBILE = 1
    TABLET = 2


class OriginClass(IntEnum):
    """Reserved origin classes. Mapped referrers use 3-255."""

    DIRECT = 0
    INTERNAL = 1
    UNKNOWN = 2


def classify_device(user_agent: str) -> DeviceClass:
    if _TABLET.search(user_agent) or (_ANDROID.search(user_agent) and not _MOBILE.search(user_agent)):
        return DeviceClass.TABLET
    if _MOBILE.search(user_agent):
        return DeviceClass.MOBILE
    return DeviceClass.DESKTOP


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def classify_origin(referrer: str, hostname: str, referrer_map: Mapping[str, int]) -> int:
    """Classify where the visitor came from.

    Args:
        referrer: Referring URL, empty for direct traffic.
        hostname: Host of the tracked site; referrers on it are internal.
        referrer_map: Referrer domain to class number; subdomains match too.

    Returns:
        An OriginClass value or a mapped class number.
    """
    if not referrer:
        return OriginClass.DIRECT
    try:
        host = (urlsplit(referrer).hostname or "").lower()
    except ValueError:
        return OriginClass.UNKNOWN
    if not host:
        return OriginClass.UNKNOWN
    if host == hostname.lower():
        return OriginClass.INTERNAL
    for domain, value in referrer_map.items():
        if _host_matches(host, domain.lower()):
            return value
    return OriginClass.UNKNOWN
