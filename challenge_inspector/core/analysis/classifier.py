"""Traffic classification: categories, scope and static-asset filtering.

All functions here are pure. They take the URL as the browser reported it and
never raise on malformed input; an unparseable URL is simply not a challenge,
not a static asset and only in scope under the ``any`` policy.
"""

import re
from typing import Iterable, Optional, Sequence
from urllib.parse import urlsplit

import tldextract

from ..models.types import Category, ScopePolicy, TrafficType

# Offline extractor: bundled Public Suffix List snapshot, no HTTP fetch, no disk cache
_extract = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())

STATIC_ASSET_PATTERN = re.compile(
    r"\.(css|js|mjs|map|png|jpe?g|gif|svg|webp|avif|ico|bmp|"
    r"woff2?|ttf|otf|eot|mp4|webm|ogg|mp3|wav|m4a|m3u8|ts)$",
    re.IGNORECASE,
)

DEFAULT_DEVICE_CHECK_PATHS = ("/interstitial/",)
DEFAULT_CAPTCHA_PATHS = ("/captcha/",)


def _hostname(url: str) -> Optional[str]:
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def _path(url: str) -> str:
    try:
        return urlsplit(url).path or "/"
    except ValueError:
        return ""


def _matches_domain(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def registrable_domain(host: str) -> str:
    """Return the registrable domain (eTLD+1) of ``host``.

    IP addresses, ``localhost`` and hosts on an unknown suffix are returned
    unchanged.

    Args:
        host: A hostname like ``"www.example.co.uk"``

    Returns:
        The registrable domain, e.g. ``"example.co.uk"``
    """
    host = (host or "").lower().rstrip(".")
    parts = _extract(host)
    if parts.domain and parts.suffix:
        return f"{parts.domain}.{parts.suffix}"
    return host


def is_challenge_host(url_or_host: str, challenge_hosts: Iterable[str]) -> bool:
    """True if the host equals or is a subdomain of an allowlisted challenge domain."""
    host = _hostname(url_or_host) if "/" in url_or_host else url_or_host.lower()
    if not host:
        return False
    return any(_matches_domain(host, domain) for domain in challenge_hosts)


def is_static_asset(url: str) -> bool:
    """True if the URL path ends in a stylesheet, script, image, font or media extension."""
    return bool(STATIC_ASSET_PATTERN.search(_path(url)))


def classify_traffic(traffic_type: TrafficType, url: str,
                     challenge_hosts: Iterable[str],
                     device_check_paths: Sequence[str] = DEFAULT_DEVICE_CHECK_PATHS,
                     captcha_paths: Sequence[str] = DEFAULT_CAPTCHA_PATHS) -> Category:
    """Map a request to its traffic category.

    Args:
        traffic_type: Resource type reported by the browser
        url: Request URL
        challenge_hosts: Allowlisted challenge delivery domains
        device_check_paths: Path prefixes of the device-check endpoint
        captcha_paths: Path prefixes of the CAPTCHA/block endpoint

    Returns:
        A challenge category for challenge endpoints, otherwise the raw type
    """
    if is_challenge_host(url, challenge_hosts):
        path = _path(url).lower()
        if any(path.startswith(prefix.lower()) for prefix in device_check_paths):
            return Category.CHALLENGE_DEVICE_CHECK
        if any(path.startswith(prefix.lower()) for prefix in captcha_paths):
            return Category.CHALLENGE_CAPTCHA_OR_BLOCK
    return Category(traffic_type.value)


def is_in_scope(url: str, scope_policy: ScopePolicy, target_domain: str,
                challenge_hosts: Iterable[str]) -> bool:
    """Decide whether an exchange belongs in the report.

    Challenge hosts are always in scope. Otherwise ``same-domain`` keeps the
    target's registrable domain and its subdomains, ``cross-origin`` keeps
    everything else and ``any`` keeps all traffic.
    """
    if scope_policy is ScopePolicy.ANY:
        return True
    host = _hostname(url)
    if not host:
        return False
    if any(_matches_domain(host, domain) for domain in challenge_hosts):
        return True
    same_domain = _matches_domain(host, target_domain.lower())
    if scope_policy is ScopePolicy.SAME_DOMAIN:
        return same_domain
    return not same_domain
