"""Set-Cookie parsing and target-cookie extraction.

Browsers and automation APIs hand Set-Cookie values over in different shapes:
one value per header line, several lines joined with ``\\n``, or several
cookies folded into one value with commas. The commas inside an ``Expires``
date must not be mistaken for cookie boundaries.
"""

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, List, Optional, Union

from ..models.exchange import CookieRecord

COOKIE_ATTRIBUTES = frozenset({
    "expires", "max-age", "domain", "path", "secure", "httponly",
    "samesite", "priority", "partitioned",
})

# A comma followed by ``token=`` opens a new cookie, unless the token is an attribute name
_BOUNDARY = re.compile(r",\s*(?=([^=;,\s]+)\s*=)")

RawHeaderValues = Union[str, Iterable[str], None]


def split_set_cookie(value: str) -> List[str]:
    """Split one raw Set-Cookie value into individual cookie strings.

    Args:
        value: Raw header text, possibly newline- or comma-joined

    Returns:
        Cookie-setting strings in header order
    """
    parts: List[str] = []
    for line in value.splitlines():
        start = 0
        for match in _BOUNDARY.finditer(line):
            if match.group(1).lower() in COOKIE_ATTRIBUTES:
                continue
            parts.append(line[start:match.start()])
            start = match.end()
        parts.append(line[start:])
    return [part.strip() for part in parts if part.strip()]


def _parse_expires(value: str) -> Optional[datetime]:
    parsed = None
    # RFC 1123 first, then the dashed Netscape form (21-Oct-2026)
    for candidate in (value, value.replace("-", " ")):
        try:
            parsed = parsedate_to_datetime(candidate)
        except (TypeError, ValueError, IndexError):
            continue
        if parsed is not None:
            break
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_max_age(value: str) -> Optional[int]:
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_set_cookie(text: str) -> Optional[CookieRecord]:
    """Parse a single cookie-setting string.

    Returns:
        The parsed record, or None when the name=value segment has no ``=``
        or an empty name
    """
    head, _, rest = text.partition(";")
    name, sep, value = head.partition("=")
    name = name.strip()
    if not sep or not name:
        return None

    attrs = {}
    flags = set()
    for segment in rest.split(";"):
        key, has_value, attr_value = segment.partition("=")
        key = key.strip().lower()
        if not key:
            continue
        if has_value:
            attrs[key] = attr_value.strip()
        else:
            flags.add(key)

    return CookieRecord(
        name=name,
        value=value.strip(),
        domain=attrs.get("domain") or None,
        path=attrs.get("path") or None,
        same_site=attrs.get("samesite") or None,
        secure="secure" in flags,
        http_only="httponly" in flags,
        max_age=_parse_max_age(attrs["max-age"]) if "max-age" in attrs else None,
        expires=_parse_expires(attrs["expires"]) if "expires" in attrs else None,
    )


def parse_set_cookie_headers(values: RawHeaderValues) -> List[CookieRecord]:
    """Parse every cookie found in one or more raw Set-Cookie values."""
    if not values:
        return []
    if isinstance(values, str):
        values = [values]

    records = []
    for value in values:
        if not value:
            continue
        for candidate in split_set_cookie(value):
            record = parse_set_cookie(candidate)
            if record is not None:
                records.append(record)
    return records


def extract_cookies(values: RawHeaderValues, target_name: str) -> List[CookieRecord]:
    """Return the cookies named ``target_name`` (case-insensitive), in header order."""
    wanted = target_name.lower()
    return [record for record in parse_set_cookie_headers(values) if record.name.lower() == wanted]


def extract_request_cookie(cookie_header: Optional[str], target_name: str) -> Optional[str]:
    """Read the value of ``target_name`` from a request ``Cookie`` header."""
    if not cookie_header:
        return None
    wanted = target_name.lower()
    for pair in re.split(r";\s*|\n", cookie_header):
        name, sep, value = pair.partition("=")
        if sep and name.strip().lower() == wanted:
            return value.strip()
    return None
