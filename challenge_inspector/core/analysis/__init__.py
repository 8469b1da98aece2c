"""Traffic classification, cookie extraction and narrative building."""

from .classifier import classify_traffic, is_challenge_host, is_in_scope, is_static_asset, registrable_domain
from .cookies import extract_cookies, parse_set_cookie, split_set_cookie
from .narrative import Narrative, NarrativeBuilder, NarrativeStep

__all__ = [
    "classify_traffic",
    "is_challenge_host",
    "is_in_scope",
    "is_static_asset",
    "registrable_domain",
    "extract_cookies",
    "parse_set_cookie",
    "split_set_cookie",
    "Narrative",
    "NarrativeBuilder",
    "NarrativeStep",
]
