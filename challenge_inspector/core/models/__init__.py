"""Data models for captured traffic."""

from .exchange import CookieRecord, Exchange
from .headers import HeaderBag
from .types import BrowserEngine, Category, FinishPolicy, ScopePolicy, TrafficType

__all__ = [
    "CookieRecord",
    "Exchange",
    "HeaderBag",
    "BrowserEngine",
    "Category",
    "FinishPolicy",
    "ScopePolicy",
    "TrafficType",
]
