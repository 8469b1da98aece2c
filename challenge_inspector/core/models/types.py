"""Enumerations shared by the capture pipeline and the configuration layer."""

from enum import Enum


class TrafficType(str, Enum):
    """Browser resource types kept by the capture."""

    DOCUMENT = "document"
    XHR = "xhr"
    FETCH = "fetch"

    @classmethod
    def from_resource_type(cls, resource_type: str) -> "TrafficType | None":
        try:
            return cls(resource_type.lower())
        except ValueError:
            return None


class Category(str, Enum):
    """Traffic category assigned to an exchange at creation time.

    CAPTCHA and hard block share one label: both are served from the same
    endpoint family and cannot be told apart from traffic shape alone.
    """

    DOCUMENT = "document"
    XHR = "xhr"
    FETCH = "fetch"
    CHALLENGE_DEVICE_CHECK = "challenge-device-check"
    CHALLENGE_CAPTCHA_OR_BLOCK = "challenge-captcha-or-block"

    @property
    def is_challenge(self) -> bool:
        return self in (Category.CHALLENGE_DEVICE_CHECK, Category.CHALLENGE_CAPTCHA_OR_BLOCK)

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    Category.DOCUMENT: "Document",
    Category.XHR: "XHR",
    Category.FETCH: "Fetch",
    Category.CHALLENGE_DEVICE_CHECK: "Device Check",
    Category.CHALLENGE_CAPTCHA_OR_BLOCK: "CAPTCHA/BLOCK",
}


class ScopePolicy(str, Enum):
    """Which non-challenge traffic is reported."""

    SAME_DOMAIN = "same-domain"
    CROSS_ORIGIN = "cross-origin"
    ANY = "any"


class FinishPolicy(str, Enum):
    """When the capture phase ends."""

    AUTO = "auto"
    MANUAL = "manual"
    TIMEOUT = "timeout"


class BrowserEngine(str, Enum):
    """Playwright browser engines."""

    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"

    @property
    def display_name(self) -> str:
        return self.value.capitalize() if self is not BrowserEngine.WEBKIT else "WebKit"
