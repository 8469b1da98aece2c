"""Pydantic settings models for configuration validation.

This module defines the complete configuration schema using Pydantic models
for type safety, validation, and documentation.
"""

from typing import List, Optional, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..models.types import BrowserEngine, FinishPolicy, ScopePolicy, TrafficType


def normalize_url(value: str) -> Optional[str]:
    """Normalize user input into an absolute http(s) URL.

    A missing scheme defaults to ``https://``. Returns None when the input
    cannot be turned into a URL with a host.
    """
    text = (value or "").strip()
    if not text:
        return None
    if not text.lower().startswith(("http://", "https://")):
        if "://" in text:
            return None
        text = f"https://{text}"
    try:
        parts = urlsplit(text)
        hostname = parts.hostname
    except ValueError:
        return None
    if not hostname or " " in text:
        return None
    path = parts.path or "/"
    normalized = f"{parts.scheme.lower()}://{parts.netloc}{path}"
    if parts.query:
        normalized += f"?{parts.query}"
    return normalized


class _Section(BaseModel):
    """Base for config sections: assignments are validated, unknown keys rejected."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")


class TargetConfig(_Section):
    """Configuration for the inspected site."""

    url: Optional[str] = Field(
        default=None,
        description="Target URL; a missing scheme defaults to https"
    )
    scope: ScopePolicy = Field(
        default=ScopePolicy.SAME_DOMAIN,
        description="Which non-challenge traffic is listed in the report"
    )
    payload: Optional[str] = Field(
        default=None,
        description="Optional POST body sent with fetch() after navigation (API-test mode)"
    )
    content_type: str = Field(
        default="application/json",
        description="Content-Type for the API-test payload"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        """Normalize the URL and reject values without a host."""
        if v is None:
            return v
        normalized = normalize_url(v)
        if normalized is None:
            raise ValueError(f"Invalid URL: {v!r}")
        return normalized


class BrowserConfig(_Section):
    """Browser launch and context configuration."""

    engine: BrowserEngine = BrowserEngine.CHROMIUM
    headless: bool = False
    user_agent: Optional[str] = Field(
        default=None,
        description="User-Agent override; None keeps the browser default"
    )
    navigation_timeout: int = Field(default=30, ge=1, description="Navigation timeout in seconds")
    viewport_width: int = Field(default=1366, ge=320)
    viewport_height: int = Field(default=768, ge=240)

    @field_validator('user_agent')
    @classmethod
    def blank_user_agent_is_default(cls, v):
        """Treat an empty override as the browser default."""
        if v is not None and not v.strip():
            return None
        return v


class CaptureConfig(_Section):
    """Capture phase timing."""

    finish_mode: FinishPolicy = FinishPolicy.AUTO
    quiet_window: float = Field(
        default=5.0, gt=0,
        description="Seconds without in-flight requests before the capture auto-finishes"
    )
    max_capture_time: float = Field(
        default=120.0, gt=0,
        description="Hard cap on the capture phase in seconds"
    )
    allowed_types: List[TrafficType] = Field(
        default_factory=lambda: list(TrafficType),
        min_length=1,
        description="Resource types recorded as exchanges"
    )


class ChallengeConfig(_Section):
    """Anti-bot vendor signals."""

    vendor: str = "DataDome"
    challenge_hosts: List[str] = Field(
        default_factory=lambda: ["captcha-delivery.com"],
        description="Domains serving device-check, CAPTCHA and block pages"
    )
    device_check_paths: List[str] = Field(default_factory=lambda: ["/interstitial/"])
    captcha_paths: List[str] = Field(default_factory=lambda: ["/captcha/"])
    block_status: int = Field(default=403, ge=100, le=599)
    cookie_name: str = "datadome"
    client_id_header: str = "x-datadome-clientid"

    @field_validator('challenge_hosts')
    @classmethod
    def lowercase_hosts(cls, v):
        """Store hosts lowercased without leading dots."""
        return [host.strip().lower().lstrip('.') for host in v if host.strip()]


class OutputConfig(_Section):
    """Artifact output configuration."""

    directory: str = Field(default="./har", description="Root directory for per-run folders")
    embed_har_content: bool = Field(default=True, description="Embed response bodies in the HAR")


class LoggingConfig(_Section):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: Literal["structured", "simple"] = "simple"
    file: Optional[str] = None
    max_size: str = "10MB"
    backup_count: int = 3


class InspectorConfig(BaseSettings):
    """Main configuration model for a capture run."""

    target: TargetConfig = Field(default_factory=TargetConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    challenge: ChallengeConfig = Field(default_factory=ChallengeConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="CHINSPECT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        validate_assignment=True,
        extra="forbid",
    )
