"""Configuration management module."""

from .config_manager import ConfigManager
from .settings import InspectorConfig, normalize_url

__all__ = ["ConfigManager", "InspectorConfig", "normalize_url"]
