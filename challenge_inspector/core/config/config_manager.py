"""Configuration management for Challenge Inspector.

This module handles loading, validation, and management of configuration files
using Pydantic for type safety and validation.
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any
import yaml
from pydantic import ValidationError

from .settings import InspectorConfig
from ...utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("config/inspector.yaml")


class ConfigManager:
    """Manages configuration loading, validation, and access."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to configuration file.
                        Defaults to config/inspector.yaml
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._explicit_path = config_path is not None
        self._config: Optional[InspectorConfig] = None

    def load_config(self) -> InspectorConfig:
        """Load and validate configuration from file.

        A missing default file is not an error: built-in defaults apply.
        An explicitly requested file must exist.

        Returns:
            Validated InspectorConfig instance

        Raises:
            FileNotFoundError: If an explicit config file doesn't exist
            ValidationError: If config validation fails
            yaml.YAMLError: If YAML parsing fails
        """
        if self._config is not None:
            return self._config

        try:
            config_data: Dict[str, Any] = {}
            if self._explicit_path or self.config_path.exists():
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    config_data = yaml.safe_load(f) or {}
                logger.info(f"Configuration loaded from {self.config_path}")
            else:
                logger.debug(f"No configuration file at {self.config_path}; using defaults")

            config_data = self._apply_env_overrides(config_data)

            self._config = InspectorConfig(**config_data)
            return self._config

        except FileNotFoundError:
            logger.error(f"Configuration file not found: {self.config_path}")
            raise

        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error in {self.config_path}: {e}")
            raise

        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration.

        Environment variables should be prefixed with CHINSPECT_ and use
        double underscores for nested keys. For example:
        CHINSPECT_BROWSER__HEADLESS=true

        Args:
            config_data: Original configuration dictionary

        Returns:
            Configuration with environment overrides applied
        """
        env_prefix = "CHINSPECT_"

        for key, value in os.environ.items():
            if not key.startswith(env_prefix):
                continue

            config_key = key[len(env_prefix):].lower()
            key_parts = config_key.split("__")

            current_dict = config_data
            for part in key_parts[:-1]:
                if not isinstance(current_dict.get(part), dict):
                    current_dict[part] = {}
                current_dict = current_dict[part]

            current_dict[key_parts[-1]] = self._convert_env_value(value)

        return config_data

    def _convert_env_value(self, value: str) -> Any:
        """Convert environment variable string to appropriate type.

        Args:
            value: Environment variable string value

        Returns:
            Converted value (bool, int, float, or string)
        """
        if value.lower() in ('true', 'yes', 'on'):
            return True
        elif value.lower() in ('false', 'no', 'off'):
            return False

        try:
            if '.' in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        return value

    def validate_config(self) -> bool:
        """Validate the current configuration.

        Returns:
            True if configuration is valid, False otherwise
        """
        try:
            self.load_config()
            return True
        except (FileNotFoundError, ValidationError, yaml.YAMLError):
            return False

    def create_default_config(self, output_path: Optional[Path] = None) -> Path:
        """Create a default configuration file.

        Args:
            output_path: Where to save the config. Defaults to config/inspector.yaml

        Returns:
            Path to the created configuration file
        """
        output_path = output_path or DEFAULT_CONFIG_PATH
        output_path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = InspectorConfig().model_dump(mode="json")

        with open(output_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, indent=2, sort_keys=False)

        logger.info(f"Default configuration created at {output_path}")
        return output_path

    def get_config(self) -> InspectorConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self) -> InspectorConfig:
        """Force reload of configuration from file."""
        self._config = None
        return self.load_config()
