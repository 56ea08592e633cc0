"""
Configuration management for Config Guardian.
Handles loading settings from environment variables and YAML config files.
"""
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .baseline import SYMLINK_POLICIES
from .core import ConfigError

# Load environment variables from .env file if it exists
load_dotenv()

DEFAULT_CONFIG_FILE = 'config_guardian.yaml'

NUMERIC_KEYS = {
    'builder.workers': int,
    'monitor.debounce_seconds': float,
    'monitor.poll_interval': float,
    'monitor.retry_interval': float,
    'monitor.max_consecutive_failures': int,
}


class Config:
    """Configuration loaded from environment variables and an optional YAML file."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration.

        Args:
            config_path: Optional path to a YAML config file.
        """
        self._config: Dict[str, Any] = {}
        self._config_path = config_path or os.getenv('GUARDIAN_CONFIG', DEFAULT_CONFIG_FILE)
        self._load_config()
        self._validate()

    @property
    def path(self) -> str:
        return self._config_path

    def _load_config(self) -> None:
        """Load configuration from YAML file and environment variables."""
        # Default configuration
        try:
            self._config = self._defaults()
        except ValueError as e:
            raise ConfigError(f"Invalid numeric value in environment: {e}") from e

        # Load YAML config if it exists
        if self._config_path and os.path.exists(self._config_path):
            with open(self._config_path, 'r') as f:
                yaml_config = yaml.safe_load(f) or {}
            if not isinstance(yaml_config, dict):
                raise ConfigError(f"Config file {self._config_path} must contain a mapping")
            self._deep_update(self._config, yaml_config)

    def _defaults(self) -> Dict[str, Any]:
        """Build the default configuration from environment variables."""
        return {
            'store': {
                'directory': os.getenv(
                    'GUARDIAN_STORE_DIR',
                    os.path.join(os.path.expanduser('~'), '.config_guardian', 'baselines'),
                ),
            },
            'builder': {
                'workers': int(os.getenv('GUARDIAN_WORKERS', '4')),
                'exclude_patterns': self._str_to_list(os.getenv('GUARDIAN_EXCLUDE', '')),
                'symlink_policy': os.getenv('GUARDIAN_SYMLINK_POLICY', 'within_root'),
            },
            'monitor': {
                'debounce_seconds': float(os.getenv('GUARDIAN_DEBOUNCE', '1.0')),
                'poll_interval': float(os.getenv('GUARDIAN_POLL_INTERVAL', '0.5')),
                'retry_interval': float(os.getenv('GUARDIAN_RETRY_INTERVAL', '2.0')),
                'max_consecutive_failures': int(os.getenv('GUARDIAN_MAX_FAILURES', '5')),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('GUARDIAN_EVENT_LOG', 'drift.log'),
                'format': os.getenv('LOG_FORMAT',
                                    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            },
        }

    def _validate(self) -> None:
        """Reject values the rest of the package cannot work with."""
        self._coerce_numbers()
        if self.get('builder.workers', 0) < 1:
            raise ConfigError("builder.workers must be at least 1")
        if self.get('builder.symlink_policy') not in SYMLINK_POLICIES:
            raise ConfigError(
                f"builder.symlink_policy must be one of {', '.join(SYMLINK_POLICIES)}"
            )
        if self.get('monitor.debounce_seconds', 0) < 0:
            raise ConfigError("monitor.debounce_seconds must not be negative")
        if self.get('monitor.poll_interval', 0) <= 0:
            raise ConfigError("monitor.poll_interval must be positive")
        if self.get('monitor.max_consecutive_failures', 0) < 1:
            raise ConfigError("monitor.max_consecutive_failures must be at least 1")

    def _coerce_numbers(self) -> None:
        """Convert numeric settings, which YAML may deliver as strings."""
        for key, convert in NUMERIC_KEYS.items():
            section, name = key.split('.')
            try:
                self._config[section][name] = convert(self._config[section][name])
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {key}: {e}") from e

    def _deep_update(self, original: Dict, update: Dict) -> None:
        """Recursively update a dictionary."""
        for key, value in update.items():
            if key in original and isinstance(original[key], dict) and isinstance(value, dict):
                self._deep_update(original[key], value)
            else:
                original[key] = value

    @staticmethod
    def _str_to_list(value: str) -> list:
        """Split a comma-separated string into a list of non-empty items."""
        return [item.strip() for item in value.split(',') if item.strip()]

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dot notation."""
        keys = key.split('.')
        value = self._config

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def section(self, name: str) -> Dict[str, Any]:
        """Get a copy of a top-level section, for passing to components."""
        return dict(self._config.get(name) or {})

    def __getitem__(self, key: str) -> Any:
        """Get a configuration value using bracket notation."""
        return self.get(key)

    def __contains__(self, key: str) -> bool:
        """Check if a configuration key exists."""
        marker = object()
        return self.get(key, marker) is not marker
