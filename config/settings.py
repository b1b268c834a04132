"""Configuration management system."""

from __future__ import annotations

import os
import json
from decimal import Decimal
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from dotenv import load_dotenv

from .constants import (
    DEFAULT_HOME_CURRENCY,
    MONEY_PLACES,
    RATE_PLACES,
    SHARE_PLACES,
    XIRR_INITIAL_GUESS,
    XIRR_MAX_ITERATIONS,
    XIRR_TOLERANCE,
    DAYS_PER_YEAR,
    DEFAULT_BALANCE_ACTION,
    DEFAULT_TOP_UP_CATEGORY,
    DEFAULT_MARKET_DATA_SOURCE,
    DEFAULT_RATE_CACHE_TTL_MINUTES,
    DEFAULT_RATE_CACHE_SIZE,
    DEFAULT_HOME_TIMEZONE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_LOG_FORMAT,
)

logger = logging.getLogger(__name__)


class Settings:
    """Configuration management class for the ledger engine.

    Values come from three layers, later layers winning: built-in defaults,
    an optional JSON configuration file and ``LEDGER_*`` environment
    variables (a ``.env`` file is honoured).
    """

    def __init__(self, config_file: Optional[str] = None, load_env_file: bool = True):
        """Initialize settings.

        Args:
            config_file: Optional path to configuration file
            load_env_file: Whether to read a ``.env`` file before applying
                environment overrides
        """
        self._config: Dict[str, Any] = {}
        self._config_file = config_file
        self._load_default_config()

        if config_file:
            self.load_from_file(config_file)

        if load_env_file:
            load_dotenv()
        self._load_from_environment()

    def _load_default_config(self) -> None:
        """Load default configuration values."""
        self._config = {
            'currency': {
                'home_currency': DEFAULT_HOME_CURRENCY,
            },
            'precision': {
                'money_places': MONEY_PLACES,
                'rate_places': RATE_PLACES,
                'share_places': SHARE_PLACES,
            },
            'returns': {
                'xirr_initial_guess': str(XIRR_INITIAL_GUESS),
                'xirr_max_iterations': XIRR_MAX_ITERATIONS,
                'xirr_tolerance': str(XIRR_TOLERANCE),
                'days_per_year': DAYS_PER_YEAR,
            },
            'ledger': {
                'default_balance_action': DEFAULT_BALANCE_ACTION,
                'default_top_up_category': DEFAULT_TOP_UP_CATEGORY,
            },
            'market_data': {
                'primary_source': DEFAULT_MARKET_DATA_SOURCE,
                'cache_enabled': True,
                'cache_ttl_minutes': DEFAULT_RATE_CACHE_TTL_MINUTES,
                'cache_size': DEFAULT_RATE_CACHE_SIZE,
            },
            'timezone': {
                'name': DEFAULT_HOME_TIMEZONE,
            },
            'logging': {
                'level': DEFAULT_LOG_LEVEL,
                'file': None,
                'format': DEFAULT_LOG_FORMAT,
            },
        }

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        if os.getenv('LEDGER_HOME_CURRENCY'):
            self._config['currency']['home_currency'] = os.getenv('LEDGER_HOME_CURRENCY').upper()

        if os.getenv('LEDGER_BALANCE_ACTION'):
            self._config['ledger']['default_balance_action'] = os.getenv('LEDGER_BALANCE_ACTION').lower()

        if os.getenv('LEDGER_TOP_UP_CATEGORY'):
            self._config['ledger']['default_top_up_category'] = os.getenv('LEDGER_TOP_UP_CATEGORY').lower()

        if os.getenv('LEDGER_XIRR_MAX_ITERATIONS'):
            self._config['returns']['xirr_max_iterations'] = int(os.getenv('LEDGER_XIRR_MAX_ITERATIONS'))

        if os.getenv('LEDGER_XIRR_TOLERANCE'):
            self._config['returns']['xirr_tolerance'] = os.getenv('LEDGER_XIRR_TOLERANCE')

        if os.getenv('LEDGER_MARKET_DATA_SOURCE'):
            self._config['market_data']['primary_source'] = os.getenv('LEDGER_MARKET_DATA_SOURCE')

        if os.getenv('LEDGER_RATE_CACHE_TTL_MINUTES'):
            self._config['market_data']['cache_ttl_minutes'] = int(os.getenv('LEDGER_RATE_CACHE_TTL_MINUTES'))

        if os.getenv('LEDGER_TIMEZONE'):
            self._config['timezone']['name'] = os.getenv('LEDGER_TIMEZONE')

        if os.getenv('LEDGER_LOG_FILE'):
            self._config['logging']['file'] = os.getenv('LEDGER_LOG_FILE')

        if os.getenv('LEDGER_LOG_LEVEL'):
            self._config['logging']['level'] = os.getenv('LEDGER_LOG_LEVEL').upper()

        # Development mode
        if os.getenv('LEDGER_DEV', 'false').lower() == 'true':
            self._config['logging']['level'] = 'DEBUG'

    def load_from_file(self, config_file: str) -> None:
        """Load configuration from JSON file.

        Args:
            config_file: Path to configuration file
        """
        config_path = Path(config_file)

        if not config_path.exists():
            logger.warning(f"Configuration file not found: {config_file}")
            return

        try:
            with open(config_path, 'r') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load configuration file {config_file}: {e}")
            return

        self._merge_config(self._config, file_config)
        logger.info(f"Loaded configuration from: {config_file}")

    def save_to_file(self, config_file: str) -> None:
        """Save configuration to JSON file.

        Args:
            config_file: Path to save configuration file
        """
        config_path = Path(config_file)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w') as f:
            json.dump(self._config, f, indent=2)

        logger.info(f"Saved configuration to: {config_file}")

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Recursively merge configuration dictionaries.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Args:
            key: Configuration key (supports dot notation, e.g., 'ledger.default_balance_action')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by key.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def get_home_currency(self) -> str:
        return self.get('currency.home_currency', DEFAULT_HOME_CURRENCY)

    def get_return_config(self) -> Dict[str, Any]:
        """Get return calculation parameters with numeric types resolved.

        Returns:
            Dictionary with initial_guess, max_iterations, tolerance and
            days_per_year
        """
        returns = self.get('returns', {})
        return {
            'initial_guess': Decimal(str(returns.get('xirr_initial_guess', XIRR_INITIAL_GUESS))),
            'max_iterations': int(returns.get('xirr_max_iterations', XIRR_MAX_ITERATIONS)),
            'tolerance': Decimal(str(returns.get('xirr_tolerance', XIRR_TOLERANCE))),
            'days_per_year': int(returns.get('days_per_year', DAYS_PER_YEAR)),
        }

    def get_ledger_config(self) -> Dict[str, Any]:
        return self.get('ledger', {})

    def get_market_data_config(self) -> Dict[str, Any]:
        return self.get('market_data', {})

    def get_timezone_name(self) -> str:
        return self.get('timezone.name', DEFAULT_HOME_TIMEZONE)

    def is_development_mode(self) -> bool:
        """Check if development mode is enabled.

        Returns:
            True if development mode is enabled
        """
        return os.getenv('LEDGER_DEV', 'false').lower() == 'true'

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration.

        Returns:
            Logging configuration dictionary
        """
        return self.get('logging', {})


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns:
        Global settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure_system(config_file: Optional[str] = None) -> Settings:
    """Configure the system with settings.

    Args:
        config_file: Optional path to configuration file

    Returns:
        Configured settings instance
    """
    global _settings
    _settings = Settings(config_file)
    return _settings
