"""
Configuration loading and management.

Merges built-in defaults, an optional JSON config file and environment
variable overrides, then validates the result into an AppConfig.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

from core.models.config import AppConfig, GlobalSettings
from .defaults import DEFAULT_SETTINGS, ENV_VAR_MAPPING, STRING_SETTINGS

logger = logging.getLogger(__name__)


class ConfigurationLoader:
    """Load and save application configuration"""

    def __init__(self, global_settings: Optional[GlobalSettings] = None):
        self.global_settings = global_settings or GlobalSettings()
        self._cache: Dict[str, AppConfig] = {}

    def resolve_config_file(self, config_file: Optional[Union[str, Path]] = None) -> Path:
        if config_file is not None:
            return Path(config_file).expanduser()
        return self.global_settings.config_file

    def load(
        self,
        config_file: Optional[Union[str, Path]] = None,
        use_cache: bool = True
    ) -> AppConfig:
        """
        Load configuration.

        An unreadable or invalid file is logged and ignored; defaults and
        environment overrides still apply.
        """
        path = self.resolve_config_file(config_file)
        cache_key = str(path)
        if use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        data = copy.deepcopy(DEFAULT_SETTINGS)
        data["store"]["url"] = self.global_settings.default_qdrant_url
        if self.global_settings.default_owner_id:
            data["owner_id"] = self.global_settings.default_owner_id

        if path.exists():
            data = self._merge(data, self._read_file(path))

        data = self._apply_env_overrides(data)
        config = AppConfig.model_validate(data)

        self._cache[cache_key] = config
        logger.debug(f"Loaded configuration (file: {path if path.exists() else 'none'})")
        return config

    def _read_file(self, path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config from {path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Ignoring config file {path}: top level must be an object")
            return {}
        return data

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge override into base"""
        merged = dict(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = self._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration"""
        for env_var, config_path in ENV_VAR_MAPPING.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_value(config_data, config_path, env_value)

        return config_data

    def _set_nested_value(self, data: Dict[str, Any], path: str, value: str) -> None:
        """Set nested dictionary value using dot notation path"""
        keys = path.split('.')
        current = data

        for key in keys[:-1]:
            if key not in current or current[key] is None:
                current[key] = {}
            current = current[key]

        final_key = keys[-1]
        current[final_key] = value if path in STRING_SETTINGS else self._convert_env_value(value)

    def _convert_env_value(self, value: str) -> Any:
        """Convert environment variable string to appropriate type"""
        # Numeric conversion
        try:
            if '.' in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        # Boolean conversion
        if value.lower() in ('true', 'yes', 'on'):
            return True
        elif value.lower() in ('false', 'no', 'off'):
            return False

        # Return as string
        return value

    def save(self, config: AppConfig, config_file: Optional[Union[str, Path]] = None) -> Path:
        """Write configuration as JSON"""
        path = self.resolve_config_file(config_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)

        self._cache[str(path)] = config
        logger.info(f"Saved configuration to {path}")
        return path

    def clear_cache(self) -> None:
        """Clear configuration cache"""
        self._cache.clear()
        logger.info("Configuration cache cleared")
