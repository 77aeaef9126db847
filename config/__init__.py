"""
Configuration management for novascribe

Handles loading and validation of application configuration.
"""

from core.models.config import AppConfig
from .loader import ConfigurationLoader
from .defaults import DEFAULT_SETTINGS

__all__ = ["AppConfig", "ConfigurationLoader", "DEFAULT_SETTINGS"]
