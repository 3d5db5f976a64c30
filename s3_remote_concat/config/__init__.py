"""Configuration utilities for the remote concatenation tool."""

from .config_manager import ConcatSettings, ConfigManager

__all__ = ["ConcatSettings", "ConfigManager"]
