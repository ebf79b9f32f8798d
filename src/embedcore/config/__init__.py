"""Configuration for embedcore."""

from .config import BUNDLED_WHITELIST, Config, LazyConfig, find_config_file, load_whitelist, settings

__all__ = ["BUNDLED_WHITELIST", "Config", "LazyConfig", "find_config_file", "load_whitelist", "settings"]
