"""
Configuration management for embedcore using Pydantic.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Union, cast

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from embedcore import __version__

# --- Setup Logging ---
log = logging.getLogger(__name__)

BUNDLED_WHITELIST = Path(__file__).parent / "whitelist.yaml"

# --- Nested Configuration Models ---


class ProvidersConfig(BaseModel):
    """Which built-in and name-only providers are active."""

    enabled: Union[bool, List[str]] = Field(
        default=True,
        description="True to enable every provider, or the list of provider ids to enable.",
    )


class RequestConfig(BaseModel):
    """Defaults for the HTTP request capability."""

    timeout: float = Field(default=15.0, gt=0, description="Request timeout in seconds.")
    retries: int = Field(default=1, ge=0, description="Retry attempts on connection errors and 429/5xx.")
    user_agent: str = Field(
        default=f"embedcore/{__version__} (+https://github.com/embedcore/embedcore)",
        description="User-Agent header sent with every request.",
    )
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra headers sent with every request.")


class CacheConfig(BaseModel):
    fail_on_write_error: bool = Field(
        default=True,
        description="Fail resolve() when the result cannot be written to the cache. "
        "When False the write error is logged and the result is still returned.",
    )
    memory_ttl_seconds: Optional[float] = Field(
        default=None, description="Expiry for MemoryCache entries. None keeps entries forever."
    )


class ImageSizeConfig(BaseModel):
    ttl_seconds: float = Field(default=24 * 60 * 60, gt=0, description="How long probed dimensions stay valid.")
    extensions: List[str] = Field(
        default=[".bmp", ".gif", ".jpg", ".jpeg", ".png", ".psd", ".tif", ".tiff", ".webp", ".svg"],
        description="File extensions worth probing.",
    )

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]


class RenderConfig(BaseModel):
    aliases: Dict[str, List[str]] = Field(
        default_factory=lambda: {"block": ["player", "rich"]},
        description="Format names that expand to a priority list of concrete formats.",
    )
    desired_thumbnail_width: int = Field(default=480, gt=0)


class MonitoringConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")
    json_logs: bool = Field(default=False, description="Render console logs as JSON.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "embedcore"
    version: str = __version__
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    image_size: ImageSizeConfig = Field(default_factory=ImageSizeConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    whitelist_file: Optional[Path] = Field(default=None, description="YAML whitelist; the bundled one when unset.")

    model_config = SettingsConfigDict(env_prefix="EMBEDCORE_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)


def load_whitelist(path: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    """Read the per-domain whitelist (``domains:`` mapping) from YAML."""
    path = path or BUNDLED_WHITELIST
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    domains = data.get("domains") or {}
    if not isinstance(domains, dict):
        raise ValueError(f"Whitelist {path} must contain a 'domains' mapping")
    log.debug("Loaded whitelist from %s (%d domains)", path, len(domains))
    return domains


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for name in ("embedcore.yaml", "embedcore.yml"):
        path = current_dir / name
        if path.exists():
            return path
    return None


# --- Lazy Configuration Loader ---


class LazyConfig:
    """
    A proxy for the Config object that delays its loading and validation
    until an attribute is first accessed.
    """

    _config: ClassVar[Config | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __getattr__(self, name: str) -> Any:
        if self.__class__._config is None:
            with self.__class__._lock:
                if self.__class__._config is None:
                    self.__class__._config = self._load_config_with_fallback()
        return getattr(self.__class__._config, name)

    def _load_config_with_fallback(self) -> Config:
        """Load configuration from file or fall back to defaults."""
        config_path = find_config_file()
        if config_path:
            try:
                log.info("Lazy loading configuration from: %s", config_path)
                return Config.from_yaml(config_path)
            except (ValidationError, OSError, yaml.YAMLError) as e:
                log.error(
                    "Failed to load or validate configuration from '%s': %s. Falling back to default settings.",
                    config_path,
                    e,
                    exc_info=log.getEffectiveLevel() <= logging.DEBUG,
                )
        else:
            log.debug("No config file found. Using default settings for lazy load.")

        try:
            return Config()
        except ValidationError as e:
            log.critical("FATAL: Default configuration is invalid: %s", e, exc_info=True)
            raise RuntimeError(f"Default configuration is invalid, cannot start: {e}") from e


# --- Global Settings Instance ---
settings: "Config" = cast("Config", LazyConfig())
