"""
Configuration management for SieveCore using Pydantic.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, ClassVar, Optional, cast

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Nested Configuration Models ---


class ParserConfig(BaseModel):
    """DOM parser configuration."""

    encoding: str = Field(default="utf-8", description="Encoding used to decode byte input.")
    preserve_whitespace: bool = Field(default=False, description="Keep whitespace-only text nodes and untrimmed text.")
    normalize_spaces: bool = Field(default=True, description="Collapse internal whitespace in extracted text.")
    max_depth: Optional[int] = Field(
        default=None,
        ge=0,
        description="Abort parsing once an element deeper than this is reached. None disables the guard.",
    )
    tree_builder: str = Field(default="html.parser", description="BeautifulSoup tree builder to use.")


class SearchConfig(BaseModel):
    """Free-text search configuration."""

    case_sensitive: bool = False
    whole_words: bool = False
    max_context_length: int = Field(default=100, ge=0, description="Context characters around a match, split in half.")
    include_line_numbers: bool = True


class ExtractorConfig(BaseModel):
    """Schema extraction configuration."""

    strict_mode: bool = Field(default=True, description="A missing required field aborts the whole extraction.")
    case_sensitive: bool = Field(default=False, description="Case sensitivity of validation patterns.")
    trim_whitespace: bool = Field(default=True, description="Trim raw values before transformations.")
    validate_patterns: bool = Field(default=True, description="Enforce FieldRule.pattern on extracted values.")
    max_array_size: Optional[int] = Field(
        default=1000,
        ge=0,
        description="Truncate array fields and multi-record results to this size. None disables truncation.",
    )


class RateLimitConfig(BaseModel):
    """Token bucket settings for batch admission."""

    requests_per_second: float = Field(default=10.0, gt=0, description="Token refill rate.")
    burst_size: int = Field(default=20, ge=1, description="Bucket capacity.")


class BatchConfig(BaseModel):
    """Batch processor configuration."""

    batch_size: int = Field(default=100, gt=0, description="Chunk size used by chunk_items.")
    max_concurrent: int = Field(default=5, gt=0, description="Maximum items processed at the same time.")
    rate_limit: Optional[RateLimitConfig] = Field(default_factory=RateLimitConfig)
    timeout: Optional[float] = Field(default=30.0, gt=0, description="Per-attempt deadline in seconds.")
    retry_count: int = Field(default=3, ge=0, description="Retries after the first failed attempt.")
    retry_delay: float = Field(default=0.1, ge=0, description="Delay between attempts in seconds.")
    continue_on_error: bool = Field(default=True, description="Keep going when an item fails.")


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")
    json_logs: bool = Field(default=False, description="Render console logs as JSON.")
    metrics_enabled: bool = Field(default=True, description="Record Prometheus metrics.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "SieveCore"
    version: str = "0.1.0"
    parser: ParserConfig = Field(default_factory=ParserConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="SIEVE_", env_nested_delimiter="__", case_sensitive=False)

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


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for path in (current_dir / "sievecore.yaml", current_dir / "sievecore.yml"):
        if path.exists():
            return path
    return None


# --- Lazy Configuration Loader ---


class LazyConfig:
    """
    A proxy for the Config object that delays its loading and validation
    until an attribute is first accessed, so a broken config file does not
    crash the application on import.
    """

    _config: ClassVar[Config | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __getattr__(self, name: str) -> Any:
        if self.__class__._config is None:
            with self.__class__._lock:
                if self.__class__._config is None:
                    self.__class__._config = self._load_config_with_fallback()
        return getattr(self.__class__._config, name)

    @classmethod
    def reset(cls) -> None:
        """Drop the cached configuration so the next access reloads it."""
        with cls._lock:
            cls._config = None

    def _load_config_with_fallback(self) -> Config:
        """Load configuration from file or fall back to defaults."""
        config_path = find_config_file()
        if config_path:
            try:
                log.info("Lazy loading configuration from: %s", config_path)
                return Config.from_yaml(config_path)
            except (ValidationError, FileNotFoundError, yaml.YAMLError) as e:
                log.error(
                    "Failed to load or validate configuration from '%s': %s. "
                    "Falling back to default settings. Please check your config file.",
                    config_path,
                    e,
                    exc_info=log.getEffectiveLevel() <= logging.DEBUG,
                )
        else:
            log.info("No config file found. Using default settings for lazy load.")

        try:
            return Config()
        except ValidationError as e:
            log.critical("FATAL: Default configuration is invalid: %s", e, exc_info=True)
            raise RuntimeError(f"Default configuration is invalid, cannot start: {e}") from e


# --- Global Settings Instance ---
settings: "Config" = cast("Config", LazyConfig())
