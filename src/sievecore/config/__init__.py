"""Configuration models and loaders."""

from .config import (
    BatchConfig,
    Config,
    ExtractorConfig,
    LazyConfig,
    MonitoringConfig,
    ParserConfig,
    RateLimitConfig,
    SearchConfig,
    find_config_file,
    settings,
)

__all__ = [
    "BatchConfig",
    "Config",
    "ExtractorConfig",
    "LazyConfig",
    "MonitoringConfig",
    "ParserConfig",
    "RateLimitConfig",
    "SearchConfig",
    "find_config_file",
    "settings",
]
