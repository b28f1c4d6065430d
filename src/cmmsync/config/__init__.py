"""Application configuration helpers."""

from __future__ import annotations

from cmmsync.common.logging import configure_logging

from .cmms import CmmsConfig, get_cmms_config
from .env import env_float, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

__all__ = [
    "CmmsConfig",
    "ConfigurationError",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "configure_logging",
    "env_float",
    "get_cmms_config",
    "require_env_var",
    "require_env_vars",
]
