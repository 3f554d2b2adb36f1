"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_var, optional_float_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .fhir import (
    DEFAULT_FHIR_BASE_URL,
    ClientCredentials,
    FhirConfig,
    build_fhir_resilience,
    get_fhir_config,
)
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging

__all__ = [
    "DEFAULT_FHIR_BASE_URL",
    "ClientCredentials",
    "ConfigurationError",
    "FhirConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "build_fhir_resilience",
    "configure_logging",
    "get_fhir_config",
    "optional_env_var",
    "optional_float_env_var",
    "require_env_vars",
]
