"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    ApiConfig,
    DiscoveryConfig,
    DuplicatePolicy,
    GlobalConfig,
    RateLimitConfig,
    RetryConfig,
    UploadConfig,
    VerifyConfig,
)

__all__ = [
    "ApiConfig",
    "ConfigLocator",
    "ConfigRepository",
    "DiscoveryConfig",
    "DuplicatePolicy",
    "GlobalConfig",
    "RateLimitConfig",
    "RetryConfig",
    "UploadConfig",
    "VerifyConfig",
]
