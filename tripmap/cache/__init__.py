"""
Ephemeral cache tier for tripmap.

Valkey client configuration, the cache manager with in-process fallback,
and key/TTL conventions.
"""

from .config import ValkeyConfig, ValkeyConnectionError
from .client import ValkeyClient
from .utils import (
    CacheKeyPrefix,
    TTLPreset,
    NOT_FOUND_MARKER,
    CacheKeyBuilder,
    TTLCalculator,
    CacheKeyManager
)
from .manager import CacheManager, CacheStats

__all__ = [
    # Configuration
    "ValkeyConfig",
    "ValkeyConnectionError",

    # Client
    "ValkeyClient",

    # Manager
    "CacheManager",
    "CacheStats",

    # Utilities
    "CacheKeyPrefix",
    "TTLPreset",
    "NOT_FOUND_MARKER",
    "CacheKeyBuilder",
    "TTLCalculator",
    "CacheKeyManager",
]
