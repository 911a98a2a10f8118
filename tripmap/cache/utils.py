"""
Cache utilities for key naming conventions and TTL management.

Airport entries use the flat ``airport_<CODE>`` key form so a directory
refresh can target them with a single ``airport_*`` pattern; lock keys are
namespaced with colons like every other structured key.
"""

import random
from typing import Any, Optional, Union
from enum import Enum


class CacheKeyPrefix(str, Enum):
    """Standard cache key prefixes."""

    AIRPORT = "airport_"
    LOCK = "lock"


class TTLPreset(int, Enum):
    """Standard TTL presets in seconds."""

    # Hard ceiling of the ephemeral cache tier; airport entries use it as-is
    CACHE_MAX = 21600       # 6 hours
    AIRPORT_INFO = 21600    # 6 hours, positive and negative entries alike

    TRIP_LOCK = 30          # lock lease; writes finish well inside it


# Stored in place of an airport record when the directory has no such code
NOT_FOUND_MARKER = "__NOT_FOUND__"


class CacheKeyBuilder:
    """Builder for consistent, colon-separated cache keys."""

    @staticmethod
    def build_key(prefix: Union[CacheKeyPrefix, str], *parts: Any, **params: Any) -> str:
        """
        Build a cache key with prefix, parts, and parameters.

        Example:
            build_key("tripmap", "lock", "trips")
            # Returns: "tripmap:lock:trips"
        """
        prefix_str = prefix.value if isinstance(prefix, CacheKeyPrefix) else str(prefix)
        key_parts = [prefix_str]

        for part in parts:
            if part is not None:
                key_parts.append(str(part))

        # Keyword parameters sorted for stable keys
        if params:
            for key, value in sorted(params.items()):
                if value is not None:
                    key_parts.append(f"{key}={value}")

        return ":".join(key_parts)

    @staticmethod
    def build_pattern(prefix: Union[CacheKeyPrefix, str], *parts: str) -> str:
        """
        Build a key pattern for SCAN matching.

        Example:
            build_pattern("tripmap", "lock", "*")
            # Returns: "tripmap:lock:*"
        """
        prefix_str = prefix.value if isinstance(prefix, CacheKeyPrefix) else str(prefix)
        return ":".join([prefix_str, *parts])


class TTLCalculator:
    """TTL calculation with jitter to avoid synchronized expiry."""

    @staticmethod
    def calculate_ttl_with_jitter(
        base_ttl: Union[int, TTLPreset],
        jitter_percent: float = 0.1,
        min_ttl: int = 30,
        max_ttl: Optional[int] = None
    ) -> int:
        """
        Calculate TTL with random jitter.

        Args:
            base_ttl: Base TTL in seconds
            jitter_percent: Jitter as percentage of base TTL (0.0 to 1.0)
            min_ttl: Minimum TTL to ensure
            max_ttl: Optional ceiling applied after jitter

        Returns:
            int: TTL with jitter applied
        """
        base_seconds = int(base_ttl)
        jitter_range = int(base_seconds * jitter_percent)
        final_ttl = max(base_seconds + random.randint(-jitter_range, jitter_range), min_ttl)
        if max_ttl is not None:
            final_ttl = min(final_ttl, max_ttl)
        return final_ttl

    @staticmethod
    def clamp(ttl_seconds: int, ceiling: int = TTLPreset.CACHE_MAX) -> int:
        """Clamp a TTL to ``[1, ceiling]``."""
        return max(1, min(int(ttl_seconds), int(ceiling)))


class CacheKeyManager:
    """High-level key generation for the tripmap cache entries."""

    def __init__(self, namespace: str = "tripmap"):
        self.namespace = namespace
        self.key_builder = CacheKeyBuilder()

    def airport_key(self, code: str) -> str:
        """Cache key for an airport directory entry (``airport_JFK``)."""
        return f"{CacheKeyPrefix.AIRPORT.value}{code}"

    def airport_pattern(self) -> str:
        """Pattern matching every airport directory entry."""
        return f"{CacheKeyPrefix.AIRPORT.value}*"

    def lock_key(self, resource: str) -> str:
        """Cache key for a named distributed lock."""
        return self.key_builder.build_key(self.namespace, CacheKeyPrefix.LOCK.value, resource)
