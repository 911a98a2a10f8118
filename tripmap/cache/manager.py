"""
Cache manager with error handling and graceful degradation.

Sits between the services and Valkey. Airport lookups go through ``get`` /
``set`` (JSON records and the plain-string not-found marker); the trip lock
goes through ``set_if_absent`` / ``delete_if_equals``.

Failures never reach callers: a circuit breaker stops hammering a dead
server and reads and writes are served from an in-process ``LocalStore``.
Leases are the exception: while Valkey is configured, only Valkey grants
them.
"""

import fnmatch
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional, Union

from valkey.exceptions import ConnectionError, TimeoutError, ResponseError

from .client import ValkeyClient
from .config import ValkeyConfig, ValkeyConnectionError
from .utils import TTLCalculator, TTLPreset

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Cache operation statistics."""

    hit_count: int = 0
    miss_count: int = 0
    set_count: int = 0
    delete_count: int = 0
    lease_granted: int = 0
    lease_refused: int = 0
    total_operations: int = 0

    error_count: int = 0
    connection_errors: int = 0
    timeout_errors: int = 0
    other_errors: int = 0
    fallback_operations: int = 0

    start_time: datetime = field(default_factory=datetime.now)

    @property
    def hit_ratio(self) -> float:
        reads = self.hit_count + self.miss_count
        return self.hit_count / reads if reads else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "hit_ratio": self.hit_ratio,
            "set_count": self.set_count,
            "delete_count": self.delete_count,
            "lease_granted": self.lease_granted,
            "lease_refused": self.lease_refused,
            "total_operations": self.total_operations,
            "error_count": self.error_count,
            "connection_errors": self.connection_errors,
            "timeout_errors": self.timeout_errors,
            "other_errors": self.other_errors,
            "fallback_operations": self.fallback_operations,
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
        }


class LocalStore:
    """
    In-process key/value store with per-key expiry.

    Used as the whole cache when Valkey is disabled and as a degraded
    stand-in when it is unreachable. Oldest keys are evicted first once
    ``max_size`` is reached. All methods are synchronous, so each one is
    atomic with respect to other coroutines on the event loop.
    """

    def __init__(self, max_size: int = 10000):
        self.max_size = max_size
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and datetime.now() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        expires_at = datetime.now() + timedelta(seconds=ttl) if ttl else None
        self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def ttl(self, key: str) -> Optional[int]:
        if self.get(key) is None:
            return None
        expires_at = self._entries[key][1]
        if expires_at is None:
            return None
        return max(0, int((expires_at - datetime.now()).total_seconds()))

    def set_if_absent(self, key: str, value: Any, ttl: int) -> bool:
        if self.get(key) is not None:
            return False
        self.set(key, value, ttl)
        return True

    def delete_if_equals(self, key: str, value: Any) -> bool:
        if self.get(key) != value:
            return False
        return self.delete(key)

    def clear_pattern(self, pattern: str) -> int:
        matching = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in matching:
            del self._entries[key]
        return len(matching)

    def clear(self) -> None:
        self._entries.clear()


class CacheManager:
    """
    High-level cache manager with circuit breaker and local fallback.

    Three operating states:
    - connected: commands go to Valkey
    - degraded: Valkey configured but failing; reads and writes use the
      LocalStore, leases are refused until a reconnect succeeds
    - local mode: Valkey disabled; the LocalStore is authoritative, leases
      included
    """

    def __init__(
        self,
        client: Optional[ValkeyClient] = None,
        config: Optional[ValkeyConfig] = None,
        enable_fallback: bool = True,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_timeout: int = 60
    ):
        """
        Args:
            client: Connected ValkeyClient, or None to connect in initialize()
            config: ValkeyConfig; ``enabled=False`` selects local mode
            enable_fallback: Serve from the LocalStore when Valkey fails
            circuit_breaker_threshold: Consecutive failures before the circuit opens
            circuit_breaker_timeout: Seconds before a retry after the circuit opens
        """
        self.client = client
        self.config = config or (client.config if client else ValkeyConfig.from_env())
        self.enable_fallback = enable_fallback
        self.ttl_calculator = TTLCalculator()
        self.local_store = LocalStore()
        self.stats = CacheStats()

        self.circuit_breaker_threshold = circuit_breaker_threshold
        self.circuit_breaker_timeout = circuit_breaker_timeout
        self.consecutive_failures = 0
        self.circuit_open_time: Optional[datetime] = None

        logger.info(f"CacheManager initialized (valkey enabled: {self.config.enabled})")

    @property
    def local_mode(self) -> bool:
        """True when Valkey is disabled and the LocalStore is authoritative."""
        return self.client is None and not self.config.enabled

    async def initialize(self) -> None:
        """Connect to Valkey unless disabled; stay degraded if that fails."""
        if self.client or not self.config.enabled:
            return

        # kept even when the first connect fails; later commands reconnect through it
        self.client = ValkeyClient(self.config)
        try:
            await self.client.connect()
        except ValkeyConnectionError as e:
            logger.warning(f"Valkey unavailable, cache running degraded until it reconnects: {e}")
            if not self.enable_fallback:
                raise

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    @property
    def is_circuit_open(self) -> bool:
        if self.circuit_open_time is None:
            return False
        elapsed = (datetime.now() - self.circuit_open_time).total_seconds()
        if elapsed >= self.circuit_breaker_timeout:
            logger.info("Circuit breaker timeout expired, allowing retry")
            self.circuit_open_time = None
            return False
        return True

    def _record_error(self, error: Exception) -> None:
        self.stats.error_count += 1
        self.consecutive_failures += 1

        if isinstance(error, (ConnectionError, ValkeyConnectionError)):
            self.stats.connection_errors += 1
        elif isinstance(error, TimeoutError):
            self.stats.timeout_errors += 1
        else:
            self.stats.other_errors += 1

        if self.consecutive_failures >= self.circuit_breaker_threshold and self.circuit_open_time is None:
            self.circuit_open_time = datetime.now()
            logger.warning(f"Circuit breaker opened after {self.consecutive_failures} consecutive failures")

    def _record_success(self) -> None:
        self.consecutive_failures = 0
        if self.circuit_open_time is not None:
            self.circuit_open_time = None
            logger.info("Circuit breaker closed after successful operation")

    async def _run(
        self,
        operation: Callable[[ValkeyClient], Any],
        fallback: Optional[Callable[[], Any]] = None
    ) -> Any:
        """
        Run a Valkey command, or the fallback when there is no usable client.

        Returns:
            Command result, fallback result, or None
        """
        self.stats.total_operations += 1

        if self.client is not None and not self.is_circuit_open:
            try:
                await self.client.ensure_connection()
                result = operation(self.client)
                self._record_success()
                return result
            except (ConnectionError, TimeoutError, ResponseError, ValkeyConnectionError) as e:
                logger.warning(f"Cache operation failed: {e}")
                self._record_error(e)
            except Exception as e:
                logger.error(f"Unexpected error in cache operation: {e}")
                self._record_error(e)

        if fallback is None or not (self.enable_fallback or self.client is None):
            return None
        if self.client is not None:
            self.stats.fallback_operations += 1
        return fallback()

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Cached value for ``key``.

        JSON payloads are decoded; plain strings (such as the not-found
        marker) come back as stored.
        """
        def from_valkey(client: ValkeyClient) -> Any:
            raw = client.get(key)
            if raw is None:
                return None
            try:
                return json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                return raw

        value = await self._run(from_valkey, lambda: self.local_store.get(key))
        if value is None:
            self.stats.miss_count += 1
            return default
        self.stats.hit_count += 1
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[Union[int, TTLPreset]] = None,
        jitter: bool = True
    ) -> bool:
        """
        Store ``value`` under ``key``.

        Args:
            key: Cache key
            value: Dicts and lists are JSON encoded, everything else stored as str
            ttl: Seconds, clamped to TTLPreset.CACHE_MAX
            jitter: Randomize the TTL; the result still never exceeds the ceiling

        Returns:
            True if stored (in Valkey or the LocalStore)
        """
        final_ttl = None
        if ttl is not None:
            final_ttl = self.ttl_calculator.clamp(int(ttl))
            if jitter:
                final_ttl = self.ttl_calculator.calculate_ttl_with_jitter(
                    final_ttl, max_ttl=TTLPreset.CACHE_MAX
                )

        self.stats.set_count += 1
        serialized = json.dumps(value) if isinstance(value, (dict, list, tuple)) else str(value)

        def to_local() -> bool:
            self.local_store.set(key, value, final_ttl)
            return True

        return bool(await self._run(lambda client: client.put(key, serialized, final_ttl), to_local))

    async def delete(self, key: str) -> bool:
        self.stats.delete_count += 1
        result = await self._run(
            lambda client: client.delete([key]) > 0,
            lambda: self.local_store.delete(key)
        )
        return bool(result)

    async def delete_many(self, keys: Iterable[str]) -> int:
        """Delete several keys in one round trip; returns how many existed."""
        keys = list(keys)
        if not keys:
            return 0
        self.stats.delete_count += len(keys)
        result = await self._run(
            lambda client: client.delete(keys),
            lambda: sum(1 for key in keys if self.local_store.delete(key))
        )
        return result or 0

    async def get_ttl(self, key: str) -> Optional[int]:
        """Remaining TTL in seconds; None if missing or persistent."""
        return await self._run(lambda client: client.ttl(key), lambda: self.local_store.ttl(key))

    async def clear_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        def from_valkey(client: ValkeyClient) -> int:
            return client.delete(client.scan_keys(pattern))

        result = await self._run(from_valkey, lambda: self.local_store.clear_pattern(pattern))
        return result or 0

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """
        Atomically store ``value`` under ``key`` only if the key is unset.

        Refused outright when Valkey is configured but unusable.
        """
        if self.local_mode:
            granted = self.local_store.set_if_absent(key, value, ttl)
        elif self.client is None:
            logger.warning(f"Valkey unavailable, refusing lease on {key}")
            granted = False
        else:
            granted = bool(await self._run(lambda client: client.acquire_lease(key, value, ttl)))

        if granted:
            self.stats.lease_granted += 1
        else:
            self.stats.lease_refused += 1
        return granted

    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Atomically delete ``key`` if it still holds ``value``."""
        if self.local_mode:
            return self.local_store.delete_if_equals(key, value)
        if self.client is None:
            return False
        return bool(await self._run(lambda client: client.release_lease(key, value)))

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats.update({
            "circuit_breaker_open": self.is_circuit_open,
            "consecutive_failures": self.consecutive_failures,
            "fallback_enabled": self.enable_fallback,
            "local_store_size": len(self.local_store),
            "local_mode": self.local_mode,
        })
        return stats

    async def close(self) -> None:
        """Disconnect from Valkey and drop local entries."""
        if self.client:
            await self.client.disconnect()
            self.client = None
        self.local_store.clear()
        logger.info("CacheManager closed")
