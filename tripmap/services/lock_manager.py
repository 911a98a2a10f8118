"""
Lease-based lock used to serialize trip mutations.

A lease is a cache key written with ``SET NX EX`` whose value names its
holder. Release deletes the key only while it still carries that value, so a
holder whose lease ran out cannot free a lock already granted to another
caller. Waiters poll until a deadline and then give up.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from ..cache.manager import CacheManager
from ..cache.utils import CacheKeyManager, TTLPreset

logger = logging.getLogger(__name__)

MAX_LOCK_TTL_SECONDS = 300


@dataclass
class LockInfo:
    """A lease held by this process."""
    lock_key: str
    lock_value: str
    ttl_seconds: int
    owner_id: str
    attempts: int = 1
    wait_time_ms: float = 0.0
    acquired_at: float = field(default_factory=time.time)

    @property
    def expires_at(self) -> float:
        return self.acquired_at + self.ttl_seconds

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lock_key": self.lock_key,
            "owner_id": self.owner_id,
            "ttl_seconds": self.ttl_seconds,
            "attempts": self.attempts,
            "wait_time_ms": round(self.wait_time_ms, 1),
            "remaining_seconds": max(0.0, round(self.expires_at - time.time(), 1)),
            "is_expired": self.is_expired,
        }


class DistributedLockManager:
    """
    Grants and releases named leases through the cache manager.

    With Valkey connected the lease lives on the server and is shared by every
    process. In local mode it lives in the cache manager's in-process store.
    While Valkey is configured but unreachable no lease is ever granted.
    """

    def __init__(self, cache_manager: CacheManager, retry_delay: float = 0.1):
        self.cache = cache_manager
        self.keys = CacheKeyManager(cache_manager.config.key_namespace)
        self.owner_id = uuid.uuid4().hex[:8]
        self.retry_delay = retry_delay
        self.default_lock_ttl = int(TTLPreset.TRIP_LOCK)
        self.max_lock_ttl = MAX_LOCK_TTL_SECONDS
        self._held: Dict[str, LockInfo] = {}

        logger.info(f"Lock manager ready (owner {self.owner_id})")

    def _lease_ttl(self, ttl_seconds: Optional[int]) -> int:
        return max(1, min(ttl_seconds or self.default_lock_ttl, self.max_lock_ttl))

    async def acquire_lock(
        self,
        resource_key: str,
        ttl_seconds: Optional[int] = None,
        timeout_seconds: float = 10.0,
        retry_delay: Optional[float] = None
    ) -> Optional[LockInfo]:
        """
        Wait up to ``timeout_seconds`` for the lease on ``resource_key``.

        Args:
            resource_key: Name of the locked resource, e.g. ``"trips"``
            ttl_seconds: Lease lifetime, capped at ``max_lock_ttl``
            timeout_seconds: How long to keep polling
            retry_delay: Pause between polls

        Returns:
            The granted lease, or None if the deadline passed first
        """
        ttl = self._lease_ttl(ttl_seconds)
        pause = retry_delay or self.retry_delay
        key = self.keys.lock_key(resource_key)
        token = f"{self.owner_id}:{uuid.uuid4().hex}"

        started = time.monotonic()
        deadline = started + timeout_seconds
        attempts = 0
        while True:
            attempts += 1
            if await self.cache.set_if_absent(key, token, ttl):
                lease = LockInfo(
                    lock_key=key,
                    lock_value=token,
                    ttl_seconds=ttl,
                    owner_id=self.owner_id,
                    attempts=attempts,
                    wait_time_ms=(time.monotonic() - started) * 1000,
                )
                self._held[key] = lease
                logger.debug(f"Acquired {key} after {attempts} attempt(s), {lease.wait_time_ms:.1f}ms")
                return lease

            left = deadline - time.monotonic()
            if left <= 0:
                break
            await asyncio.sleep(min(pause, left))

        waited = (time.monotonic() - started) * 1000
        logger.warning(f"Gave up on {key} after {attempts} attempt(s), {waited:.1f}ms")
        return None

    async def release_lock(self, lock_info: LockInfo) -> bool:
        """
        Free a lease if this holder still owns it.

        Returns:
            False when the lease had expired or passed to another holder
        """
        self._held.pop(lock_info.lock_key, None)
        if await self.cache.delete_if_equals(lock_info.lock_key, lock_info.lock_value):
            logger.debug(f"Released {lock_info.lock_key}")
            return True
        logger.warning(f"Lease on {lock_info.lock_key} was no longer ours at release")
        return False

    @asynccontextmanager
    async def lock_context(
        self,
        resource_key: str,
        ttl_seconds: Optional[int] = None,
        timeout_seconds: float = 10.0
    ) -> AsyncIterator[Optional[LockInfo]]:
        """
        Hold the lease for the duration of an ``async with`` block.

        Yields None when the lease could not be acquired in time.
        """
        lease = await self.acquire_lock(resource_key, ttl_seconds, timeout_seconds)
        try:
            yield lease
        finally:
            if lease is not None:
                await self.release_lock(lease)

    def get_active_locks(self) -> List[Dict[str, Any]]:
        """Leases this process believes it holds."""
        return [lease.to_dict() for lease in self._held.values()]
