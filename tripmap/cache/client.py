"""
Valkey connection for the tripmap cache tier.

Owns a pooled ``valkey.Valkey`` handle and exposes the handful of commands
the airport cache and the trip lock need: plain reads and TTL writes,
``SET NX EX`` leases with a compare-and-delete release, and pattern scans
for bulk invalidation.
"""

import asyncio
import logging
import time
from typing import Iterable, List, Optional

import valkey
from valkey.connection import ConnectionPool
from valkey.exceptions import ConnectionError, TimeoutError

from .config import ValkeyConfig, ValkeyConnectionError

logger = logging.getLogger(__name__)

# Deletes KEYS[1] only while it still holds ARGV[1]
COMPARE_AND_DELETE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class ValkeyClient:
    """
    Pooled Valkey connection with reconnect and rate-limited health checks.

    Reconnection backs off exponentially between attempts, from
    ``reconnect_delay`` up to ``max_reconnect_delay``.
    """

    def __init__(
        self,
        config: Optional[ValkeyConfig] = None,
        max_attempts: int = 3,
        reconnect_delay: float = 0.5,
        max_reconnect_delay: float = 5.0
    ):
        self.config = config or ValkeyConfig.from_env()
        self.max_attempts = max_attempts
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay

        self._client: Optional[valkey.Valkey] = None
        self._connection_pool: Optional[ConnectionPool] = None
        self._is_connected = False
        self._last_health_check = 0.0

        logger.info(f"Valkey client configured: {self.config}")

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, max_attempts: Optional[int] = None) -> None:
        """
        Open the pool and ping the server, retrying with backoff.

        Args:
            max_attempts: Override for the configured attempt count

        Raises:
            ValkeyConnectionError: If every attempt fails
        """
        if self.is_connected:
            return

        attempts = max_attempts or self.max_attempts
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                self._connection_pool = ConnectionPool(**self.config.to_connection_pool_kwargs())
                self._client = valkey.Valkey(connection_pool=self._connection_pool)
                await self._ping()
                self._is_connected = True
                self._last_health_check = time.time()
                logger.info(f"Connected to Valkey at {self.config.host}:{self.config.port}")
                return
            except (ConnectionError, TimeoutError, OSError, ValkeyConnectionError) as e:
                last_error = e
                logger.warning(f"Valkey connection attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    await asyncio.sleep(
                        min(self.reconnect_delay * (2 ** (attempt - 1)), self.max_reconnect_delay)
                    )

        message = f"Failed to connect to Valkey after {attempts} attempts: {last_error}"
        logger.error(message)
        raise ValkeyConnectionError(message) from last_error

    async def disconnect(self) -> None:
        """Release pooled connections."""
        if self._connection_pool:
            try:
                self._connection_pool.disconnect()
                logger.info("Disconnected from Valkey")
            except Exception as e:
                logger.warning(f"Error during Valkey disconnect: {e}")
        self._connection_pool = None
        self._client = None
        self._is_connected = False

    async def _ping(self) -> None:
        if not self._client:
            raise ValkeyConnectionError("Client not initialized")
        try:
            healthy = self._client.ping()
        except Exception as e:
            raise ValkeyConnectionError(f"Ping failed: {e}") from e
        if not healthy:
            raise ValkeyConnectionError("Ping returned False")

    async def health_check(self, force: bool = False) -> bool:
        """
        Ping at most once per ``health_check_interval`` unless forced.

        Returns:
            True if the connection is usable
        """
        now = time.time()
        if not force and (now - self._last_health_check) < self.config.health_check_interval:
            return self._is_connected
        self._last_health_check = now

        if not self.is_connected:
            return False
        try:
            await self._ping()
            return True
        except ValkeyConnectionError as e:
            logger.warning(f"Valkey health check failed: {e}")
            self._is_connected = False
            return False

    async def ensure_connection(self) -> None:
        """
        Reconnect, with a single attempt, if the last health check failed.

        Raises:
            ValkeyConnectionError: If reconnection fails
        """
        if not await self.health_check():
            logger.info("Valkey connection unhealthy, reconnecting")
            self._is_connected = False
            await self.connect(max_attempts=1)

    @property
    def is_connected(self) -> bool:
        return self._is_connected and self._client is not None

    @property
    def client(self) -> valkey.Valkey:
        """
        Underlying valkey handle.

        Raises:
            ValkeyConnectionError: If not connected
        """
        if not self.is_connected:
            raise ValkeyConnectionError("Client not connected. Call connect() first.")
        return self._client

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """SETEX when a TTL is given, plain SET otherwise."""
        if ttl:
            return bool(self.client.setex(key, ttl, value))
        return bool(self.client.set(key, value))

    def delete(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        if not keys:
            return 0
        return int(self.client.delete(*keys))

    def ttl(self, key: str) -> Optional[int]:
        """Remaining TTL in seconds; None for missing or persistent keys."""
        remaining = self.client.ttl(key)
        return remaining if remaining and remaining > 0 else None

    def acquire_lease(self, key: str, value: str, ttl: int) -> bool:
        """``SET key value NX EX ttl``."""
        return bool(self.client.set(key, value, nx=True, ex=ttl))

    def release_lease(self, key: str, value: str) -> bool:
        """Delete ``key`` only if it still holds ``value``."""
        return bool(self.client.eval(COMPARE_AND_DELETE_SCRIPT, 1, key, value))

    def scan_keys(self, pattern: str) -> List[str]:
        return list(self.client.scan_iter(match=pattern))

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
