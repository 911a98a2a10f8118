"""
Valkey settings for the tripmap cache tier.

The cache tier holds airport lookups (positive and not-found entries) and the
store-wide trip lock. With ``enabled`` off the cache manager never opens a
connection and serves everything from its in-process store.
"""

import os
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

ENV_PREFIX = "VALKEY_"
_TRUTHY = ("true", "1", "yes", "on")


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in _TRUTHY


@dataclass
class ValkeyConfig:
    """
    Connection and pool settings for one Valkey server.

    ``key_namespace`` prefixes the lock keys so several deployments can
    share a server; airport entries keep their flat ``airport_<CODE>`` form.
    """

    enabled: bool = True
    key_namespace: str = "tripmap"
    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    database: int = 0
    max_connections: int = 10
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    retry_on_timeout: bool = True
    health_check_interval: int = 30
    decode_responses: bool = True

    @classmethod
    def from_env(cls) -> "ValkeyConfig":
        """
        Read ``USE_VALKEY`` and the ``VALKEY_*`` variables.

        Unset variables keep the dataclass defaults.
        """
        defaults = cls()
        return cls(
            enabled=_env_bool(os.getenv("USE_VALKEY", str(defaults.enabled))),
            key_namespace=_env("KEY_NAMESPACE", defaults.key_namespace),
            host=_env("HOST", defaults.host),
            port=int(_env("PORT", str(defaults.port))),
            password=_env("PASSWORD", "") or None,
            database=int(_env("DATABASE", str(defaults.database))),
            max_connections=int(_env("MAX_CONNECTIONS", str(defaults.max_connections))),
            socket_timeout=float(_env("SOCKET_TIMEOUT", str(defaults.socket_timeout))),
            socket_connect_timeout=float(
                _env("SOCKET_CONNECT_TIMEOUT", str(defaults.socket_connect_timeout))
            ),
            retry_on_timeout=_env_bool(_env("RETRY_ON_TIMEOUT", str(defaults.retry_on_timeout))),
            health_check_interval=int(
                _env("HEALTH_CHECK_INTERVAL", str(defaults.health_check_interval))
            ),
            decode_responses=_env_bool(_env("DECODE_RESPONSES", str(defaults.decode_responses))),
        )

    def with_overrides(self, **changes: Any) -> "ValkeyConfig":
        """Copy with the given fields replaced."""
        return replace(self, **changes)

    def to_connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``valkey.Valkey``."""
        kwargs: Dict[str, Any] = dict(
            host=self.host,
            port=self.port,
            db=self.database,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_connect_timeout,
            retry_on_timeout=self.retry_on_timeout,
            decode_responses=self.decode_responses,
        )
        if self.password:
            kwargs["password"] = self.password
        return kwargs

    def to_connection_pool_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``valkey.ConnectionPool``."""
        return {**self.to_connection_kwargs(), "max_connections": self.max_connections}

    def __str__(self) -> str:
        secret = "***" if self.password else "None"
        state = "enabled" if self.enabled else "disabled"
        return (
            f"ValkeyConfig({state}, {self.host}:{self.port}/{self.database}, "
            f"password={secret}, namespace={self.key_namespace}, "
            f"max_connections={self.max_connections})"
        )


class ValkeyConnectionError(Exception):
    """Raised when the Valkey server cannot be reached."""