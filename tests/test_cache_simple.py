"""
Simple cache tests without a running Valkey instance.

Covers configuration, key naming, TTL handling, and the cache manager in
local mode and against a mocked Valkey client.
"""

import pytest
from unittest.mock import patch

from tripmap.cache import (
    CacheManager,
    ValkeyClient,
    ValkeyConfig,
    ValkeyConnectionError,
    CacheKeyPrefix,
    TTLPreset,
    NOT_FOUND_MARKER,
    CacheKeyBuilder,
    TTLCalculator,
    CacheKeyManager
)


class TestValkeyConfig:
    """Test Valkey configuration functionality."""

    def test_config_creation_with_defaults(self):
        """Test creating config with default values."""
        config = ValkeyConfig()
        assert config.enabled is True
        assert config.key_namespace == "tripmap"
        assert config.host == "localhost"
        assert config.port == 6379
        assert config.database == 0

    def test_config_from_env(self):
        """Test creating config from environment variables."""
        with patch.dict('os.environ', {
            'USE_VALKEY': 'false',
            'VALKEY_HOST': 'test-host',
            'VALKEY_PORT': '6380',
            'VALKEY_PASSWORD': 'test-pass',
            'VALKEY_DATABASE': '5',
            'VALKEY_KEY_NAMESPACE': 'trips-test'
        }):
            config = ValkeyConfig.from_env()
            assert config.enabled is False
            assert config.host == "test-host"
            assert config.port == 6380
            assert config.password == "test-pass"
            assert config.database == 5
            assert config.key_namespace == "trips-test"

    def test_config_to_connection_kwargs(self):
        """Test converting config to connection parameters."""
        config = ValkeyConfig(host="test-host", port=6380, password="test-pass", database=5)
        kwargs = config.to_connection_kwargs()
        assert kwargs["host"] == "test-host"
        assert kwargs["port"] == 6380
        assert kwargs["db"] == 5
        assert kwargs["password"] == "test-pass"

        pool_kwargs = config.to_connection_pool_kwargs()
        assert pool_kwargs["max_connections"] == config.max_connections

    def test_with_overrides_copies(self):
        """Test overrides return a new config and leave the original alone."""
        base = ValkeyConfig()
        changed = base.with_overrides(enabled=False, port=6390)
        assert changed.enabled is False
        assert changed.port == 6390
        assert base.enabled is True
        assert base.port == 6379

    def test_config_str_hides_password(self):
        """Test the string form masks the password."""
        config = ValkeyConfig(password="secret")
        assert "secret" not in str(config)
        assert "***" in str(config)


class TestCacheKeys:
    """Test key naming conventions."""

    def test_airport_key_is_flat(self):
        """Test airport entries use the airport_<CODE> form."""
        keys = CacheKeyManager()
        assert keys.airport_key("JFK") == "airport_JFK"
        assert keys.airport_pattern() == "airport_*"

    def test_lock_key_is_namespaced(self):
        """Test lock keys carry the namespace."""
        assert CacheKeyManager("tripmap").lock_key("trips") == "tripmap:lock:trips"
        assert CacheKeyManager("other").lock_key("trips") == "other:lock:trips"

    def test_build_key_with_enum_prefix_and_params(self):
        """Test the builder uses enum values and sorts keyword params."""
        key = CacheKeyBuilder.build_key(CacheKeyPrefix.LOCK, "trips", b=2, a=1)
        assert key == "lock:trips:a=1:b=2"
        assert CacheKeyBuilder.build_pattern("tripmap", "lock", "*") == "tripmap:lock:*"


class TestTTLCalculator:
    """Test TTL helpers."""

    def test_presets(self):
        """Test the cache ceiling and the airport TTL agree."""
        assert TTLPreset.CACHE_MAX == 21600
        assert TTLPreset.AIRPORT_INFO == TTLPreset.CACHE_MAX
        assert TTLPreset.TRIP_LOCK == 30

    def test_jitter_respects_ceiling(self):
        """Test jittered TTLs never exceed max_ttl."""
        for _ in range(50):
            ttl = TTLCalculator.calculate_ttl_with_jitter(21600, max_ttl=21600)
            assert 30 <= ttl <= 21600

    def test_clamp(self):
        """Test TTL clamping to [1, ceiling]."""
        assert TTLCalculator.clamp(999999) == 21600
        assert TTLCalculator.clamp(0) == 1
        assert TTLCalculator.clamp(120) == 120


class TestCacheManagerLocalMode:
    """Test the in-process store used when Valkey is disabled."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self, cache_manager):
        """Test basic operations against the fallback store."""
        assert cache_manager.local_mode is True
        assert await cache_manager.get("airport_JFK") is None

        await cache_manager.set("airport_JFK", {"code": "JFK"}, ttl=60, jitter=False)
        assert await cache_manager.get("airport_JFK") == {"code": "JFK"}
        assert 0 < await cache_manager.get_ttl("airport_JFK") <= 60

        assert await cache_manager.delete("airport_JFK") is True
        assert await cache_manager.get("airport_JFK") is None

    @pytest.mark.asyncio
    async def test_set_if_absent_and_compare_delete(self, cache_manager):
        """Test lease primitives in local mode."""
        assert await cache_manager.set_if_absent("lease", "owner-a", 30) is True
        assert await cache_manager.set_if_absent("lease", "owner-b", 30) is False

        assert await cache_manager.delete_if_equals("lease", "owner-b") is False
        assert await cache_manager.delete_if_equals("lease", "owner-a") is True
        assert await cache_manager.set_if_absent("lease", "owner-b", 30) is True

    @pytest.mark.asyncio
    async def test_clear_pattern_and_delete_many(self, cache_manager):
        """Test bulk removal."""
        for code in ("JFK", "LAX", "CDG"):
            await cache_manager.set(f"airport_{code}", NOT_FOUND_MARKER, ttl=60)
        await cache_manager.set("tripmap:lock:trips", "x", ttl=30)

        assert await cache_manager.delete_many(["airport_JFK", "airport_XXX"]) == 1
        assert await cache_manager.clear_pattern("airport_*") == 2
        assert await cache_manager.get("tripmap:lock:trips") == "x"


class TestCacheManagerWithValkey:
    """Test the cache manager against a mocked Valkey client."""

    @pytest.mark.asyncio
    async def test_json_and_marker_round_trip(self, valkey_cache_manager, mock_valkey):
        """Test dicts are JSON encoded and plain strings come back as stored."""
        await valkey_cache_manager.set("airport_JFK", {"code": "JFK", "lat": 1.0}, ttl=21600, jitter=False)
        await valkey_cache_manager.set("airport_ZZZ", NOT_FOUND_MARKER, ttl=21600, jitter=False)

        assert mock_valkey.ttls["airport_JFK"] == 21600
        assert await valkey_cache_manager.get("airport_JFK") == {"code": "JFK", "lat": 1.0}
        assert await valkey_cache_manager.get("airport_ZZZ") == NOT_FOUND_MARKER

    @pytest.mark.asyncio
    async def test_ttl_clamped_to_ceiling(self, valkey_cache_manager, mock_valkey):
        """Test requested TTLs above six hours are clamped."""
        await valkey_cache_manager.set("airport_JFK", {"code": "JFK"}, ttl=100000, jitter=False)
        assert mock_valkey.ttls["airport_JFK"] == 21600

    @pytest.mark.asyncio
    async def test_lease_refused_when_valkey_fails(self, valkey_cache_manager, mock_valkey):
        """Test set_if_absent never falls back to a local lease while Valkey is configured."""
        mock_valkey.fail = True
        assert await valkey_cache_manager.set_if_absent("lease", "owner", 30) is False
        assert valkey_cache_manager.local_store.get("lease") is None

    @pytest.mark.asyncio
    async def test_reads_degrade_to_fallback(self, valkey_cache_manager, mock_valkey):
        """Test read failures look like misses."""
        mock_valkey.fail = True
        assert await valkey_cache_manager.get("airport_JFK") is None
        stats = await valkey_cache_manager.get_stats()
        assert stats["error_count"] >= 1
        assert stats["local_mode"] is False

    @pytest.mark.asyncio
    async def test_compare_and_delete(self, valkey_cache_manager, mock_valkey):
        """Test owner-checked deletion through EVAL."""
        assert await valkey_cache_manager.set_if_absent("lease", "owner-a", 30) is True
        assert await valkey_cache_manager.delete_if_equals("lease", "owner-b") is False
        assert "lease" in mock_valkey.data
        assert await valkey_cache_manager.delete_if_equals("lease", "owner-a") is True
        assert "lease" not in mock_valkey.data

    @pytest.mark.asyncio
    async def test_disabled_config_never_connects(self):
        """Test initialize() is a no-op when Valkey is disabled."""
        manager = CacheManager(client=None, config=ValkeyConfig(enabled=False))
        await manager.initialize()
        assert manager.client is None
        assert manager.local_mode is True


class TestCacheManagerReconnect:
    """Test recovery when Valkey is down at startup."""

    @pytest.mark.asyncio
    async def test_reconnects_after_failed_startup(self, monkeypatch, mock_valkey):
        """Test leases are refused while Valkey is down and granted once it returns."""
        server_up = False

        async def fake_connect(client, max_attempts=None):
            if not server_up:
                raise ValkeyConnectionError("connection refused")
            client._client = mock_valkey
            client._is_connected = True

        monkeypatch.setattr(ValkeyClient, "connect", fake_connect)

        manager = CacheManager(config=ValkeyConfig(enabled=True), circuit_breaker_timeout=0)
        await manager.initialize()
        assert manager.client is not None
        assert manager.client.is_connected is False
        assert manager.local_mode is False

        assert await manager.set_if_absent("tripmap:lock:trips", "owner-a", 30) is False
        assert "tripmap:lock:trips" not in mock_valkey.data

        server_up = True
        assert await manager.set_if_absent("tripmap:lock:trips", "owner-a", 30) is True
        assert mock_valkey.data["tripmap:lock:trips"] == "owner-a"
        assert manager.client.is_connected is True
        await manager.close()

    @pytest.mark.asyncio
    async def test_startup_failure_raises_without_fallback(self, monkeypatch):
        """Test a strict manager surfaces the startup connection error."""
        async def fake_connect(client, max_attempts=None):
            raise ValkeyConnectionError("connection refused")

        monkeypatch.setattr(ValkeyClient, "connect", fake_connect)

        manager = CacheManager(config=ValkeyConfig(enabled=True), enable_fallback=False)
        with pytest.raises(ValkeyConnectionError):
            await manager.initialize()
