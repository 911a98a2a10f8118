"""
Shared fixtures: in-memory SQLite row store, local-mode cache manager,
a fake geocoder and a dict-backed mock Valkey client.
"""

import fnmatch
import threading

import pytest
import pytest_asyncio

from tripmap.cache import CacheManager, ValkeyConfig
from tripmap.cache.client import ValkeyClient
from tripmap.database import DatabaseConfig, RowStore
from tripmap.services import (
    AirportDirectory,
    DirectorySnapshot,
    AirportSearch,
    GeocodeCache,
    LocationResolver,
    DistributedLockManager,
    TripService,
)


AIRPORTS = [
    {"code": "JFK", "name": "New York, John F Kennedy International", "lat": 40.6413, "lng": -73.7781},
    {"code": "LAX", "name": "Los Angeles, Los Angeles International", "lat": 33.9416, "lng": -118.4085},
    {"code": "NRT", "name": "Tokyo, Narita International", "lat": 35.772, "lng": 140.3929},
    {"code": "HND", "name": "Tokyo, Haneda", "lat": 35.5494, "lng": 139.7798},
    {"code": "CDG", "name": "Paris, Charles de Gaulle", "lat": 49.0097, "lng": 2.5479},
    {"code": "EWR", "name": "Newark, Liberty International", "lat": 40.6895, "lng": -74.1745},
    {"code": "NEW", "name": "New Orleans, Lakefront", "lat": 30.0424, "lng": -90.0283},
]

PLACES = {
    "paris, france": ("Paris, France", 48.8566, 2.3522),
    "lyon": ("Lyon, France", 45.764, 4.8357),
    "kyoto station": ("Kyoto Station, Kyoto, Japan", 34.9858, 135.7588),
    "osaka": ("Osaka, Japan", 34.6937, 135.5023),
}


class FakeGeocoder:
    """Geocoder double answering from a fixed table and recording every call."""

    def __init__(self, places=None):
        self.places = dict(PLACES if places is None else places)
        self.calls = []
        self.fail = False
        self.status_override = None
        self._lock = threading.Lock()

    def geocode(self, text):
        with self._lock:
            self.calls.append(text)
        if self.fail:
            raise RuntimeError("geocoder offline")
        if self.status_override:
            return {"status": self.status_override, "results": []}

        place = self.places.get(text.strip().lower())
        if place is None:
            return {"status": "ZERO_RESULTS", "results": []}
        name, lat, lng = place
        return {"status": "OK", "results": [{"formattedAddress": name, "lat": lat, "lng": lng}]}


class MockValkeyClient:
    """Dict-backed stand-in for the valkey client (SET NX EX, EVAL, SCAN)."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.fail = False

    def _check(self):
        if self.fail:
            from valkey.exceptions import ConnectionError
            raise ConnectionError("mock connection lost")

    def ping(self):
        return True

    def get(self, key):
        self._check()
        return self.data.get(key)

    def set(self, key, value, nx=False, ex=None):
        self._check()
        if nx and key in self.data:
            return None
        self.data[key] = value
        if ex:
            self.ttls[key] = ex
        return True

    def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def ttl(self, key):
        return self.ttls.get(key, -2)

    def eval(self, script, num_keys, *args):
        self._check()
        key, expected = args[0], args[1]
        if self.data.get(key) == expected:
            self.data.pop(key, None)
            self.ttls.pop(key, None)
            return 1
        return 0

    def scan_iter(self, match="*"):
        return [key for key in list(self.data) if fnmatch.fnmatchcase(key, match)]

    def close(self):
        pass


@pytest.fixture
def db_config():
    """Fresh in-memory database with all tables."""
    config = DatabaseConfig("sqlite:///:memory:")
    config.create_tables()
    yield config
    config.close()


@pytest.fixture
def row_store(db_config):
    return RowStore(db_config)


@pytest.fixture
def seeded_store(row_store):
    """Row store with the test airport directory loaded."""
    row_store.replace_all("airport_directory", AIRPORTS)
    return row_store


@pytest_asyncio.fixture
async def cache_manager():
    """Cache manager in local mode (Valkey disabled, in-process store)."""
    manager = CacheManager(client=None, config=ValkeyConfig(enabled=False))
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def mock_valkey():
    return MockValkeyClient()


@pytest_asyncio.fixture
async def valkey_cache_manager(mock_valkey):
    """Cache manager talking to the mock Valkey client."""
    config = ValkeyConfig(enabled=True, health_check_interval=3600)
    client = ValkeyClient(config)
    client._client = mock_valkey
    client._is_connected = True
    client._last_health_check = float("inf")

    manager = CacheManager(client=client, config=config, enable_fallback=True)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def directory(seeded_store, cache_manager):
    return AirportDirectory(seeded_store, cache_manager, DirectorySnapshot(seeded_store))


@pytest.fixture
def geocode_cache(seeded_store, geocoder):
    return GeocodeCache(seeded_store, geocoder)


@pytest.fixture
def airport_search(directory):
    return AirportSearch(directory)


@pytest.fixture
def resolver(directory, geocode_cache, airport_search):
    return LocationResolver(directory, geocode_cache, airport_search)


@pytest.fixture
def lock_manager(cache_manager):
    return DistributedLockManager(cache_manager, retry_delay=0.01)


@pytest.fixture
def service(seeded_store, cache_manager, geocoder):
    return TripService(
        seeded_store,
        cache_manager,
        geocoder,
        lock_timeout_seconds=0.3,
    )
