"""
Caller-facing trip API.

Wraps the mutation engine, reader and search so that no call raises: each
method returns a structured result carrying either the data or an error
message fit to show a user.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from .airport_directory import AirportDirectory, DirectorySnapshot
from .airport_search import AirportSearch
from .geocode_cache import GeocodeCache, GeocoderClient
from .geocoder import Geocoder
from .location_resolver import LocationResolver
from .lock_manager import DistributedLockManager
from .trip_mutation import TripMutationEngine
from .trip_reader import TripReader
from ..cache.config import ValkeyConfig
from ..cache.manager import CacheManager
from ..database.config import DatabaseConfig
from ..database.row_store import RowStore
from ..models.errors import TripMapError, TripValidationError
from ..models.trip import generate_trip_id
from ..utils.config import AppConfig, get_config
from ..utils.dates import parse_date

logger = logging.getLogger(__name__)


class TripService:
    """Structured-result facade over trips, locations and airport search."""

    def __init__(
        self,
        row_store: RowStore,
        cache_manager: CacheManager,
        geocoder: GeocoderClient,
        lock_timeout_seconds: float = 10.0,
        lock_ttl_seconds: int = 30,
        airport_cache_ttl_seconds: int = 21600
    ):
        self.row_store = row_store
        self.cache = cache_manager

        self.snapshot = DirectorySnapshot(row_store)
        self.directory = AirportDirectory(
            row_store, cache_manager, snapshot=self.snapshot, ttl_seconds=airport_cache_ttl_seconds
        )
        self.airport_search = AirportSearch(self.directory, self.snapshot)
        self.geocode_cache = GeocodeCache(row_store, geocoder)
        self.resolver = LocationResolver(self.directory, self.geocode_cache, self.airport_search)
        self.reader = TripReader(row_store, self.resolver)
        self.lock_manager = DistributedLockManager(cache_manager)
        self.engine = TripMutationEngine(
            row_store,
            self.resolver,
            self.lock_manager,
            reader=self.reader,
            lock_timeout_seconds=lock_timeout_seconds,
            lock_ttl_seconds=lock_ttl_seconds,
        )

    @classmethod
    async def from_config(
        cls,
        config: Optional[AppConfig] = None,
        geocoder: Optional[GeocoderClient] = None,
        create_tables: bool = False
    ) -> "TripService":
        """
        Build a fully wired service from application settings.

        Args:
            config: Settings; loaded from the environment if omitted
            geocoder: Geocoder override (tests); defaults to the HTTP client
            create_tables: Create missing tables on startup
        """
        config = config or get_config()

        db_config = DatabaseConfig(config.database_url)
        db_config.initialize()
        if create_tables:
            db_config.create_tables()

        valkey_config = ValkeyConfig.from_env().with_overrides(
            enabled=config.use_valkey,
            host=config.valkey_host,
            port=config.valkey_port,
            password=config.valkey_password,
            database=config.valkey_database,
        )

        cache_manager = CacheManager(config=valkey_config)
        await cache_manager.initialize()

        if geocoder is None:
            geocoder = Geocoder(
                api_key=config.geocoder_api_key,
                base_url=config.geocoder_url,
                timeout_seconds=config.geocoder_timeout_seconds,
            )

        logger.info(f"TripService ready (database={db_config.db_type}, valkey={valkey_config.enabled})")
        return cls(
            RowStore(db_config),
            cache_manager,
            geocoder,
            lock_timeout_seconds=config.lock_timeout_seconds,
            lock_ttl_seconds=config.lock_ttl_seconds,
            airport_cache_ttl_seconds=config.airport_cache_ttl_seconds,
        )

    async def close(self) -> None:
        await self.cache.close()
        self.row_store.db.close()

    # ------------------------------------------------------------------
    # Trips
    # ------------------------------------------------------------------

    async def get_trip_data(self) -> Dict[str, Any]:
        try:
            return {"trips": await self.reader.get_trip_data()}
        except TripMapError as e:
            return {"trips": [], "error": str(e)}
        except Exception as e:
            logger.exception("Failed to read trips")
            return {"trips": [], "error": f"Unexpected error: {e}"}

    async def create_trip(self, trip_data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Create a trip; an id is derived from name and start year when absent."""
        try:
            trip = await self.engine.create(self._with_generated_id(trip_data))
            return {"success": True, "trip": trip}
        except TripMapError as e:
            logger.info(f"Create trip rejected: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.exception("Unexpected error creating trip")
            return {"success": False, "error": f"Unexpected error: {e}"}

    async def update_trip(self, trip_id: Optional[str], trip_data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        try:
            trip = await self.engine.update(trip_id, trip_data)
            return {"success": True, "trip": trip}
        except TripMapError as e:
            logger.info(f"Update of trip {trip_id} rejected: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.exception(f"Unexpected error updating trip {trip_id}")
            return {"success": False, "error": f"Unexpected error: {e}"}

    async def delete_trip(self, trip_id: Optional[str]) -> Dict[str, Any]:
        try:
            await self.engine.delete(trip_id)
            return {"success": True}
        except TripMapError as e:
            logger.info(f"Delete of trip {trip_id} rejected: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.exception(f"Unexpected error deleting trip {trip_id}")
            return {"success": False, "error": f"Unexpected error: {e}"}

    @staticmethod
    def _with_generated_id(trip_data: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
        """Fill in ``id`` from name and start year; leave missing fields to validation."""
        if not isinstance(trip_data, Mapping):
            return trip_data
        if str(trip_data.get("id") or "").strip():
            return trip_data

        name = str(trip_data.get("name") or "").strip()
        try:
            start = parse_date(trip_data.get("startDate", trip_data.get("start_date")), "startDate")
        except ValueError as e:
            raise TripValidationError(str(e)) from None
        if not name or start is None:
            return trip_data

        return {**trip_data, "id": generate_trip_id(name, start)}

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    async def search_airports(self, query: Optional[str], limit: int = 10) -> List[Dict[str, Any]]:
        try:
            return [s.model_dump() for s in self.airport_search.search(query, limit)]
        except Exception:
            logger.exception(f"Airport search failed for '{query}'")
            return []

    async def validate_airport(self, code: Optional[str]) -> Optional[Dict[str, Any]]:
        try:
            record = await self.airport_search.validate_airport(code)
        except Exception:
            logger.exception(f"Airport validation failed for '{code}'")
            return None
        return record.model_dump() if record else None

    async def search_locations(self, query: Optional[str], mode: Any = "flight", limit: int = 10) -> List[Dict[str, Any]]:
        try:
            return await self.resolver.search(query, mode, limit)
        except TripMapError as e:
            logger.info(f"Location search rejected: {e}")
            return []
        except Exception:
            logger.exception(f"Location search failed for '{query}'")
            return []

    async def clear_geocode_cache(self) -> Dict[str, Any]:
        try:
            return {"success": True, "cleared": self.geocode_cache.clear_cache()}
        except Exception as e:
            logger.exception("Failed to clear geocode cache")
            return {"success": False, "error": f"Unexpected error: {e}"}

    async def reload_airports(self, records) -> Dict[str, Any]:
        """Replace the airport directory (bulk loader seam)."""
        try:
            return {"success": True, "loaded": await self.directory.reload(records)}
        except Exception as e:
            logger.exception("Airport directory reload failed")
            return {"success": False, "error": f"Unexpected error: {e}"}
