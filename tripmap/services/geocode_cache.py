"""
Persistent geocode cache in front of the external geocoder.

Queries are keyed by their lowercased, trimmed text. Only successful
answers are stored, so a provider outage never leaves a cached miss behind.
The table is append-only; a benign race may add a duplicate row for the
same query, and lookups take the first match.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional, Protocol

from ..database.row_store import RowStore
from ..models.location import GeocodeResult

logger = logging.getLogger(__name__)

GEOCODE_TABLE = "geocode_cache"


class GeocoderClient(Protocol):
    def geocode(self, text: str) -> dict: ...


class GeocodeCache:
    """Read-through geocoding with a persistent, success-only cache."""

    def __init__(self, row_store: RowStore, geocoder: GeocoderClient):
        self.row_store = row_store
        self.geocoder = geocoder

    @staticmethod
    def normalize_query(address: Optional[str]) -> str:
        return (address or "").strip().lower()

    async def geocode(self, address: Optional[str]) -> Optional[GeocodeResult]:
        """
        Resolve a free-text address.

        Args:
            address: Address as typed; blank input is rejected without lookups

        Returns:
            GeocodeResult, or None when nothing matched or the geocoder failed
        """
        text = (address or "").strip()
        if not text:
            return None

        query = text.lower()
        cached = self._find(query)
        if cached is not None:
            logger.debug(f"Geocode cache hit: '{query}'")
            return cached

        result = await self._call_geocoder(text)
        if result is None:
            return None

        # Another request may have stored this query while we waited on the geocoder
        if self._find(query) is None:
            self.row_store.append_row(GEOCODE_TABLE, {
                "query": query,
                "name": result.name,
                "lat": result.lat,
                "lng": result.lng,
                "cached_at": datetime.now(),
            })
            logger.info(f"Cached geocode for '{query}' -> {result.name}")
        return result

    def _find(self, query: str) -> Optional[GeocodeResult]:
        row = self.row_store.find_row(GEOCODE_TABLE, query, "query")
        if row is None:
            return None
        return GeocodeResult(name=row["name"], lat=row["lat"], lng=row["lng"])

    async def _call_geocoder(self, text: str) -> Optional[GeocodeResult]:
        """Call the external geocoder with the original-cased text; any failure is a miss."""
        try:
            response: Any = await asyncio.to_thread(self.geocoder.geocode, text)
        except Exception as e:
            logger.warning(f"Geocoder raised for '{text}': {e}")
            return None

        if not isinstance(response, dict) or response.get("status") != "OK":
            return None
        results = response.get("results") or []
        if not results:
            return None

        first = results[0]
        try:
            return GeocodeResult(
                name=first.get("formattedAddress") or text,
                lat=first["lat"],
                lng=first["lng"],
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unusable geocoder result for '{text}': {e}")
            return None

    def clear_cache(self) -> int:
        """Delete every cached geocode; the airport directory is untouched."""
        removed = self.row_store.clear(GEOCODE_TABLE)
        logger.info(f"Geocode cache cleared ({removed} entries)")
        return removed
