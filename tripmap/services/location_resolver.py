"""
Mode-aware resolution of leg endpoints.

Flights resolve through the airport directory by code. Every other mode
resolves free text through the geocode cache.
"""

import logging
from typing import Any, Dict, List, Optional

from .airport_directory import AirportDirectory
from .airport_search import AirportSearch
from .geocode_cache import GeocodeCache
from ..models.enums import TransportMode
from ..models.location import ResolvedLocation

logger = logging.getLogger(__name__)


class LocationResolver:
    """Resolve a location string to coordinates according to its transport mode."""

    def __init__(
        self,
        directory: AirportDirectory,
        geocode_cache: GeocodeCache,
        airport_search: Optional[AirportSearch] = None
    ):
        self.directory = directory
        self.geocode_cache = geocode_cache
        self.airport_search = airport_search or AirportSearch(directory)

    async def resolve(self, location: Optional[str], mode: Any = TransportMode.FLIGHT) -> Optional[ResolvedLocation]:
        """
        Resolve an endpoint.

        Args:
            location: Airport code for flights, free text otherwise
            mode: TransportMode or its tag; blank means flight

        Returns:
            ResolvedLocation (with ``code`` for flights), or None if unresolved

        Raises:
            TripValidationError: If ``mode`` is not a known tag
        """
        text = (location or "").strip()
        if not text:
            return None

        mode = TransportMode.parse(mode)
        if mode.uses_airport_codes:
            airport = await self.directory.lookup(text.upper())
            if airport is None:
                return None
            return ResolvedLocation(code=airport.code, name=airport.name, lat=airport.lat, lng=airport.lng)

        place = await self.geocode_cache.geocode(text)
        if place is None:
            return None
        return ResolvedLocation(name=place.name, lat=place.lat, lng=place.lng)

    async def validate(self, location: Optional[str], mode: Any = TransportMode.FLIGHT) -> bool:
        return await self.resolve(location, mode) is not None

    async def search(self, query: Optional[str], mode: Any = TransportMode.FLIGHT, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Location suggestions for an input box.

        Flights get ranked airport suggestions; other modes get at most one
        geocoded place.
        """
        mode = TransportMode.parse(mode)
        if mode.uses_airport_codes:
            return [s.model_dump() for s in self.airport_search.search(query, limit)]

        if limit < 1:
            return []
        place = await self.resolve(query, mode)
        return [place.to_payload()] if place else []
