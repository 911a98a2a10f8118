"""
Lock-free read path for trips.

Reads run concurrently with mutations and may see a torn state, for
example legs whose trip row has just been deleted. Such orphan legs are
dropped, and endpoints that no longer resolve come back as None instead of
failing the read.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from .location_resolver import LocationResolver
from ..database.row_store import RowStore
from ..models.enums import TransportMode
from ..models.errors import TripMapError
from ..utils.dates import format_date

logger = logging.getLogger(__name__)

TRIPS_TABLE = "trips"
LEGS_TABLE = "legs"


class TripReader:
    """Builds trip payloads with resolved leg endpoints."""

    def __init__(self, row_store: RowStore, resolver: LocationResolver):
        self.row_store = row_store
        self.resolver = resolver

    async def get_trip_data(self) -> List[Dict[str, Any]]:
        """All trips in storage order, each with its ordered, resolved legs."""
        self.row_store.ensure_available()
        trips = self.row_store.get_rows(TRIPS_TABLE)
        legs_by_trip = self._group_legs(self.row_store.get_rows(LEGS_TABLE))

        payloads = []
        for trip in trips:
            payloads.append(await self.build_trip(trip, legs_by_trip.get(trip["id"], [])))
        return payloads

    async def get_trip(self, trip_id: str) -> Optional[Dict[str, Any]]:
        """One trip payload, or None if no trip has this id."""
        trip = self.row_store.find_row(TRIPS_TABLE, trip_id, "id")
        if trip is None:
            return None

        legs = [leg for leg in self.row_store.get_rows(LEGS_TABLE) if leg["trip_id"] == trip_id]
        return await self.build_trip(trip, legs)

    @staticmethod
    def _group_legs(legs: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for leg in legs:
            grouped[leg["trip_id"]].append(leg)
        return grouped

    async def build_trip(self, trip: Dict[str, Any], legs: List[Dict[str, Any]]) -> Dict[str, Any]:
        ordered = sorted(legs, key=lambda leg: leg["order"])
        return {
            "id": trip["id"],
            "name": trip["name"],
            "startDate": format_date(trip["start_date"]),
            "endDate": format_date(trip["end_date"]),
            "legs": [await self.build_leg(leg) for leg in ordered],
        }

    async def build_leg(self, leg: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "order": leg["order"],
            "origin": leg["origin"],
            "destination": leg["destination"],
            "departureDate": format_date(leg["departure_date"]),
            "arrivalDate": format_date(leg["arrival_date"]),
            "mode": leg["mode"],
            "originLocation": await self._resolve(leg["origin"], leg["mode"]),
            "destinationLocation": await self._resolve(leg["destination"], leg["mode"]),
        }

    async def _resolve(self, location: str, mode: str) -> Optional[Dict[str, Any]]:
        try:
            resolved = await self.resolver.resolve(location, TransportMode.parse(mode))
        except TripMapError as e:
            logger.warning(f"Cannot resolve stored endpoint '{location}' ({mode}): {e}")
            return None
        return resolved.to_payload() if resolved else None
