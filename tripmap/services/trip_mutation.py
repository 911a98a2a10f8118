"""
Trip mutation engine.

Every mutation follows the same shape:

    validate -> acquire lock -> check existence -> write -> release -> respond

Location lookups (directory scans, geocoder calls) are slow and may fail,
so they all happen before the store-wide lock is taken. The response is
built after the lock is released. Only the existence checks and the row
writes run inside the critical section.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .location_resolver import LocationResolver
from .lock_manager import DistributedLockManager
from .trip_reader import LEGS_TABLE, TRIPS_TABLE, TripReader
from ..cache.utils import TTLPreset
from ..database.row_store import RowStore
from ..models.errors import ConflictError, LockTimeoutError, TripValidationError
from ..models.trip import LegInput, TripInput

logger = logging.getLogger(__name__)

TRIPS_LOCK_RESOURCE = "trips"


class TripMutationEngine:
    """Creates, replaces and deletes trips under a single store-wide lock."""

    def __init__(
        self,
        row_store: RowStore,
        resolver: LocationResolver,
        lock_manager: DistributedLockManager,
        reader: Optional[TripReader] = None,
        lock_timeout_seconds: float = 10.0,
        lock_ttl_seconds: int = TTLPreset.TRIP_LOCK
    ):
        self.row_store = row_store
        self.resolver = resolver
        self.lock_manager = lock_manager
        self.reader = reader or TripReader(row_store, resolver)
        self.lock_timeout_seconds = lock_timeout_seconds
        self.lock_ttl_seconds = int(lock_ttl_seconds)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def create(self, trip_data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Create a trip with its legs.

        Returns:
            The stored trip payload with resolved endpoints

        Raises:
            TripValidationError: Malformed input or an endpoint that does not resolve
            ConflictError: A trip with this id already exists
            LockTimeoutError: The store lock was not acquired in time
            StoreUnavailableError: Backing tables are missing
        """
        self.row_store.ensure_available()
        trip = TripInput.from_payload(trip_data)
        legs = await self._validate_legs(trip.legs)

        async with self._store_lock("create"):
            if self._find_trip(trip.id) is not None:
                raise ConflictError(f"Trip ID already exists: {trip.id}")

            try:
                trip_fields = self._trip_fields(trip)
                self.row_store.append_row(TRIPS_TABLE, trip_fields)
                leg_fields = self._append_legs(trip.id, legs)
            except Exception:
                self._rollback_create(trip.id)
                raise

        logger.info(f"Trip created: {trip.id} ({len(legs)} legs)")
        return await self.reader.build_trip(trip_fields, leg_fields)

    async def update(self, trip_id: Optional[str], trip_data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Replace a trip's header fields and its whole leg list.

        The trip id is immutable; an ``id`` inside ``trip_data`` is ignored.

        Raises:
            TripValidationError, ConflictError, LockTimeoutError, StoreUnavailableError
        """
        trip_id = self._require_id(trip_id)
        self.row_store.ensure_available()
        trip = TripInput.from_payload(trip_data, trip_id=trip_id)
        legs = await self._validate_legs(trip.legs)

        async with self._store_lock("update"):
            position = self._find_trip(trip_id)
            if position is None:
                raise ConflictError(f"Trip not found: {trip_id}")

            previous = self._snapshot(trip_id, position)
            try:
                trip_fields = self._trip_fields(trip)
                for column in ("name", "start_date", "end_date"):
                    self.row_store.update_cell(TRIPS_TABLE, position, column, trip_fields[column])
                self._delete_legs(trip_id)
                leg_fields = self._append_legs(trip_id, legs)
            except Exception:
                self._rollback_update(trip_id, previous)
                raise

        logger.info(f"Trip updated: {trip_id} ({len(legs)} legs)")
        return await self.reader.build_trip(trip_fields, leg_fields)

    async def delete(self, trip_id: Optional[str]) -> None:
        """
        Delete a trip and, first, all of its legs.

        Raises:
            ConflictError: No trip with this id
            LockTimeoutError, StoreUnavailableError
        """
        trip_id = self._require_id(trip_id)
        self.row_store.ensure_available()

        async with self._store_lock("delete"):
            position = self._find_trip(trip_id)
            if position is None:
                raise ConflictError(f"Trip not found: {trip_id}")

            removed = self._delete_legs(trip_id)
            self.row_store.delete_row(TRIPS_TABLE, position)

        logger.info(f"Trip deleted: {trip_id} ({removed} legs)")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _require_id(trip_id: Optional[str]) -> str:
        text = "" if trip_id is None else str(trip_id).strip()
        if not text:
            raise TripValidationError("Missing required field: id")
        return text

    async def _validate_legs(self, raw_legs: List[Any]) -> List[LegInput]:
        """
        Parse and resolve each leg in order.

        The first failing leg is reported with its 1-based index, whether it
        is malformed or names a location that does not resolve.
        """
        legs = []
        for index, raw in enumerate(raw_legs, start=1):
            leg = LegInput.from_payload(raw, index)
            if leg.departure_date is None:
                raise TripValidationError(f"Leg {index}: departure date is required")

            for field, location in (("origin", leg.origin), ("destination", leg.destination)):
                if not location:
                    raise TripValidationError(f"Leg {index}: {field} is required")
                if await self.resolver.resolve(location, leg.mode) is None:
                    if leg.mode.uses_airport_codes:
                        raise TripValidationError(f"Leg {index}: airport code '{location.upper()}' not found")
                    raise TripValidationError(f"Leg {index}: location '{location}' not found")
            legs.append(leg)
        return legs

    # ------------------------------------------------------------------
    # Lock and row helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _store_lock(self, operation: str):
        lock_info = await self.lock_manager.acquire_lock(
            TRIPS_LOCK_RESOURCE,
            ttl_seconds=self.lock_ttl_seconds,
            timeout_seconds=self.lock_timeout_seconds,
        )
        if lock_info is None:
            raise LockTimeoutError(
                f"Could not acquire trip lock within {self.lock_timeout_seconds:g}s; try again"
            )

        logger.info(f"Trip lock acquired for {operation} (waited {lock_info.wait_time_ms:.0f}ms)")
        try:
            yield lock_info
        finally:
            await self.lock_manager.release_lock(lock_info)
            logger.info(f"Trip lock released after {operation}")

    def _find_trip(self, trip_id: str) -> Optional[int]:
        """Row position of the trip, by exact case-sensitive id match."""
        return self.row_store.find_exact_match(TRIPS_TABLE, trip_id, "id")

    @staticmethod
    def _trip_fields(trip: TripInput) -> Dict[str, Any]:
        return {
            "id": trip.id,
            "name": trip.name,
            "start_date": trip.start_date,
            "end_date": trip.end_date,
        }

    def _leg_positions(self, trip_id: str) -> List[int]:
        return [
            position
            for position, row in enumerate(self.row_store.get_rows(LEGS_TABLE), start=1)
            if row["trip_id"] == trip_id
        ]

    def _delete_legs(self, trip_id: str) -> int:
        """Delete every leg of a trip, highest position first so positions stay valid."""
        positions = self._leg_positions(trip_id)
        for position in reversed(positions):
            self.row_store.delete_row(LEGS_TABLE, position)
        return len(positions)

    def _append_legs(self, trip_id: str, legs: List[LegInput]) -> List[Dict[str, Any]]:
        written = []
        for order, leg in enumerate(legs, start=1):
            origin, destination = leg.stored_endpoints()
            fields = {
                "trip_id": trip_id,
                "order": order,
                "origin": origin,
                "destination": destination,
                "departure_date": leg.departure_date,
                "arrival_date": leg.arrival_date,
                "mode": leg.mode.value,
            }
            self.row_store.append_row(LEGS_TABLE, fields)
            written.append(fields)
        return written

    # ------------------------------------------------------------------
    # Compensating rollback (runs while the lock is still held)
    # ------------------------------------------------------------------

    def _snapshot(self, trip_id: str, position: int) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        trip_row = self.row_store.get_row(TRIPS_TABLE, position)
        legs = [row for row in self.row_store.get_rows(LEGS_TABLE) if row["trip_id"] == trip_id]
        return trip_row, legs

    def _rollback_create(self, trip_id: str) -> None:
        try:
            self._delete_legs(trip_id)
            position = self._find_trip(trip_id)
            if position is not None:
                self.row_store.delete_row(TRIPS_TABLE, position)
            logger.warning(f"Rolled back partial create of trip {trip_id}")
        except Exception as e:
            logger.error(f"Rollback of create failed for trip {trip_id}: {e}")

    def _rollback_update(self, trip_id: str, previous: Tuple[Dict[str, Any], List[Dict[str, Any]]]) -> None:
        trip_row, legs = previous
        try:
            position = self._find_trip(trip_id)
            if position is not None:
                for column in ("name", "start_date", "end_date"):
                    self.row_store.update_cell(TRIPS_TABLE, position, column, trip_row[column])
            self._delete_legs(trip_id)
            for leg in legs:
                self.row_store.append_row(LEGS_TABLE, leg)
            logger.warning(f"Rolled back partial update of trip {trip_id}")
        except Exception as e:
            logger.error(f"Rollback of update failed for trip {trip_id}: {e}")
