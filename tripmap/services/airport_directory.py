"""
Airport directory: tiered read-through lookup of 3-letter codes.

Read path for ``lookup(code)``:
1. Valkey entry ``airport_<CODE>`` (6 hour TTL), which may hold either the
   record or an explicit not-found marker
2. Exact, case-sensitive match against the ``airport_directory`` table

Misses are cached too, so repeated lookups of unknown codes do not hit the
table again until the marker expires or a directory reload clears it. The
table is always read directly, so a reload in one process is visible to
every process sharing the cache as soon as its markers are cleared.
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from ..cache.manager import CacheManager
from ..cache.utils import NOT_FOUND_MARKER, CacheKeyManager, TTLPreset
from ..database.row_store import RowStore
from ..models.location import AirportRecord

logger = logging.getLogger(__name__)

DIRECTORY_TABLE = "airport_directory"
SNAPSHOT_MAX_AGE_SECONDS = 300


class DirectorySnapshot:
    """
    In-process copy of the directory rows for autocomplete, shared by reference.

    Only airport search reads through it; code lookups go to the table. It
    is rebuilt lazily after ``invalidate()`` or once it is older than
    ``max_age_seconds``.
    """

    def __init__(self, row_store: RowStore, max_age_seconds: float = SNAPSHOT_MAX_AGE_SECONDS):
        self.row_store = row_store
        self.max_age_seconds = float(max_age_seconds)
        self._rows: Optional[List[Dict[str, Any]]] = None
        self._loaded_at = 0.0
        self.load_count = 0

    def rows(self) -> List[Dict[str, Any]]:
        """Directory rows in table order, loading them if needed."""
        if self._rows is None or (time.monotonic() - self._loaded_at) > self.max_age_seconds:
            self._rows = self.row_store.get_rows(DIRECTORY_TABLE)
            self._loaded_at = time.monotonic()
            self.load_count += 1
            logger.debug(f"Directory snapshot loaded ({len(self._rows)} airports)")
        return self._rows

    def invalidate(self) -> None:
        self._rows = None


class AirportDirectory:
    """Read-through airport lookup with negative caching."""

    def __init__(
        self,
        row_store: RowStore,
        cache_manager: CacheManager,
        snapshot: Optional[DirectorySnapshot] = None,
        ttl_seconds: int = TTLPreset.AIRPORT_INFO
    ):
        """
        Args:
            row_store: Backing store holding the airport_directory table
            cache_manager: Ephemeral cache tier
            snapshot: Autocomplete snapshot cleared on reload (created if omitted)
            ttl_seconds: TTL for positive and negative entries, capped at 6 hours
        """
        self.row_store = row_store
        self.cache = cache_manager
        self.snapshot = snapshot or DirectorySnapshot(row_store)
        self.ttl_seconds = min(int(ttl_seconds), int(TTLPreset.CACHE_MAX))
        self.keys = CacheKeyManager(cache_manager.config.key_namespace)
        self.scan_count = 0

    @staticmethod
    def normalize(code: Optional[str]) -> str:
        return (code or "").strip().upper()

    async def lookup(self, code: Optional[str]) -> Optional[AirportRecord]:
        """
        Resolve an airport code.

        Args:
            code: 3-letter code, any case; surrounding whitespace ignored

        Returns:
            AirportRecord, or None if the directory has no such code
        """
        code = self.normalize(code)
        if not code:
            return None

        key = self.keys.airport_key(code)
        cached = await self.cache.get(key)

        if cached == NOT_FOUND_MARKER:
            logger.debug(f"Airport negative cache hit: {code}")
            return None
        if isinstance(cached, dict):
            try:
                return AirportRecord(**cached)
            except ValidationError:
                logger.warning(f"Discarding malformed cache entry for {key}")

        record = self._scan(code)
        if record is None:
            logger.debug(f"Airport not found, caching miss: {code}")
            await self.cache.set(key, NOT_FOUND_MARKER, ttl=self.ttl_seconds, jitter=False)
            return None

        await self.cache.set(key, record.model_dump(), ttl=self.ttl_seconds, jitter=False)
        return record

    async def exists(self, code: Optional[str]) -> bool:
        return await self.lookup(code) is not None

    def _scan(self, code: str) -> Optional[AirportRecord]:
        """Exact, case-sensitive match on the code column; first row wins."""
        self.scan_count += 1
        row = self.row_store.find_row(DIRECTORY_TABLE, code, "code")
        if row is None:
            return None
        return AirportRecord(code=row["code"], name=row["name"], lat=row["lat"], lng=row["lng"])

    async def reload(self, records: Iterable[Union[AirportRecord, Dict[str, Any]]]) -> int:
        """
        Replace the whole directory table and invalidate affected cache entries.

        Cache entries for every loaded code are dropped, which clears negative
        markers for codes that just became valid and refreshes changed
        coordinates. Entries for codes absent from the new load expire on
        their own TTL.

        Returns:
            Number of airports written
        """
        rows = []
        skipped = 0
        for record in records:
            try:
                rows.append(AirportRecord.model_validate(record).model_dump())
            except ValidationError as e:
                skipped += 1
                logger.warning(f"Skipping invalid airport record {record!r}: {e.errors()[0]['msg']}")

        count = self.row_store.replace_all(DIRECTORY_TABLE, rows)
        self.snapshot.invalidate()
        invalidated = await self.cache.delete_many(
            self.keys.airport_key(row["code"]) for row in rows
        )

        logger.info(
            f"Airport directory reloaded: {count} airports, {skipped} skipped, "
            f"{invalidated} cache entries invalidated"
        )
        return count

    async def invalidate_all(self) -> int:
        """Drop every cached airport entry and the in-process snapshot."""
        self.snapshot.invalidate()
        removed = await self.cache.clear_pattern(self.keys.airport_pattern())
        logger.info(f"Invalidated {removed} airport cache entries")
        return removed
