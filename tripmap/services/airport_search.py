"""
Airport autocomplete over the directory snapshot.
"""

import logging
from typing import Any, Dict, List, Optional

from .airport_directory import AirportDirectory, DirectorySnapshot
from ..models.location import AirportRecord, AirportSuggestion

logger = logging.getLogger(__name__)


def city_of(name: str) -> str:
    """Text before the first comma of an airport name, or the whole name."""
    return name.split(",", 1)[0].strip()


class AirportSearch:
    """Prefix and substring search over airport codes and names."""

    def __init__(self, directory: AirportDirectory, snapshot: Optional[DirectorySnapshot] = None):
        self.directory = directory
        self.snapshot = snapshot or directory.snapshot

    def search(self, query: Optional[str], limit: int = 10) -> List[AirportSuggestion]:
        """
        Suggest airports for a partial code or name.

        A row matches when its code starts with the query or its name contains
        it. Scanning stops once ``limit`` rows have matched, so a better-ranked
        row further down the table can be missed on broad queries.

        Ranking: exact code match, then code-prefix matches, then name-only
        matches; ties broken by code.
        """
        text = (query or "").strip()
        if not text or limit < 1:
            return []

        upper = text.upper()
        lower = text.lower()

        candidates: List[Dict[str, Any]] = []
        for row in self.snapshot.rows():
            code = str(row.get("code") or "")
            name = str(row.get("name") or "")
            if code.startswith(upper) or lower in name.lower():
                candidates.append(row)
                if len(candidates) >= limit:
                    break

        def rank(row: Dict[str, Any]):
            code = str(row.get("code") or "")
            return (code != upper, not code.startswith(upper), code)

        candidates.sort(key=rank)
        suggestions = [
            AirportSuggestion(
                code=row["code"],
                name=row["name"],
                city=city_of(row["name"]),
                lat=row["lat"],
                lng=row["lng"],
            )
            for row in candidates[:limit]
        ]
        logger.debug(f"Airport search '{text}': {len(suggestions)} suggestions")
        return suggestions

    async def validate_airport(self, code: Optional[str]) -> Optional[AirportRecord]:
        """Directory record for ``code``, or None."""
        return await self.directory.lookup(code)
