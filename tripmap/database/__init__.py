"""
Database package for tripmap.

SQLAlchemy table models, engine configuration and the positional row store
adapter used by every service.
"""

from .models import (
    Base,
    TripRow,
    LegRow,
    AirportDirectoryRow,
    GeocodeCacheRow,
    TABLES,
    create_all_tables,
)

from .config import DatabaseConfig
from .row_store import RowStore

__all__ = [
    # Models
    'Base',
    'TripRow',
    'LegRow',
    'AirportDirectoryRow',
    'GeocodeCacheRow',
    'TABLES',
    'create_all_tables',

    # Configuration
    'DatabaseConfig',
    'RowStore',
]
