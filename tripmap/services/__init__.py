"""
Business logic services for tripmap.

Airport directory and search, geocoding, location resolution, the trip
lock, and the read and mutation paths behind the TripService API.
"""

from .airport_directory import AirportDirectory, DirectorySnapshot
from .airport_search import AirportSearch
from .geocoder import Geocoder
from .geocode_cache import GeocodeCache
from .location_resolver import LocationResolver
from .lock_manager import DistributedLockManager, LockInfo
from .trip_reader import TripReader
from .trip_mutation import TripMutationEngine
from .trip_service import TripService

__all__ = [
    'AirportDirectory',
    'DirectorySnapshot',
    'AirportSearch',
    'Geocoder',
    'GeocodeCache',
    'LocationResolver',
    'DistributedLockManager',
    'LockInfo',
    'TripReader',
    'TripMutationEngine',
    'TripService',
]
