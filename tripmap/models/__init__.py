"""
tripmap models package.

Pydantic v2 models for trip input, locations and search suggestions, the
transport mode enum and the error taxonomy.
"""

from .errors import (
    TripMapError,
    TripValidationError,
    ConflictError,
    LockTimeoutError,
    StoreUnavailableError,
)

from .enums import TransportMode

from .location import (
    AirportRecord,
    GeocodeResult,
    ResolvedLocation,
    AirportSuggestion,
)

from .trip import (
    LegInput,
    TripInput,
    describe_validation_error,
    generate_trip_id,
)

__all__ = [
    # Errors
    "TripMapError",
    "TripValidationError",
    "ConflictError",
    "LockTimeoutError",
    "StoreUnavailableError",

    # Enums
    "TransportMode",

    # Locations
    "AirportRecord",
    "GeocodeResult",
    "ResolvedLocation",
    "AirportSuggestion",

    # Trips
    "LegInput",
    "TripInput",
    "describe_validation_error",
    "generate_trip_id",
]
