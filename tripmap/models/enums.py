"""
Enums for tripmap.
"""

from enum import Enum
from typing import Any

from .errors import TripValidationError


class TransportMode(str, Enum):
    """Transport mode of a leg; decides how its endpoints are resolved."""
    FLIGHT = "flight"
    TRAIN = "train"
    CAR = "car"
    FERRY = "ferry"

    @classmethod
    def parse(cls, value: Any) -> "TransportMode":
        """
        Parse a mode tag, defaulting to FLIGHT when absent.

        Raises:
            TripValidationError: If the tag is not a known mode
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.FLIGHT
        tag = str(value).strip().lower()
        if not tag:
            return cls.FLIGHT
        try:
            return cls(tag)
        except ValueError:
            valid = ", ".join(mode.value for mode in cls)
            raise TripValidationError(
                f"Unknown transport mode '{value}' (expected one of: {valid})"
            ) from None

    @property
    def uses_airport_codes(self) -> bool:
        return self is TransportMode.FLIGHT
