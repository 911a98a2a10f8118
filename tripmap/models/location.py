"""
Location models: directory records, geocoder answers and resolved endpoints.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class AirportRecord(BaseModel):
    """Airport directory record."""
    model_config = ConfigDict(from_attributes=True)

    code: str = Field(..., min_length=3, max_length=3, description="IATA airport code")
    name: str = Field(..., description="Airport name, usually 'City, Airport'")
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class GeocodeResult(BaseModel):
    """Resolved free-text location."""
    model_config = ConfigDict(from_attributes=True)

    name: str = Field(..., description="Formatted address returned by the geocoder")
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ResolvedLocation(BaseModel):
    """
    Coordinates and display name of a leg endpoint.

    Computed on every read and never stored with the leg; ``code`` is only
    set for flight endpoints.
    """
    code: Optional[str] = None
    name: str
    lat: float
    lng: float

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)


class AirportSuggestion(BaseModel):
    """Autocomplete entry for the airport search box."""
    code: str
    name: str
    city: str
    lat: float
    lng: float
