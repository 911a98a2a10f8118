"""
Trip and leg input models.

Callers send camelCase JSON (``startDate``, ``departureDate``); the models
also accept snake_case. Structural problems (missing fields, malformed
dates, unknown modes) surface as TripValidationError with a message naming
the field, prefixed with ``Leg N:`` when they concern a leg.

The trip header is validated up front. Legs stay raw on ``TripInput`` and
are parsed one at a time with ``LegInput.from_payload`` so that format and
resolution problems are reported together, in leg order.
"""

import re
from datetime import date
from typing import Any, List, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .enums import TransportMode
from .errors import TripValidationError
from ..utils.dates import parse_date

# snake_case attribute -> wire name, for error messages
WIRE_NAMES = {
    "start_date": "startDate",
    "end_date": "endDate",
    "departure_date": "departureDate",
    "arrival_date": "arrivalDate",
}


class LegInput(BaseModel):
    """
    One leg as submitted by a caller.

    Endpoints and departure date are optional here; the mutation engine
    checks them leg by leg, together with location resolution, so the first
    failing leg is the one reported. Any caller-supplied ``order`` is dropped:
    order is always the 1-based position in the submitted list.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    origin: str = ""
    destination: str = ""
    departure_date: Optional[date] = Field(None, alias="departureDate")
    arrival_date: Optional[date] = Field(None, alias="arrivalDate")
    mode: TransportMode = TransportMode.FLIGHT

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("departure_date", "arrival_date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any, info: ValidationInfo) -> Optional[date]:
        return parse_date(value, WIRE_NAMES[info.field_name])

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> TransportMode:
        try:
            return TransportMode.parse(value)
        except TripValidationError as e:
            raise ValueError(str(e)) from None

    @model_validator(mode="after")
    def _check_date_order(self) -> "LegInput":
        if self.departure_date and self.arrival_date and self.arrival_date < self.departure_date:
            raise ValueError("arrivalDate is before departureDate")
        return self

    @classmethod
    def from_payload(cls, data: Any, index: int) -> "LegInput":
        """
        Validate one raw leg.

        Args:
            data: Leg payload (camelCase or snake_case keys)
            index: 1-based position of the leg, used in error messages

        Raises:
            TripValidationError: Prefixed with ``Leg <index>:``
        """
        if not isinstance(data, Mapping):
            raise TripValidationError(f"Leg {index}: leg must be an object")
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise TripValidationError(f"Leg {index}: {describe_validation_error(e)}") from None

    def stored_endpoints(self) -> tuple:
        """Origin and destination as persisted: flight codes uppercased, text as typed."""
        if self.mode.uses_airport_codes:
            return self.origin.upper(), self.destination.upper()
        return self.origin, self.destination


class TripInput(BaseModel):
    """Trip header plus its full, ordered list of raw leg payloads."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    legs: List[Any] = Field(default_factory=list)

    @field_validator("id", "name", mode="before")
    @classmethod
    def _require_text(cls, value: Any, info: ValidationInfo) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValueError(f"Missing required field: {info.field_name}")
        return text

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _require_date(cls, value: Any, info: ValidationInfo) -> date:
        wire_name = WIRE_NAMES[info.field_name]
        parsed = parse_date(value, wire_name)
        if parsed is None:
            raise ValueError(f"Missing required field: {wire_name}")
        return parsed

    @field_validator("legs", mode="before")
    @classmethod
    def _default_legs(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _check_date_range(self) -> "TripInput":
        if self.end_date < self.start_date:
            raise ValueError("endDate is before startDate")
        return self

    @classmethod
    def from_payload(cls, data: Optional[Mapping[str, Any]], trip_id: Optional[str] = None) -> "TripInput":
        """
        Validate a caller payload.

        Args:
            data: Trip payload (camelCase or snake_case keys)
            trip_id: Overrides any id in the payload (update path)

        Raises:
            TripValidationError: Describing the first structural problem
        """
        if data is None:
            raise TripValidationError("Trip data is required")
        if not isinstance(data, Mapping):
            raise TripValidationError("Trip data must be an object")

        payload = dict(data)
        if trip_id is not None:
            payload["id"] = trip_id

        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise TripValidationError(describe_validation_error(e)) from None


def describe_validation_error(exc: ValidationError) -> str:
    """Turn the first pydantic error into a caller-facing message."""
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ()))

    if error["type"] == "missing":
        message = f"Missing required field: {field}"
    elif error["type"] == "value_error" and "error" in error.get("ctx", {}):
        message = str(error["ctx"]["error"])
    elif field:
        message = f"Invalid value for {field}: {error['msg']}"
    else:
        message = error["msg"]
    return message


def generate_trip_id(name: str, start_date: date) -> str:
    """
    Build a trip id from its name and start year.

    Example:
        generate_trip_id("Japan Spring!", date(2026, 3, 1))
        # Returns: "japan-spring-2026"
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "trip"
    return f"{slug}-{start_date.year}"
