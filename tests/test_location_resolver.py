"""
Tests for mode-aware location resolution and location search.
"""

import pytest

from tripmap.models import ResolvedLocation, TransportMode, TripValidationError


class TestLocationResolver:
    """Test endpoint resolution."""

    @pytest.mark.asyncio
    async def test_flight_resolves_code(self, resolver):
        """Test flights go through the airport directory."""
        location = await resolver.resolve("nrt", TransportMode.FLIGHT)
        assert isinstance(location, ResolvedLocation)
        assert location.code == "NRT"
        assert location.name == "Tokyo, Narita International"

    @pytest.mark.asyncio
    async def test_ground_mode_geocodes(self, resolver, geocoder):
        """Test other modes go through the geocode cache and carry no code."""
        location = await resolver.resolve("Kyoto Station", "train")
        assert location.code is None
        assert location.to_payload() == {"name": "Kyoto Station, Kyoto, Japan", "lat": 34.9858, "lng": 135.7588}
        assert geocoder.calls == ["Kyoto Station"]

    @pytest.mark.asyncio
    async def test_default_mode_is_flight(self, resolver, geocoder):
        """Test a missing mode is treated as flight."""
        assert (await resolver.resolve("CDG", None)).code == "CDG"
        assert geocoder.calls == []

    @pytest.mark.asyncio
    async def test_flight_does_not_geocode(self, resolver, geocoder):
        """Test an airport name is not a valid flight endpoint."""
        assert await resolver.resolve("Paris, France", "flight") is None
        assert geocoder.calls == []

    @pytest.mark.asyncio
    async def test_blank_and_unknown(self, resolver):
        """Test unresolvable input."""
        assert await resolver.resolve("  ", "car") is None
        assert await resolver.resolve("Atlantis", "ferry") is None
        assert await resolver.validate("XXX", "flight") is False
        assert await resolver.validate("Osaka", "car") is True

    @pytest.mark.asyncio
    async def test_unknown_mode_raises(self, resolver):
        """Test bad mode tags are a validation error."""
        with pytest.raises(TripValidationError):
            await resolver.resolve("JFK", "rocket")

    @pytest.mark.asyncio
    async def test_resolution_is_idempotent(self, resolver, geocoder):
        """Test repeated resolution returns the same answer from cache."""
        first = await resolver.resolve("Lyon", "car")
        second = await resolver.resolve("lyon", "car")
        assert first == second
        assert len(geocoder.calls) == 1


class TestLocationSearch:
    """Test suggestion lookup for the location box."""

    @pytest.mark.asyncio
    async def test_flight_search_uses_airport_search(self, resolver):
        """Test flight suggestions are ranked airports."""
        results = await resolver.search("tokyo", "flight")
        assert [r["code"] for r in results] == ["HND", "NRT"]
        assert results[0]["city"] == "Tokyo"

    @pytest.mark.asyncio
    async def test_ground_search_returns_single_place(self, resolver):
        """Test other modes return at most one geocoded suggestion."""
        assert await resolver.search("Osaka", "train") == [{"name": "Osaka, Japan", "lat": 34.6937, "lng": 135.5023}]
        assert await resolver.search("Atlantis", "train") == []
        assert await resolver.search("Osaka", "train", limit=0) == []
