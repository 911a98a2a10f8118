"""
Tests for the lock-free trip read path.
"""

from datetime import date

import pytest

from tripmap.services import TripReader


def add_trip(store, trip_id, name="Trip"):
    store.append_row("trips", {
        "id": trip_id, "name": name, "start_date": date(2026, 5, 1), "end_date": date(2026, 5, 9),
    })


def add_leg(store, trip_id, order, origin, destination, mode="flight", arrival=None):
    store.append_row("legs", {
        "trip_id": trip_id, "order": order, "origin": origin, "destination": destination,
        "departure_date": date(2026, 5, order), "arrival_date": arrival, "mode": mode,
    })


@pytest.fixture
def reader(seeded_store, resolver):
    return TripReader(seeded_store, resolver)


class TestTripReader:
    """Test trip payload assembly."""

    @pytest.mark.asyncio
    async def test_trips_in_storage_order_with_sorted_legs(self, reader, seeded_store):
        """Test legs are grouped per trip and sorted by order."""
        add_trip(seeded_store, "b-trip", "B")
        add_trip(seeded_store, "a-trip", "A")
        add_leg(seeded_store, "b-trip", 2, "LAX", "JFK")
        add_leg(seeded_store, "a-trip", 1, "CDG", "NRT")
        add_leg(seeded_store, "b-trip", 1, "JFK", "LAX", arrival=date(2026, 5, 2))

        trips = await reader.get_trip_data()

        assert [trip["id"] for trip in trips] == ["b-trip", "a-trip"]
        b_legs = trips[0]["legs"]
        assert [leg["order"] for leg in b_legs] == [1, 2]
        assert b_legs[0]["arrivalDate"] == "2026-05-02"
        assert b_legs[1]["arrivalDate"] is None
        assert b_legs[0]["originLocation"] == {
            "code": "JFK", "name": "New York, John F Kennedy International", "lat": 40.6413, "lng": -73.7781,
        }
        assert trips[1]["startDate"] == "2026-05-01"

    @pytest.mark.asyncio
    async def test_duplicate_orders_keep_storage_order(self, reader, seeded_store):
        """Test the sort is stable and tolerates duplicates and gaps."""
        add_trip(seeded_store, "t")
        add_leg(seeded_store, "t", 5, "JFK", "LAX")
        add_leg(seeded_store, "t", 2, "LAX", "NRT")
        add_leg(seeded_store, "t", 2, "NRT", "HND")

        legs = (await reader.get_trip_data())[0]["legs"]
        assert [(leg["order"], leg["origin"]) for leg in legs] == [(2, "LAX"), (2, "NRT"), (5, "JFK")]

    @pytest.mark.asyncio
    async def test_orphan_legs_dropped(self, reader, seeded_store):
        """Test legs without a trip row are not returned."""
        add_trip(seeded_store, "t")
        add_leg(seeded_store, "gone", 1, "JFK", "LAX")
        add_leg(seeded_store, "t", 1, "LAX", "JFK")

        trips = await reader.get_trip_data()
        assert len(trips) == 1
        assert [leg["origin"] for leg in trips[0]["legs"]] == ["LAX"]

    @pytest.mark.asyncio
    async def test_unresolved_endpoint_is_null(self, reader, seeded_store):
        """Test an endpoint that no longer resolves does not fail the read."""
        add_trip(seeded_store, "t")
        add_leg(seeded_store, "t", 1, "JFK", "OLD")
        add_leg(seeded_store, "t", 2, "Lyon", "Atlantis", mode="car")

        legs = (await reader.get_trip_data())[0]["legs"]
        assert legs[0]["destinationLocation"] is None
        assert legs[0]["originLocation"]["code"] == "JFK"
        assert legs[1]["originLocation"]["name"] == "Lyon, France"
        assert legs[1]["destinationLocation"] is None

    @pytest.mark.asyncio
    async def test_unknown_stored_mode_is_null(self, reader, seeded_store):
        """Test a corrupted mode column degrades to unresolved endpoints."""
        add_trip(seeded_store, "t")
        add_leg(seeded_store, "t", 1, "JFK", "LAX", mode="blimp")

        leg = (await reader.get_trip_data())[0]["legs"][0]
        assert leg["mode"] == "blimp"
        assert leg["originLocation"] is None

    @pytest.mark.asyncio
    async def test_get_trip(self, reader, seeded_store):
        """Test single trip lookup."""
        add_trip(seeded_store, "t", "Tokyo")
        add_leg(seeded_store, "t", 1, "NRT", "HND")

        trip = await reader.get_trip("t")
        assert trip["name"] == "Tokyo"
        assert trip["legs"][0]["destinationLocation"]["code"] == "HND"
        assert await reader.get_trip("missing") is None

    @pytest.mark.asyncio
    async def test_empty_store(self, reader):
        """Test no trips."""
        assert await reader.get_trip_data() == []
