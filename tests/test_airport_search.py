"""
Tests for airport autocomplete ranking.
"""

import pytest

from tripmap.services.airport_search import city_of


class TestAirportSearch:
    """Test candidate selection and ranking."""

    def test_exact_code_first(self, airport_search):
        """Test an exact code match ranks first."""
        results = airport_search.search("JFK")
        assert results[0].code == "JFK"
        assert results[0].city == "New York"

    def test_code_prefix_before_name_matches(self, airport_search):
        """Test 'new' ranks NEW* codes ahead of name-only matches, ties by code."""
        results = airport_search.search("new")
        assert [r.code for r in results] == ["NEW", "EWR", "JFK"]

    def test_code_prefix_match(self, airport_search):
        """Test partial codes."""
        assert [r.code for r in airport_search.search("n")] == ["NEW", "NRT", "EWR", "HND", "JFK", "LAX"]

    def test_name_substring_case_insensitive(self, airport_search):
        """Test names match anywhere, in any case."""
        assert [r.code for r in airport_search.search("GAULLE")] == ["CDG"]

    def test_blank_and_zero_limit(self, airport_search):
        """Test degenerate queries."""
        assert airport_search.search("") == []
        assert airport_search.search("   ") == []
        assert airport_search.search("JFK", limit=0) == []

    def test_scan_stops_at_limit(self, airport_search):
        """Test candidates are collected in table order up to the limit before ranking."""
        results = airport_search.search("new", limit=1)
        assert [r.code for r in results] == ["JFK"]

    def test_no_match(self, airport_search):
        """Test queries that match nothing."""
        assert airport_search.search("zzzz") == []

    @pytest.mark.asyncio
    async def test_validate_airport(self, airport_search):
        """Test validation returns the directory record."""
        record = await airport_search.validate_airport("cdg")
        assert record.code == "CDG"
        assert await airport_search.validate_airport("QQQ") is None

    def test_city_of(self):
        """Test city extraction."""
        assert city_of("Tokyo, Narita International") == "Tokyo"
        assert city_of("Heathrow") == "Heathrow"
        assert city_of("  Paris ,CDG") == "Paris"
