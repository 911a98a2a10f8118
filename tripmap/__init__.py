"""
tripmap: multi-leg trip storage with cached location resolution.

Trips (flights, trains, cars, ferries) live in a row-oriented store; every leg
endpoint is resolved to coordinates on read through two lookup paths:
1. Flight legs: airport directory with a Valkey read-through cache (negative caching)
2. Ground and sea legs: persistent geocode cache backed by an external geocoder

Mutations are serialized through a single store-wide distributed lock held only
for the row writes themselves.
"""

__version__ = "0.1.0"
