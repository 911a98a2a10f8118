"""
Error taxonomy for trip mutations and store access.

Lookup misses are not errors: resolvers return None and the call site that
needed a resolution raises TripValidationError.
"""


class TripMapError(Exception):
    """Base class for errors reported back to API callers."""
    pass


class TripValidationError(TripMapError):
    """Missing or malformed field, unknown mode, or an unresolvable location."""
    pass


class ConflictError(TripMapError):
    """Duplicate trip id on create, or missing trip on update/delete."""
    pass


class LockTimeoutError(TripMapError):
    """The store-wide trip lock was not acquired within the bound."""
    pass


class StoreUnavailableError(TripMapError):
    """Backing tables are missing or the store cannot be reached."""
    pass
