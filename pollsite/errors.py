"""
Error taxonomy for lookups.

Only DataLoadError and InvalidQueryError ever reach a caller. The store
errors are raised and handled inside the lookup engine and only show up
in status counters.
"""


class PollsiteError(Exception):
    """Base class for all lookup errors."""
    pass


class DataLoadError(PollsiteError):
    """The local index could not be built (missing or malformed source)."""
    pass


class InvalidQueryError(PollsiteError):
    """Caller input is malformed (non-numeric id, fragment too short)."""
    pass


class StoreUnavailableError(PollsiteError):
    """The external store cannot answer right now."""
    pass


class StoreConnectionError(PollsiteError):
    """A connect attempt or health check against the external store failed."""
    pass
