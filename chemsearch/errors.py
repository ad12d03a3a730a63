"""
Exception hierarchy for ChemSearch.

Not-found is never an exception: lookups return None. Everything that
a caller may need to branch on (bad input shape, backend outage, bad
search parameters) gets its own type here.
"""

from typing import Any, Iterable, Optional


class ChemSearchError(Exception):
    """Base class for all ChemSearch errors."""

    pass


class CompoundFormatError(ChemSearchError):
    """
    Raised when a raw compound record cannot be normalized.

    Carries whatever identifying information could be recovered from the
    offending record so batch callers can log it and move on.
    """

    def __init__(
        self,
        message: str,
        cid: Optional[Any] = None,
        source: Optional[str] = None,
    ):
        self.reason = message
        self.cid = cid
        self.source = source

        context = []
        if cid is not None:
            context.append(f"cid={cid}")
        if source:
            context.append(f"source={source}")

        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class StoreUnavailableError(ChemSearchError):
    """Raised when a backing store cannot be reached or used."""

    def __init__(self, backend: str, message: str):
        self.backend = backend
        super().__init__(f"{backend} store unavailable: {message}")


class PrimaryStoreUnavailableError(StoreUnavailableError):
    """The relational store is down, locked, or not provisioned."""

    def __init__(self, message: str):
        super().__init__("primary", message)


class VectorStoreUnavailableError(StoreUnavailableError):
    """The vector index could not be loaded or queried."""

    def __init__(self, message: str):
        super().__init__("vector", message)


class SearchQueryValidationError(ChemSearchError, ValueError):
    """Aggregates every problem found while validating a search request."""

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__("Invalid search query: " + "; ".join(self.errors))
