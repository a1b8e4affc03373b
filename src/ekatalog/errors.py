# src/ekatalog/errors.py

"""
Error taxonomy shared by the store, the membership repository and the
sync client. Routes translate these into HTTP status codes.
"""

from __future__ import annotations


class EkatalogError(Exception):
    """Base class for all domain errors."""


class NotFoundError(EkatalogError, LookupError):
    """Referenced user, membership or record id does not exist."""


class ValidationError(EkatalogError, ValueError):
    """Missing or malformed input; raised before any storage mutation."""


class StorageIOError(EkatalogError, OSError):
    """A collection file could not be written."""


class ConflictError(EkatalogError):
    """The collection changed between read and write."""

    def __init__(self, collection: str, expected: str, actual: str):
        super().__init__(
            f"Collection '{collection}' changed concurrently "
            f"(expected revision {expected[:12]}, found {actual[:12]})"
        )
        self.collection = collection
        self.expected = expected
        self.actual = actual


class RemoteError(EkatalogError):
    """The remote API refused or could not complete a mutation."""

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code

    @property
    def is_definitive(self) -> bool:
        """4xx responses are final answers; everything else is a transport failure."""
        return self.status_code is not None and 400 <= self.status_code < 500
