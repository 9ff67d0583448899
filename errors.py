"""
errors.py — Exception hierarchy for the plant catalog.

The Catalog Store raises StoreError / ConstraintViolation; the Catalog Query
Service wraps store failures into PersistenceError. create_app() registers one
error handler that turns any CatalogError into a JSON response carrying the
class status_code.
"""


class CatalogError(Exception):
    """Base class for every catalog failure."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CatalogError):
    """Missing, empty or malformed input. Raised before any write."""

    status_code = 400


class NotFound(CatalogError):
    """The referenced plant id or slug does not exist."""

    status_code = 404


class ConstraintViolation(CatalogError):
    """Uniqueness or foreign-key rule broken at the datastore level."""

    status_code = 409


class PersistenceError(CatalogError):
    """Any other datastore failure seen by the query service."""

    status_code = 500


class StoreError(CatalogError):
    """Raw datastore failure, tagged with the store operation that failed."""

    status_code = 500

    def __init__(self, operation: str, cause: Exception):
        super().__init__(f"{operation}: {cause}")
        self.operation = operation
        self.cause = cause


class MediaUploadError(CatalogError):
    """The media host rejected or failed an upload."""

    status_code = 502
