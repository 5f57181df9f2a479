"""
Exception hierarchy for directory services.

    DirectoryError (base)
    ├── ValidationError        malformed input field
    ├── InvariantViolation     would break a station/phone invariant
    ├── NotFoundError          id does not resolve
    ├── ConcurrencyConflict    racing writers hit a store constraint
    └── PermissionDenied       role may not perform the action

Row-level ValidationErrors during feed import are recorded and skipped.
Everything else propagates to the caller; nothing is retried.
"""


class DirectoryError(Exception):
    """Base exception for all directory errors."""

    pass


class ValidationError(DirectoryError, ValueError):
    """A field value is malformed (unparseable rank, short phone number, ...)."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class InvariantViolation(DirectoryError):
    """
    The operation would leave a station in an invalid state.

    Raised when:
        - Adding a fifth phone
        - Removing the last phone
        - A phone does not belong to the station it was addressed under
    """

    pass


class NotFoundError(DirectoryError, LookupError):
    """A station, phone or user id does not resolve."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ConcurrencyConflict(DirectoryError):
    """A uniqueness or transaction guarantee rejected a concurrent write."""

    pass


class PermissionDenied(DirectoryError):
    """The acting user's role does not allow the operation."""

    pass
