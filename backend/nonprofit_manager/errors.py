"""Domain exceptions raised by services.

Services raise these instead of HTTP errors; the application maps them
to status codes in one place (see `main.py`):

- `InvalidOperationError` (and any plain `ValueError`) -> 400
- `NotFoundError` -> 404
- `ConcurrencyConflictError` -> 409
"""


class InvalidOperationError(ValueError):
    """A request that violates a business rule."""


class NotFoundError(LookupError):
    """The requested entity does not exist (or is soft-deleted)."""

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            message = f"{entity} not found"
        else:
            message = f"{entity} {entity_id} not found"
        super().__init__(message)


class ConcurrencyConflictError(InvalidOperationError):
    """The row was modified by someone else since it was read."""

    def __init__(self, entity: str, entity_id, expected: int, actual: int):
        self.entity = entity
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{entity} {entity_id} was modified by another user "
            f"(expected version {expected}, found {actual}); reload and try again"
        )
