"""Error hierarchy for the scheduling engine.

Structural errors (not-found, conflict, validation) abort the operation that
raised them and propagate to the caller. Scheduling shortfalls (no capacity,
no availability, invalid team) are never raised: they are recorded as
violations and unmet requirements.

Example usage:
    try:
        engine.reassign_to_preceptor(assignment_id, "prec_jones")
    except NotFoundError as exc:
        return 404, str(exc)
"""

from typing import List, Optional


class SchedulingError(Exception):
    """Base exception for all scheduling errors."""

    code = "SCHEDULING_ERROR"


class NotFoundError(SchedulingError):
    """Referenced entity does not exist (404-equivalent). Never retried."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class ConflictError(SchedulingError):
    """Uniqueness or state conflict (409-equivalent).

    Examples: duplicate identifier, deleting a preceptor that still has assignments.
    """

    code = "CONFLICT"


class ValidationError(SchedulingError):
    """Malformed input to a public operation (400-equivalent).

    Always carries the offending field paths.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        self.fields = fields or []
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        """Convert a pydantic ValidationError, keeping each error's location as a dotted path."""
        fields = []
        messages = []
        for error in exc.errors():
            path = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
            fields.append(path)
            messages.append(f"{path}: {error.get('msg')}")
        return cls("; ".join(messages) or str(exc), fields)


class DataAccessError(SchedulingError):
    """The data-access collaborator is unreachable or returned malformed data.

    Fatal for the run: no partial result is produced from corrupt input.
    """

    code = "DATABASE_ERROR"
