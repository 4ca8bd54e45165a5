"""
Domain errors for recurring session generation.

Each error carries the identifiers needed to log it or map it to an HTTP
response; the routes decide the status code, not the core.
"""

from typing import Optional
from uuid import UUID


class SchedulingError(Exception):
    """Base class for scheduling errors raised by the core."""
    pass


class TemplateNotFoundError(SchedulingError):
    """Raised when a requested session template doesn't exist."""

    def __init__(self, template_id: UUID) -> None:
        super().__init__(f"Session template {template_id} not found")
        self.template_id = template_id


class TemplateNotRecurringError(SchedulingError):
    """Raised when a recurring generation is requested for a one-off template."""

    def __init__(self, template_id: UUID) -> None:
        super().__init__(f"Session template {template_id} has no recurrence rule")
        self.template_id = template_id


class TemplateInactiveError(SchedulingError):
    """Raised when sessions are requested from a deactivated template."""

    def __init__(self, template_id: UUID) -> None:
        super().__init__(f"Session template {template_id} is not active")
        self.template_id = template_id


class RecordNotFoundError(SchedulingError):
    """Raised when a generation record doesn't exist."""

    def __init__(self, record_id: UUID) -> None:
        super().__init__(f"Generation record {record_id} not found")
        self.record_id = record_id


class ConflictCheckError(SchedulingError):
    """
    Raised when the schedule store fails during conflict checking.

    Conflict checking has no partial-failure mode: if we can't tell whether
    a date is free, nothing is generated.
    """

    def __init__(self, client_id: str, cause: Exception) -> None:
        super().__init__(f"Conflict check failed for client {client_id}: {cause}")
        self.client_id = client_id
        self.cause = cause


class InvalidStatusTransitionError(SchedulingError):
    """Raised when a generation record is moved to a state it can't reach."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move generation record from {current} to {target}")
        self.current = current
        self.target = target


class GenerationTimeoutError(SchedulingError):
    """
    Raised when a generation request exceeds its time budget.

    The worker is stopped before it raises, so nothing is written after the
    caller sees this error. Occurrences processed before the deadline stay
    persisted and can be looked up by series or batch id.
    """

    def __init__(
        self,
        timeout_seconds: float,
        parent_recurrence_id: Optional[UUID] = None,
        batch_id: Optional[str] = None,
        total_generated: int = 0,
        tracking_failures: tuple = (),
    ) -> None:
        super().__init__(f"Session generation timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds
        self.parent_recurrence_id = parent_recurrence_id
        self.batch_id = batch_id
        self.total_generated = total_generated
        # records whose session was written but whose tracking write was lost
        self.tracking_failures = tracking_failures
