"""
Translation of scheduling errors into HTTP errors.

The core raises domain exceptions; routes call `to_http_exception` in their
except blocks so every endpoint maps the same error to the same status.
"""

import logging

from fastapi import HTTPException, status

from ..core.scheduling import (
    ConflictCheckError,
    GenerationTimeoutError,
    RecordNotFoundError,
    SchedulingError,
    TemplateInactiveError,
    TemplateNotFoundError,
    TemplateNotRecurringError,
)

logger = logging.getLogger(__name__)


def to_http_exception(error: SchedulingError) -> HTTPException:
    if isinstance(error, (TemplateNotFoundError, RecordNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))

    if isinstance(error, (TemplateNotRecurringError, TemplateInactiveError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))

    if isinstance(error, ConflictCheckError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Schedule store unavailable; no sessions were generated",
        )

    if isinstance(error, GenerationTimeoutError):
        detail: dict = {"message": str(error), "totalGenerated": error.total_generated}
        if error.parent_recurrence_id is not None:
            # Sessions written before the deadline can be looked up by series
            detail["parentRecurrenceId"] = str(error.parent_recurrence_id)
        if error.batch_id is not None:
            detail["batchId"] = error.batch_id
        if error.tracking_failures:
            detail["untrackedSessionIds"] = [
                str(record.session_id) for record in error.tracking_failures
            ]
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=detail)

    logger.error(
        "Unmapped scheduling error",
        extra={"error": str(error), "type": type(error).__name__}
    )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def invalid_request(error: ValueError) -> HTTPException:
    """A request that passed schema validation but broke a domain rule."""
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
