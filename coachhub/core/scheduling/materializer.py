"""
Session materialization.

Turns available dates into persisted coaching sessions, one at a time and in
order. A failed write is recorded as a failed occurrence and the loop moves
on: one bad write must not throw away the occurrences that succeeded.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .customization import ResolvedConfiguration
from .models import (
    CoachingSession,
    GenerationStatus,
    SessionStatus,
    SessionTemplate,
    TemplateSessionRecord,
)
from .repositories import SessionRepository
from .tracking import GenerationTracker, TrackingContext, TrackingOutcome

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and a worker.

    The worker checks it between occurrences, so an in-flight store call
    always finishes before the pipeline stops.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class MaterializedOccurrence:
    """One attempted occurrence: the session (if stored) and its tracking."""
    date: datetime
    record: TemplateSessionRecord
    session: Optional[CoachingSession]
    tracking: TrackingOutcome

    @property
    def succeeded(self) -> bool:
        return self.record.generation_status is GenerationStatus.GENERATED

    @property
    def errors(self) -> tuple[str, ...]:
        return self.record.errors


@dataclass(frozen=True)
class MaterializationResult:
    occurrences: tuple[MaterializedOccurrence, ...] = ()
    unprocessed_dates: tuple[datetime, ...] = ()
    cancelled: bool = False

    @property
    def succeeded(self) -> list[MaterializedOccurrence]:
        return [occurrence for occurrence in self.occurrences if occurrence.succeeded]

    @property
    def failed(self) -> list[MaterializedOccurrence]:
        return [occurrence for occurrence in self.occurrences if not occurrence.succeeded]

    @property
    def untracked(self) -> list[MaterializedOccurrence]:
        return [occurrence for occurrence in self.occurrences if not occurrence.tracking.persisted]


@dataclass
class MaterializationRequest:
    """Everything needed to materialize one client's occurrences."""
    template: SessionTemplate
    client_id: str
    dates: list[datetime]
    configuration: ResolvedConfiguration
    context: TrackingContext = field(default_factory=TrackingContext)


class SessionMaterializer:
    """Creates pending sessions for available dates and tracks each outcome."""

    def __init__(self, sessions: SessionRepository, tracker: GenerationTracker) -> None:
        self._sessions = sessions
        self._tracker = tracker

    def materialize(
        self,
        request: MaterializationRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> MaterializationResult:
        """
        Materialize each date in order.

        Recurrence sequence numbers follow processing order (1, 2, 3...)
        when the context links the occurrences into a series.
        """
        template = request.template
        config = request.configuration
        applied = config.applied_customizations()
        occurrences: list[MaterializedOccurrence] = []

        for index, date in enumerate(request.dates):
            if cancel_token is not None and cancel_token.cancelled:
                remaining = tuple(request.dates[index:])
                logger.warning(
                    "Materialization cancelled",
                    extra={
                        "template_id": str(template.id),
                        "client_id": request.client_id,
                        "processed": index,
                        "remaining": len(remaining),
                    }
                )
                return MaterializationResult(
                    occurrences=tuple(occurrences),
                    unprocessed_dates=remaining,
                    cancelled=True,
                )

            session = CoachingSession(
                coach_id=template.coach_id,
                client_id=request.client_id,
                scheduled_at=date,
                duration_minutes=config.duration,
                status=SessionStatus.PENDING,
                notes=config.notes,
            )
            record = self._tracker.begin(
                template=template,
                session_id=session.id,
                client_id=request.client_id,
                scheduled_date=date,
                customizations=None if applied.is_empty else applied,
                context=request.context,
                sequence=index + 1 if request.context.is_from_recurrence else None,
            )

            try:
                stored = self._sessions.create_session(session)
            except Exception as e:
                logger.error(
                    "Failed to create session",
                    extra={
                        "template_id": str(template.id),
                        "client_id": request.client_id,
                        "date": date.isoformat(),
                        "error": str(e),
                    }
                )
                tracking = self._tracker.fail(record, [f"Failed to create session: {e}"])
                occurrences.append(MaterializedOccurrence(
                    date=date,
                    record=tracking.record,
                    session=None,
                    tracking=tracking,
                ))
                continue

            tracking = self._tracker.complete(record)
            occurrences.append(MaterializedOccurrence(
                date=date,
                record=tracking.record,
                session=stored,
                tracking=tracking,
            ))

        return MaterializationResult(occurrences=tuple(occurrences))
