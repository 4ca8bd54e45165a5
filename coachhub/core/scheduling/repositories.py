"""
Repository interfaces consumed by the generation engine.

Using Protocols here means the core doesn't know whether it's talking to
Snowflake, the in-memory store, or a test double. Implementations live in
coachhub.infrastructure.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

from .models import (
    CoachingSession,
    GenerationStatus,
    SessionTemplate,
    TemplateSessionRecord,
)


@dataclass(frozen=True)
class RecordFilters:
    """Optional filters for listing a template's generation records."""
    status: Optional[GenerationStatus] = None
    coach_id: Optional[str] = None
    client_id: Optional[str] = None
    is_from_recurrence: Optional[bool] = None
    limit: int = 50


@dataclass(frozen=True)
class StatusUsage:
    """Aggregate over one generation status for a template."""
    status: GenerationStatus
    count: int
    last_generated_at: Optional[datetime]


class TemplateRepository(Protocol):
    """Read access to session templates plus usage bookkeeping."""

    def get_template(self, template_id: UUID) -> Optional[SessionTemplate]:
        """Return the template with its client customizations, or None."""
        ...

    def increment_usage(self, template_id: UUID, used_at: datetime) -> None:
        """Add one to the usage counter and set the last-used timestamp."""
        ...


class SessionRepository(Protocol):
    """The scheduling store for concrete coaching sessions."""

    def create_session(self, session: CoachingSession) -> CoachingSession:
        """Persist a new session and return it as stored."""
        ...

    def find_conflicting_session(
        self,
        client_id: str,
        starts_at: datetime,
        duration_minutes: int,
    ) -> Optional[CoachingSession]:
        """
        Return an existing, non-cancelled session of the client that
        overlaps [starts_at, starts_at + duration), or None.
        """
        ...


class GenerationRecordRepository(Protocol):
    """Persistence for template-session generation records."""

    def create_record(self, record: TemplateSessionRecord) -> None:
        ...

    def get_record(self, record_id: UUID) -> Optional[TemplateSessionRecord]:
        ...

    def find_by_template(
        self,
        template_id: UUID,
        filters: RecordFilters,
    ) -> list[TemplateSessionRecord]:
        """Records for a template, newest first, capped at filters.limit."""
        ...

    def find_by_parent(self, parent_recurrence_id: UUID) -> list[TemplateSessionRecord]:
        """All records of one recurrence series, by recurrence sequence."""
        ...

    def find_by_batch(self, batch_id: str) -> list[TemplateSessionRecord]:
        """All records of one batch, oldest first."""
        ...

    def usage_stats_by_status(self, template_id: UUID) -> list[StatusUsage]:
        """Count and latest generation time per status."""
        ...
