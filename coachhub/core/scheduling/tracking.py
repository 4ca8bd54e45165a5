"""
Generation tracking.

Every session generated from a template (or attempted and failed) gets a
TemplateSessionRecord: a frozen snapshot of the template as it was, the
customizations that took effect, its place in a recurrence series, and the
outcome. The tracker builds those records, persists them, keeps the
template's usage counter current, and answers the reporting queries.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from .errors import RecordNotFoundError, TemplateNotFoundError
from .models import (
    AppliedCustomizations,
    GenerationMetadata,
    GenerationSource,
    GenerationStatus,
    SessionTemplate,
    TemplateSessionRecord,
    TemplateSnapshot,
    utcnow,
)
from .repositories import (
    GenerationRecordRepository,
    RecordFilters,
    StatusUsage,
    TemplateRepository,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingContext:
    """Request-level facts shared by every record of one generation call."""
    generated_by: Optional[str] = None
    source: GenerationSource = GenerationSource.MANUAL
    batch_id: Optional[str] = None
    parent_recurrence_id: Optional[UUID] = None

    @property
    def is_from_recurrence(self) -> bool:
        return self.parent_recurrence_id is not None


@dataclass(frozen=True)
class TrackingOutcome:
    """
    A finished record and whether it reached the record store.

    When `persisted` is False the session link exists only in this
    outcome; callers must surface it rather than drop it.
    """
    record: TemplateSessionRecord
    persisted: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class TemplateUsageStats:
    """Usage rollup for one template."""
    template_id: UUID
    by_status: tuple[StatusUsage, ...]
    usage_count: int
    last_used_at: Optional[datetime]

    def count(self, status: GenerationStatus) -> int:
        for usage in self.by_status:
            if usage.status is status:
                return usage.count
        return 0

    @property
    def total(self) -> int:
        return sum(usage.count for usage in self.by_status)

    @property
    def last_generated_at(self) -> Optional[datetime]:
        times = [usage.last_generated_at for usage in self.by_status if usage.last_generated_at]
        return max(times) if times else None

    @property
    def success_rate(self) -> Optional[float]:
        attempted = self.count(GenerationStatus.GENERATED) + self.count(GenerationStatus.FAILED)
        if attempted == 0:
            return None
        return self.count(GenerationStatus.GENERATED) / attempted


class GenerationTracker:
    """
    Creates and queries template-session generation records.

    Record writes are retried up to `tracking_write_attempts` times. A write
    that still fails is logged and reported through the TrackingOutcome so
    the session is never silently unlinked from its template.
    """

    def __init__(
        self,
        records: GenerationRecordRepository,
        templates: TemplateRepository,
        tracking_write_attempts: int = 2,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if tracking_write_attempts < 1:
            raise ValueError("tracking_write_attempts must be at least 1")
        self._records = records
        self._templates = templates
        self._attempts = tracking_write_attempts
        self._clock = clock

    def begin(
        self,
        template: SessionTemplate,
        session_id: UUID,
        client_id: str,
        scheduled_date: datetime,
        customizations: Optional[AppliedCustomizations],
        context: TrackingContext,
        sequence: Optional[int] = None,
    ) -> TemplateSessionRecord:
        """Build the pending record for one occurrence (not persisted yet)."""
        return TemplateSessionRecord(
            template_id=template.id,
            session_id=session_id,
            coach_id=template.coach_id,
            client_id=client_id,
            template_snapshot=TemplateSnapshot.from_template(template),
            generated_at=self._clock(),
            generated_by=context.generated_by,
            applied_customizations=customizations,
            is_from_recurrence=context.is_from_recurrence,
            recurrence_sequence=sequence,
            parent_recurrence_id=context.parent_recurrence_id,
            metadata=GenerationMetadata(
                source=context.source,
                batch_id=context.batch_id,
                scheduled_date=scheduled_date,
            ),
        )

    def complete(self, record: TemplateSessionRecord) -> TrackingOutcome:
        """Mark the occurrence generated, persist it, and count the usage."""
        generated = record.mark_generated(self._clock())
        outcome = self._persist(generated)
        self._increment_usage(generated)
        return outcome

    def fail(self, record: TemplateSessionRecord, errors: list[str]) -> TrackingOutcome:
        """Mark the occurrence failed with its errors and persist it."""
        return self._persist(record.mark_failed(errors))

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def by_template(
        self,
        template_id: UUID,
        filters: Optional[RecordFilters] = None,
    ) -> list[TemplateSessionRecord]:
        return self._records.find_by_template(template_id, filters or RecordFilters())

    def series(self, parent_recurrence_id: UUID) -> list[TemplateSessionRecord]:
        return self._records.find_by_parent(parent_recurrence_id)

    def siblings(self, record_id: UUID) -> list[TemplateSessionRecord]:
        """The other records of the same recurrence series."""
        record = self._records.get_record(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        if not record.is_from_recurrence or record.parent_recurrence_id is None:
            return []
        return [
            sibling for sibling in self._records.find_by_parent(record.parent_recurrence_id)
            if sibling.id != record.id
        ]

    def by_batch(self, batch_id: str) -> list[TemplateSessionRecord]:
        return self._records.find_by_batch(batch_id)

    def usage_stats(self, template_id: UUID) -> TemplateUsageStats:
        template = self._templates.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return TemplateUsageStats(
            template_id=template_id,
            by_status=tuple(self._records.usage_stats_by_status(template_id)),
            usage_count=template.usage_count,
            last_used_at=template.last_used_at,
        )

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _persist(self, record: TemplateSessionRecord) -> TrackingOutcome:
        last_error = ""
        for attempt in range(1, self._attempts + 1):
            try:
                self._records.create_record(record)
                return TrackingOutcome(record=record, persisted=True)
            except Exception as e:
                last_error = str(e)
                logger.warning(
                    "Tracking record write failed",
                    extra={
                        "record_id": str(record.id),
                        "session_id": str(record.session_id),
                        "attempt": attempt,
                        "error": last_error,
                    }
                )

        logger.error(
            "Tracking record lost after retries",
            extra={
                "record_id": str(record.id),
                "session_id": str(record.session_id),
                "status": record.generation_status.value,
                "attempts": self._attempts,
            }
        )
        return TrackingOutcome(record=record, persisted=False, error=last_error)

    def _increment_usage(self, record: TemplateSessionRecord) -> None:
        try:
            self._templates.increment_usage(record.template_id, record.generated_at)
        except Exception as e:
            logger.warning(
                "Failed to update template usage",
                extra={"template_id": str(record.template_id), "error": str(e)}
            )
