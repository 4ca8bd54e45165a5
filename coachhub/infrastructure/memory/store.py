"""
In-memory storage for templates, sessions and generation records.

Not suitable for production, but good for:
- Local development (SNOWFLAKE_MOCK_MODE=true)
- Unit tests
- CI environments

All three repositories share one InMemoryStore. A single lock guards it,
because bulk generation writes from several worker threads at once.
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from coachhub.core.scheduling.models import (
    CoachingSession,
    SessionStatus,
    SessionTemplate,
    TemplateSessionRecord,
)
from coachhub.core.scheduling.repositories import RecordFilters, StatusUsage

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Dictionaries keyed by id, plus the lock that guards them."""

    def __init__(self, templates: Iterable[SessionTemplate] = ()) -> None:
        self.lock = threading.Lock()
        self.templates: dict[UUID, SessionTemplate] = {}
        self.sessions: dict[UUID, CoachingSession] = {}
        self.records: dict[UUID, TemplateSessionRecord] = {}

        for template in templates:
            self.add_template(template)

        logger.info(
            "Initialized in-memory store",
            extra={"templates": len(self.templates)}
        )

    # Helper methods for setup and assertions

    def add_template(self, template: SessionTemplate) -> None:
        with self.lock:
            self.templates[template.id] = template

    def add_session(self, session: CoachingSession) -> None:
        with self.lock:
            self.sessions[session.id] = session

    def sessions_for(self, client_id: str) -> list[CoachingSession]:
        with self.lock:
            sessions = [s for s in self.sessions.values() if s.client_id == client_id]
        return sorted(sessions, key=lambda s: s.scheduled_at)

    def clear(self) -> None:
        with self.lock:
            self.templates.clear()
            self.sessions.clear()
            self.records.clear()


class InMemoryTemplateRepository:

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get_template(self, template_id: UUID) -> Optional[SessionTemplate]:
        with self._store.lock:
            template = self._store.templates.get(template_id)
        # A copy, so callers never mutate the stored template
        return replace(template) if template is not None else None

    def increment_usage(self, template_id: UUID, used_at: datetime) -> None:
        with self._store.lock:
            template = self._store.templates.get(template_id)
            if template is None:
                raise KeyError(f"Template {template_id} not found")
            self._store.templates[template_id] = replace(
                template,
                usage_count=template.usage_count + 1,
                last_used_at=used_at,
            )


class InMemorySessionRepository:

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def create_session(self, session: CoachingSession) -> CoachingSession:
        with self._store.lock:
            self._store.sessions[session.id] = session
        return session

    def find_conflicting_session(
        self,
        client_id: str,
        starts_at: datetime,
        duration_minutes: int,
    ) -> Optional[CoachingSession]:
        with self._store.lock:
            candidates = [
                session for session in self._store.sessions.values()
                if session.client_id == client_id
                and session.status is not SessionStatus.CANCELLED
                and session.overlaps(starts_at, duration_minutes)
            ]
        if not candidates:
            return None
        return min(candidates, key=lambda session: session.scheduled_at)


class InMemoryGenerationRecordRepository:

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def create_record(self, record: TemplateSessionRecord) -> None:
        with self._store.lock:
            self._store.records[record.id] = record

    def get_record(self, record_id: UUID) -> Optional[TemplateSessionRecord]:
        with self._store.lock:
            return self._store.records.get(record_id)

    def find_by_template(
        self,
        template_id: UUID,
        filters: RecordFilters,
    ) -> list[TemplateSessionRecord]:
        def matches(record: TemplateSessionRecord) -> bool:
            if record.template_id != template_id:
                return False
            if filters.status is not None and record.generation_status is not filters.status:
                return False
            if filters.coach_id is not None and record.coach_id != filters.coach_id:
                return False
            if filters.client_id is not None and record.client_id != filters.client_id:
                return False
            if (
                filters.is_from_recurrence is not None
                and record.is_from_recurrence != filters.is_from_recurrence
            ):
                return False
            return True

        records = [record for record in self._all() if matches(record)]
        records.sort(key=lambda record: record.generated_at, reverse=True)
        return records[:filters.limit]

    def find_by_parent(self, parent_recurrence_id: UUID) -> list[TemplateSessionRecord]:
        records = [
            record for record in self._all()
            if record.parent_recurrence_id == parent_recurrence_id
        ]
        return sorted(records, key=lambda record: record.recurrence_sequence or 0)

    def find_by_batch(self, batch_id: str) -> list[TemplateSessionRecord]:
        records = [record for record in self._all() if record.batch_id == batch_id]
        return sorted(
            records,
            key=lambda record: (
                record.generated_at,
                record.client_id,
                record.recurrence_sequence or 0,
            ),
        )

    def usage_stats_by_status(self, template_id: UUID) -> list[StatusUsage]:
        grouped: dict = {}
        for record in self._all():
            if record.template_id != template_id:
                continue
            count, latest = grouped.get(record.generation_status, (0, None))
            if latest is None or record.generated_at > latest:
                latest = record.generated_at
            grouped[record.generation_status] = (count + 1, latest)

        return [
            StatusUsage(status=status, count=count, last_generated_at=latest)
            for status, (count, latest) in grouped.items()
        ]

    def _all(self) -> list[TemplateSessionRecord]:
        with self._store.lock:
            return list(self._store.records.values())
