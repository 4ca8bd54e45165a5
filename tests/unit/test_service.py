"""
Unit tests for RecurringSessionService, the generation pipeline end to end.

Runs against the in-memory repositories; failure modes are injected by
subclassing a repository or with unittest.mock.
"""

import asyncio
import time
from dataclasses import replace
from datetime import datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from coachhub.core.scheduling import (
    BulkGenerateRequest,
    CoachingSession,
    ConflictCheckError,
    CustomizationOverrides,
    GenerateRequest,
    GenerationSource,
    GenerationStatus,
    GenerationTimeoutError,
    PreviewRequest,
    RecurringSessionService,
    SingleSessionRequest,
    TemplateCustomization,
    TemplateInactiveError,
    TemplateNotFoundError,
    TemplateNotRecurringError,
)
from coachhub.infrastructure.memory import (
    InMemoryGenerationRecordRepository,
    InMemorySessionRepository,
    InMemoryTemplateRepository,
)

MONDAY = datetime(2024, 1, 1, 9, 0)


def _mondays(count: int) -> list[datetime]:
    return [MONDAY + timedelta(weeks=i) for i in range(count)]


class BrokenSessionRepository(InMemorySessionRepository):
    """Every session write fails."""

    def create_session(self, session):
        raise RuntimeError("insert rejected")


class SlowSessionRepository(InMemorySessionRepository):
    """Each session write takes `delay` seconds."""

    def __init__(self, store, delay: float) -> None:
        super().__init__(store)
        self._delay = delay

    def create_session(self, session):
        time.sleep(self._delay)
        return super().create_session(session)


class UnreachableForClientRepository(InMemorySessionRepository):
    """Conflict lookups fail for one client only."""

    def __init__(self, store, client_id: str) -> None:
        super().__init__(store)
        self._client_id = client_id

    def find_conflicting_session(self, client_id, starts_at, duration_minutes):
        if client_id == self._client_id:
            raise RuntimeError("schedule unavailable")
        return super().find_conflicting_session(client_id, starts_at, duration_minutes)


class LosingRecordRepository(InMemoryGenerationRecordRepository):
    """Every tracking write fails."""

    def create_record(self, record):
        raise RuntimeError("record store down")


class FlakyTemplateRepository(InMemoryTemplateRepository):
    """Template lookup `fail_on_call` raises a raw connection error."""

    def __init__(self, store, fail_on_call: int) -> None:
        super().__init__(store)
        self._fail_on_call = fail_on_call
        self.calls = 0

    def get_template(self, template_id):
        self.calls += 1
        if self.calls == self._fail_on_call:
            raise ConnectionError("template store blip")
        return super().get_template(template_id)


def _service(store, sessions=None, records=None, templates=None) -> RecurringSessionService:
    return RecurringSessionService(
        templates=templates or InMemoryTemplateRepository(store),
        sessions=sessions or InMemorySessionRepository(store),
        records=records or InMemoryGenerationRecordRepository(store),
    )


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

class TestPreview:

    def test_preview_lists_dates_without_writing(self, store, template_repository, weekly_template):
        sessions = MagicMock()
        records = MagicMock()
        service = RecurringSessionService(template_repository, sessions, records)

        result = service.preview(PreviewRequest(
            template_id=weekly_template.id,
            start_date=MONDAY,
            max_occurrences=4,
        ))

        assert list(result.dates) == _mondays(4)
        assert result.description == "Every week on Monday"
        sessions.create_session.assert_not_called()
        sessions.find_conflicting_session.assert_not_called()
        records.create_record.assert_not_called()
        assert store.templates[weekly_template.id].usage_count == 0

    def test_non_recurring_template_previews_empty(self, store, service, make_template):
        template = make_template(is_recurring=False, recurrence_rule=None)
        store.add_template(template)

        result = service.preview(PreviewRequest(template_id=template.id, start_date=MONDAY))

        assert result.dates == ()

    def test_inactive_template_previews_empty(self, store, service, make_template):
        template = make_template(is_active=False)
        store.add_template(template)

        result = service.preview(PreviewRequest(template_id=template.id, start_date=MONDAY))

        assert result.dates == ()

    def test_unknown_template(self, service):
        with pytest.raises(TemplateNotFoundError):
            service.preview(PreviewRequest(template_id=uuid4(), start_date=MONDAY))


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------

class TestGenerate:

    def test_weekly_series(self, store, service, weekly_template):
        result = service.generate(GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=5,
            generated_by="coach-1",
        ))

        assert result.success
        assert result.total_generated == 5
        assert [s.scheduled_at for s in store.sessions_for("client-1")] == _mondays(5)
        assert [r.recurrence_sequence for r in result.records] == [1, 2, 3, 4, 5]
        assert {r.parent_recurrence_id for r in result.records} == {result.parent_recurrence_id}
        assert all(r.is_from_recurrence for r in result.records)
        assert all(r.metadata.source is GenerationSource.AUTOMATIC for r in result.records)
        assert result.message == "Generated 5 sessions"

    def test_series_can_be_queried_back(self, service, weekly_template):
        result = service.generate(GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=3,
        ))

        series = service.recurrence_series(result.parent_recurrence_id)
        siblings = service.recurrence_siblings(series[0].id)

        assert [r.recurrence_sequence for r in series] == [1, 2, 3]
        assert [r.recurrence_sequence for r in siblings] == [2, 3]

    def test_conflicts_are_skipped_and_sequences_stay_dense(self, store, service, weekly_template):
        taken = _mondays(4)[1]
        store.add_session(CoachingSession(
            coach_id="coach-2",
            client_id="client-1",
            scheduled_at=taken,
            duration_minutes=60,
        ))

        result = service.generate(GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=4,
        ))

        assert result.total_generated == 3
        assert result.skipped_dates == (taken,)
        assert taken not in [s.scheduled_at for s in result.generated_sessions]
        assert [r.recurrence_sequence for r in result.records] == [1, 2, 3]
        assert result.message == "Generated 3 sessions, skipped 1 conflicting date"

    def test_every_write_failing_is_not_a_success(self, store, weekly_template):
        service = _service(store, sessions=BrokenSessionRepository(store))

        result = service.generate(GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=2,
        ))

        assert not result.success
        assert result.total_generated == 0
        assert [f.date for f in result.failures] == _mondays(2)
        assert all(r.generation_status is GenerationStatus.FAILED for r in result.records)
        assert store.templates[weekly_template.id].usage_count == 0

    def test_no_candidates_is_still_a_success(self, service, weekly_template):
        result = service.generate(GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            end_date=datetime(2023, 12, 1),
        ))

        assert result.success
        assert result.total_generated == 0

    def test_conflict_store_failure_generates_nothing(self, store, weekly_template):
        sessions = UnreachableForClientRepository(store, "client-1")
        service = _service(store, sessions=sessions)

        with pytest.raises(ConflictCheckError):
            service.generate(GenerateRequest(
                template_id=weekly_template.id,
                client_id="client-1",
                start_date=MONDAY,
                max_occurrences=3,
            ))

        assert store.sessions == {}
        assert store.records == {}

    def test_usage_counter_tracks_generated_sessions(self, store, service, weekly_template):
        service.generate(GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=3,
        ))

        stats = service.usage_stats(weekly_template.id)

        assert stats.usage_count == 3
        assert stats.count(GenerationStatus.GENERATED) == 3
        assert stats.last_used_at is not None

    def test_lost_tracking_writes_are_reported(self, store, weekly_template):
        service = _service(store, records=LosingRecordRepository(store))

        result = service.generate(GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=2,
        ))

        assert result.total_generated == 2
        assert len(store.sessions_for("client-1")) == 2
        assert [r.session_id for r in result.tracking_failures] == [
            s.id for s in result.generated_sessions
        ]

    def test_snapshot_survives_template_edits(self, store, service, weekly_template):
        result = service.generate(GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=1,
        ))
        store.add_template(replace(weekly_template, name="Renamed", version=2, structure=[]))

        record = service.recurrence_series(result.parent_recurrence_id)[0]

        assert record.template_snapshot.name == "Weekly check-in"
        assert record.template_snapshot.version == 1
        assert len(record.template_snapshot.structure) == 2

    def test_client_customization_is_applied_and_recorded(self, store, service, make_template):
        template = make_template(customizations=[
            TemplateCustomization(client_id="client-1", duration=90, notes="Bring CV"),
        ])
        store.add_template(template)

        result = service.generate(GenerateRequest(
            template_id=template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=2,
            customizations=CustomizationOverrides(notes="Bring portfolio"),
        ))

        assert all(s.duration_minutes == 90 for s in result.generated_sessions)
        assert all(s.notes == "Bring portfolio" for s in result.generated_sessions)
        applied = result.records[0].applied_customizations
        assert applied.duration == 90
        assert applied.notes == "Bring portfolio"

    def test_default_configuration_records_no_customizations(self, service, weekly_template):
        result = service.generate(GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=1,
        ))

        assert result.records[0].applied_customizations is None

    def test_unknown_template(self, service):
        with pytest.raises(TemplateNotFoundError):
            service.generate(GenerateRequest(template_id=uuid4(), client_id="client-1", start_date=MONDAY))

    def test_inactive_template(self, store, service, make_template):
        template = make_template(is_active=False)
        store.add_template(template)

        with pytest.raises(TemplateInactiveError):
            service.generate(GenerateRequest(template_id=template.id, client_id="client-1", start_date=MONDAY))

    def test_one_off_template_cannot_generate_a_series(self, store, service, make_template):
        template = make_template(is_recurring=False, recurrence_rule=None)
        store.add_template(template)

        with pytest.raises(TemplateNotRecurringError):
            service.generate(GenerateRequest(template_id=template.id, client_id="client-1", start_date=MONDAY))


# ---------------------------------------------------------------------------
# Single session
# ---------------------------------------------------------------------------

class TestGenerateSingle:

    def test_one_off_template(self, store, service, make_template):
        template = make_template(is_recurring=False, recurrence_rule=None)
        store.add_template(template)

        result = service.generate_single(SingleSessionRequest(
            template_id=template.id,
            client_id="client-1",
            scheduled_at=datetime(2024, 3, 4, 14, 0),
            generated_by="coach-1",
        ))

        record = result.records[0]
        assert result.total_generated == 1
        assert result.parent_recurrence_id is None
        assert record.metadata.source is GenerationSource.MANUAL
        assert not record.is_from_recurrence
        assert record.recurrence_sequence is None
        assert record.generated_by == "coach-1"

    def test_conflicting_slot_is_skipped(self, store, service, weekly_template):
        store.add_session(CoachingSession(
            coach_id="coach-1",
            client_id="client-1",
            scheduled_at=MONDAY,
            duration_minutes=60,
        ))

        result = service.generate_single(SingleSessionRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            scheduled_at=MONDAY + timedelta(minutes=30),
        ))

        assert result.total_generated == 0
        assert len(result.conflicts) == 1
        assert result.success


# ---------------------------------------------------------------------------
# Async entry points
# ---------------------------------------------------------------------------

class TestGenerateWithTimeout:

    def test_completes_within_budget(self, service, weekly_template):
        request = GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=3,
        )

        result = asyncio.run(service.generate_with_timeout(request, timeout_seconds=5))

        assert result.total_generated == 3

    def test_timeout_stops_the_series(self, store, weekly_template):
        service = _service(store, sessions=SlowSessionRepository(store, delay=0.1))
        request = GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=10,
        )

        with pytest.raises(GenerationTimeoutError) as exc_info:
            asyncio.run(service.generate_with_timeout(request, timeout_seconds=0.15))

        created = store.sessions_for("client-1")
        assert len(created) < 10
        assert exc_info.value.total_generated == len(created)
        assert exc_info.value.tracking_failures == ()
        series = service.recurrence_series(exc_info.value.parent_recurrence_id)
        assert [r.session_id for r in series] == [s.id for s in created]

    def test_nothing_is_written_after_the_timeout_is_raised(self, store, weekly_template):
        service = _service(store, sessions=SlowSessionRepository(store, delay=0.3))
        request = GenerateRequest(
            template_id=weekly_template.id,
            client_id="client-1",
            start_date=MONDAY,
            max_occurrences=5,
        )

        with pytest.raises(GenerationTimeoutError) as exc_info:
            asyncio.run(service.generate_with_timeout(request, timeout_seconds=0.1))

        # the in-flight occurrence finished before the error was raised
        written = (len(store.sessions), len(store.records))
        assert written == (1, 1)
        assert exc_info.value.total_generated == 1

        time.sleep(0.6)

        assert (len(store.sessions), len(store.records)) == written


class TestGenerateBulk:

    def _request(self, template_id, client_ids, **kwargs) -> BulkGenerateRequest:
        return BulkGenerateRequest(
            template_id=template_id,
            client_ids=client_ids,
            start_date=MONDAY,
            max_occurrences=2,
            **kwargs,
        )

    def test_shared_batch_id(self, service, weekly_template):
        result = asyncio.run(service.generate_bulk(
            self._request(weekly_template.id, ["client-1", "client-2", "client-1"], batch_id="spring-cohort"),
            max_concurrency=2,
        ))

        records = service.batch_records("spring-cohort")
        assert result.batch_id == "spring-cohort"
        assert [o.client_id for o in result.outcomes] == ["client-1", "client-2"]
        assert result.total_generated == 4
        assert len(records) == 4
        assert all(r.metadata.source is GenerationSource.BULK for r in records)
        assert len({r.parent_recurrence_id for r in records}) == 2

    def test_batch_id_is_generated_when_missing(self, service, weekly_template):
        result = asyncio.run(service.generate_bulk(self._request(weekly_template.id, ["client-1"])))

        assert result.batch_id.startswith("batch-")

    def test_one_client_failing_does_not_affect_others(self, store, weekly_template):
        service = _service(store, sessions=UnreachableForClientRepository(store, "client-2"))

        result = asyncio.run(service.generate_bulk(
            self._request(weekly_template.id, ["client-1", "client-2", "client-3"])
        ))

        assert result.failed_clients == ["client-2"]
        assert result.total_generated == 4
        failed = [o for o in result.outcomes if o.client_id == "client-2"][0]
        assert "schedule unavailable" in failed.error
        assert store.sessions_for("client-2") == []

    def test_bad_template_fails_the_whole_batch(self, service):
        with pytest.raises(TemplateNotFoundError):
            asyncio.run(service.generate_bulk(self._request(uuid4(), ["client-1"])))

    def test_concurrency_must_be_positive(self, service, weekly_template):
        with pytest.raises(ValueError):
            asyncio.run(service.generate_bulk(self._request(weekly_template.id, ["client-1"]), max_concurrency=0))

    def test_store_error_for_one_client_does_not_abort_the_batch(self, store, weekly_template):
        # call 1 is the up-front template check, then one call per client in order
        templates = FlakyTemplateRepository(store, fail_on_call=3)
        service = _service(store, templates=templates)

        result = asyncio.run(service.generate_bulk(
            self._request(weekly_template.id, ["client-a", "client-b", "client-c"]),
            max_concurrency=1,
        ))

        assert result.failed_clients == ["client-b"]
        assert result.total_generated == 4
        failed = [o for o in result.outcomes if o.client_id == "client-b"][0]
        assert failed.error == "template store blip"
        assert store.sessions_for("client-b") == []
        assert len(store.sessions_for("client-c")) == 2

    def test_timeout_waits_for_in_flight_clients(self, store, weekly_template):
        service = _service(store, sessions=SlowSessionRepository(store, delay=0.1))
        request = BulkGenerateRequest(
            template_id=weekly_template.id,
            client_ids=["client-1", "client-2", "client-3"],
            start_date=MONDAY,
            max_occurrences=5,
            batch_id="late-batch",
        )

        with pytest.raises(GenerationTimeoutError) as exc_info:
            asyncio.run(service.generate_bulk(request, max_concurrency=1, timeout_seconds=0.15))

        written = (len(store.sessions), len(store.records))
        assert exc_info.value.batch_id == "late-batch"
        assert exc_info.value.total_generated == written[0]
        assert written[0] < 5
        assert store.sessions_for("client-2") == []

        time.sleep(0.3)

        assert (len(store.sessions), len(store.records)) == written
        assert len(service.batch_records("late-batch")) == written[1]
