"""
Recurring session service - the entry point of the generation engine.

Wires the pipeline together:

    RecurrenceCalculator -> CustomizationResolver -> ConflictChecker
        -> SessionMaterializer -> GenerationTracker -> GenerationResult

The service is constructed explicitly with its repositories; it holds no
process-wide state. The synchronous methods block on the repositories. The
async methods run the same pipeline in worker threads, adding a timeout and
bounded parallelism for bulk generation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID, uuid4

from .conflicts import ConflictChecker, ConflictCheckResult, SchedulingConflict
from .customization import CustomizationOverrides, CustomizationResolver
from .errors import (
    GenerationTimeoutError,
    SchedulingError,
    TemplateInactiveError,
    TemplateNotFoundError,
    TemplateNotRecurringError,
)
from .materializer import (
    CancellationToken,
    MaterializationRequest,
    MaterializationResult,
    SessionMaterializer,
)
from .models import (
    CoachingSession,
    GenerationSource,
    SessionTemplate,
    TemplateSessionRecord,
    utcnow,
)
from .recurrence import RecurrenceCalculator, describe_rule
from .repositories import (
    GenerationRecordRepository,
    RecordFilters,
    SessionRepository,
    TemplateRepository,
)
from .tracking import GenerationTracker, TemplateUsageStats, TrackingContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass
class PreviewRequest:
    template_id: UUID
    start_date: datetime
    end_date: Optional[datetime] = None
    max_occurrences: Optional[int] = None


@dataclass
class GenerateRequest:
    """Generate a recurrence series of sessions for one client."""
    template_id: UUID
    client_id: str
    start_date: datetime
    end_date: Optional[datetime] = None
    max_occurrences: Optional[int] = None
    customizations: Optional[CustomizationOverrides] = None
    apply_client_customization: bool = True
    generated_by: Optional[str] = None


@dataclass
class SingleSessionRequest:
    """Generate one session from a template at a given time."""
    template_id: UUID
    client_id: str
    scheduled_at: datetime
    customizations: Optional[CustomizationOverrides] = None
    apply_client_customization: bool = True
    generated_by: Optional[str] = None


@dataclass
class BulkGenerateRequest:
    """Generate the same series for many clients under one batch id."""
    template_id: UUID
    client_ids: list[str]
    start_date: datetime
    end_date: Optional[datetime] = None
    max_occurrences: Optional[int] = None
    customizations: Optional[CustomizationOverrides] = None
    apply_client_customization: bool = True
    generated_by: Optional[str] = None
    batch_id: Optional[str] = None

    def for_client(self, client_id: str) -> GenerateRequest:
        return GenerateRequest(
            template_id=self.template_id,
            client_id=client_id,
            start_date=self.start_date,
            end_date=self.end_date,
            max_occurrences=self.max_occurrences,
            customizations=self.customizations,
            apply_client_customization=self.apply_client_customization,
            generated_by=self.generated_by,
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PreviewResult:
    dates: tuple[datetime, ...] = ()
    truncated: bool = False
    description: str = ""


@dataclass(frozen=True)
class OccurrenceFailure:
    date: datetime
    errors: tuple[str, ...]


@dataclass(frozen=True)
class GenerationResult:
    """
    Summary of one generation request.

    `skipped_dates` are the conflicting dates. `tracking_failures` lists
    records whose sessions exist but whose tracking write was lost.
    """
    template_id: UUID
    client_id: str
    generated_sessions: tuple[CoachingSession, ...] = ()
    skipped_dates: tuple[datetime, ...] = ()
    conflicts: tuple[SchedulingConflict, ...] = ()
    failures: tuple[OccurrenceFailure, ...] = ()
    records: tuple[TemplateSessionRecord, ...] = ()
    tracking_failures: tuple[TemplateSessionRecord, ...] = ()
    parent_recurrence_id: Optional[UUID] = None
    truncated: bool = False
    cancelled: bool = False
    unprocessed_dates: tuple[datetime, ...] = ()
    message: str = ""

    @property
    def total_generated(self) -> int:
        return len(self.generated_sessions)

    @property
    def success(self) -> bool:
        """False only when occurrences were attempted and all of them failed."""
        attempted = len(self.generated_sessions) + len(self.failures)
        return attempted == 0 or self.total_generated > 0


@dataclass(frozen=True)
class ClientGenerationOutcome:
    client_id: str
    result: Optional[GenerationResult] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class BulkGenerationResult:
    batch_id: str
    outcomes: tuple[ClientGenerationOutcome, ...] = field(default_factory=tuple)

    @property
    def total_generated(self) -> int:
        return sum(outcome.result.total_generated for outcome in self.outcomes if outcome.result)

    @property
    def failed_clients(self) -> list[str]:
        return [outcome.client_id for outcome in self.outcomes if outcome.error]

    @property
    def tracking_failures(self) -> tuple[TemplateSessionRecord, ...]:
        return tuple(
            record
            for outcome in self.outcomes if outcome.result
            for record in outcome.result.tracking_failures
        )


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class RecurringSessionService:
    """
    Preview and generate template-based sessions.

    Each generation request processes its dates sequentially so that
    conflicts are skipped, failures don't abort the batch, and recurrence
    sequence numbers are deterministic.
    """

    def __init__(
        self,
        templates: TemplateRepository,
        sessions: SessionRepository,
        records: GenerationRecordRepository,
        calculator: Optional[RecurrenceCalculator] = None,
        resolver: Optional[CustomizationResolver] = None,
        tracking_write_attempts: int = 2,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._templates = templates
        self._calculator = calculator or RecurrenceCalculator()
        self._resolver = resolver or CustomizationResolver()
        self._conflicts = ConflictChecker(sessions)
        self._tracker = GenerationTracker(
            records,
            templates,
            tracking_write_attempts=tracking_write_attempts,
            clock=clock,
        )
        self._materializer = SessionMaterializer(sessions, self._tracker)

    @property
    def tracker(self) -> GenerationTracker:
        return self._tracker

    # -----------------------------------------------------------------------
    # Preview / conflicts
    # -----------------------------------------------------------------------

    def preview(self, request: PreviewRequest) -> PreviewResult:
        """
        Candidate dates for a template's rule. Never writes anything.

        Inactive and non-recurring templates preview as an empty list.
        """
        template = self._load_template(request.template_id)
        rule = template.recurrence_rule
        if not template.is_active or not template.is_recurring or rule is None:
            return PreviewResult()

        recurrence = self._calculator.calculate(
            rule,
            request.start_date,
            end_date=request.end_date,
            max_occurrences=request.max_occurrences,
        )
        return PreviewResult(
            dates=recurrence.dates,
            truncated=recurrence.truncated,
            description=describe_rule(rule),
        )

    def check_conflicts(
        self,
        client_id: str,
        dates: list[datetime],
        duration_minutes: int,
    ) -> ConflictCheckResult:
        return self._conflicts.check(dates, client_id, duration_minutes)

    # -----------------------------------------------------------------------
    # Generation
    # -----------------------------------------------------------------------

    def generate(
        self,
        request: GenerateRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> GenerationResult:
        """
        Generate a recurrence series for one client.

        Raises:
            TemplateNotFoundError, TemplateInactiveError,
            TemplateNotRecurringError: the template can't produce a series.
            ConflictCheckError: the schedule store failed during the check.
        """
        context = TrackingContext(
            generated_by=request.generated_by,
            source=GenerationSource.AUTOMATIC,
            parent_recurrence_id=uuid4(),
        )
        return self._run_series(request, context, cancel_token)

    def generate_single(self, request: SingleSessionRequest) -> GenerationResult:
        """Generate one session from a template (recurring or not)."""
        template = self._load_active_template(request.template_id)
        config = self._resolver.resolve(
            template,
            request.client_id,
            request.customizations,
            request.apply_client_customization,
        )
        check = self._conflicts.check([request.scheduled_at], request.client_id, config.duration)
        materialized = self._materializer.materialize(MaterializationRequest(
            template=template,
            client_id=request.client_id,
            dates=list(check.available_dates),
            configuration=config,
            context=TrackingContext(
                generated_by=request.generated_by,
                source=GenerationSource.MANUAL,
            ),
        ))
        return self._summarize(template, request.client_id, check, materialized, None, False)

    async def generate_with_timeout(
        self,
        request: GenerateRequest,
        timeout_seconds: float,
    ) -> GenerationResult:
        """
        Run `generate` in a worker thread with a time budget.

        On expiry the worker is told to stop before its next occurrence, and
        the in-flight occurrence is allowed to finish before
        GenerationTimeoutError is raised. The error carries the series id
        and what was written, so nothing lands after the caller is told the
        call ended.
        """
        token = CancellationToken()
        context = TrackingContext(
            generated_by=request.generated_by,
            source=GenerationSource.AUTOMATIC,
            parent_recurrence_id=uuid4(),
        )
        worker = asyncio.create_task(
            asyncio.to_thread(self._run_series, request, context, token)
        )
        done, _ = await asyncio.wait({worker}, timeout=timeout_seconds)
        if worker in done:
            return worker.result()

        token.cancel()
        partial = await worker
        logger.error(
            "Session generation timed out",
            extra={
                "template_id": str(request.template_id),
                "client_id": request.client_id,
                "parent_recurrence_id": str(context.parent_recurrence_id),
                "timeout_seconds": timeout_seconds,
                "generated": partial.total_generated,
                "unprocessed": len(partial.unprocessed_dates),
            }
        )
        raise GenerationTimeoutError(
            timeout_seconds,
            parent_recurrence_id=context.parent_recurrence_id,
            total_generated=partial.total_generated,
            tracking_failures=partial.tracking_failures,
        )

    async def generate_bulk(
        self,
        request: BulkGenerateRequest,
        max_concurrency: int = 4,
        timeout_seconds: Optional[float] = None,
    ) -> BulkGenerationResult:
        """
        Generate one template's series for many clients.

        Clients run concurrently (at most `max_concurrency` at a time) since
        their series are independent; each client's dates still run
        sequentially. Any error for one client, including a raw store
        failure, is recorded in its outcome and doesn't affect the others.

        On timeout every worker stops before its next occurrence and the
        in-flight ones finish before GenerationTimeoutError is raised.
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        # Fail fast on a bad template instead of once per client.
        self._load_recurring_template(request.template_id)

        batch_id = request.batch_id or f"batch-{uuid4().hex}"
        client_ids = list(dict.fromkeys(request.client_ids))
        if not client_ids:
            return BulkGenerationResult(batch_id=batch_id)

        semaphore = asyncio.Semaphore(max_concurrency)
        token = CancellationToken()

        logger.info(
            "Starting bulk generation",
            extra={
                "template_id": str(request.template_id),
                "batch_id": batch_id,
                "clients": len(client_ids),
                "max_concurrency": max_concurrency,
            }
        )

        async def run_client(client_id: str) -> ClientGenerationOutcome:
            async with semaphore:
                if token.cancelled:
                    return ClientGenerationOutcome(
                        client_id=client_id,
                        error="Not started before the batch timed out",
                    )
                context = TrackingContext(
                    generated_by=request.generated_by,
                    source=GenerationSource.BULK,
                    batch_id=batch_id,
                    parent_recurrence_id=uuid4(),
                )
                try:
                    result = await asyncio.to_thread(
                        self._run_series, request.for_client(client_id), context, token
                    )
                except SchedulingError as e:
                    logger.error(
                        "Bulk generation failed for client",
                        extra={"batch_id": batch_id, "client_id": client_id, "error": str(e)}
                    )
                    return ClientGenerationOutcome(client_id=client_id, error=str(e))
                except Exception as e:
                    logger.error(
                        "Unexpected error in bulk generation for client",
                        extra={"batch_id": batch_id, "client_id": client_id, "error": str(e)},
                        exc_info=True,
                    )
                    return ClientGenerationOutcome(client_id=client_id, error=str(e))
                return ClientGenerationOutcome(client_id=client_id, result=result)

        tasks = [asyncio.create_task(run_client(client_id)) for client_id in client_ids]
        _, pending = await asyncio.wait(tasks, timeout=timeout_seconds)

        if pending:
            token.cancel()
            await asyncio.gather(*pending)
            partial = BulkGenerationResult(
                batch_id=batch_id,
                outcomes=tuple(task.result() for task in tasks),
            )
            logger.error(
                "Bulk generation timed out",
                extra={
                    "batch_id": batch_id,
                    "timeout_seconds": timeout_seconds,
                    "generated": partial.total_generated,
                }
            )
            raise GenerationTimeoutError(
                timeout_seconds,
                batch_id=batch_id,
                total_generated=partial.total_generated,
                tracking_failures=partial.tracking_failures,
            )

        result = BulkGenerationResult(
            batch_id=batch_id,
            outcomes=tuple(task.result() for task in tasks),
        )
        logger.info(
            "Bulk generation finished",
            extra={
                "batch_id": batch_id,
                "total_generated": result.total_generated,
                "failed_clients": len(result.failed_clients),
            }
        )
        return result

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def records_for_template(
        self,
        template_id: UUID,
        filters: Optional[RecordFilters] = None,
    ) -> list[TemplateSessionRecord]:
        return self._tracker.by_template(template_id, filters)

    def recurrence_series(self, parent_recurrence_id: UUID) -> list[TemplateSessionRecord]:
        return self._tracker.series(parent_recurrence_id)

    def recurrence_siblings(self, record_id: UUID) -> list[TemplateSessionRecord]:
        return self._tracker.siblings(record_id)

    def batch_records(self, batch_id: str) -> list[TemplateSessionRecord]:
        return self._tracker.by_batch(batch_id)

    def usage_stats(self, template_id: UUID) -> TemplateUsageStats:
        return self._tracker.usage_stats(template_id)

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _run_series(
        self,
        request: GenerateRequest,
        context: TrackingContext,
        cancel_token: Optional[CancellationToken] = None,
    ) -> GenerationResult:
        template = self._load_recurring_template(request.template_id)

        recurrence = self._calculator.calculate(
            template.recurrence_rule,
            request.start_date,
            end_date=request.end_date,
            max_occurrences=request.max_occurrences,
        )
        config = self._resolver.resolve(
            template,
            request.client_id,
            request.customizations,
            request.apply_client_customization,
        )
        check = self._conflicts.check(list(recurrence.dates), request.client_id, config.duration)

        materialized = self._materializer.materialize(
            MaterializationRequest(
                template=template,
                client_id=request.client_id,
                dates=list(check.available_dates),
                configuration=config,
                context=context,
            ),
            cancel_token,
        )

        result = self._summarize(
            template,
            request.client_id,
            check,
            materialized,
            context.parent_recurrence_id,
            recurrence.truncated,
        )
        logger.info(
            "Recurring sessions generated",
            extra={
                "template_id": str(template.id),
                "client_id": request.client_id,
                "parent_recurrence_id": str(context.parent_recurrence_id),
                "candidates": recurrence.count,
                "generated": result.total_generated,
                "conflicts": len(result.conflicts),
                "failures": len(result.failures),
            }
        )
        return result

    def _summarize(
        self,
        template: SessionTemplate,
        client_id: str,
        check: ConflictCheckResult,
        materialized: MaterializationResult,
        parent_recurrence_id: Optional[UUID],
        truncated: bool,
    ) -> GenerationResult:
        generated = [occurrence.session for occurrence in materialized.succeeded if occurrence.session]
        failures = [
            OccurrenceFailure(date=occurrence.date, errors=occurrence.errors)
            for occurrence in materialized.failed
        ]
        untracked = [
            occurrence.record for occurrence in materialized.untracked if occurrence.succeeded
        ]

        parts = [f"Generated {_plural(len(generated), 'session')}"]
        if check.conflicts:
            parts.append(f"skipped {_plural(len(check.conflicts), 'conflicting date')}")
        if failures:
            parts.append(f"{len(failures)} failed")
        if materialized.cancelled:
            parts.append(f"{len(materialized.unprocessed_dates)} not processed (cancelled)")
        if truncated:
            parts.append("series cut short by the scan limit")

        return GenerationResult(
            template_id=template.id,
            client_id=client_id,
            generated_sessions=tuple(generated),
            skipped_dates=check.conflicting_dates,
            conflicts=check.conflicts,
            failures=tuple(failures),
            records=tuple(occurrence.record for occurrence in materialized.occurrences),
            tracking_failures=tuple(untracked),
            parent_recurrence_id=parent_recurrence_id,
            truncated=truncated,
            cancelled=materialized.cancelled,
            unprocessed_dates=materialized.unprocessed_dates,
            message=", ".join(parts),
        )

    def _load_template(self, template_id: UUID) -> SessionTemplate:
        template = self._templates.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def _load_active_template(self, template_id: UUID) -> SessionTemplate:
        template = self._load_template(template_id)
        if not template.is_active:
            raise TemplateInactiveError(template_id)
        return template

    def _load_recurring_template(self, template_id: UUID) -> SessionTemplate:
        template = self._load_active_template(template_id)
        if not template.is_recurring or template.recurrence_rule is None:
            raise TemplateNotRecurringError(template_id)
        return template
