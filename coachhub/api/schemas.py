"""
Request/response models shared by the scheduling routes.

The JSON surface uses camelCase (templateId, startDate...); Python code
uses the snake_case field names. Incoming datetimes are normalized to naive
UTC, the only kind the scheduling core understands.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..core.scheduling import (
    BulkGenerateRequest,
    ClientGenerationOutcome,
    CoachingSession,
    ConflictCheckResult,
    CustomizationOverrides,
    GenerateRequest,
    GenerationResult,
    SingleSessionRequest,
    StructureComponent,
    TemplateSessionRecord,
    TemplateUsageStats,
)
from ..core.scheduling.models import MAX_BATCH_ID_LENGTH, MAX_SESSION_MINUTES, MIN_SESSION_MINUTES


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]
Minutes = Annotated[int, Field(ge=MIN_SESSION_MINUTES, le=MAX_SESSION_MINUTES)]


class CamelModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Customizations
# ---------------------------------------------------------------------------

class StructureComponentModel(CamelModel):
    """One agenda block of a session."""
    id: str = Field(min_length=1)
    type: str
    title: str
    estimated_duration: int = Field(0, ge=0, description="Minutes")
    required: bool = False
    prompts: list[str] = Field(default_factory=list)

    def to_domain(self) -> StructureComponent:
        return StructureComponent(
            id=self.id,
            type=self.type,
            title=self.title,
            estimated_duration=self.estimated_duration,
            required=self.required,
            prompts=tuple(self.prompts),
        )

    @classmethod
    def from_domain(cls, component: StructureComponent) -> "StructureComponentModel":
        return cls(
            id=component.id,
            type=component.type,
            title=component.title,
            estimated_duration=component.estimated_duration,
            required=component.required,
            prompts=list(component.prompts),
        )


class CustomizationsModel(CamelModel):
    """Per-request overrides. Omitted fields fall through to the client/template."""
    duration: Optional[Minutes] = None
    structure: Optional[list[StructureComponentModel]] = None
    objectives: Optional[list[str]] = None
    notes: Optional[str] = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> CustomizationOverrides:
        """Raises ValueError for invalid structure (duplicate ids, too long)."""
        return CustomizationOverrides(
            duration=self.duration,
            structure=(
                tuple(component.to_domain() for component in self.structure)
                if self.structure is not None else None
            ),
            objectives=tuple(self.objectives) if self.objectives is not None else None,
            notes=self.notes,
            custom_fields=dict(self.custom_fields),
        )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class PreviewRequestModel(CamelModel):
    template_id: UUID
    start_date: UtcDatetime
    end_date: Optional[UtcDatetime] = None
    max_occurrences: Optional[int] = Field(None, ge=1)


class CheckConflictsRequestModel(CamelModel):
    client_id: str = Field(min_length=1)
    dates: list[UtcDatetime]
    duration_minutes: Minutes = 60


class GenerateRequestModel(CamelModel):
    """Generate a recurring series for one client."""
    template_id: UUID
    client_id: str = Field(min_length=1)
    start_date: UtcDatetime
    end_date: Optional[UtcDatetime] = None
    max_occurrences: Optional[int] = Field(None, ge=1)
    customizations: Optional[CustomizationsModel] = None
    apply_client_customization: bool = True

    def to_domain(self, generated_by: Optional[str]) -> GenerateRequest:
        return GenerateRequest(
            template_id=self.template_id,
            client_id=self.client_id,
            start_date=self.start_date,
            end_date=self.end_date,
            max_occurrences=self.max_occurrences,
            customizations=self.customizations.to_domain() if self.customizations else None,
            apply_client_customization=self.apply_client_customization,
            generated_by=generated_by,
        )


class BulkGenerateRequestModel(CamelModel):
    """Generate the same series for several clients under one batch id."""
    template_id: UUID
    client_ids: list[str] = Field(min_length=1)
    start_date: UtcDatetime
    end_date: Optional[UtcDatetime] = None
    max_occurrences: Optional[int] = Field(None, ge=1)
    customizations: Optional[CustomizationsModel] = None
    apply_client_customization: bool = True
    batch_id: Optional[str] = Field(None, min_length=1, max_length=MAX_BATCH_ID_LENGTH)

    def to_domain(self, generated_by: Optional[str]) -> BulkGenerateRequest:
        return BulkGenerateRequest(
            template_id=self.template_id,
            client_ids=list(self.client_ids),
            start_date=self.start_date,
            end_date=self.end_date,
            max_occurrences=self.max_occurrences,
            customizations=self.customizations.to_domain() if self.customizations else None,
            apply_client_customization=self.apply_client_customization,
            generated_by=generated_by,
            batch_id=self.batch_id,
        )


class SingleSessionRequestModel(CamelModel):
    """Generate one session from a template."""
    client_id: str = Field(min_length=1)
    scheduled_at: UtcDatetime
    customizations: Optional[CustomizationsModel] = None
    apply_client_customization: bool = True

    def to_domain(self, template_id: UUID, generated_by: Optional[str]) -> SingleSessionRequest:
        return SingleSessionRequest(
            template_id=template_id,
            client_id=self.client_id,
            scheduled_at=self.scheduled_at,
            customizations=self.customizations.to_domain() if self.customizations else None,
            apply_client_customization=self.apply_client_customization,
            generated_by=generated_by,
        )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class PreviewResponse(CamelModel):
    dates: list[datetime]
    count: int
    truncated: bool = Field(description="True when more occurrences may exist past the last date")
    description: str


class ConflictModel(CamelModel):
    date: datetime
    conflicting_session_id: UUID
    reason: str


class CheckConflictsResponse(CamelModel):
    conflicts: list[ConflictModel]
    available_dates: list[datetime]

    @classmethod
    def from_domain(cls, result: ConflictCheckResult) -> "CheckConflictsResponse":
        return cls(
            conflicts=[ConflictModel(**vars(conflict)) for conflict in result.conflicts],
            available_dates=list(result.available_dates),
        )


class SessionModel(CamelModel):
    id: UUID
    coach_id: str
    client_id: str
    scheduled_at: datetime
    duration_minutes: int
    status: str
    notes: str

    @classmethod
    def from_domain(cls, session: CoachingSession) -> "SessionModel":
        return cls(
            id=session.id,
            coach_id=session.coach_id,
            client_id=session.client_id,
            scheduled_at=session.scheduled_at,
            duration_minutes=session.duration_minutes,
            status=session.status.value,
            notes=session.notes,
        )


class FailureModel(CamelModel):
    date: datetime
    errors: list[str]


class RecordModel(CamelModel):
    """A generation record as exposed over HTTP."""
    id: UUID
    template_id: UUID
    session_id: UUID
    coach_id: str
    client_id: str
    generation_status: str
    generated_at: datetime
    generated_by: Optional[str] = None
    template_name: str
    template_version: int
    template_structure: list[StructureComponentModel]
    applied_customizations: Optional[dict[str, Any]] = None
    is_from_recurrence: bool
    recurrence_sequence: Optional[int] = None
    parent_recurrence_id: Optional[UUID] = None
    source: str
    batch_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, record: TemplateSessionRecord) -> "RecordModel":
        applied = record.applied_customizations
        return cls(
            id=record.id,
            template_id=record.template_id,
            session_id=record.session_id,
            coach_id=record.coach_id,
            client_id=record.client_id,
            generation_status=record.generation_status.value,
            generated_at=record.generated_at,
            generated_by=record.generated_by,
            template_name=record.template_snapshot.name,
            template_version=record.template_snapshot.version,
            template_structure=[
                StructureComponentModel.from_domain(c) for c in record.template_snapshot.structure
            ],
            applied_customizations=_applied_dict(applied) if applied is not None else None,
            is_from_recurrence=record.is_from_recurrence,
            recurrence_sequence=record.recurrence_sequence,
            parent_recurrence_id=record.parent_recurrence_id,
            source=record.metadata.source.value,
            batch_id=record.batch_id,
            scheduled_date=record.metadata.scheduled_date,
            errors=list(record.errors),
        )


def _applied_dict(applied) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if applied.duration is not None:
        values["duration"] = applied.duration
    if applied.structure is not None:
        values["structure"] = [
            StructureComponentModel.from_domain(c).model_dump(by_alias=True)
            for c in applied.structure
        ]
    if applied.objectives is not None:
        values["objectives"] = list(applied.objectives)
    if applied.notes is not None:
        values["notes"] = applied.notes
    if applied.custom_fields:
        values["customFields"] = dict(applied.custom_fields)
    return values


class GenerateResponse(CamelModel):
    """Outcome of a generate call. Partial success is still a 200."""
    success: bool
    generated_sessions: list[SessionModel]
    skipped_dates: list[datetime]
    conflicts: list[ConflictModel]
    failures: list[FailureModel]
    total_generated: int
    message: str
    parent_recurrence_id: Optional[UUID] = None
    truncated: bool = False
    cancelled: bool = False
    unprocessed_dates: list[datetime] = Field(default_factory=list)
    tracking_failures: list[UUID] = Field(
        default_factory=list,
        description="Ids of generated sessions whose tracking record could not be saved",
    )

    @classmethod
    def from_domain(cls, result: GenerationResult) -> "GenerateResponse":
        return cls(
            success=result.success,
            generated_sessions=[SessionModel.from_domain(s) for s in result.generated_sessions],
            skipped_dates=list(result.skipped_dates),
            conflicts=[ConflictModel(**vars(conflict)) for conflict in result.conflicts],
            failures=[FailureModel(date=f.date, errors=list(f.errors)) for f in result.failures],
            total_generated=result.total_generated,
            message=result.message,
            parent_recurrence_id=result.parent_recurrence_id,
            truncated=result.truncated,
            cancelled=result.cancelled,
            unprocessed_dates=list(result.unprocessed_dates),
            tracking_failures=[record.session_id for record in result.tracking_failures],
        )


class ClientOutcomeModel(CamelModel):
    client_id: str
    success: bool
    total_generated: int = 0
    parent_recurrence_id: Optional[UUID] = None
    message: str = ""
    error: Optional[str] = None

    @classmethod
    def from_domain(cls, outcome: ClientGenerationOutcome) -> "ClientOutcomeModel":
        if outcome.result is None:
            return cls(client_id=outcome.client_id, success=False, error=outcome.error)
        result = outcome.result
        return cls(
            client_id=outcome.client_id,
            success=result.success,
            total_generated=result.total_generated,
            parent_recurrence_id=result.parent_recurrence_id,
            message=result.message,
        )


class BulkGenerateResponse(CamelModel):
    batch_id: str
    total_generated: int
    failed_clients: list[str]
    results: list[ClientOutcomeModel]


class UsageStatsResponse(CamelModel):
    template_id: UUID
    usage_count: int
    last_used_at: Optional[datetime] = None
    total_records: int
    by_status: dict[str, int]
    last_generated_at: Optional[datetime] = None
    success_rate: Optional[float] = None

    @classmethod
    def from_domain(cls, stats: TemplateUsageStats) -> "UsageStatsResponse":
        return cls(
            template_id=stats.template_id,
            usage_count=stats.usage_count,
            last_used_at=stats.last_used_at,
            total_records=stats.total,
            by_status={usage.status.value: usage.count for usage in stats.by_status},
            last_generated_at=stats.last_generated_at,
            success_rate=stats.success_rate,
        )
