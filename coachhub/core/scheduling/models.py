"""
Domain models for recurring session generation.

These models represent the scheduling concepts: templates, recurrence rules,
concrete coaching sessions and the records that track how each session was
generated. They have no dependencies on FastAPI or Snowflake.

Relations between entities are id-based (template id, session id, parent
recurrence id). Nothing here performs I/O; usage counters and status changes
are persisted through explicit repository operations.

All datetimes are naive instants in a single reference timezone (UTC).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID, uuid4

from .errors import InvalidStatusTransitionError

MIN_SESSION_MINUTES = 15
MAX_SESSION_MINUTES = 480
MAX_BATCH_ID_LENGTH = 100


def utcnow() -> datetime:
    """Current time as a naive UTC instant."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def check_duration(minutes: int, label: str) -> None:
    if not MIN_SESSION_MINUTES <= minutes <= MAX_SESSION_MINUTES:
        raise ValueError(
            f"{label} must be between {MIN_SESSION_MINUTES} and {MAX_SESSION_MINUTES} minutes"
        )


class RecurrencePattern(Enum):
    """The fixed set of supported recurrence patterns."""
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    CUSTOM = "custom"  # every `interval` weeks, no finer filtering


class SessionStatus(Enum):
    """Lifecycle of a bookable coaching session."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class GenerationStatus(Enum):
    """
    Outcome of generating one session from a template.

    pending -> generated, or pending -> failed. A pending or generated
    record may later become cancelled when its session is cancelled.
    """
    PENDING = "pending"
    GENERATED = "generated"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GenerationSource(Enum):
    """What triggered the generation."""
    MANUAL = "manual"        # single session from a template
    AUTOMATIC = "automatic"  # recurrence series
    BULK = "bulk"            # batch across clients


@dataclass(frozen=True)
class RecurrenceRule:
    """
    Declarative recurrence rule.

    Weekdays follow the 0=Sunday..6=Saturday convention. End date and
    max occurrences may both be set; whichever is reached first wins.
    With neither, the series is only bounded by the scan cap.

    An unrecognised pattern is kept as its raw string so stored rules
    with unknown patterns degrade to an empty series instead of failing
    to load.
    """
    pattern: Union[RecurrencePattern, str]
    interval: int = 1
    days_of_week: tuple[int, ...] = ()
    day_of_month: Optional[int] = None
    end_date: Optional[datetime] = None
    max_occurrences: Optional[int] = None

    def __post_init__(self) -> None:
        if isinstance(self.pattern, str):
            try:
                object.__setattr__(self, "pattern", RecurrencePattern(self.pattern))
            except ValueError:
                pass
        if self.interval < 1:
            raise ValueError("Recurrence interval must be a positive integer")
        if any(day < 0 or day > 6 for day in self.days_of_week):
            raise ValueError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
        object.__setattr__(self, "days_of_week", tuple(sorted(set(self.days_of_week))))
        if self.day_of_month is not None and not 1 <= self.day_of_month <= 31:
            raise ValueError("Day of month must be between 1 and 31")
        if self.max_occurrences is not None and self.max_occurrences < 1:
            raise ValueError("Max occurrences must be a positive integer")

    @property
    def is_bounded(self) -> bool:
        return self.end_date is not None or self.max_occurrences is not None


@dataclass(frozen=True)
class StructureComponent:
    """One block of a session agenda (check-in, exercise, reflection...)."""
    id: str
    type: str
    title: str
    estimated_duration: int = 0
    required: bool = False
    prompts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("Structure component id cannot be empty")
        if self.estimated_duration < 0:
            raise ValueError("Estimated duration cannot be negative")


def check_structure(structure: Union[list, tuple]) -> None:
    ids = [component.id for component in structure]
    if len(ids) != len(set(ids)):
        raise ValueError("Structure component ids must be unique within a template")
    total = sum(component.estimated_duration for component in structure)
    if total > MAX_SESSION_MINUTES:
        raise ValueError(
            f"Structure components add up to {total} minutes, more than {MAX_SESSION_MINUTES}"
        )


@dataclass
class TemplateCustomization:
    """
    Client-specific overrides stored on a template.

    Every field is optional; None means "use the template default".
    """
    client_id: str
    duration: Optional[int] = None
    structure: Optional[list[StructureComponent]] = None
    objectives: Optional[list[str]] = None
    notes: Optional[str] = None
    custom_fields: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.duration is not None:
            check_duration(self.duration, "Customized duration")
        if self.structure is not None:
            check_structure(self.structure)


@dataclass
class SessionTemplate:
    """
    A reusable session design owned by a coach.

    Read-only to the generation engine, apart from the usage counter,
    which is bumped through TemplateRepository.increment_usage.
    """
    id: UUID = field(default_factory=uuid4)
    coach_id: str = ""
    name: str = ""
    description: str = ""
    default_duration: int = 60
    structure: list[StructureComponent] = field(default_factory=list)
    objectives: list[str] = field(default_factory=list)
    default_notes: str = ""
    is_recurring: bool = False
    recurrence_rule: Optional[RecurrenceRule] = None
    is_active: bool = True
    is_public: bool = False
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    version: int = 1
    customizations: list[TemplateCustomization] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("Template name cannot be empty")
        check_duration(self.default_duration, "Default duration")
        if self.is_recurring and self.recurrence_rule is None:
            raise ValueError("Recurring templates require a recurrence rule")
        check_structure(self.structure)
        if self.version < 1:
            raise ValueError("Template version starts at 1")

    def customization_for(self, client_id: str) -> Optional[TemplateCustomization]:
        """The stored overrides for a client, if any."""
        for customization in self.customizations:
            if customization.client_id == client_id:
                return customization
        return None

    @property
    def total_structure_duration(self) -> int:
        return sum(component.estimated_duration for component in self.structure)


@dataclass
class CoachingSession:
    """
    A concrete, bookable session between a coach and a client.

    The generation engine only ever creates sessions in PENDING status;
    everything after that belongs to the scheduling subsystem.
    """
    coach_id: str
    client_id: str
    scheduled_at: datetime
    duration_minutes: int
    id: UUID = field(default_factory=uuid4)
    status: SessionStatus = SessionStatus.PENDING
    notes: str = ""
    created_at: datetime = field(default_factory=utcnow)

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    def overlaps(self, starts_at: datetime, duration_minutes: int) -> bool:
        """Whether [starts_at, starts_at + duration) intersects this session."""
        ends_at = starts_at + timedelta(minutes=duration_minutes)
        return self.scheduled_at < ends_at and starts_at < self.ends_at


@dataclass(frozen=True)
class TemplateSnapshot:
    """
    Immutable copy of a template's content at generation time.

    Later edits to the template never change what a record says was
    generated.
    """
    name: str
    version: int
    structure: tuple[StructureComponent, ...]
    objectives: tuple[str, ...]
    default_duration: int

    @classmethod
    def from_template(cls, template: SessionTemplate) -> "TemplateSnapshot":
        return cls(
            name=template.name,
            version=template.version,
            structure=tuple(template.structure),
            objectives=tuple(template.objectives),
            default_duration=template.default_duration,
        )


@dataclass(frozen=True)
class AppliedCustomizations:
    """The overrides that actually took effect for a generated session."""
    duration: Optional[int] = None
    structure: Optional[tuple[StructureComponent, ...]] = None
    objectives: Optional[tuple[str, ...]] = None
    notes: Optional[str] = None
    custom_fields: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return (
            self.duration is None
            and self.structure is None
            and self.objectives is None
            and self.notes is None
            and not self.custom_fields
        )


@dataclass(frozen=True)
class GenerationMetadata:
    """How a record came to be: trigger, batch, and any errors."""
    source: GenerationSource = GenerationSource.MANUAL
    batch_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.batch_id is not None and len(self.batch_id) > MAX_BATCH_ID_LENGTH:
            raise ValueError(f"Batch id cannot exceed {MAX_BATCH_ID_LENGTH} characters")


@dataclass(frozen=True)
class TemplateSessionRecord:
    """
    Tracking record for one session generated from a template.

    One-to-one with a CoachingSession. Frozen: status changes return a
    new record that the tracker persists.
    """
    template_id: UUID
    session_id: UUID
    coach_id: str
    client_id: str
    template_snapshot: TemplateSnapshot
    id: UUID = field(default_factory=uuid4)
    generation_status: GenerationStatus = GenerationStatus.PENDING
    generated_at: datetime = field(default_factory=utcnow)
    generated_by: Optional[str] = None
    applied_customizations: Optional[AppliedCustomizations] = None
    is_from_recurrence: bool = False
    recurrence_sequence: Optional[int] = None
    parent_recurrence_id: Optional[UUID] = None
    metadata: GenerationMetadata = field(default_factory=GenerationMetadata)

    def __post_init__(self) -> None:
        if self.recurrence_sequence is not None and self.recurrence_sequence < 1:
            raise ValueError("Recurrence sequence is 1-based")

    def mark_generated(self, at: Optional[datetime] = None) -> "TemplateSessionRecord":
        self._require(GenerationStatus.GENERATED, GenerationStatus.PENDING)
        return replace(
            self,
            generation_status=GenerationStatus.GENERATED,
            generated_at=at or utcnow(),
        )

    def mark_failed(self, errors: list[str]) -> "TemplateSessionRecord":
        self._require(GenerationStatus.FAILED, GenerationStatus.PENDING)
        return replace(
            self,
            generation_status=GenerationStatus.FAILED,
            metadata=replace(self.metadata, errors=tuple(errors)),
        )

    def mark_cancelled(self) -> "TemplateSessionRecord":
        self._require(
            GenerationStatus.CANCELLED,
            GenerationStatus.PENDING,
            GenerationStatus.GENERATED,
        )
        return replace(self, generation_status=GenerationStatus.CANCELLED)

    def _require(self, target: GenerationStatus, *allowed: GenerationStatus) -> None:
        if self.generation_status not in allowed:
            raise InvalidStatusTransitionError(self.generation_status.value, target.value)

    @property
    def errors(self) -> tuple[str, ...]:
        return self.metadata.errors

    @property
    def batch_id(self) -> Optional[str]:
        return self.metadata.batch_id
