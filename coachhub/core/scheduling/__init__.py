"""
Recurring session generation.

Public surface of the scheduling core: the domain models, the pipeline
components and the RecurringSessionService that wires them together.
"""

from .conflicts import ConflictChecker, ConflictCheckResult, SchedulingConflict
from .customization import (
    CustomizationOverrides,
    CustomizationResolver,
    CustomizationSource,
    ResolvedConfiguration,
)
from .errors import (
    ConflictCheckError,
    GenerationTimeoutError,
    InvalidStatusTransitionError,
    RecordNotFoundError,
    SchedulingError,
    TemplateInactiveError,
    TemplateNotFoundError,
    TemplateNotRecurringError,
)
from .materializer import CancellationToken, SessionMaterializer
from .models import (
    AppliedCustomizations,
    CoachingSession,
    GenerationMetadata,
    GenerationSource,
    GenerationStatus,
    RecurrencePattern,
    RecurrenceRule,
    SessionStatus,
    SessionTemplate,
    StructureComponent,
    TemplateCustomization,
    TemplateSessionRecord,
    TemplateSnapshot,
)
from .recurrence import RecurrenceCalculator, RecurrenceResult, describe_rule
from .repositories import RecordFilters, StatusUsage
from .service import (
    BulkGenerateRequest,
    BulkGenerationResult,
    ClientGenerationOutcome,
    GenerateRequest,
    GenerationResult,
    OccurrenceFailure,
    PreviewRequest,
    PreviewResult,
    RecurringSessionService,
    SingleSessionRequest,
)
from .tracking import GenerationTracker, TemplateUsageStats, TrackingContext

__all__ = [
    "AppliedCustomizations",
    "BulkGenerateRequest",
    "BulkGenerationResult",
    "CancellationToken",
    "ClientGenerationOutcome",
    "CoachingSession",
    "ConflictCheckError",
    "ConflictCheckResult",
    "ConflictChecker",
    "CustomizationOverrides",
    "CustomizationResolver",
    "CustomizationSource",
    "GenerateRequest",
    "GenerationMetadata",
    "GenerationResult",
    "GenerationSource",
    "GenerationStatus",
    "GenerationTimeoutError",
    "GenerationTracker",
    "InvalidStatusTransitionError",
    "OccurrenceFailure",
    "PreviewRequest",
    "PreviewResult",
    "RecordFilters",
    "RecordNotFoundError",
    "RecurrenceCalculator",
    "RecurrencePattern",
    "RecurrenceResult",
    "RecurrenceRule",
    "RecurringSessionService",
    "ResolvedConfiguration",
    "SchedulingConflict",
    "SchedulingError",
    "SessionMaterializer",
    "SessionStatus",
    "SessionTemplate",
    "SingleSessionRequest",
    "StatusUsage",
    "StructureComponent",
    "TemplateCustomization",
    "TemplateInactiveError",
    "TemplateNotFoundError",
    "TemplateNotRecurringError",
    "TemplateSessionRecord",
    "TemplateSnapshot",
    "TemplateUsageStats",
    "TrackingContext",
    "describe_rule",
]
