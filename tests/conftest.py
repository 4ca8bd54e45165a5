"""
Shared fixtures for the scheduling tests.

Tests run against the in-memory repositories, which behave like the real
stores, and use unittest.mock only to inject failures.
"""

from datetime import datetime

import pytest

from coachhub.core.scheduling import (
    RecurrencePattern,
    RecurrenceRule,
    RecurringSessionService,
    SessionTemplate,
    StructureComponent,
)
from coachhub.infrastructure.memory import (
    InMemoryGenerationRecordRepository,
    InMemorySessionRepository,
    InMemoryStore,
    InMemoryTemplateRepository,
)

# 2024-01-01 is a Monday
MONDAY = datetime(2024, 1, 1, 9, 0)


def build_template(**overrides) -> SessionTemplate:
    """A weekly Monday template with two agenda blocks; override any field."""
    fields = dict(
        coach_id="coach-1",
        name="Weekly check-in",
        description="Weekly accountability session",
        default_duration=45,
        structure=[
            StructureComponent(id="checkin", type="check-in", title="Check-in", estimated_duration=15),
            StructureComponent(id="review", type="review", title="Review", estimated_duration=30),
        ],
        objectives=["Stay on track"],
        default_notes="Template notes",
        is_recurring=True,
        recurrence_rule=RecurrenceRule(pattern=RecurrencePattern.WEEKLY, days_of_week=(1,)),
    )
    fields.update(overrides)
    return SessionTemplate(**fields)


@pytest.fixture
def make_template():
    return build_template


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def template_repository(store) -> InMemoryTemplateRepository:
    return InMemoryTemplateRepository(store)


@pytest.fixture
def session_repository(store) -> InMemorySessionRepository:
    return InMemorySessionRepository(store)


@pytest.fixture
def record_repository(store) -> InMemoryGenerationRecordRepository:
    return InMemoryGenerationRecordRepository(store)


@pytest.fixture
def weekly_template(store) -> SessionTemplate:
    template = build_template()
    store.add_template(template)
    return template


@pytest.fixture
def service(template_repository, session_repository, record_repository) -> RecurringSessionService:
    return RecurringSessionService(
        templates=template_repository,
        sessions=session_repository,
        records=record_repository,
    )
