"""
Unit tests for the Snowflake repositories.

The connection is a MagicMock: these tests check the SQL parameters, row
mapping, commits and cursor cleanup, not Snowflake itself.
"""

import json
from datetime import datetime
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from coachhub.core.scheduling import (
    CoachingSession,
    GenerationMetadata,
    GenerationSource,
    GenerationStatus,
    RecordFilters,
    RecurrencePattern,
    SessionStatus,
    TemplateSessionRecord,
    TemplateSnapshot,
)
from coachhub.infrastructure.codecs import template_to_dict
from coachhub.infrastructure.snowflake.client import (
    SnowflakeConfig,
    build_connect_params,
    check_connection,
)
from coachhub.infrastructure.snowflake.repositories import (
    SnowflakeGenerationRecordRepository,
    SnowflakeSessionRepository,
    SnowflakeTemplateRepository,
)


@pytest.fixture
def cursor() -> MagicMock:
    return MagicMock()


@pytest.fixture
def connection(cursor) -> MagicMock:
    conn = MagicMock()
    conn.cursor.return_value = cursor
    return conn


def _executed(cursor):
    sql, params = cursor.execute.call_args[0]
    return " ".join(sql.split()), params


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class TestSnowflakeTemplateRepository:

    def _row(self, template):
        data = template_to_dict(template)
        return (
            data["id"], data["coach_id"], data["name"], data["description"],
            data["default_duration"], json.dumps(data["structure"]), json.dumps(data["objectives"]),
            data["default_notes"], data["is_recurring"], json.dumps(data["recurrence_rule"]),
            data["is_active"], data["is_public"], data["usage_count"], None,
            data["version"], json.dumps(data["customizations"]),
            template.created_at, template.updated_at,
        )

    def test_get_template_maps_variant_columns(self, connection, cursor, make_template):
        template = make_template()
        cursor.fetchone.return_value = self._row(template)

        loaded = SnowflakeTemplateRepository(connection).get_template(template.id)

        assert loaded.id == template.id
        assert loaded.structure == template.structure
        assert loaded.recurrence_rule.pattern is RecurrencePattern.WEEKLY
        assert loaded.recurrence_rule.days_of_week == (1,)
        assert _executed(cursor)[1] == (str(template.id),)
        cursor.close.assert_called_once()

    def test_missing_template(self, connection, cursor):
        cursor.fetchone.return_value = None

        assert SnowflakeTemplateRepository(connection).get_template(uuid4()) is None
        cursor.close.assert_called_once()

    def test_increment_usage_is_a_single_update(self, connection, cursor):
        template_id = uuid4()
        used_at = datetime(2024, 1, 1, 9, 0)

        SnowflakeTemplateRepository(connection).increment_usage(template_id, used_at)

        sql, params = _executed(cursor)
        assert "usage_count = usage_count + 1" in sql
        assert params == (used_at, str(template_id))
        connection.commit.assert_called_once()
        cursor.close.assert_called_once()

    def test_failed_save_closes_cursor_and_raises(self, connection, cursor, make_template):
        cursor.execute.side_effect = RuntimeError("warehouse suspended")

        with pytest.raises(RuntimeError):
            SnowflakeTemplateRepository(connection).save_template(make_template())

        connection.commit.assert_not_called()
        cursor.close.assert_called_once()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TestSnowflakeSessionRepository:

    def test_create_session(self, connection, cursor):
        session = CoachingSession(
            coach_id="coach-1",
            client_id="client-1",
            scheduled_at=datetime(2024, 1, 1, 9, 0),
            duration_minutes=45,
        )

        stored = SnowflakeSessionRepository(connection).create_session(session)

        _, params = _executed(cursor)
        assert stored is session
        assert params[0] == str(session.id)
        assert params[5] == "pending"
        connection.commit.assert_called_once()

    def test_conflict_query_uses_half_open_window(self, connection, cursor):
        cursor.fetchone.return_value = None
        starts_at = datetime(2024, 1, 1, 9, 0)

        found = SnowflakeSessionRepository(connection).find_conflicting_session("client-1", starts_at, 90)

        sql, params = _executed(cursor)
        assert found is None
        assert "scheduled_at < %s" in sql
        assert "DATEADD(minute, duration_minutes, scheduled_at) > %s" in sql
        assert params == ("client-1", "cancelled", datetime(2024, 1, 1, 10, 30), starts_at)

    def test_conflicting_row_is_mapped(self, connection, cursor):
        session_id = uuid4()
        cursor.fetchone.return_value = (
            str(session_id), "coach-1", "client-1", datetime(2024, 1, 1, 9, 30),
            60, "completed", None, datetime(2023, 12, 1),
        )

        found = SnowflakeSessionRepository(connection).find_conflicting_session(
            "client-1", datetime(2024, 1, 1, 9, 0), 60
        )

        assert found.id == session_id
        assert found.status is SessionStatus.COMPLETED
        assert found.notes == ""


# ---------------------------------------------------------------------------
# Generation records
# ---------------------------------------------------------------------------

class TestSnowflakeGenerationRecordRepository:

    def _record(self) -> TemplateSessionRecord:
        return TemplateSessionRecord(
            template_id=uuid4(),
            session_id=uuid4(),
            coach_id="coach-1",
            client_id="client-1",
            template_snapshot=TemplateSnapshot(
                name="Check-in",
                version=2,
                structure=(),
                objectives=("Stay on track",),
                default_duration=45,
            ),
            is_from_recurrence=True,
            recurrence_sequence=3,
            parent_recurrence_id=uuid4(),
            metadata=GenerationMetadata(
                source=GenerationSource.BULK,
                batch_id="spring",
                scheduled_date=datetime(2024, 1, 15, 9, 0),
            ),
        ).mark_generated(datetime(2024, 1, 1, 12, 0))

    def _row(self, record: TemplateSessionRecord) -> tuple:
        return (
            str(record.id), str(record.template_id), str(record.session_id),
            record.coach_id, record.client_id, record.generation_status.value,
            record.generated_at, record.generated_by,
            json.dumps({"name": "Check-in", "version": 2, "structure": [],
                        "objectives": ["Stay on track"], "default_duration": 45}),
            None, True, 3, str(record.parent_recurrence_id),
            "bulk", "spring", datetime(2024, 1, 15, 9, 0), "[]",
        )

    def test_create_record_is_an_idempotent_merge(self, connection, cursor):
        record = self._record()

        SnowflakeGenerationRecordRepository(connection).create_record(record)

        sql, params = _executed(cursor)
        assert sql.startswith("MERGE INTO template_sessions")
        assert params[0] == str(record.id)
        assert "generated" in params
        assert "spring" in params
        connection.commit.assert_called_once()
        cursor.close.assert_called_once()

    def test_row_mapping(self, connection, cursor):
        record = self._record()
        cursor.fetchall.return_value = [self._row(record)]

        loaded = SnowflakeGenerationRecordRepository(connection).get_record(record.id)

        assert loaded == record

    def test_find_by_template_builds_filters(self, connection, cursor):
        cursor.fetchall.return_value = []
        template_id = uuid4()
        filters = RecordFilters(status=GenerationStatus.FAILED, client_id="client-1", limit=10)

        SnowflakeGenerationRecordRepository(connection).find_by_template(template_id, filters)

        sql, params = _executed(cursor)
        assert "generation_status = %s" in sql
        assert "client_id = %s" in sql
        assert "coach_id = %s" not in sql
        assert sql.endswith("ORDER BY generated_at DESC LIMIT %s")
        assert params == (str(template_id), "failed", "client-1", 10)

    def test_usage_stats_by_status(self, connection, cursor):
        at = datetime(2024, 1, 1, 12, 0)
        cursor.fetchall.return_value = [("generated", 4, at), ("failed", 1, at)]

        stats = SnowflakeGenerationRecordRepository(connection).usage_stats_by_status(uuid4())

        assert [(s.status, s.count) for s in stats] == [
            (GenerationStatus.GENERATED, 4),
            (GenerationStatus.FAILED, 1),
        ]


# ---------------------------------------------------------------------------
# Client helpers
# ---------------------------------------------------------------------------

class TestClient:

    def test_connect_params_without_key(self):
        config = SnowflakeConfig(
            account="acct",
            user="svc",
            password="secret",
            warehouse="WH",
            database="COACHHUB",
            schema="SCHEDULING",
        )

        params = build_connect_params(config)

        assert params["account"] == "acct"
        assert params["password"] == "secret"
        assert "private_key" not in params

    def test_check_connection(self, connection, cursor):
        cursor.fetchone.return_value = (1,)

        check_connection(connection)

        cursor.execute.assert_called_once_with("SELECT 1")
        cursor.close.assert_called_once()
