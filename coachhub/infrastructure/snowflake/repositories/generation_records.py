"""
Snowflake repository for template-session generation records.

One row per generated (or failed) occurrence in `template_sessions`. The
snapshot and applied customizations are VARIANT columns; batch id, source
and scheduled date are flattened into columns so batch lookups and usage
rollups stay plain SQL.
"""

import logging
from typing import Optional
from uuid import UUID

from coachhub.core.scheduling.models import (
    GenerationMetadata,
    GenerationSource,
    GenerationStatus,
    TemplateSessionRecord,
)
from coachhub.core.scheduling.repositories import RecordFilters, StatusUsage
from coachhub.infrastructure.codecs import (
    applied_from_dict,
    applied_to_dict,
    parse_variant,
    snapshot_from_dict,
    snapshot_to_dict,
    to_json,
)

from ..client import SnowflakeConnection

logger = logging.getLogger(__name__)

RECORD_COLUMNS = """
    record_id,
    template_id,
    session_id,
    coach_id,
    client_id,
    generation_status,
    generated_at,
    generated_by,
    template_snapshot,
    applied_customizations,
    is_from_recurrence,
    recurrence_sequence,
    parent_recurrence_id,
    source,
    batch_id,
    scheduled_date,
    errors
"""


class SnowflakeGenerationRecordRepository:
    """Generation records stored in the `template_sessions` table."""

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def create_record(self, record: TemplateSessionRecord) -> None:
        """
        Persist a record.

        Written as a MERGE so a retried write after a lost acknowledgement
        doesn't duplicate the row.
        """
        cursor = self._conn.cursor()

        snapshot_json = to_json(snapshot_to_dict(record.template_snapshot))
        applied_json = to_json(applied_to_dict(record.applied_customizations))
        errors_json = to_json(list(record.errors))
        metadata = record.metadata

        try:
            cursor.execute("""
                MERGE INTO template_sessions AS target
                USING (SELECT %s AS record_id) AS source
                ON target.record_id = source.record_id
                WHEN MATCHED THEN UPDATE SET
                    generation_status = %s,
                    generated_at = %s,
                    errors = PARSE_JSON(%s)
                WHEN NOT MATCHED THEN INSERT (
                    record_id, template_id, session_id, coach_id, client_id,
                    generation_status, generated_at, generated_by,
                    template_snapshot, applied_customizations,
                    is_from_recurrence, recurrence_sequence, parent_recurrence_id,
                    source, batch_id, scheduled_date, errors
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s, %s,
                    PARSE_JSON(%s), PARSE_JSON(%s),
                    %s, %s, %s,
                    %s, %s, %s, PARSE_JSON(%s)
                )
            """, (
                str(record.id),
                record.generation_status.value, record.generated_at, errors_json,
                str(record.id), str(record.template_id), str(record.session_id),
                record.coach_id, record.client_id,
                record.generation_status.value, record.generated_at, record.generated_by,
                snapshot_json, applied_json,
                record.is_from_recurrence, record.recurrence_sequence,
                str(record.parent_recurrence_id) if record.parent_recurrence_id else None,
                metadata.source.value, metadata.batch_id, metadata.scheduled_date,
                errors_json,
            ))

            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to save generation record",
                extra={"record_id": str(record.id), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    def get_record(self, record_id: UUID) -> Optional[TemplateSessionRecord]:
        rows = self._select("WHERE record_id = %s", (str(record_id),))
        return rows[0] if rows else None

    def find_by_template(
        self,
        template_id: UUID,
        filters: RecordFilters,
    ) -> list[TemplateSessionRecord]:
        conditions = ["template_id = %s"]
        params: list = [str(template_id)]

        if filters.status is not None:
            conditions.append("generation_status = %s")
            params.append(filters.status.value)
        if filters.coach_id is not None:
            conditions.append("coach_id = %s")
            params.append(filters.coach_id)
        if filters.client_id is not None:
            conditions.append("client_id = %s")
            params.append(filters.client_id)
        if filters.is_from_recurrence is not None:
            conditions.append("is_from_recurrence = %s")
            params.append(filters.is_from_recurrence)

        params.append(filters.limit)
        return self._select(
            f"WHERE {' AND '.join(conditions)} ORDER BY generated_at DESC LIMIT %s",
            tuple(params),
        )

    def find_by_parent(self, parent_recurrence_id: UUID) -> list[TemplateSessionRecord]:
        return self._select(
            "WHERE parent_recurrence_id = %s ORDER BY recurrence_sequence",
            (str(parent_recurrence_id),),
        )

    def find_by_batch(self, batch_id: str) -> list[TemplateSessionRecord]:
        return self._select(
            "WHERE batch_id = %s ORDER BY generated_at, client_id, recurrence_sequence",
            (batch_id,),
        )

    def usage_stats_by_status(self, template_id: UUID) -> list[StatusUsage]:
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT
                    generation_status,
                    COUNT(*) AS record_count,
                    MAX(generated_at) AS last_generated_at
                FROM template_sessions
                WHERE template_id = %s
                GROUP BY generation_status
            """, (str(template_id),))

            return [
                StatusUsage(
                    status=GenerationStatus(row[0]),
                    count=row[1],
                    last_generated_at=row[2],
                )
                for row in cursor.fetchall()
            ]

        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _select(self, clause: str, params: tuple) -> list[TemplateSessionRecord]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {RECORD_COLUMNS}
                FROM template_sessions
                {clause}
            """, params)

            return [self._build_record(row) for row in cursor.fetchall()]

        finally:
            cursor.close()

    def _build_record(self, row) -> TemplateSessionRecord:
        """Construct a TemplateSessionRecord from a RECORD_COLUMNS row."""
        return TemplateSessionRecord(
            id=UUID(row[0]),
            template_id=UUID(row[1]),
            session_id=UUID(row[2]),
            coach_id=row[3],
            client_id=row[4],
            generation_status=GenerationStatus(row[5]),
            generated_at=row[6],
            generated_by=row[7],
            template_snapshot=snapshot_from_dict(parse_variant(row[8])),
            applied_customizations=applied_from_dict(parse_variant(row[9])),
            is_from_recurrence=bool(row[10]),
            recurrence_sequence=row[11],
            parent_recurrence_id=UUID(row[12]) if row[12] else None,
            metadata=GenerationMetadata(
                source=GenerationSource(row[13]),
                batch_id=row[14],
                scheduled_date=row[15],
                errors=tuple(parse_variant(row[16]) or ()),
            ),
        )
