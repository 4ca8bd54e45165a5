"""
Snowflake repository for session templates.

The generation engine only reads templates and bumps their usage counter.
`save_template` exists for the import script, which seeds the table from
JSON files.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from coachhub.core.scheduling.models import SessionTemplate
from coachhub.infrastructure.codecs import (
    customization_from_dict,
    customization_to_dict,
    parse_variant,
    rule_from_dict,
    rule_to_dict,
    structure_from_list,
    structure_to_list,
    to_json,
)

from ..client import SnowflakeConnection

logger = logging.getLogger(__name__)

TEMPLATE_COLUMNS = """
    template_id,
    coach_id,
    name,
    description,
    default_duration,
    structure,
    objectives,
    default_notes,
    is_recurring,
    recurrence_rule,
    is_active,
    is_public,
    usage_count,
    last_used_at,
    version,
    customizations,
    created_at,
    updated_at
"""


class SnowflakeTemplateRepository:
    """Session templates stored in the `session_templates` table."""

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def get_template(self, template_id: UUID) -> Optional[SessionTemplate]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {TEMPLATE_COLUMNS}
                FROM session_templates
                WHERE template_id = %s
            """, (str(template_id),))

            row = cursor.fetchone()
            if not row:
                return None
            return self._build_template(row)

        finally:
            cursor.close()

    def increment_usage(self, template_id: UUID, used_at: datetime) -> None:
        """
        Atomically add one to usage_count.

        A single UPDATE so concurrent generations never lose an increment.
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                UPDATE session_templates
                SET usage_count = usage_count + 1,
                    last_used_at = %s
                WHERE template_id = %s
            """, (used_at, str(template_id)))

            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to increment template usage",
                extra={"template_id": str(template_id), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    def save_template(self, template: SessionTemplate) -> None:
        """
        Insert or update a template.

        Idempotent: saving the same template twice updates the row. The
        usage counter is left alone on update.
        """
        cursor = self._conn.cursor()

        structure_json = to_json(structure_to_list(template.structure))
        objectives_json = to_json(list(template.objectives))
        rule_json = to_json(
            rule_to_dict(template.recurrence_rule) if template.recurrence_rule else None
        )
        customizations_json = to_json([customization_to_dict(c) for c in template.customizations])

        try:
            cursor.execute("""
                MERGE INTO session_templates AS target
                USING (SELECT %s AS template_id) AS source
                ON target.template_id = source.template_id
                WHEN MATCHED THEN UPDATE SET
                    coach_id = %s,
                    name = %s,
                    description = %s,
                    default_duration = %s,
                    structure = PARSE_JSON(%s),
                    objectives = PARSE_JSON(%s),
                    default_notes = %s,
                    is_recurring = %s,
                    recurrence_rule = PARSE_JSON(%s),
                    is_active = %s,
                    is_public = %s,
                    version = %s,
                    customizations = PARSE_JSON(%s),
                    updated_at = %s
                WHEN NOT MATCHED THEN INSERT (
                    template_id, coach_id, name, description, default_duration,
                    structure, objectives, default_notes, is_recurring,
                    recurrence_rule, is_active, is_public, usage_count,
                    last_used_at, version, customizations, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    PARSE_JSON(%s), PARSE_JSON(%s), %s, %s,
                    PARSE_JSON(%s), %s, %s, %s,
                    %s, %s, PARSE_JSON(%s), %s, %s
                )
            """, (
                str(template.id),
                template.coach_id, template.name, template.description,
                template.default_duration, structure_json, objectives_json,
                template.default_notes, template.is_recurring, rule_json,
                template.is_active, template.is_public, template.version,
                customizations_json, template.updated_at,
                str(template.id), template.coach_id, template.name,
                template.description, template.default_duration,
                structure_json, objectives_json, template.default_notes,
                template.is_recurring, rule_json, template.is_active,
                template.is_public, template.usage_count, template.last_used_at,
                template.version, customizations_json, template.created_at,
                template.updated_at,
            ))

            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to save template",
                extra={"template_id": str(template.id), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _build_template(self, row) -> SessionTemplate:
        """Construct a SessionTemplate from a TEMPLATE_COLUMNS row."""
        rule_data = parse_variant(row[9])

        return SessionTemplate(
            id=UUID(row[0]),
            coach_id=row[1],
            name=row[2],
            description=row[3] or "",
            default_duration=row[4],
            structure=structure_from_list(parse_variant(row[5])),
            objectives=list(parse_variant(row[6]) or []),
            default_notes=row[7] or "",
            is_recurring=bool(row[8]),
            recurrence_rule=rule_from_dict(rule_data) if rule_data else None,
            is_active=bool(row[10]),
            is_public=bool(row[11]),
            usage_count=row[12] or 0,
            last_used_at=row[13],
            version=row[14] or 1,
            customizations=[
                customization_from_dict(item) for item in parse_variant(row[15]) or []
            ],
            created_at=row[16],
            updated_at=row[17],
        )
