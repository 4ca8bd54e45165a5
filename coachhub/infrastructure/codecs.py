"""
Dict/JSON codecs for scheduling models.

Snowflake stores nested values (structure, rules, snapshots) in VARIANT
columns, and the mock store is seeded from JSON files. Both go through the
plain-dict shapes defined here so the two stores agree on one format.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union
from uuid import UUID, uuid4

from coachhub.core.scheduling.models import (
    AppliedCustomizations,
    GenerationMetadata,
    GenerationSource,
    RecurrencePattern,
    RecurrenceRule,
    SessionTemplate,
    StructureComponent,
    TemplateCustomization,
    TemplateSnapshot,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def parse_variant(value: Any) -> Any:
    """
    Parse a Snowflake VARIANT value that may be a JSON string or already parsed.

    snowflake-connector-python returns VARIANT columns as JSON strings;
    other drivers (and test doubles) hand back dicts and lists.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(
                "Failed to parse VARIANT JSON string",
                extra={"variant_data": value[:100], "error": str(e)}
            )
            raise
    return value


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """ISO string or datetime to a naive datetime (aware values are converted to UTC)."""
    if value is None or value == "":
        return None
    moment = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def to_json(value: Any) -> Optional[str]:
    """Serialize for PARSE_JSON(%s); None stays NULL."""
    return json.dumps(value) if value is not None else None


# ---------------------------------------------------------------------------
# Recurrence rules and structure
# ---------------------------------------------------------------------------

def rule_to_dict(rule: RecurrenceRule) -> dict[str, Any]:
    pattern = rule.pattern.value if isinstance(rule.pattern, RecurrencePattern) else rule.pattern
    return {
        "pattern": pattern,
        "interval": rule.interval,
        "days_of_week": list(rule.days_of_week),
        "day_of_month": rule.day_of_month,
        "end_date": format_datetime(rule.end_date),
        "max_occurrences": rule.max_occurrences,
    }


def rule_from_dict(data: dict[str, Any]) -> RecurrenceRule:
    return RecurrenceRule(
        pattern=data["pattern"],
        interval=data.get("interval") or 1,
        days_of_week=tuple(data.get("days_of_week") or ()),
        day_of_month=data.get("day_of_month"),
        end_date=parse_datetime(data.get("end_date")),
        max_occurrences=data.get("max_occurrences"),
    )


def component_to_dict(component: StructureComponent) -> dict[str, Any]:
    return {
        "id": component.id,
        "type": component.type,
        "title": component.title,
        "estimated_duration": component.estimated_duration,
        "required": component.required,
        "prompts": list(component.prompts),
    }


def component_from_dict(data: dict[str, Any]) -> StructureComponent:
    return StructureComponent(
        id=data["id"],
        type=data.get("type", ""),
        title=data.get("title", ""),
        estimated_duration=data.get("estimated_duration", 0),
        required=data.get("required", False),
        prompts=tuple(data.get("prompts") or ()),
    )


def structure_to_list(structure) -> list[dict[str, Any]]:
    return [component_to_dict(component) for component in structure]


def structure_from_list(items: Optional[list]) -> list[StructureComponent]:
    return [component_from_dict(item) for item in items or []]


# ---------------------------------------------------------------------------
# Customizations
# ---------------------------------------------------------------------------

def customization_to_dict(customization: TemplateCustomization) -> dict[str, Any]:
    return {
        "client_id": customization.client_id,
        "duration": customization.duration,
        "structure": (
            structure_to_list(customization.structure)
            if customization.structure is not None else None
        ),
        "objectives": customization.objectives,
        "notes": customization.notes,
        "custom_fields": customization.custom_fields,
    }


def customization_from_dict(data: dict[str, Any]) -> TemplateCustomization:
    structure = data.get("structure")
    return TemplateCustomization(
        client_id=data["client_id"],
        duration=data.get("duration"),
        structure=structure_from_list(structure) if structure is not None else None,
        objectives=data.get("objectives"),
        notes=data.get("notes"),
        custom_fields=data.get("custom_fields") or {},
    )


def applied_to_dict(applied: Optional[AppliedCustomizations]) -> Optional[dict[str, Any]]:
    if applied is None:
        return None
    return {
        "duration": applied.duration,
        "structure": structure_to_list(applied.structure) if applied.structure is not None else None,
        "objectives": list(applied.objectives) if applied.objectives is not None else None,
        "notes": applied.notes,
        "custom_fields": applied.custom_fields,
    }


def applied_from_dict(data: Optional[dict[str, Any]]) -> Optional[AppliedCustomizations]:
    if not data:
        return None
    structure = data.get("structure")
    objectives = data.get("objectives")
    return AppliedCustomizations(
        duration=data.get("duration"),
        structure=tuple(structure_from_list(structure)) if structure is not None else None,
        objectives=tuple(objectives) if objectives is not None else None,
        notes=data.get("notes"),
        custom_fields=data.get("custom_fields") or {},
    )


# ---------------------------------------------------------------------------
# Snapshots and metadata
# ---------------------------------------------------------------------------

def snapshot_to_dict(snapshot: TemplateSnapshot) -> dict[str, Any]:
    return {
        "name": snapshot.name,
        "version": snapshot.version,
        "structure": structure_to_list(snapshot.structure),
        "objectives": list(snapshot.objectives),
        "default_duration": snapshot.default_duration,
    }


def snapshot_from_dict(data: dict[str, Any]) -> TemplateSnapshot:
    return TemplateSnapshot(
        name=data["name"],
        version=data.get("version", 1),
        structure=tuple(structure_from_list(data.get("structure"))),
        objectives=tuple(data.get("objectives") or ()),
        default_duration=data["default_duration"],
    )


def metadata_to_dict(metadata: GenerationMetadata) -> dict[str, Any]:
    return {
        "source": metadata.source.value,
        "batch_id": metadata.batch_id,
        "scheduled_date": format_datetime(metadata.scheduled_date),
        "errors": list(metadata.errors),
    }


def metadata_from_dict(data: Optional[dict[str, Any]]) -> GenerationMetadata:
    if not data:
        return GenerationMetadata()
    return GenerationMetadata(
        source=GenerationSource(data.get("source", GenerationSource.MANUAL.value)),
        batch_id=data.get("batch_id"),
        scheduled_date=parse_datetime(data.get("scheduled_date")),
        errors=tuple(data.get("errors") or ()),
    )


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def template_to_dict(template: SessionTemplate) -> dict[str, Any]:
    return {
        "id": str(template.id),
        "coach_id": template.coach_id,
        "name": template.name,
        "description": template.description,
        "default_duration": template.default_duration,
        "structure": structure_to_list(template.structure),
        "objectives": list(template.objectives),
        "default_notes": template.default_notes,
        "is_recurring": template.is_recurring,
        "recurrence_rule": (
            rule_to_dict(template.recurrence_rule)
            if template.recurrence_rule is not None else None
        ),
        "is_active": template.is_active,
        "is_public": template.is_public,
        "usage_count": template.usage_count,
        "last_used_at": format_datetime(template.last_used_at),
        "version": template.version,
        "customizations": [customization_to_dict(c) for c in template.customizations],
        "created_at": format_datetime(template.created_at),
        "updated_at": format_datetime(template.updated_at),
    }


def template_from_dict(data: dict[str, Any]) -> SessionTemplate:
    """Build a template from its dict form. Missing optional keys take model defaults."""
    rule_data = data.get("recurrence_rule")
    optional: dict[str, Any] = {}
    for key in ("created_at", "updated_at"):
        if data.get(key):
            optional[key] = parse_datetime(data[key])

    return SessionTemplate(
        id=UUID(data["id"]) if data.get("id") else uuid4(),
        coach_id=data.get("coach_id", ""),
        name=data.get("name", ""),
        description=data.get("description", ""),
        default_duration=data.get("default_duration", 60),
        structure=structure_from_list(data.get("structure")),
        objectives=list(data.get("objectives") or []),
        default_notes=data.get("default_notes", ""),
        is_recurring=data.get("is_recurring", False),
        recurrence_rule=rule_from_dict(rule_data) if rule_data else None,
        is_active=data.get("is_active", True),
        is_public=data.get("is_public", False),
        usage_count=data.get("usage_count", 0),
        last_used_at=parse_datetime(data.get("last_used_at")),
        version=data.get("version", 1),
        customizations=[customization_from_dict(c) for c in data.get("customizations") or []],
        **optional,
    )


def load_templates_file(path: Union[str, Path]) -> list[SessionTemplate]:
    """
    Load templates from a JSON file holding a list of template dicts
    (or an object with a "templates" list).
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    items = data.get("templates", []) if isinstance(data, dict) else data
    templates = [template_from_dict(item) for item in items]

    logger.info(
        "Loaded session templates",
        extra={"path": str(path), "count": len(templates)}
    )
    return templates
