"""
Customization resolution.

A generated session's configuration comes from three layers, most specific
first:

1. per-request overrides supplied by the caller,
2. the template's stored customization for the client,
3. the template defaults.

Each field is resolved independently. Custom fields are merged key by key
with the same precedence. Pure and synchronous.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from .models import (
    AppliedCustomizations,
    SessionTemplate,
    StructureComponent,
    TemplateCustomization,
    check_duration,
    check_structure,
)

RESOLVED_FIELDS = ("duration", "structure", "objectives", "notes")
SEQUENCE_FIELDS = ("structure", "objectives")


class CustomizationSource(Enum):
    """Which layer a resolved field came from."""
    TEMPLATE = "template"
    CLIENT = "client"
    REQUEST = "request"


@dataclass(frozen=True)
class CustomizationOverrides:
    """Overrides supplied with a single generation request."""
    duration: Optional[int] = None
    structure: Optional[tuple[StructureComponent, ...]] = None
    objectives: Optional[tuple[str, ...]] = None
    notes: Optional[str] = None
    custom_fields: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.duration is not None:
            check_duration(self.duration, "Requested duration")
        if self.structure is not None:
            check_structure(self.structure)


@dataclass(frozen=True)
class ResolvedConfiguration:
    """The effective configuration for sessions of one request."""
    duration: int
    structure: tuple[StructureComponent, ...]
    objectives: tuple[str, ...]
    notes: str
    custom_fields: dict[str, Any] = field(default_factory=dict)
    sources: dict[str, CustomizationSource] = field(default_factory=dict)

    def applied_customizations(self) -> AppliedCustomizations:
        """Only the fields that an override layer actually changed."""
        def overridden(name: str) -> bool:
            return self.sources.get(name, CustomizationSource.TEMPLATE) is not CustomizationSource.TEMPLATE

        return AppliedCustomizations(
            duration=self.duration if overridden("duration") else None,
            structure=self.structure if overridden("structure") else None,
            objectives=self.objectives if overridden("objectives") else None,
            notes=self.notes if overridden("notes") else None,
            custom_fields=dict(self.custom_fields),
        )


class CustomizationResolver:
    """Merges template defaults, client customization and request overrides."""

    def resolve(
        self,
        template: SessionTemplate,
        client_id: str,
        overrides: Optional[CustomizationOverrides] = None,
        apply_client_customization: bool = True,
    ) -> ResolvedConfiguration:
        """
        Resolve the effective configuration for `client_id`.

        With apply_client_customization=False the client's stored
        customization is ignored entirely, as if it didn't exist.
        """
        client_layer = template.customization_for(client_id) if apply_client_customization else None

        values: dict[str, Any] = {
            "duration": template.default_duration,
            "structure": tuple(template.structure),
            "objectives": tuple(template.objectives),
            "notes": template.default_notes,
        }
        sources = {name: CustomizationSource.TEMPLATE for name in RESOLVED_FIELDS}
        custom_fields: dict[str, Any] = {}

        layers: list[tuple[CustomizationSource, Union[TemplateCustomization, CustomizationOverrides, None]]] = [
            (CustomizationSource.CLIENT, client_layer),
            (CustomizationSource.REQUEST, overrides),
        ]
        for source, layer in layers:
            if layer is None:
                continue
            for name in RESOLVED_FIELDS:
                value = getattr(layer, name)
                if value is None:
                    continue
                values[name] = tuple(value) if name in SEQUENCE_FIELDS else value
                sources[name] = source
            custom_fields.update(layer.custom_fields)

        return ResolvedConfiguration(
            duration=values["duration"],
            structure=values["structure"],
            objectives=values["objectives"],
            notes=values["notes"],
            custom_fields=custom_fields,
            sources=sources,
        )
