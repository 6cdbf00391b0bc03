"""Projection descriptors.

A descriptor maps field names to a ``FieldSpec`` saying whether the field is
included and, optionally, which sub-fields of it are projected. Descriptors
are never modified in place; every rewrite builds a new one.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..errors import ValidationError


@dataclass(frozen=True)
class FieldSpec:
    """Projection of a single field."""

    include: bool = True
    nested: Optional["ProjectionDescriptor"] = None
    lazy: bool = False  # loaded on first access rather than up front

    def to_value(self) -> Any:
        if self.nested is not None:
            return self.nested.to_dict()
        return 1 if self.include else 0


@dataclass(frozen=True)
class ProjectionDescriptor:
    """Field specs of a projection plus free-form metadata."""

    fields: Dict[str, FieldSpec] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        """``inclusion``, ``exclusion``, ``mixed`` or ``empty``."""
        return projection_type(self.fields)

    def field_names(self) -> List[str]:
        return list(self.fields.keys())

    def included_fields(self) -> List[str]:
        return [name for name, spec in self.fields.items() if spec.include]

    def excluded_fields(self) -> List[str]:
        return [name for name, spec in self.fields.items() if not spec.include]

    def nested_fields(self) -> List[str]:
        return [name for name, spec in self.fields.items() if spec.nested is not None]

    def lazy_fields(self) -> List[str]:
        return [name for name, spec in self.fields.items() if spec.lazy]

    def to_dict(self) -> Dict[str, Any]:
        """Render as a ``{field: 1 | 0 | {...}}`` projection document."""
        return {name: spec.to_value() for name, spec in self.fields.items()}

    def __len__(self) -> int:
        return len(self.fields)


def projection_type(fields: Dict[str, FieldSpec]) -> str:
    if not fields:
        return "empty"
    included = any(spec.include for spec in fields.values())
    excluded = any(not spec.include for spec in fields.values())
    if included and excluded:
        return "mixed"
    return "inclusion" if included else "exclusion"


def _field_spec(name: str, value: Any) -> FieldSpec:
    if isinstance(value, FieldSpec):
        return value
    if isinstance(value, ProjectionDescriptor):
        return FieldSpec(include=True, nested=value)
    if isinstance(value, Mapping):
        if "include" in value and set(value.keys()) <= {"include", "nested", "lazy"}:
            nested = value.get("nested")
            if nested is not None:
                nested = create_projection_descriptor(nested)
            return FieldSpec(
                include=bool(value["include"]),
                nested=nested,
                lazy=bool(value.get("lazy", False)),
            )
        return FieldSpec(include=True, nested=create_projection_descriptor(value))
    if isinstance(value, (bool, int, float)):
        return FieldSpec(include=bool(value))
    raise ValidationError(f"Invalid projection value for field '{name}': {value!r}")


def create_projection_descriptor(projection: Any) -> ProjectionDescriptor:
    """Coerce a projection into a ``ProjectionDescriptor``.

    Accepts a descriptor (returned as is), ``None`` (empty projection), a
    list of field names (all included), a ``{field: 1 | 0 | bool | mapping}``
    document where a mapping value is an included nested projection, or the
    expanded ``{"fields": {...}, "metadata": {...}}`` form.

    Raises:
        ValidationError: If the projection cannot be interpreted
    """
    if isinstance(projection, ProjectionDescriptor):
        return projection
    if projection is None:
        return _descriptor({}, {})

    if isinstance(projection, (list, tuple)):
        fields = {}
        for name in projection:
            if not isinstance(name, str):
                raise ValidationError(f"Projection field names must be strings, got {name!r}")
            fields[name] = FieldSpec(include=True)
        return _descriptor(fields, {})

    if isinstance(projection, Mapping):
        metadata: Dict[str, Any] = {}
        raw = projection
        if (
            "fields" in projection
            and isinstance(projection["fields"], Mapping)
            and set(projection.keys()) <= {"fields", "metadata"}
        ):
            raw = projection["fields"]
            metadata = dict(projection.get("metadata") or {})

        fields = {name: _field_spec(name, value) for name, value in raw.items()}
        return _descriptor(fields, metadata)

    raise ValidationError(f"Unsupported projection type: {type(projection).__name__}")


def _descriptor(fields: Dict[str, FieldSpec], metadata: Dict[str, Any]) -> ProjectionDescriptor:
    metadata = dict(metadata)
    metadata["type"] = projection_type(fields)
    return ProjectionDescriptor(fields=fields, metadata=metadata)


def transform_projection(
    descriptor: ProjectionDescriptor,
    transform: Callable[[str, FieldSpec], Optional[FieldSpec]],
    metadata: Optional[Dict[str, Any]] = None,
) -> ProjectionDescriptor:
    """Build a new descriptor by mapping ``transform`` over the top-level fields.

    A ``None`` result drops the field. ``metadata`` is merged over the
    descriptor's metadata.
    """
    fields = {}
    for name, spec in descriptor.fields.items():
        result = transform(name, spec)
        if result is not None:
            fields[name] = result

    merged = dict(descriptor.metadata)
    if metadata:
        merged.update(metadata)
    return _descriptor(fields, merged)
