"""Schema validation and field-schema resolution."""

from .resolver import (
    SchemaResolver,
    UnresolvedRefError,
    compose_schemas,
    humanize_label,
    json_pointer_to_path,
    merge_default_shapes,
)
from .validator import SEVERITY_ERROR, SEVERITY_WARNING, SchemaValidator, ValidationError, to_json_pointer

__all__ = [
    "SEVERITY_ERROR",
    "SEVERITY_WARNING",
    "SchemaResolver",
    "SchemaValidator",
    "UnresolvedRefError",
    "ValidationError",
    "compose_schemas",
    "humanize_label",
    "json_pointer_to_path",
    "merge_default_shapes",
    "to_json_pointer",
]
