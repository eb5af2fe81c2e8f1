"""Derives FieldSchema trees from JSON Schema and composes domain overlays."""

import copy
import logging
import re
from typing import Any

from yamlgraph.models import FieldSchema, FieldType
from yamlgraph.parser import parse_path

logger = logging.getLogger(__name__)

REF_PATTERN = re.compile(r"^#/(\$defs|definitions)/(.+)$")
MAX_DEPTH = 12


class UnresolvedRefError(ValueError):
    """A $ref is malformed or names a missing definition."""


def humanize_label(name: str) -> str:
    """``fill-color`` / ``fill_color`` -> ``Fill color``; ``fillColor`` -> ``Fill Color``."""
    label = re.sub(r"[-_]", " ", name)
    label = re.sub(r"([a-z])([A-Z])", r"\1 \2", label)
    return label[:1].upper() + label[1:]


def json_pointer_to_path(base_path: str, pointer: str) -> list[str | int]:
    """Join a node base path with an editor field path.

    ``json_pointer_to_path("nodes.start", "attributes[1].name")``
    -> ``["nodes", "start", "attributes", 1, "name"]``
    """
    return parse_path(base_path) + parse_path(pointer)


def compose_schemas(base_schema: dict[str, Any], domain_schema: dict[str, Any]) -> dict[str, Any]:
    """Overlay a domain schema on a base graph-type schema.

    ``$defs.node`` from both is combined with ``allOf``; root properties the
    base lacks are added. The base schema is not mutated.
    """
    composed = copy.deepcopy(base_schema)

    domain_node = domain_schema.get("$defs", {}).get("node")
    base_defs = composed.get("$defs", {})
    if domain_node and "node" in base_defs:
        base_defs["node"] = {"allOf": [base_defs["node"], domain_node]}

    domain_properties = domain_schema.get("properties")
    if domain_properties:
        base_properties = composed.setdefault("properties", {})
        for key, value in domain_properties.items():
            if key not in base_properties:
                base_properties[key] = value

    return composed


def merge_default_shapes(base: dict[str, str] | None, domain: dict[str, str] | None) -> dict[str, str]:
    """Domain defaults take priority over base defaults."""
    return {**(base or {}), **(domain or {})}


class SchemaResolver:
    """Walks a JSON Schema and produces FieldSchema trees for editing forms.

    Resolves local ``$ref`` pointers (``#/$defs/...`` and ``#/definitions/...``)
    against the root schema given at construction.
    """

    def __init__(self, root_schema: dict[str, Any]):
        self.root_schema = root_schema
        self.defs = {**root_schema.get("definitions", {}), **root_schema.get("$defs", {})}

    def resolve_ref(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Replace a ``$ref`` with its definition, keeping sibling keywords."""
        seen = set()
        while isinstance(schema, dict) and "$ref" in schema:
            ref = schema["$ref"]
            if ref in seen:
                raise UnresolvedRefError(f"Circular $ref: {ref}")
            seen.add(ref)

            match = REF_PATTERN.match(ref)
            if not match:
                raise UnresolvedRefError(f"Unsupported $ref format: {ref}")
            name = match.group(2)
            if name not in self.defs:
                raise UnresolvedRefError(f"Unresolved $ref: {ref} (definition '{name}' not found)")
            rest = {k: v for k, v in schema.items() if k != "$ref"}
            schema = {**self.defs[name], **rest}
        if isinstance(schema, dict) and isinstance(schema.get("allOf"), list):
            schema = self._merge_all_of(schema)
        return schema

    def _merge_all_of(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Flatten ``allOf`` members into one schema (later members refine earlier ones)."""
        merged = {k: v for k, v in schema.items() if k != "allOf"}
        properties: dict[str, Any] = {}
        required: list[str] = []
        for part in schema["allOf"] + [merged]:
            part = self.resolve_ref(part) if part is not merged else part
            for name, prop in part.get("properties", {}).items():
                properties[name] = {**properties.get(name, {}), **prop}
            required.extend(r for r in part.get("required", []) if r not in required)
            for key, value in part.items():
                if key not in ("properties", "required"):
                    merged.setdefault(key, value)
        if properties:
            merged["properties"] = properties
        if required:
            merged["required"] = required
        return merged

    def extract_node_sub_schema(self, section_path: str) -> dict[str, Any] | None:
        """Schema of one entry in the node collection at ``section_path``.

        Arrays yield their ``items``; keyed maps yield ``additionalProperties``.
        """
        current = self.root_schema
        for segment in section_path.split("."):
            current = self.resolve_ref(current)
            properties = current.get("properties", {})
            if segment not in properties:
                return None
            current = properties[segment]

        current = self.resolve_ref(current)
        additional = current.get("additionalProperties")
        if isinstance(additional, dict):
            return self.resolve_ref(additional)
        if current.get("type") == "array" and isinstance(current.get("items"), dict):
            return self.resolve_ref(current["items"])
        return current

    def resolve(self, schema: dict[str, Any] | None = None) -> list[FieldSchema]:
        """FieldSchema list for ``schema`` (defaults to the root schema)."""
        return self.build_field_schemas(schema if schema is not None else self.root_schema)

    def build_field_schemas(self, schema: dict[str, Any], base_path: str = "",
                            required_fields: list[str] | None = None, _depth: int = 0) -> list[FieldSchema]:
        resolved = self.resolve_ref(schema)
        properties = resolved.get("properties")
        if not properties or _depth > MAX_DEPTH:
            return []

        required = set(required_fields if required_fields is not None else resolved.get("required", []))
        fields = []
        for name, prop_schema in properties.items():
            prop = self.resolve_ref(prop_schema)
            path = f"{base_path}.{name}" if base_path else name
            field = self.build_single_field(
                prop, path, prop.get("title") or humanize_label(name), name in required, _depth
            )
            if field is not None:
                fields.append(field)
        return fields

    def build_single_field(self, schema: dict[str, Any], path: str, label: str,
                           required: bool, _depth: int = 0) -> FieldSchema | None:
        """FieldSchema for one resolved property; None for unsupported types."""
        common = {
            "path": path,
            "label": label,
            "required": required,
            "description": schema.get("description"),
            "x_widget": schema.get("x-widget"),
        }

        if schema.get("enum"):
            return FieldSchema(field_type=FieldType.ENUM, options=list(schema["enum"]), **common)

        schema_type = schema.get("type")
        if isinstance(schema_type, list):
            schema_type = next((t for t in schema_type if t != "null"), None)

        if schema_type == "string":
            return FieldSchema(field_type=FieldType.STRING,
                               multiline=schema.get("format") == "multiline", **common)
        if schema_type in ("number", "integer"):
            return FieldSchema(field_type=FieldType.NUMBER, minimum=schema.get("minimum"),
                               maximum=schema.get("maximum"), **common)
        if schema_type == "boolean":
            return FieldSchema(field_type=FieldType.BOOLEAN, **common)
        if schema_type == "array":
            items = schema.get("items")
            if not isinstance(items, dict):
                return None
            item = self.resolve_ref(items)
            item_field = self.build_single_field(item, f"{path}[]", item.get("title") or "Item",
                                                 False, _depth + 1)
            if item_field is None:
                return None
            return FieldSchema(field_type=FieldType.ARRAY, item_schema=item_field,
                               min_items=schema.get("minItems"), max_items=schema.get("maxItems"), **common)
        if schema_type == "object":
            additional = schema.get("additionalProperties")
            return FieldSchema(
                field_type=FieldType.OBJECT,
                properties=self.build_field_schemas(schema, path, _depth=_depth + 1),
                allow_additional=additional is True or isinstance(additional, dict),
                **common,
            )

        logger.debug(f"Skipping field {path}: unsupported schema type {schema_type!r}")
        return None
