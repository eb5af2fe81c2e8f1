"""Pydantic data models for mappings, graph types and field schemas."""

from yamlgraph.models.fields import FieldSchema, FieldType
from yamlgraph.models.graph_type import DomainRegistration, GraphType
from yamlgraph.models.mapping import (
    Annotations,
    EdgeLinks,
    GraphMapping,
    MapInfo,
    NodeShapes,
    StyleRule,
    StyleRules,
    TransformMatch,
    TransformRule,
)

__all__ = [
    "Annotations",
    "DomainRegistration",
    "EdgeLinks",
    "FieldSchema",
    "FieldType",
    "GraphMapping",
    "GraphType",
    "MapInfo",
    "NodeShapes",
    "StyleRule",
    "StyleRules",
    "TransformMatch",
    "TransformRule",
]
