"""Pytest configuration and shared fixtures for yamlgraph tests."""

import json
from pathlib import Path

import pytest

from yamlgraph.engine import ConversionEngine
from yamlgraph.mapping import MappingLoader
from yamlgraph.models import GraphType
from yamlgraph.parser import YamlParserWrapper
from yamlgraph.registry import GraphTypeRegistry, create_registry

SIMPLE_MAPPING = """\
map:
  id: simple
  version: {version}
  mermaid-type: flowchart
  direction-field: meta.direction
node-shapes:
  source-path: nodes
  id-field: id
  label-field: label
  default-shapes:
    decision: diamond
edge-links:
  source-path: edges
  from-field: from
  to-field: to
  label-field: label
"""

SIMPLE_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["nodes"],
    "properties": {
        "meta": {"type": "object"},
        "nodes": {"type": "array", "items": {"$ref": "#/$defs/node"}},
        "edges": {"type": "array", "items": {"$ref": "#/$defs/edge"}},
    },
    "$defs": {
        "node": {
            "type": "object",
            "required": ["id"],
            "properties": {
                "id": {"type": "string"},
                "label": {"type": "string"},
                "type": {"enum": ["process", "decision"]},
            },
        },
        "edge": {
            "type": "object",
            "required": ["from", "to"],
            "properties": {
                "from": {"type": "string"},
                "to": {"type": "string"},
                "label": {"type": "string"},
            },
        },
    },
}

SIMPLE_DOCUMENT = """\
# Release pipeline
meta:
  title: Pipeline
nodes:
  - id: start
    label: Start
  - id: end
    label: End
edges:
  - from: start
    to: end
"""


def write_version_folder(root: Path, name: str, version: int, mapping_text: str | None = None,
                         schema: dict | None = None, style_sheet: str | None = None,
                         with_schema: bool = True, with_mapping: bool = True) -> Path:
    """Create ``root/name/v<version>/`` with schema, mapping and optional style sheet."""
    version_dir = root / name / f"v{version}"
    version_dir.mkdir(parents=True, exist_ok=True)
    if with_schema:
        (version_dir / f"{name}.schema.json").write_text(json.dumps(schema or SIMPLE_SCHEMA))
    if with_mapping:
        text = mapping_text if mapping_text is not None else SIMPLE_MAPPING.format(version=version)
        (version_dir / f"{name}.graph-map.yaml").write_text(text)
    if style_sheet is not None:
        (version_dir / "style.css").write_text(style_sheet)
    return version_dir


@pytest.fixture
def parser():
    """YAML wrapper fixture."""
    return YamlParserWrapper()


@pytest.fixture
def engine():
    """Conversion engine with default configuration."""
    return ConversionEngine()


@pytest.fixture
def simple_graph_type():
    """Graph type built from the minimal nodes/edges mapping."""
    mapping = MappingLoader().load_mapping_from_string(SIMPLE_MAPPING.format(version=1))
    return GraphType(id="simple", version=1, file_patterns=["*.simple.yaml"],
                     json_schema=SIMPLE_SCHEMA, mapping=mapping)


@pytest.fixture
def simple_registry(simple_graph_type):
    """Registry holding only the minimal graph type."""
    registry = GraphTypeRegistry()
    registry.register(simple_graph_type)
    return registry


@pytest.fixture(scope="session")
def builtin_registry():
    """Registry populated with the packaged graph types."""
    registry, problems = create_registry()
    assert problems == []
    return registry


@pytest.fixture
def make_version_folder(tmp_path):
    """Factory writing ``tmp_path/<name>/v<N>/`` folders; returns the version folder."""
    def factory(name: str, version: int, **kwargs) -> Path:
        return write_version_folder(tmp_path, name, version, **kwargs)
    return factory


@pytest.fixture
def simple_document():
    """Two-node, one-edge document with a comment and metadata."""
    return SIMPLE_DOCUMENT


@pytest.fixture
def simple_mapping_text():
    """Factory for the minimal mapping text at a given version."""
    return lambda version=1: SIMPLE_MAPPING.format(version=version)
