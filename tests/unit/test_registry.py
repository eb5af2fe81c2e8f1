"""Unit tests for the graph type registry."""

import json

import pytest

from yamlgraph.config import YamlGraphConfig
from yamlgraph.models import GraphType
from yamlgraph.registry import (
    DomainNotFoundError,
    GraphTypeConflictError,
    GraphTypeRegistry,
    create_registry,
)


def _version_of(graph_type: GraphType, version: int, **update) -> GraphType:
    return graph_type.model_copy(update={"version": version, **update})


class TestRegistration:
    """Test registering graph types."""

    def test_register_and_get(self, simple_registry, simple_graph_type):
        assert simple_registry.get("simple") is simple_graph_type
        assert simple_registry.get("simple", 1) is simple_graph_type
        assert simple_registry.get("simple", 2) is None
        assert simple_registry.get("missing") is None
        assert simple_registry.get_by_version_key("simple@1") is simple_graph_type

    def test_highest_version_wins(self, simple_registry, simple_graph_type):
        """Test unpinned lookups return the highest version."""
        simple_registry.register(_version_of(simple_graph_type, 3))
        simple_registry.register(_version_of(simple_graph_type, 2))

        assert simple_registry.get("simple").version == 3
        assert simple_registry.list_version_keys() == ["simple@1", "simple@2", "simple@3"]

    def test_duplicate_version_rejected(self, simple_registry, simple_graph_type):
        with pytest.raises(GraphTypeConflictError, match="already registered"):
            simple_registry.register(simple_graph_type)

    def test_pattern_conflict_rejected(self, simple_registry, simple_graph_type):
        """Test a different id cannot claim an owned file pattern."""
        other = simple_graph_type.model_copy(update={"id": "other"})

        with pytest.raises(GraphTypeConflictError) as exc_info:
            simple_registry.register(other)

        assert exc_info.value.graph_type_id == "other"
        assert exc_info.value.existing_id == "simple"
        assert exc_info.value.pattern == "*.simple.yaml"
        assert simple_registry.get("other") is None

    def test_registries_are_independent(self, simple_registry):
        assert GraphTypeRegistry().list() == []
        assert len(simple_registry.list()) == 1


class TestLookup:
    """Test file and document resolution."""

    def test_get_for_file(self, simple_registry):
        assert simple_registry.get_for_file("release.simple.yaml").id == "simple"
        assert simple_registry.get_for_file("docs/release.simple.yaml").id == "simple"
        assert simple_registry.get_for_file("release.yaml") is None

    def test_get_for_file_version(self, simple_registry, simple_graph_type):
        simple_registry.register(_version_of(simple_graph_type, 2))
        assert simple_registry.get_for_file("a.simple.yaml").version == 2
        assert simple_registry.get_for_file_version("a.simple.yaml", 1).version == 1
        assert simple_registry.get_for_file_version("a.simple.yaml", 5) is None

    def test_resolve_declared_type(self, simple_registry):
        assert simple_registry.resolve_for_document({"graph-type": "simple"}).id == "simple"
        assert simple_registry.resolve_for_document({"meta": {"graph-type": "simple"}}).id == "simple"

    def test_resolve_by_filename(self, simple_registry, parser, simple_document):
        """Test parsed documents without a declaration resolve by file pattern."""
        tree = parser.parse(simple_document)
        assert simple_registry.resolve_for_document(tree, "pipeline.simple.yaml").id == "simple"

    def test_resolve_pinned_version(self, simple_registry, simple_graph_type):
        simple_registry.register(_version_of(simple_graph_type, 2))
        document = {"graph-type": "simple", "graph-version": 1}

        assert simple_registry.resolve_for_document(document).version == 1
        assert simple_registry.resolve_for_document({"graph-type": "simple"}).version == 2

    def test_resolve_missing_pinned_version(self, simple_registry):
        with pytest.raises(DomainNotFoundError, match="available: \\[1\\]"):
            simple_registry.resolve_for_document({"graph-type": "simple", "graph-version": 4})

    def test_resolve_invalid_pinned_version(self, simple_registry):
        with pytest.raises(DomainNotFoundError, match="Invalid graph-version"):
            simple_registry.resolve_for_document({"graph-type": "simple", "graph-version": "latest"})

    def test_resolve_unknown(self, simple_registry):
        with pytest.raises(DomainNotFoundError):
            simple_registry.resolve_for_document({"graph-type": "nope"})
        with pytest.raises(DomainNotFoundError):
            simple_registry.resolve_for_document({"nodes": []}, "notes.txt")
        with pytest.raises(DomainNotFoundError):
            simple_registry.resolve_for_document({"nodes": []})


class TestDirectoryLoading:
    """Test bulk loading from graph-type directories."""

    def test_failing_folder_does_not_stop_others(self, tmp_path, make_version_folder, simple_mapping_text):
        make_version_folder("simple", 1)
        make_version_folder("simple", 2, with_schema=False)
        make_version_folder("broken", 1, mapping_text=simple_mapping_text(2).replace("id: simple", "id: broken"))
        registry = GraphTypeRegistry()

        problems = registry.register_all_from_directory(tmp_path)

        assert registry.list_version_keys() == ["simple@1"]
        assert len(problems) == 2
        assert problems[0].startswith("Graph type 'broken': Version mismatch")
        assert problems[1].startswith("Warning: Skipping")

    def test_register_many_within_batch_conflict(self, simple_graph_type):
        registry = GraphTypeRegistry()
        other = simple_graph_type.model_copy(update={"id": "other", "version": 2})

        with pytest.raises(GraphTypeConflictError):
            registry.register_many([simple_graph_type, other])

        assert registry.list() == []

    def test_missing_directory(self, tmp_path):
        problems = GraphTypeRegistry().register_all_from_directory(tmp_path / "absent")
        assert problems == [f"Graph type directory not found: {tmp_path / 'absent'}"]

    def test_create_registry_from_config(self, tmp_path, make_version_folder):
        make_version_folder("simple", 1)
        config = YamlGraphConfig(graphTypes={"dirs": [str(tmp_path)], "includeBuiltin": False})

        registry, problems = create_registry(config)

        assert problems == []
        assert registry.list_version_keys() == ["simple@1"]


class TestDomains:
    """Test domain overlays."""

    @pytest.fixture
    def domain_dir(self, tmp_path):
        version_dir = tmp_path / "domains" / "acme" / "v1"
        version_dir.mkdir(parents=True)
        (version_dir / "acme.domain.json").write_text(json.dumps({
            "$id": "acme",
            "$defs": {"node": {"required": ["owner"], "properties": {"owner": {"type": "string"}}}},
        }))
        (version_dir / "domain.yaml").write_text("default-shapes:\n  process: hexagon\n")
        return tmp_path / "domains"

    def test_register_domains(self, simple_registry, domain_dir):
        assert simple_registry.register_all_domains_from_directory(domain_dir) == []
        assert simple_registry.list_domain_ids() == ["acme"]
        assert simple_registry.get_domain("acme").default_shapes == {"process": "hexagon"}

    def test_domain_without_schema_reported(self, simple_registry, tmp_path):
        (tmp_path / "empty" / "v1").mkdir(parents=True)
        errors = simple_registry.register_all_domains_from_directory(tmp_path)
        assert len(errors) == 1
        assert errors[0].startswith("Domain 'empty/v1'")

    def test_resolve_with_domain(self, simple_registry, simple_graph_type, domain_dir):
        """Test the overlay composes schemas and merges default shapes."""
        simple_registry.register_all_domains_from_directory(domain_dir)

        resolved = simple_registry.resolve_for_document({"graph-type": "simple", "domain": "acme"})

        assert resolved.mapping.node_shapes.default_shapes == {"decision": "diamond", "process": "hexagon"}
        assert "allOf" in resolved.json_schema["$defs"]["node"]
        assert simple_graph_type.mapping.node_shapes.default_shapes == {"decision": "diamond"}
        assert "allOf" not in simple_graph_type.json_schema["$defs"]["node"]

    def test_unknown_domain(self, simple_registry):
        with pytest.raises(DomainNotFoundError, match="Domain 'ghost'"):
            simple_registry.resolve_for_document({"graph-type": "simple", "domain": "ghost"})
