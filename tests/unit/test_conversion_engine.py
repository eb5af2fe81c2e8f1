"""Unit tests for the conversion engine."""

import json

import pytest

from yamlgraph.config import YamlGraphConfig
from yamlgraph.engine import ConversionEngine, FieldEdit, NodeNotFoundError
from yamlgraph.graph import ConversionCallbacks, DiagramRenderer
from yamlgraph.mapping import MappingLoader
from yamlgraph.models import GraphType, StyleRule, StyleRules, TransformMatch, TransformRule

STATE_MAPPING = """\
map:
  id: machine
  version: 1
  mermaid-type: stateDiagram-v2
node-shapes:
  source-path: states
  id-field: _key
  label-field: label
  initial-connector: "[*] --> {first}"
  final-connector: "{last} --> [*]"
edge-links:
  source-path: states.*.transitions
  from-implicit: _parent_key
  to-field: to
  label-template: "${event}"
"""

STATE_DOCUMENT = """\
states:
  idle:
    label: Idle
    transitions:
      - to: running
        event: start
  running:
    label: Running
    transitions:
      - to: done
        event: finish
      - to: idle
  done:
    type: final
"""


class NodeListRenderer(DiagramRenderer):
    """Renders the node ids as a JSON list."""

    @property
    def format_name(self) -> str:
        return "node-list"

    def render(self, spec, callbacks=None) -> str:
        return json.dumps([node.id for node in spec.real_nodes()])


class TrackingCallbacks(ConversionCallbacks):
    def __init__(self):
        self.calls = []

    def prepare(self):
        self.calls.append("prepare")

    def set_mermaid_type(self, mermaid_type):
        self.calls.append(mermaid_type)


def with_mapping(graph_type: GraphType, **update) -> GraphType:
    return graph_type.model_copy(update={"mapping": graph_type.mapping.model_copy(update=update)})


@pytest.fixture
def state_graph_type():
    mapping = MappingLoader().load_mapping_from_string(STATE_MAPPING)
    return GraphType(id="machine", version=1, file_patterns=["*.machine.yaml"], json_schema={}, mapping=mapping)


class TestConvert:
    """Test conversion of well-formed and broken documents."""

    def test_simple_document(self, engine, parser, simple_document, simple_graph_type):
        result = engine.convert(parser.parse(simple_document), simple_graph_type)

        assert [node.id for node in result.nodes] == ["start", "end"]
        assert [(e.from_node, e.to_node) for e in result.edges] == [("start", "end")]
        assert result.diagram_text == (
            'flowchart TD\n'
            '    start["Start"]\n'
            '    end_["End"]\n'
            '    start --> end_'
        )
        assert result.errors == []
        assert not result.has_errors
        assert result.node_map["end"].path == ("nodes", 1)
        assert result.edge_map[0].path == ("edges", 0)
        assert [entry.id for entry in result.tree_data] == ["__meta__", "__nodes__", "__edges__"]

    def test_node_fields(self, engine, parser, simple_graph_type):
        text = "nodes:\n  - id: check\n    type: decision\n  - id: plain\n    shape: circle\n    subtype: x\n"
        result = engine.convert(parser.parse(text), simple_graph_type)

        check, plain = result.nodes
        assert (check.label, check.type, check.shape) == ("check", "decision", "diamond")
        assert (plain.type, plain.shape, plain.subtype) == ("default", "circle", "x")
        assert plain.fields == {"id": "plain", "shape": "circle", "subtype": "x"}
        assert check.source_range.start_line == 1

    def test_direction(self, engine, parser, simple_graph_type):
        """Test the document direction field wins and invalid values fall back."""
        lr = engine.convert(parser.parse("meta:\n  direction: lr\nnodes: []\n"), simple_graph_type)
        bad = engine.convert(parser.parse("meta:\n  direction: sideways\nnodes: []\n"), simple_graph_type)
        assert lr.diagram_text == "flowchart LR"
        assert bad.diagram_text == "flowchart TD"

    def test_configured_default_direction(self, parser, simple_graph_type):
        engine = ConversionEngine(YamlGraphConfig(rendering={"defaultDirection": "BT"}))
        assert engine.convert(parser.parse("nodes: []\n"), simple_graph_type).diagram_text == "flowchart BT"

    def test_unparsable_text(self, engine, simple_graph_type):
        result = engine.convert_text("nodes: [a, b\n", simple_graph_type)

        assert len(result.errors) == 1
        assert result.errors[0].path == "/"
        assert result.errors[0].source_range is not None
        assert result.nodes == []
        assert result.diagram_text == ""

    def test_invalid_document_still_renders(self, engine, parser, simple_graph_type):
        """Test schema errors and skipped entries are reported without aborting."""
        text = "nodes:\n  - id: a\n  - label: No id\n  - id: a\n  - just text\n"
        result = engine.convert(parser.parse(text), simple_graph_type)

        assert [node.id for node in result.nodes] == ["a"]
        assert result.has_errors
        warnings = [(e.path, e.message) for e in result.errors if e.severity == "warning"]
        assert warnings == [
            ("/nodes/1", "Node entry has no 'id' field; skipped"),
            ("/nodes/2", "Duplicate node id 'a'; skipped"),
            ("/nodes/3", "Node entry is not a mapping; skipped"),
        ]
        assert 'a["a"]' in result.diagram_text

    def test_edge_problems(self, engine, parser, simple_graph_type):
        text = "nodes:\n  - id: a\nedges:\n  - from: a\n    to: ghost\n  - from: a\n"
        result = engine.convert(parser.parse(text), simple_graph_type)

        assert [(e.from_node, e.to_node) for e in result.edges] == [("a", "ghost")]
        messages = [e.message for e in result.errors]
        assert "Edge references unknown node 'ghost'" in messages
        assert "Edge has no 'to' field; skipped" in messages

    def test_edge_labels(self, engine, parser, simple_graph_type):
        text = "nodes:\n  - id: a\n  - id: b\nedges:\n  - from: a\n    to: b\n    label: next\n    style: dotted\n"
        result = engine.convert(parser.parse(text), simple_graph_type)
        edge = result.edges[0]
        assert (edge.label, edge.style) == ("next", "dotted")


class TestKeyedCollections:
    """Test keyed node maps, co-located edges and connectors."""

    def test_state_machine(self, engine, parser, state_graph_type):
        result = engine.convert(parser.parse(STATE_DOCUMENT), state_graph_type)

        assert [node.id for node in result.nodes] == ["__initial__", "idle", "running", "done", "__final__"]
        assert result.get_node("done").label == "done"
        assert result.edge_map[1].path == ("states", "running", "transitions", 0)
        assert result.diagram_text == (
            "stateDiagram-v2\n"
            "    [*] --> idle\n"
            "    idle : Idle\n"
            "    running : Running\n"
            "    idle --> running : start\n"
            "    running --> done : finish\n"
            "    running --> idle\n"
            "    done --> [*]"
        )

    def test_null_entries_become_empty_nodes(self, engine, parser, state_graph_type):
        result = engine.convert(parser.parse("states:\n  a:\n  b: {}\n"), state_graph_type)
        assert [node.id for node in result.nodes if not node.pseudo] == ["a", "b"]

    def test_tree_excludes_connectors(self, engine, parser, state_graph_type):
        result = engine.convert(parser.parse(STATE_DOCUMENT), state_graph_type)
        node_group = result.tree_data[0]
        assert node_group.label == "Nodes (3)"


class TestStylingAndAnnotations:
    """Test style-rules and annotations."""

    def test_style_rules(self, engine, parser, simple_graph_type):
        graph_type = with_mapping(simple_graph_type, style_rules=StyleRules(
            field="status", rules={"done": StyleRule(fill="#0f0"), "blocked": "crit", True: "flagged"},
        ))
        text = ("nodes:\n  - id: a\n    status: done\n  - id: b\n    status: blocked\n"
                "  - id: c\n  - id: d\n    status: true\n")

        result = engine.convert(parser.parse(text), graph_type)

        assert [node.style_class for node in result.nodes] == ["status_done", "crit", None, "flagged"]
        assert result.diagram_text.split("\n")[-4:] == [
            "    classDef status_done fill:#0f0",
            "    class a status_done",
            "    class b crit",
            "    class d flagged",
        ]

    def test_annotations(self, engine, parser, simple_graph_type):
        mapping = simple_graph_type.mapping.model_validate({
            **simple_graph_type.mapping.to_yaml_dict(),
            "annotations": {"source-field": "notes", "template": "Note: ${value}"},
        })
        graph_type = simple_graph_type.model_copy(update={"mapping": mapping})
        text = "nodes:\n  - id: a\n    notes: check\n  - id: b\n    notes: [x, y]\n  - id: c\n"

        result = engine.convert(parser.parse(text), graph_type)

        assert [node.annotation for node in result.nodes] == ["Note: check", "Note: x, y", None]
        assert 'a["a<br/>Note: check"]' in result.diagram_text


class TestTransforms:
    """Test transform rules applied during conversion."""

    def convert(self, engine, parser, graph_type, document, *rules):
        return engine.convert(parser.parse(document), with_mapping(graph_type, transforms=list(rules)))

    def test_label_result(self, engine, parser, simple_graph_type, simple_document):
        result = self.convert(engine, parser, simple_graph_type, simple_document,
                              TransformRule(code="upper(node['label'])"))
        assert [node.label for node in result.nodes] == ["START", "END"]
        assert 'start["START"]' in result.diagram_text

    def test_dict_result(self, engine, parser, simple_graph_type, simple_document):
        result = self.convert(engine, parser, simple_graph_type, simple_document, TransformRule(
            code="{'shape': 'circle', 'rank': len(nodes)}", match=TransformMatch(field="id", equals="start"),
        ))
        start = result.get_node("start")
        assert start.shape == "circle"
        assert start.metadata == {"rank": 2}
        assert result.get_node("end").shape == "rectangle"
        assert 'start(("Start"))' in result.diagram_text

    def test_lines_result(self, engine, parser, simple_graph_type, simple_document):
        result = self.convert(engine, parser, simple_graph_type, simple_document,
                              TransformRule(code="list(output) + ['click ' + node['id'] + ' call select()']"))
        assert '    start["Start"]\n    click start call select()' in result.diagram_text

    def test_edge_scope(self, engine, parser, simple_graph_type, simple_document):
        result = self.convert(engine, parser, simple_graph_type, simple_document,
                              TransformRule(scope="edge", code="'to ' + edge['to']"))
        assert result.edges[0].label == "to end"
        assert 'start -->|"to end"| end_' in result.diagram_text

    def test_failure_isolated(self, engine, parser, simple_graph_type, simple_document):
        """Test a failing snippet leaves the element untransformed and is reported as a warning."""
        result = self.convert(engine, parser, simple_graph_type, simple_document,
                              TransformRule(code="node['label'] = 'x'"),
                              TransformRule(code="lower(node['label'])"))

        assert [node.label for node in result.nodes] == ["start", "end"]
        warnings = [e for e in result.errors if e.severity == "warning"]
        assert [e.path for e in warnings] == ["/nodes/0", "/nodes/1"]
        assert warnings[0].message.startswith("Transform #0 failed for node 'start': TypeError")
        assert not result.has_errors

    def test_unsupported_result(self, engine, parser, simple_graph_type, simple_document):
        result = self.convert(engine, parser, simple_graph_type, simple_document, TransformRule(code="42"))
        assert [e.message for e in result.errors][:1] == ["Transform returned unsupported int; ignored"]

    def test_disabled_by_config(self, parser, simple_graph_type, simple_document):
        engine = ConversionEngine(YamlGraphConfig(transforms={"enabled": False}))
        result = self.convert(engine, parser, simple_graph_type, simple_document,
                              TransformRule(code="upper(node['label'])"))
        assert result.get_node("start").label == "Start"


class TestRenderers:
    """Test renderer selection and callbacks."""

    def test_custom_renderer(self, parser, simple_graph_type, simple_document):
        engine = ConversionEngine(renderers=[NodeListRenderer()])
        result = engine.convert(parser.parse(simple_document),
                                with_mapping(simple_graph_type, custom_renderer="node-list"))
        assert result.diagram_text == '["start", "end"]'

    def test_unknown_renderer_falls_back(self, engine, parser, simple_graph_type, simple_document):
        result = engine.convert(parser.parse(simple_document),
                                with_mapping(simple_graph_type, custom_renderer="graphviz"))
        assert result.diagram_text.startswith("flowchart TD")
        assert result.has_errors
        assert "Unknown custom renderer 'graphviz'" in result.errors[0].message

    def test_callbacks(self, engine, parser, simple_graph_type, simple_document):
        callbacks = TrackingCallbacks()
        engine.convert(parser.parse(simple_document), simple_graph_type, callbacks)
        assert callbacks.calls == ["prepare", "flowchart"]


class TestEdits:
    """Test node location and field edits."""

    def test_apply_edit(self, engine, parser, simple_document, simple_graph_type):
        tree = parser.parse(simple_document)
        engine.convert(tree, simple_graph_type)

        updated = engine.apply_edit(tree, "start", [{"path": "label", "value": "Begin"}])

        assert updated.text == simple_document.replace("label: Start", "label: Begin")
        assert tree.text == simple_document

    def test_apply_edit_inserts_field(self, engine, parser, simple_document, simple_graph_type):
        tree = parser.parse(simple_document)
        engine.convert(tree, simple_graph_type)

        updated = engine.apply_edit(tree, "start", [FieldEdit(path="owner", value="dana")])

        assert "  - id: start\n    label: Start\n    owner: dana\n  - id: end\n" in updated.text

    def test_apply_edit_without_conversion(self, engine, parser, simple_document, simple_graph_type):
        tree = parser.parse(simple_document)
        updated = engine.apply_edit(tree, "end", [FieldEdit(path="label", value="Finish")], simple_graph_type)
        assert updated.data["nodes"][1]["label"] == "Finish"

    def test_meta_edit(self, engine, parser, simple_document):
        tree = parser.parse(simple_document)
        updated = engine.apply_edit(tree, "__meta__", [{"path": "meta.title", "value": "Deploy"}])
        assert "  title: Deploy\n" in updated.text

    def test_keyed_edit(self, engine, parser, state_graph_type):
        tree = parser.parse(STATE_DOCUMENT)
        engine.convert(tree, state_graph_type)
        updated = engine.apply_edit(tree, "idle", [{"path": "transitions[0].event", "value": "boot"}])
        assert "        event: boot\n" in updated.text

    def test_unknown_node(self, engine, parser, simple_document, simple_graph_type):
        tree = parser.parse(simple_document)
        engine.convert(tree, simple_graph_type)
        with pytest.raises(NodeNotFoundError) as exc_info:
            engine.apply_edit(tree, "ghost", [{"path": "label", "value": "x"}])
        assert exc_info.value.node_id == "ghost"

    def test_unknown_node_without_conversion(self, engine, parser, simple_document):
        with pytest.raises(NodeNotFoundError):
            engine.locate_node(parser.parse(simple_document), "start")
