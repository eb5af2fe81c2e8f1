"""Unit tests for the Mermaid renderer."""

from yamlgraph.graph import (
    FINAL_NODE_ID,
    INITIAL_NODE_ID,
    ConversionCallbacks,
    DiagramSpec,
    EdgeData,
    MermaidRenderer,
    NodeData,
)
from yamlgraph.models import GraphMapping


def make_mapping(mermaid_type: str = "flowchart", **sections) -> GraphMapping:
    return GraphMapping.model_validate({"map": {"id": "test", "mermaid-type": mermaid_type}, **sections})


class RecordingCallbacks(ConversionCallbacks):
    """Callbacks adding click directives and recording the dialect."""

    def __init__(self):
        self.mermaid_type = None
        self.completed = None

    def set_mermaid_type(self, mermaid_type):
        self.mermaid_type = mermaid_type

    def on_node_emit(self, node, emitted):
        return [f"click {node.id} call select()"]

    def on_complete(self, node_ids, output):
        self.completed = node_ids
        return ["%% done"]


class TestFlowchart:
    """Test flowchart output."""

    def test_nodes_and_edges(self):
        spec = DiagramSpec(
            nodes=[NodeData(id="start", label="Start", shape="stadium"), NodeData(id="end", label="End")],
            edges=[EdgeData(from_node="start", to_node="end", label="go")],
            mapping=make_mapping(),
            direction="LR",
        )

        assert MermaidRenderer().render(spec) == (
            'flowchart LR\n'
            '    start(["Start"])\n'
            '    end_["End"]\n'
            '    start -->|"go"| end_'
        )

    def test_shapes(self):
        mapping = make_mapping(**{"node-shapes": {"shapes": {"cloud": ')"{label}"('}}})
        spec = DiagramSpec(nodes=[], edges=[], mapping=mapping)
        renderer = MermaidRenderer()

        assert renderer.node_lines(NodeData(id="d", label="Ok?", shape="diamond"), spec) == ['d{"Ok?"}']
        assert renderer.node_lines(NodeData(id="c", label="Sky", shape="cloud"), spec) == ['c)"Sky"(']
        assert renderer.node_lines(NodeData(id="x", label="X", shape="blob"), spec) == ['x["X"]']

    def test_ids_and_labels_escaped(self):
        spec = DiagramSpec(nodes=[], edges=[], mapping=make_mapping())
        lines = MermaidRenderer().node_lines(NodeData(id="my-node", label='Say "hi"\nnow'), spec)
        assert lines == ['my_node["Say #quot;hi#quot;<br/>now"]']

    def test_colliding_ids_kept_distinct(self):
        """Test ids that sanitise to the same text render as separate nodes."""
        spec = DiagramSpec(
            nodes=[
                NodeData(id="a-b", label="Dash"),
                NodeData(id="a_b", label="Underscore"),
                NodeData(id="end", label="End"),
                NodeData(id="end_", label="Also end"),
            ],
            edges=[EdgeData(from_node="a_b", to_node="end_"), EdgeData(from_node="a-b", to_node="end")],
            mapping=make_mapping(),
        )

        assert MermaidRenderer().render(spec) == (
            'flowchart TD\n'
            '    a_b["Dash"]\n'
            '    a_b_2["Underscore"]\n'
            '    end_["End"]\n'
            '    end__2["Also end"]\n'
            '    a_b_2 --> end__2\n'
            '    a_b --> end_'
        )

    def test_annotation_in_label(self):
        spec = DiagramSpec(nodes=[], edges=[], mapping=make_mapping())
        node = NodeData(id="a", label="A", annotation="owned by dana")
        assert MermaidRenderer().node_lines(node, spec) == ['a["A<br/>owned by dana"]']

    def test_link_styles(self):
        mapping = make_mapping(**{"edge-links": {"link-styles": {"dotted": "-.->", "default": "==>"}}})
        spec = DiagramSpec(nodes=[], edges=[], mapping=mapping)
        renderer = MermaidRenderer()

        assert renderer.edge_lines(EdgeData(from_node="a", to_node="b", style="dotted"), spec) == ["a -.-> b"]
        assert renderer.edge_lines(EdgeData(from_node="a", to_node="b"), spec) == ["a ==> b"]

    def test_style_classes(self):
        """Test classDef lines for inline styles and class assignments for every styled node."""
        spec = DiagramSpec(
            nodes=[
                NodeData(id="a", label="A", style_class="status_done"),
                NodeData(id="b", label="B", style_class="status_done"),
                NodeData(id="c", label="C", style_class="finished"),
            ],
            edges=[],
            mapping=make_mapping(),
            style_defs={"status_done": "fill:#0f0"},
        )

        lines = MermaidRenderer().render(spec).split("\n")

        assert lines[-4:] == [
            "    classDef status_done fill:#0f0",
            "    class a status_done",
            "    class b status_done",
            "    class c finished",
        ]

    def test_callbacks(self):
        callbacks = RecordingCallbacks()
        spec = DiagramSpec(nodes=[NodeData(id="a", label="A")], edges=[], mapping=make_mapping())

        output = MermaidRenderer(indent=2).render(spec, callbacks)

        assert output == 'flowchart TD\n  a["A"]\n  click a call select()\n%% done'
        assert callbacks.mermaid_type == "flowchart"
        assert callbacks.completed == ["a"]

    def test_lines_override(self):
        spec = DiagramSpec(nodes=[NodeData(id="a", label="A", lines=["a>custom]"])], edges=[],
                           mapping=make_mapping())
        assert MermaidRenderer().render(spec) == "flowchart TD\n    a>custom]"


class TestStateDiagram:
    """Test stateDiagram-v2 output."""

    def test_states_transitions_and_connectors(self):
        mapping = make_mapping("stateDiagram-v2")
        spec = DiagramSpec(
            nodes=[
                NodeData(id=INITIAL_NODE_ID, label="", type="initial", pseudo=True,
                         metadata={"template": "[*] --> {first}", "targets": ["idle"]}),
                NodeData(id="idle", label="Idle", type="state"),
                NodeData(id="running", label="Running", type="state", annotation="Busy working"),
                NodeData(id="done", label="Done", type="final"),
                NodeData(id=FINAL_NODE_ID, label="", type="final", pseudo=True,
                         metadata={"template": "{last} --> [*]", "targets": ["done"]}),
            ],
            edges=[
                EdgeData(from_node="idle", to_node="running", label="start"),
                EdgeData(from_node="running", to_node="done", label="finish", fields={"guard": "all_ok"}),
            ],
            mapping=mapping,
        )

        assert MermaidRenderer().render(spec) == (
            "stateDiagram-v2\n"
            "    [*] --> idle\n"
            "    idle : Idle\n"
            "    running : Running\n"
            "    idle --> running : start\n"
            "    running --> done : finish [all_ok]\n"
            "    done --> [*]\n"
            "    note right of running : Busy working"
        )

    def test_direction_line(self):
        spec = DiagramSpec(nodes=[], edges=[], mapping=make_mapping("stateDiagram-v2"), direction="LR")
        assert MermaidRenderer().render(spec) == "stateDiagram-v2\n    direction LR"

    def test_unlabelled_transition(self):
        spec = DiagramSpec(nodes=[], edges=[], mapping=make_mapping("stateDiagram-v2"))
        assert MermaidRenderer().edge_lines(EdgeData(from_node="a", to_node="b"), spec) == ["a --> b"]


class TestErDiagram:
    """Test erDiagram output."""

    def test_entities_and_relationships(self):
        spec = DiagramSpec(
            nodes=[
                NodeData(id="CUSTOMER", label="Customer",
                         fields={"attributes": [{"name": "id", "type": "int", "key": "PK"}]}),
                NodeData(id="ORDER", label="Order"),
            ],
            edges=[EdgeData(from_node="CUSTOMER", to_node="ORDER", label="places",
                            fields={"type": "one-to-many"})],
            mapping=make_mapping("erDiagram"),
        )

        assert MermaidRenderer().render(spec) == (
            "erDiagram\n"
            "    CUSTOMER {\n"
            "        int id PK\n"
            "    }\n"
            "    ORDER\n"
            '    CUSTOMER ||--o{ ORDER : "places"'
        )

    def test_relationship_kinds(self):
        spec = DiagramSpec(nodes=[], edges=[], mapping=make_mapping("erDiagram"))
        edge = EdgeData(from_node="A", to_node="B", fields={"type": "many-to-many"})
        assert MermaidRenderer().edge_lines(edge, spec) == ['A }o--o{ B : ""']


class TestClassDiagram:
    """Test classDiagram output."""

    def test_classes_relations_and_styles(self):
        spec = DiagramSpec(
            nodes=[
                NodeData(id="Animal", label="Animal", style_class="type_interface", fields={
                    "attributes": [{"name": "name", "type": "String"}],
                    "methods": [{"name": "speak", "returns": "String"}],
                }),
                NodeData(id="Dog", label="Dog"),
            ],
            edges=[EdgeData(from_node="Dog", to_node="Animal", fields={"type": "inheritance"})],
            mapping=make_mapping("classDiagram"),
            style_defs={"type_interface": "fill:#f3e5f5,stroke:#8e24aa"},
        )

        assert MermaidRenderer().render(spec) == (
            "classDiagram\n"
            "    class Animal {\n"
            "        +String name\n"
            "        +speak() String\n"
            "    }\n"
            "    class Dog\n"
            "    Dog --|> Animal\n"
            "    style Animal fill:#f3e5f5,stroke:#8e24aa"
        )

    def test_display_label_and_note(self):
        spec = DiagramSpec(nodes=[NodeData(id="repo", label="Repository", annotation="Stores data")],
                           edges=[], mapping=make_mapping("classDiagram"))
        assert MermaidRenderer().render(spec) == (
            'classDiagram\n    class repo["Repository"]\n    note for repo "Stores data"'
        )

    def test_method_params(self):
        spec = DiagramSpec(nodes=[], edges=[], mapping=make_mapping("classDiagram"))
        node = NodeData(id="Repo", label="Repo",
                        fields={"methods": [{"name": "find", "params": ["id", "opts"], "visibility": "-"}]})
        assert MermaidRenderer().node_lines(node, spec) == ["class Repo {", "    -find(id, opts)", "}"]


class TestRendererInterface:
    def test_format_name(self):
        renderer = MermaidRenderer()
        assert renderer.format_name == "mermaid"
        assert renderer.get_file_extension() == ".mmd"
