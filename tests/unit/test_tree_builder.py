"""Unit tests for outline tree construction."""

from yamlgraph.graph import INITIAL_NODE_ID, META_NODE_ID, EdgeData, NodeData, TreeDataBuilder


class TestTreeDataBuilder:
    """Test TreeDataBuilder."""

    def test_groups(self):
        """Test meta, nodes and edges groups in document order."""
        data = {"meta": {"title": "Pipeline", "owner": "dana"}, "nodes": []}
        nodes = [
            NodeData(id=INITIAL_NODE_ID, label="", type="initial", pseudo=True),
            NodeData(id="start", label="Start", type="start"),
            NodeData(id="build", label="Build"),
        ]
        edges = [EdgeData(from_node="start", to_node="build", label="ok", index=0)]

        tree = TreeDataBuilder().build(data, nodes, edges)

        assert [entry.id for entry in tree] == [META_NODE_ID, "__nodes__", "__edges__"]
        meta, node_group, edge_group = tree
        assert meta.label == "Pipeline"
        assert [child.label for child in meta.children] == ["title: Pipeline", "owner: dana"]
        assert meta.expanded is False

        assert node_group.label == "Nodes (2)"
        assert [(child.id, child.label, child.icon) for child in node_group.children] == [
            ("start", "start: Start", "debug-start"),
            ("build", "build: Build", "symbol-misc"),
        ]
        assert edge_group.children[0].id == "__edge_0"
        assert edge_group.children[0].label == "start → build (ok)"

    def test_no_meta_no_edges(self):
        tree = TreeDataBuilder().build({"nodes": []}, [], [])
        assert [entry.id for entry in tree] == ["__nodes__"]
        assert tree[0].children == []

    def test_non_mapping_document(self):
        assert TreeDataBuilder().build(["a", "b"], [], []) == []
        assert TreeDataBuilder().build(None, [], []) == []

    def test_property_children(self):
        """Test list and mapping fields become expandable children."""
        node = NodeData(id="CUSTOMER", label="Customer", type="entity", fields={
            "id": "CUSTOMER",
            "attributes": [{"name": "id"}, {"type": "string"}],
            "style": {"fill": "#fff"},
            "tags": [],
            "note": "plain",
        })

        entry = TreeDataBuilder().build_node_entry(node)

        assert entry.icon == "database"
        assert entry.expanded is False
        attributes, style = entry.children
        assert attributes.label == "attributes (2)"
        assert [item.label for item in attributes.children] == ["id", "[1]"]
        assert attributes.children[0].id == "CUSTOMER.attributes[0]"
        assert style.type == "object"

    def test_custom_icons(self):
        builder = TreeDataBuilder(icons={"decision": "git-compare"})
        assert builder.icon_for("decision") == "git-compare"
        assert builder.icon_for("unknown") == "symbol-misc"

    def test_to_dict(self):
        entry = TreeDataBuilder().build_node_entry(NodeData(id="a", label="A"))
        assert entry.to_dict() == {"id": "a", "label": "a: A", "type": "default", "icon": "symbol-misc"}
