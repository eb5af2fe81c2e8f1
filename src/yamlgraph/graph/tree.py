"""Outline tree construction mirroring the document structure."""

from typing import Any

from .models import META_NODE_ID, EdgeData, NodeData, TreeNode

DEFAULT_ICONS = {
    # flowchart
    "start": "debug-start",
    "end": "debug-stop",
    "process": "symbol-method",
    "decision": "question",
    "subprocess": "symbol-class",
    # state machine
    "initial": "debug-start",
    "state": "circle-outline",
    "final": "debug-stop",
    "composite": "layers",
    # ER diagram
    "entity": "database",
    "relationship": "link",
    # class diagram
    "class": "symbol-class",
    "interface": "symbol-interface",
    "default": "symbol-misc",
}

IDENTITY_FIELDS = ("type", "label", "name", "id")


class TreeDataBuilder:
    """Builds the outline: a meta group, a nodes group and an edges group."""

    def __init__(self, icons: dict[str, str] | None = None):
        self.icons = {**DEFAULT_ICONS, **(icons or {})}

    def build(self, data: Any, nodes: list[NodeData], edges: list[EdgeData]) -> list[TreeNode]:
        if not isinstance(data, dict):
            return []

        tree = []
        meta = data.get("meta")
        if isinstance(meta, dict):
            tree.append(self.build_meta(meta))

        real_nodes = [node for node in nodes if not node.pseudo]
        tree.append(TreeNode(
            id="__nodes__",
            label=f"Nodes ({len(real_nodes)})",
            type="group",
            icon="symbol-class",
            children=[self.build_node_entry(node) for node in real_nodes],
            expanded=True,
        ))

        if edges:
            tree.append(TreeNode(
                id="__edges__",
                label=f"Edges ({len(edges)})",
                type="group",
                icon="link",
                children=[self.build_edge_entry(edge) for edge in edges],
                expanded=True,
            ))
        return tree

    def icon_for(self, node_type: str) -> str:
        return self.icons.get(node_type) or self.icons["default"]

    def build_meta(self, meta: dict[str, Any]) -> TreeNode:
        title = str(meta.get("title") or meta.get("id") or "Diagram")
        children = [
            TreeNode(id=f"{META_NODE_ID}.{key}", label=f"{key}: {value}", type="meta-field", icon="info")
            for key, value in meta.items()
        ]
        return TreeNode(id=META_NODE_ID, label=title, type="meta", icon="book",
                        children=children, expanded=False)

    def build_node_entry(self, node: NodeData) -> TreeNode:
        entry = TreeNode(
            id=node.id,
            label=f"{node.id}: {node.label}",
            type=node.type,
            icon=self.icon_for(node.type),
        )
        children = self.build_property_children(node.fields, node.id)
        if children:
            entry.children = children
            entry.expanded = False
        return entry

    def build_property_children(self, fields: dict[str, Any], parent_id: str) -> list[TreeNode]:
        """Child entries for list and mapping properties (attributes, transitions, ...)."""
        children = []
        for key, value in fields.items():
            if key in IDENTITY_FIELDS or not isinstance(value, (dict, list)):
                continue
            if isinstance(value, list):
                if not value:
                    continue
                items = []
                for index, item in enumerate(value):
                    if isinstance(item, dict):
                        label = str(item.get("name") or item.get("label") or item.get("to") or f"[{index}]")
                    else:
                        label = str(item)
                    items.append(TreeNode(id=f"{parent_id}.{key}[{index}]", label=label,
                                          type="array-item", icon="symbol-field"))
                children.append(TreeNode(id=f"{parent_id}.{key}", label=f"{key} ({len(value)})",
                                         type="array", icon="symbol-array", children=items, expanded=False))
            else:
                children.append(TreeNode(id=f"{parent_id}.{key}", label=key,
                                         type="object", icon="symbol-object", expanded=False))
        return children

    def build_edge_entry(self, edge: EdgeData) -> TreeNode:
        label = f" ({edge.label})" if edge.label else ""
        return TreeNode(
            id=f"__edge_{edge.index}",
            label=f"{edge.from_node} → {edge.to_node}{label}",
            type="edge",
            icon="arrow-right",
        )
