"""Graph data models produced by conversion."""

import re
from dataclasses import dataclass, field
from typing import Any

from yamlgraph.models import GraphMapping
from yamlgraph.parser import SourceRange
from yamlgraph.schemas import ValidationError

INITIAL_NODE_ID = "__initial__"
FINAL_NODE_ID = "__final__"
META_NODE_ID = "__meta__"


def safe_id(node_id: str) -> str:
    """ID safe for diagram rendering (alphanumeric + underscore)."""
    return re.sub(r"[^a-zA-Z0-9_]", "_", node_id)


@dataclass
class NodeData:
    """A converted node. ``id`` comes from the id field (or mapping key), never a position."""
    id: str
    label: str
    shape: str = "rectangle"
    type: str = "default"
    subtype: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    source_range: SourceRange | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    style_class: str | None = None
    annotation: str | None = None
    lines: list[str] | None = None  # replaces the renderer's output when set
    pseudo: bool = False

    def view(self) -> dict[str, Any]:
        """Plain-data view handed to transforms and hosts."""
        return {
            "id": self.id,
            "label": self.label,
            "shape": self.shape,
            "type": self.type,
            "subtype": self.subtype,
            "fields": self.fields,
            "metadata": self.metadata,
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.view()
        data.update({
            "styleClass": self.style_class,
            "annotation": self.annotation,
            "pseudo": self.pseudo,
            "sourceRange": self.source_range.to_dict() if self.source_range else None,
        })
        return data


@dataclass
class EdgeData:
    """A converted edge between two node ids."""
    from_node: str
    to_node: str
    label: str | None = None
    style: str | None = None  # link-style key
    fields: dict[str, Any] = field(default_factory=dict)
    source_range: SourceRange | None = None
    index: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    style_class: str | None = None
    lines: list[str] | None = None

    def view(self) -> dict[str, Any]:
        return {
            "from": self.from_node,
            "to": self.to_node,
            "label": self.label,
            "style": self.style,
            "index": self.index,
            "fields": self.fields,
            "metadata": self.metadata,
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.view()
        data.update({
            "styleClass": self.style_class,
            "sourceRange": self.source_range.to_dict() if self.source_range else None,
        })
        return data


@dataclass(frozen=True)
class NodeLocation:
    """Where a converted element lives in the document."""
    path: tuple
    source_range: SourceRange | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": list(self.path),
            "sourceRange": self.source_range.to_dict() if self.source_range else None,
        }


@dataclass
class TreeNode:
    """Outline entry mirroring the document structure."""
    id: str
    label: str
    type: str
    icon: str
    children: list["TreeNode"] | None = None
    expanded: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {"id": self.id, "label": self.label, "type": self.type, "icon": self.icon}
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        if self.expanded is not None:
            data["expanded"] = self.expanded
        return data


@dataclass
class DiagramSpec:
    """Everything a renderer needs to emit diagram text."""
    nodes: list[NodeData]
    edges: list[EdgeData]
    mapping: GraphMapping
    direction: str = "TD"
    style_defs: dict[str, str] = field(default_factory=dict)  # class name -> inline css

    @property
    def mermaid_type(self) -> str:
        return self.mapping.map.mermaid_type

    def real_nodes(self) -> list[NodeData]:
        return [node for node in self.nodes if not node.pseudo]


@dataclass
class ConversionResult:
    """Output of one conversion; a fresh result is produced for every document change."""
    nodes: list[NodeData] = field(default_factory=list)
    edges: list[EdgeData] = field(default_factory=list)
    diagram_text: str = ""
    tree_data: list[TreeNode] = field(default_factory=list)
    errors: list[ValidationError] = field(default_factory=list)
    node_map: dict[str, NodeLocation] = field(default_factory=dict)
    edge_map: dict[int, NodeLocation] = field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        return any(error.severity == "error" for error in self.errors)

    def get_node(self, node_id: str) -> NodeData | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "diagramText": self.diagram_text,
            "treeData": [entry.to_dict() for entry in self.tree_data],
            "errors": [error.to_dict() for error in self.errors],
            "nodeMap": {node_id: loc.to_dict() for node_id, loc in self.node_map.items()},
            "edgeMap": {str(index): loc.to_dict() for index, loc in self.edge_map.items()},
        }
