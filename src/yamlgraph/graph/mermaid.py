"""Mermaid renderer for flowchart, state, ER and class diagram dialects."""

import logging

from .framework import ConversionCallbacks, DiagramRenderer
from .models import DiagramSpec, EdgeData, NodeData, safe_id

logger = logging.getLogger(__name__)

FLOWCHART = "flowchart"
GRAPH = "graph"
STATE_DIAGRAM = "stateDiagram-v2"
ER_DIAGRAM = "erDiagram"
CLASS_DIAGRAM = "classDiagram"

# Used when a mapping does not define a template for a shape
BUILTIN_SHAPES = {
    "rectangle": '["{label}"]',
    "rounded": '("{label}")',
    "stadium": '(["{label}"])',
    "subroutine": '[["{label}"]]',
    "cylinder": '[("{label}")]',
    "circle": '(("{label}"))',
    "double-circle": '((("{label}")))',
    "diamond": '{"{label}"}',
    "hexagon": '{{"{label}"}}',
    "parallelogram": '[/"{label}"/]',
    "trapezoid": '[/"{label}"\\]',
    "asymmetric": '>"{label}"]',
}

ER_RELATIONSHIPS = {
    "one-to-one": "||--||",
    "one-to-many": "||--o{",
    "many-to-one": "}o--||",
    "many-to-many": "}o--o{",
}

# Arrow heads point at the "to" class: `Dog --|> Animal`
CLASS_RELATIONS = {
    "inheritance": "--|>",
    "composition": "--*",
    "aggregation": "--o",
    "association": "-->",
    "dependency": "..>",
    "realization": "..|>",
    "link": "--",
}

STATE_PSEUDO_TYPES = ("initial", "final")


class MermaidRenderer(DiagramRenderer):
    """Emits Mermaid source for the dialect named by ``map.mermaid-type``."""

    def __init__(self, indent: int = 4):
        self.indent = " " * indent
        self._ids: dict[str, str] = {}
        self._ids_for: DiagramSpec | None = None

    @property
    def format_name(self) -> str:
        return "mermaid"

    def get_file_extension(self) -> str:
        return ".mmd"

    def render(self, spec: DiagramSpec, callbacks: ConversionCallbacks | None = None) -> str:
        mermaid_type = spec.mermaid_type
        if callbacks:
            callbacks.set_mermaid_type(mermaid_type)

        output = self._header(spec)
        pad = self.indent

        initial = [node for node in spec.nodes if node.pseudo and node.type == "initial"]
        final = [node for node in spec.nodes if node.pseudo and node.type == "final"]

        for node in initial:
            output.extend(pad + line for line in self.connector_lines(node, spec))

        for node in spec.real_nodes():
            lines = list(node.lines) if node.lines is not None else self.node_lines(node, spec)
            if callbacks:
                lines.extend(callbacks.on_node_emit(node, list(lines)))
            output.extend(pad + line for line in lines)

        for edge in spec.edges:
            lines = list(edge.lines) if edge.lines is not None else self.edge_lines(edge, spec)
            if callbacks:
                lines.extend(callbacks.on_edge_emit(edge, list(lines)))
            output.extend(pad + line for line in lines)

        for node in final:
            output.extend(pad + line for line in self.connector_lines(node, spec))

        output.extend(pad + line for line in self._annotation_lines(spec))
        output.extend(pad + line for line in self._styling_lines(spec))

        if callbacks:
            output.extend(callbacks.on_complete([node.id for node in spec.real_nodes()], list(output)))

        logger.debug(f"Rendered {mermaid_type} with {len(spec.nodes)} nodes and {len(spec.edges)} edges")
        return "\n".join(output)

    def node_id(self, node_id: str, spec: DiagramSpec) -> str:
        """Flowchart and class ids are sanitised; state and ER ids are used as-is.

        Ids that sanitise to the same text (``a-b`` and ``a_b``) get a numeric
        suffix in document order, so each node keeps an id of its own.
        """
        if spec.mermaid_type in (STATE_DIAGRAM, ER_DIAGRAM):
            return node_id
        if self._ids_for is not spec:
            self._ids_for, self._ids = spec, {}
            for node in spec.real_nodes():
                self._assign_id(node.id, spec)
            for edge in spec.edges:
                self._assign_id(edge.from_node, spec)
                self._assign_id(edge.to_node, spec)
        return self._assign_id(node_id, spec)

    def _assign_id(self, node_id: str, spec: DiagramSpec) -> str:
        if node_id in self._ids:
            return self._ids[node_id]
        sanitized = safe_id(node_id)
        # A bare "end" closes a subgraph in flowcharts
        if sanitized == "end" and spec.mermaid_type in (FLOWCHART, GRAPH):
            sanitized = "end_"
        taken = set(self._ids.values())
        candidate, suffix = sanitized, 1
        while candidate in taken:
            suffix += 1
            candidate = f"{sanitized}_{suffix}"
        if candidate != sanitized:
            logger.debug(f"Node id {node_id!r} renders as {candidate!r} to stay distinct")
        self._ids[node_id] = candidate
        return candidate

    def connector_lines(self, node: NodeData, spec: DiagramSpec) -> list[str]:
        """Expand a connector template once per target ('{first}' / '{last}' placeholders)."""
        if node.lines is not None:
            return list(node.lines)
        template = node.metadata.get("template") or ""
        lines = []
        for target in node.metadata.get("targets") or []:
            target_id = self.node_id(target, spec)
            lines.append(template.replace("{first}", target_id).replace("{last}", target_id))
        return lines

    def node_lines(self, node: NodeData, spec: DiagramSpec) -> list[str]:
        mermaid_type = spec.mermaid_type
        if mermaid_type == STATE_DIAGRAM:
            return self._state_lines(node, spec)
        if mermaid_type == ER_DIAGRAM:
            return self._entity_lines(node, spec)
        if mermaid_type == CLASS_DIAGRAM:
            return self._class_lines(node, spec)
        return self._flowchart_node_lines(node, spec)

    def edge_lines(self, edge: EdgeData, spec: DiagramSpec) -> list[str]:
        mermaid_type = spec.mermaid_type
        source = self.node_id(edge.from_node, spec)
        target = self.node_id(edge.to_node, spec)
        link_styles = spec.mapping.edge_links.link_styles

        if mermaid_type == STATE_DIAGRAM:
            label = self._transition_label(edge)
            return [f"{source} --> {target} : {label}" if label else f"{source} --> {target}"]

        if mermaid_type == ER_DIAGRAM:
            kind = edge.fields.get("type") or edge.style or "one-to-many"
            relation = link_styles.get(kind) or ER_RELATIONSHIPS.get(kind, ER_RELATIONSHIPS["one-to-many"])
            return [f'{source} {relation} {target} : "{self._escape_label(edge.label or "")}"']

        if mermaid_type == CLASS_DIAGRAM:
            kind = edge.fields.get("type") or edge.style or "association"
            relation = link_styles.get(kind) or CLASS_RELATIONS.get(kind, CLASS_RELATIONS["association"])
            if edge.label:
                return [f"{source} {relation} {target} : {self._escape_label(edge.label)}"]
            return [f"{source} {relation} {target}"]

        link = link_styles.get(edge.style or "default") or "-->"
        if edge.label:
            return [f'{source} {link}|"{self._escape_label(edge.label)}"| {target}']
        return [f"{source} {link} {target}"]

    def _header(self, spec: DiagramSpec) -> list[str]:
        mermaid_type = spec.mermaid_type
        if mermaid_type in (STATE_DIAGRAM, CLASS_DIAGRAM):
            header = [mermaid_type]
            if spec.direction not in ("TD", "TB"):
                header.append(f"{self.indent}direction {spec.direction}")
            return header
        if mermaid_type == ER_DIAGRAM:
            return [ER_DIAGRAM]
        return [f"{mermaid_type} {spec.direction}"]

    def _flowchart_node_lines(self, node: NodeData, spec: DiagramSpec) -> list[str]:
        node_id = self.node_id(node.id, spec)
        label = self._escape_label(node.label)
        if node.annotation:
            label = f"{label}<br/>{self._escape_label(node.annotation)}"
        template = spec.mapping.node_shapes.shapes.get(node.shape) or BUILTIN_SHAPES.get(node.shape)
        if not template:
            return [f'{node_id}["{label}"]']
        return [node_id + template.replace("{label}", label).replace("{id}", node_id)]

    def _state_lines(self, node: NodeData, spec: DiagramSpec) -> list[str]:
        # Initial and final states are drawn through the connectors
        if node.type in STATE_PSEUDO_TYPES:
            return []
        return [f"{node.id} : {self._escape_label(node.label)}"]

    def _entity_lines(self, node: NodeData, spec: DiagramSpec) -> list[str]:
        attributes = node.fields.get("attributes")
        if not isinstance(attributes, list) or not attributes:
            return [node.id]

        lines = [f"{node.id} {{"]
        for attribute in attributes:
            if not isinstance(attribute, dict):
                continue
            line = f"{attribute.get('type', 'string')} {attribute.get('name', '')}"
            if attribute.get("key"):
                line += f" {attribute['key']}"
            if attribute.get("comment"):
                line += f' "{self._escape_label(str(attribute["comment"]))}"'
            lines.append(self.indent + line)
        lines.append("}")
        return lines

    def _class_lines(self, node: NodeData, spec: DiagramSpec) -> list[str]:
        node_id = self.node_id(node.id, spec)
        members = []
        for attribute in node.fields.get("attributes") or []:
            if isinstance(attribute, dict):
                visibility = attribute.get("visibility", "+")
                members.append(f"{visibility}{attribute.get('type', '')} {attribute.get('name', '')}".rstrip())
            else:
                members.append(f"+{attribute}")
        for method in node.fields.get("methods") or []:
            if isinstance(method, dict):
                visibility = method.get("visibility", "+")
                params = method.get("params", "")
                if isinstance(params, list):
                    params = ", ".join(str(p) for p in params)
                returns = f" {method['returns']}" if method.get("returns") else ""
                members.append(f"{visibility}{method.get('name', '')}({params}){returns}")
            else:
                members.append(f"+{method}()")

        header = f"class {node_id}"
        if node.label and node.label != node.id:
            header += f'["{self._escape_label(node.label)}"]'
        if not members:
            return [header]
        return [header + " {"] + [self.indent + member for member in members] + ["}"]

    def _transition_label(self, edge: EdgeData) -> str:
        label = edge.label or ""
        guard = edge.fields.get("guard")
        if guard and f"[{guard}]" not in label:
            label = f"{label} [{guard}]".strip()
        return self._escape_label(label)

    def _annotation_lines(self, spec: DiagramSpec) -> list[str]:
        lines = []
        for node in spec.real_nodes():
            if not node.annotation or node.lines is not None:
                continue
            text = self._escape_label(node.annotation)
            if spec.mermaid_type == STATE_DIAGRAM:
                if node.type not in STATE_PSEUDO_TYPES:
                    lines.append(f"note right of {node.id} : {text}")
            elif spec.mermaid_type == CLASS_DIAGRAM:
                lines.append(f'note for {self.node_id(node.id, spec)} "{text}"')
            elif spec.mermaid_type == ER_DIAGRAM:
                lines.append(f"%% {node.id}: {text}")
        return lines

    def _styling_lines(self, spec: DiagramSpec) -> list[str]:
        styled = [node for node in spec.real_nodes() if node.style_class]
        if not styled:
            return []
        if spec.mermaid_type == ER_DIAGRAM:
            return []

        lines = []
        if spec.mermaid_type == CLASS_DIAGRAM:
            for node in styled:
                css = spec.style_defs.get(node.style_class)
                if css:
                    lines.append(f"style {self.node_id(node.id, spec)} {css}")
            return lines

        used = []
        for node in styled:
            if node.style_class not in used:
                used.append(node.style_class)
        for class_name in used:
            css = spec.style_defs.get(class_name)
            if css:
                lines.append(f"classDef {class_name} {css}")
        for node in styled:
            if spec.mermaid_type == STATE_DIAGRAM and node.type in STATE_PSEUDO_TYPES:
                continue
            lines.append(f"class {self.node_id(node.id, spec)} {node.style_class}")
        return lines

    def _escape_label(self, label: str) -> str:
        """Escape label for Mermaid rendering."""
        if not label:
            return ""
        return str(label).replace('"', "#quot;").replace("\n", "<br/>")
