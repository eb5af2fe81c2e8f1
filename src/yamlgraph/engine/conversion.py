"""Conversion pipeline: parse, validate, map, transform, render.

The engine is the only component with a public "convert a document" and
"apply an edit" contract. Data problems never raise from ``convert``; they
come back as ``ValidationError`` entries so momentarily-invalid documents
still render a best-effort diagram.
"""

import logging
from collections.abc import Iterator
from typing import Any
from weakref import WeakKeyDictionary

from yamlgraph.config import Direction, YamlGraphConfig
from yamlgraph.graph import (
    FINAL_NODE_ID,
    INITIAL_NODE_ID,
    META_NODE_ID,
    ConversionCallbacks,
    ConversionResult,
    DiagramRenderer,
    DiagramSpec,
    EdgeData,
    MermaidRenderer,
    NodeData,
    NodeLocation,
    TreeDataBuilder,
    safe_id,
)
from yamlgraph.models import GraphMapping, GraphType
from yamlgraph.parser import ParsedYaml, YamlParserWrapper, YamlSyntaxError, data_at, parse_path
from yamlgraph.schemas import SEVERITY_WARNING, SchemaValidator, ValidationError, to_json_pointer
from yamlgraph.transforms import (
    AstNodeTransformerRuntime,
    SandboxedSnippetRuntime,
    SnippetRuntime,
    TransformContext,
    freeze,
    substitute,
    thaw,
)

logger = logging.getLogger(__name__)

DIRECTIONS = {direction.value for direction in Direction}
KEY_ID_FIELD = "_key"


class NodeNotFoundError(LookupError):
    """An edit or session operation targets a node id that cannot be resolved."""

    def __init__(self, node_id: str, message: str | None = None):
        self.node_id = node_id
        super().__init__(message or f"Node '{node_id}' not found in document")


def edit_parts(edit: Any) -> tuple[str, Any]:
    """``{"path": ..., "value": ...}`` or any object with ``path``/``value`` attributes."""
    if isinstance(edit, dict):
        return edit["path"], edit.get("value")
    return edit.path, edit.value


def rule_key(value: Any) -> str:
    """Lookup key for a field value in rule tables (YAML spelling for booleans)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ConversionEngine:
    """Orchestrates validation, node/edge extraction, transforms and rendering."""

    def __init__(self, config: YamlGraphConfig | None = None, parser: YamlParserWrapper | None = None,
                 snippet_runtime: SnippetRuntime | None = None,
                 renderers: list[DiagramRenderer] | None = None):
        self.config = config or YamlGraphConfig()
        self.parser = parser or YamlParserWrapper()
        self.validator = SchemaValidator(self.parser)
        self.transformer = AstNodeTransformerRuntime(
            snippet_runtime or SandboxedSnippetRuntime(self.config.transforms.timeout_seconds),
            enabled=self.config.transforms.enabled,
        )
        self.default_renderer = MermaidRenderer(indent=self.config.rendering.indent)
        self.renderers: dict[str, DiagramRenderer] = {}
        self.tree_builder = TreeDataBuilder()
        # Correlation from the last conversion of each tree, used by apply_edit
        self._correlations: WeakKeyDictionary = WeakKeyDictionary()
        for renderer in renderers or []:
            self.add_renderer(renderer)

    def add_renderer(self, renderer: DiagramRenderer) -> None:
        """Register a renderer selectable through ``custom-renderer``."""
        self.renderers[renderer.format_name] = renderer

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def convert_text(self, text: str, graph_type: GraphType,
                     callbacks: ConversionCallbacks | None = None) -> ConversionResult:
        """Parse and convert; unparsable YAML yields a single error and an empty diagram."""
        try:
            parsed = self.parser.parse(text)
        except YamlSyntaxError as e:
            logger.debug(f"Document is not valid YAML: {e}")
            return ConversionResult(errors=[
                ValidationError(path="/", message=str(e), source_range=e.source_range)
            ])
        return self.convert(parsed, graph_type, callbacks)

    def convert(self, parsed: ParsedYaml, graph_type: GraphType,
                callbacks: ConversionCallbacks | None = None) -> ConversionResult:
        """Convert a parsed document into nodes, edges, diagram text and outline."""
        if callbacks:
            callbacks.prepare()
        mapping = graph_type.mapping
        logger.debug(f"Converting document with {graph_type.version_key}")

        errors = self.validator.validate(parsed, graph_type.json_schema)

        nodes, node_map, problems = self.extract_nodes(parsed, mapping)
        errors.extend(problems)
        edges, edge_map, problems = self.extract_edges(parsed, mapping, nodes)
        errors.extend(problems)
        nodes = self._with_connectors(nodes, mapping)

        style_defs = self._apply_style_rules(nodes, edges, mapping)
        self._apply_annotations(nodes, mapping)

        renderer, problems = self._select_renderer(mapping)
        errors.extend(problems)
        spec = DiagramSpec(
            nodes=nodes,
            edges=edges,
            mapping=mapping,
            direction=self.resolve_direction(parsed.data, mapping),
            style_defs=style_defs,
        )
        errors.extend(self._apply_transforms(parsed, spec, renderer, node_map, edge_map))

        result = ConversionResult(
            nodes=nodes,
            edges=edges,
            diagram_text=renderer.render(spec, callbacks),
            tree_data=self.tree_builder.build(parsed.data, nodes, edges),
            errors=errors,
            node_map=node_map,
            edge_map=edge_map,
        )
        self._correlations[parsed] = result
        return result

    def resolve_direction(self, data: Any, mapping: GraphMapping) -> str:
        """Document's direction field, then the mapping default, then configuration."""
        candidates = []
        if mapping.map.direction_field:
            candidates.append(data_at(data, mapping.map.direction_field))
        candidates.append(mapping.map.default_direction)
        for candidate in candidates:
            if isinstance(candidate, str) and candidate.upper() in DIRECTIONS:
                return candidate.upper()
        default = self.config.rendering.default_direction
        return default.value if isinstance(default, Direction) else str(default)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def node_entries(self, data: Any, mapping: GraphMapping,
                     collection_path: str | None = None) -> Iterator[tuple[str | None, list, Any]]:
        """Yield ``(node_id, path, value)`` for each entry of the node collection.

        Keyed collections use the mapping key (or the id field when present);
        sequences use the id field only, yielding None when it is missing.
        """
        collection_path = collection_path or mapping.node_shapes.source_path
        id_field = mapping.node_shapes.id_field
        base = parse_path(collection_path)
        collection = data_at(data, collection_path)

        if isinstance(collection, dict):
            for key, value in collection.items():
                if value is None:
                    value = {}
                node_id = str(key)
                if id_field != KEY_ID_FIELD and isinstance(value, dict) and value.get(id_field) is not None:
                    node_id = str(value[id_field])
                yield node_id, base + [key], value
        elif isinstance(collection, list):
            for index, value in enumerate(collection):
                node_id = None
                if isinstance(value, dict) and value.get(id_field) is not None:
                    node_id = str(value[id_field])
                yield node_id, base + [index], value

    def extract_nodes(self, parsed: ParsedYaml, mapping: GraphMapping):
        """Build NodeData for every entry at ``node-shapes.source-path``.

        Returns ``(nodes, node_map, problems)``.
        """
        shapes = mapping.node_shapes
        nodes: list[NodeData] = []
        node_map: dict[str, NodeLocation] = {}
        problems: list[ValidationError] = []

        for node_id, path, value in self.node_entries(parsed.data, mapping):
            source_range = self.parser.get_entry_range(parsed, path)
            if not isinstance(value, dict):
                problems.append(self._warning(path, "Node entry is not a mapping; skipped", source_range))
                continue
            if node_id is None:
                problems.append(self._warning(
                    path, f"Node entry has no '{shapes.id_field}' field; skipped", source_range
                ))
                continue
            if node_id in node_map:
                problems.append(self._warning(path, f"Duplicate node id '{node_id}'; skipped", source_range))
                continue

            node_type = str(value.get("type") or "default")
            explicit_shape = value.get(shapes.shape_field)
            if explicit_shape is not None:
                shape = str(explicit_shape)
            else:
                shape = shapes.default_shapes.get(node_type, "rectangle")

            label = data_at(value, shapes.label_field)
            nodes.append(NodeData(
                id=node_id,
                label=node_id if label is None else str(label),
                shape=shape,
                type=node_type,
                subtype=str(value["subtype"]) if value.get("subtype") else None,
                fields=value,
                source_range=source_range,
            ))
            node_map[node_id] = NodeLocation(path=tuple(path), source_range=source_range)

        return nodes, node_map, problems

    def edge_entries(self, data: Any, mapping: GraphMapping) -> Iterator[tuple[str | None, list, Any]]:
        """Yield ``(owner_id, path, value)`` for every edge entry.

        ``owner_id`` is the enclosing node id for co-located edges, else None.
        """
        links = mapping.edge_links
        colocated = links.colocated
        if colocated:
            nodes_path, array_name = colocated
            for owner_id, path, value in self.node_entries(data, mapping, nodes_path):
                if owner_id is None or not isinstance(value, dict):
                    continue
                items = value.get(array_name)
                if isinstance(items, list):
                    for index, item in enumerate(items):
                        yield owner_id, path + [array_name, index], item
            return

        items = data_at(data, links.source_path)
        if isinstance(items, list):
            base = parse_path(links.source_path)
            for index, item in enumerate(items):
                yield None, base + [index], item

    def extract_edges(self, parsed: ParsedYaml, mapping: GraphMapping, nodes: list[NodeData]):
        """Build EdgeData from standalone or co-located edge arrays.

        Returns ``(edges, edge_map, problems)``.
        """
        links = mapping.edge_links
        known = {node.id for node in nodes}
        edges: list[EdgeData] = []
        edge_map: dict[int, NodeLocation] = {}
        problems: list[ValidationError] = []

        for owner_id, path, item in self.edge_entries(parsed.data, mapping):
            source_range = self.parser.get_entry_range(parsed, path)
            if not isinstance(item, dict):
                problems.append(self._warning(path, "Edge entry is not a mapping; skipped", source_range))
                continue

            source = data_at(item, links.from_field)
            if owner_id is not None and (links.from_implicit or source is None):
                source = owner_id
            target = data_at(item, links.to_field)
            if source is None or target is None:
                missing = links.from_field if source is None else links.to_field
                problems.append(self._warning(path, f"Edge has no '{missing}' field; skipped", source_range))
                continue

            edge = EdgeData(
                from_node=str(source),
                to_node=str(target),
                label=self._edge_label(item, mapping),
                style=str(item["style"]) if item.get("style") is not None else None,
                fields=item,
                source_range=source_range,
                index=len(edges),
            )
            for endpoint in (edge.from_node, edge.to_node):
                if endpoint not in known:
                    problems.append(self._warning(path, f"Edge references unknown node '{endpoint}'", source_range))
            edge_map[edge.index] = NodeLocation(path=tuple(path), source_range=source_range)
            edges.append(edge)

        return edges, edge_map, problems

    def _edge_label(self, item: dict[str, Any], mapping: GraphMapping) -> str | None:
        links = mapping.edge_links
        if links.label_template:
            text = substitute(links.label_template, item).strip()
            return text or None
        if links.label_field:
            value = data_at(item, links.label_field)
            return None if value is None else str(value)
        return None

    def _with_connectors(self, nodes: list[NodeData], mapping: GraphMapping) -> list[NodeData]:
        """Add initial/final connector pseudo-nodes declared by the mapping."""
        shapes = mapping.node_shapes
        result = list(nodes)
        if shapes.initial_connector and nodes:
            result.insert(0, NodeData(
                id=INITIAL_NODE_ID, label="", type="initial", pseudo=True,
                metadata={"template": shapes.initial_connector, "targets": [nodes[0].id]},
            ))
        finals = [node.id for node in nodes if node.type == "final"]
        if shapes.final_connector and finals:
            result.append(NodeData(
                id=FINAL_NODE_ID, label="", type="final", pseudo=True,
                metadata={"template": shapes.final_connector, "targets": finals},
            ))
        return result

    # ------------------------------------------------------------------
    # Styling, annotations, transforms
    # ------------------------------------------------------------------

    def _apply_style_rules(self, nodes: list[NodeData], edges: list[EdgeData],
                           mapping: GraphMapping) -> dict[str, str]:
        rules = mapping.style_rules
        style_defs: dict[str, str] = {}
        if rules is None:
            return style_defs

        for element in [n for n in nodes if not n.pseudo] + edges:
            value = data_at(element.fields, rules.field)
            if value is None:
                continue
            key = rule_key(value)
            rule = rules.rules.get(key)
            if rule is None:
                continue
            if isinstance(rule, str):
                element.style_class = rule
            else:
                class_name = safe_id(f"{rules.field}_{key}")
                style_defs[class_name] = rule.to_css()
                element.style_class = class_name
        return style_defs

    def _apply_annotations(self, nodes: list[NodeData], mapping: GraphMapping) -> None:
        annotations = mapping.annotations
        if annotations is None:
            return
        for node in nodes:
            if node.pseudo:
                continue
            value = data_at(node.fields, annotations.source_field)
            if value is None or value == "":
                continue
            if isinstance(value, list):
                value = ", ".join(str(v) for v in value)
            text = substitute(annotations.template, {**node.fields, "id": node.id, "value": value})
            node.annotation = text or None

    def _apply_transforms(self, parsed: ParsedYaml, spec: DiagramSpec, renderer: DiagramRenderer,
                          node_map: dict[str, NodeLocation],
                          edge_map: dict[int, NodeLocation]) -> list[ValidationError]:
        rules = spec.mapping.transforms
        if not rules or not self.transformer.enabled:
            return []

        problems = []
        real_nodes = spec.real_nodes()
        document = freeze(parsed.data)
        all_nodes = freeze({node.id: node.view() for node in real_nodes})
        all_edges = freeze([edge.view() for edge in spec.edges])

        for node in real_nodes:
            context = TransformContext(
                element=freeze(node.view()), scope="node", document=document,
                all_nodes=all_nodes, all_edges=all_edges,
                output=tuple(renderer.node_lines(node, spec)),
            )
            for value in self.transformer.apply(rules, node.id, context):
                self._merge_result(node, value)
            location = node_map.get(node.id)
            problems.extend(self._transform_warnings(location))

        for edge in spec.edges:
            context = TransformContext(
                element=freeze(edge.view()), scope="edge", document=document,
                all_nodes=all_nodes, all_edges=all_edges,
                output=tuple(renderer.edge_lines(edge, spec)),
            )
            for value in self.transformer.apply(rules, f"{edge.from_node}->{edge.to_node}", context):
                self._merge_result(edge, value)
            problems.extend(self._transform_warnings(edge_map.get(edge.index)))

        return problems

    def _transform_warnings(self, location: NodeLocation | None) -> list[ValidationError]:
        path = list(location.path) if location else []
        source_range = location.source_range if location else None
        return [self._warning(path, message, source_range) for message in self.transformer.consume_warnings()]

    def _merge_result(self, element: NodeData | EdgeData, value: Any) -> None:
        """Fold one snippet result into an element.

        list -> replaces emitted lines; str -> replaces the label;
        dict -> ``label``/``shape``/``style`` override, other keys go to metadata.
        """
        value = thaw(value)
        if isinstance(value, list):
            element.lines = [str(line) for line in value]
        elif isinstance(value, str):
            element.label = value
        elif isinstance(value, dict):
            extra = dict(value)
            if "label" in extra:
                element.label = str(extra.pop("label"))
            if "shape" in extra and isinstance(element, NodeData):
                element.shape = str(extra.pop("shape"))
            if "style" in extra:
                element.style_class = str(extra.pop("style"))
            element.metadata.update(extra)
        else:
            self.transformer.warnings.append(
                f"Transform returned unsupported {type(value).__name__}; ignored"
            )

    def _select_renderer(self, mapping: GraphMapping) -> tuple[DiagramRenderer, list[ValidationError]]:
        name = mapping.custom_renderer
        if not name:
            return self.default_renderer, []
        renderer = self.renderers.get(name)
        if renderer is None:
            message = f"Unknown custom renderer '{name}'; using the built-in Mermaid renderer"
            logger.warning(message)
            return self.default_renderer, [ValidationError(path="/", message=message)]
        return renderer, []

    def _warning(self, path: list, message: str, source_range=None) -> ValidationError:
        return ValidationError(path=to_json_pointer(path), message=message,
                               source_range=source_range, severity=SEVERITY_WARNING)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def locate_node(self, parsed: ParsedYaml, node_id: str,
                    graph_type: GraphType | None = None) -> NodeLocation:
        """Resolve a node id through the last conversion of ``parsed``.

        Without a prior conversion, ``graph_type`` is used to extract nodes.
        ``__meta__`` addresses the document root.
        """
        if node_id == META_NODE_ID:
            return NodeLocation(path=())
        result = self._correlations.get(parsed)
        if result is not None and node_id in result.node_map:
            return result.node_map[node_id]
        if result is None and graph_type is not None:
            _, node_map, _ = self.extract_nodes(parsed, graph_type.mapping)
            if node_id in node_map:
                return node_map[node_id]
        raise NodeNotFoundError(node_id)

    def apply_edit(self, parsed: ParsedYaml, node_id: str, edits: list,
                   graph_type: GraphType | None = None) -> ParsedYaml:
        """Apply field edits to one node, returning a new tree.

        Paths are relative to the node entry (``label``, ``attributes[1].name``).
        All edits apply or none do; ``parsed`` itself is never modified.

        Raises:
            NodeNotFoundError: The node id cannot be resolved
            YamlPathError / YamlEditError: An edit cannot be expressed on the text
        """
        location = self.locate_node(parsed, node_id, graph_type)
        tree = parsed
        for edit in edits:
            path, value = edit_parts(edit)
            target = list(location.path) + parse_path(path)
            tree = self.parser.set_value(tree, target, value)
            logger.debug(f"Applied edit {node_id}:{path}")
        return tree
