"""One open document: text, graph type, latest conversion and edit operations.

Every operation edits the document text through the YAML wrapper and then
re-converts, so untouched lines stay byte-identical and all outbound
messages derive from the newest ``ConversionResult``.
"""

import copy
import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError as MessageValidationError
from slugify import slugify

from yamlgraph.graph import META_NODE_ID, ConversionCallbacks, ConversionResult
from yamlgraph.models import GraphMapping, GraphType
from yamlgraph.parser import ParsedYaml, YamlEditError, YamlPathError, YamlSyntaxError, data_at, parse_path
from yamlgraph.registry import DomainNotFoundError, GraphTypeRegistry
from yamlgraph.schemas import SchemaResolver, ValidationError

from .conversion import DIRECTIONS, KEY_ID_FIELD, ConversionEngine, NodeNotFoundError
from .protocol import (
    AddConnectionMessage,
    AddNodeMessage,
    ApplyEditMessage,
    ChangeDirectionMessage,
    DeleteConnectionMessage,
    DeleteNodeMessage,
    DuplicateNodeMessage,
    ErrorEntry,
    ErrorMessage,
    HighlightNodeMessage,
    Message,
    RenameNodeMessage,
    SelectNodeMessage,
    SelectNodeRequest,
    ShowNodeMessage,
    UpdateAllMessage,
    parse_message,
)

logger = logging.getLogger(__name__)


class DocumentState(str, Enum):
    """Lifecycle of a session's current text."""
    UNLOADED = "unloaded"
    RESOLVED = "resolved"
    PARSED = "parsed"
    VALIDATED = "validated"
    CONVERTED = "converted"
    FAILED = "failed"


class SessionError(Exception):
    """A session operation cannot be performed on the current document."""
    pass


class _StateTracker(ConversionCallbacks):
    """Forwards to host callbacks; marks the session validated once rendering starts."""

    def __init__(self, session: "DocumentSession", inner: ConversionCallbacks | None):
        self.session = session
        self.inner = inner or ConversionCallbacks()

    def prepare(self) -> None:
        self.inner.prepare()

    def set_mermaid_type(self, mermaid_type: str) -> None:
        self.session.state = DocumentState.VALIDATED
        self.inner.set_mermaid_type(mermaid_type)

    def on_node_emit(self, node, emitted):
        return self.inner.on_node_emit(node, emitted)

    def on_edge_emit(self, edge, emitted):
        return self.inner.on_edge_emit(edge, emitted)

    def on_complete(self, node_ids, output):
        return self.inner.on_complete(node_ids, output)


def _endpoint(item: Any, field: str) -> str | None:
    value = data_at(item, field) if isinstance(item, dict) else None
    return None if value is None else str(value)


class DocumentSession:
    """Owns one document and exposes one operation per inbound message."""

    def __init__(self, registry: GraphTypeRegistry, engine: ConversionEngine | None = None,
                 filename: str | None = None, text: str = "",
                 callbacks: ConversionCallbacks | None = None):
        self.registry = registry
        self.engine = engine or ConversionEngine()
        self.filename = filename
        self.callbacks = callbacks
        self.text = text
        self.generation = 0
        self.state = DocumentState.UNLOADED
        self.graph_type: GraphType | None = None
        self.parsed: ParsedYaml | None = None
        self.result: ConversionResult | None = None
        self.error: str | None = None
        if text:
            self.update_text(text)

    @property
    def mapping(self) -> GraphMapping:
        self._require()
        return self.graph_type.mapping

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def update_text(self, text: str) -> ConversionResult | None:
        """Re-resolve, parse and convert ``text``.

        Returns None when no graph type matches or when a newer update
        superseded this one before it completed.
        """
        self.generation += 1
        generation = self.generation
        self.text = text
        self.error = None

        try:
            parsed = self.engine.parser.parse(text)
        except YamlSyntaxError as e:
            logger.debug(f"Generation {generation}: unparsable document: {e}")
            self.parsed = None
            self.state = DocumentState.FAILED
            self.error = str(e)
            self.result = ConversionResult(errors=[
                ValidationError(path="/", message=str(e), source_range=e.source_range)
            ])
            return self.result

        try:
            graph_type = self.registry.resolve_for_document(parsed.data, self.filename)
        except DomainNotFoundError as e:
            logger.warning(f"Cannot resolve graph type for {self.filename or 'document'}: {e}")
            self.state = DocumentState.FAILED
            self.error = str(e)
            self.parsed = parsed
            self.result = None
            return None

        self.graph_type = graph_type
        self.state = DocumentState.RESOLVED
        logger.debug(f"Generation {generation}: resolved {graph_type.version_key}")
        # Resolution reads declarations from the parsed data, so parsing already happened
        self.state = DocumentState.PARSED

        result = self.engine.convert(parsed, graph_type, _StateTracker(self, self.callbacks))
        if generation != self.generation:
            logger.warning(f"Discarding stale conversion (generation {generation}, current {self.generation})")
            return None

        self.parsed = parsed
        self.result = result
        self.state = DocumentState.CONVERTED
        return result

    def _require(self) -> None:
        if self.state != DocumentState.CONVERTED or self.parsed is None or self.graph_type is None:
            raise SessionError(self.error or "No converted document in this session")

    def _commit(self, tree: ParsedYaml) -> ConversionResult | None:
        return self.update_text(self.engine.parser.serialize(tree))

    def node_ids(self) -> list[str]:
        self._require()
        return [node_id for node_id, _, _ in self.engine.node_entries(self.parsed.data, self.mapping)
                if node_id is not None]

    def _unique_id(self, base: str) -> str:
        existing = set(self.node_ids())
        candidate, counter = base, 2
        while candidate in existing:
            candidate = f"{base}-{counter}"
            counter += 1
        return candidate

    def _locate(self, node_id: str) -> list:
        return list(self.engine.locate_node(self.parsed, node_id, self.graph_type).path)

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------

    def apply_edit(self, node_id: str, edits: list) -> ConversionResult | None:
        self._require()
        tree = self.engine.apply_edit(self.parsed, node_id, edits, self.graph_type)
        return self._commit(tree)

    def add_node(self, node_id: str | None = None, label: str | None = None,
                 fields: dict[str, Any] | None = None) -> str:
        """Append a node entry; the id is derived from ``label`` when not given."""
        self._require()
        shapes = self.mapping.node_shapes
        new_id = self._unique_id(node_id or slugify(label or "") or "node")
        entry = dict(fields or {})
        entry.setdefault(shapes.label_field, label or new_id)

        collection = data_at(self.parsed.data, shapes.source_path)
        if isinstance(collection, dict):
            tree = self.engine.parser.insert_entry(self.parsed, shapes.source_path, new_id, entry)
        else:
            if shapes.id_field == KEY_ID_FIELD:
                raise SessionError(f"'{shapes.source_path}' is not a keyed collection")
            entry = {shapes.id_field: new_id, **entry}
            if collection is None:
                tree = self.engine.parser.set_value(self.parsed, shapes.source_path, [entry])
            else:
                tree = self.engine.parser.append_item(self.parsed, shapes.source_path, entry)

        logger.info(f"Added node '{new_id}'")
        self._commit(tree)
        return new_id

    def duplicate_node(self, source_node_id: str, new_id: str | None = None) -> str:
        """Copy a node entry under a fresh id (``<id>-copy``, ``<id>-copy-2``, ...).

        Co-located outgoing edges are not copied.
        """
        self._require()
        shapes = self.mapping.node_shapes
        path = self._locate(source_node_id)
        entry = copy.deepcopy(data_at(self.parsed.data, path))
        if not isinstance(entry, dict):
            raise SessionError(f"Node '{source_node_id}' is not a mapping")

        new_id = self._unique_id(new_id or f"{source_node_id}-copy")
        colocated = self.mapping.edge_links.colocated
        if colocated and colocated[0] == shapes.source_path:
            entry.pop(colocated[1], None)
        if entry.get(shapes.label_field) == source_node_id:
            entry[shapes.label_field] = new_id

        collection = data_at(self.parsed.data, shapes.source_path)
        if isinstance(collection, dict):
            if shapes.id_field in entry and shapes.id_field != KEY_ID_FIELD:
                entry[shapes.id_field] = new_id
            tree = self.engine.parser.insert_entry(self.parsed, shapes.source_path, new_id, entry)
        else:
            entry[shapes.id_field] = new_id
            tree = self.engine.parser.append_item(self.parsed, shapes.source_path, entry)

        logger.info(f"Duplicated node '{source_node_id}' as '{new_id}'")
        self._commit(tree)
        return new_id

    def delete_node(self, node_id: str) -> ConversionResult | None:
        """Remove a node and every edge that references it."""
        self._require()
        path = self._locate(node_id)
        links = self.mapping.edge_links
        colocated = links.colocated

        references = []
        for owner, edge_path, item in self.engine.edge_entries(self.parsed.data, self.mapping):
            if colocated and owner == node_id:
                continue  # removed with the node entry
            if node_id in (owner if colocated else _endpoint(item, links.from_field),
                           _endpoint(item, links.to_field)):
                references.append(edge_path)

        tree = self.parsed
        # Later items first so earlier sibling paths stay valid
        for edge_path in reversed(references):
            tree = self.engine.parser.delete_entry(tree, edge_path)
        tree = self.engine.parser.delete_entry(tree, path)

        logger.info(f"Deleted node '{node_id}' and {len(references)} edge(s)")
        return self._commit(tree)

    def rename_node(self, old_id: str, new_id: str) -> ConversionResult | None:
        """Change a node id and rewrite edge endpoints that reference it."""
        self._require()
        if new_id == old_id:
            return self.result
        if new_id in self.node_ids():
            raise SessionError(f"Node '{new_id}' already exists")

        shapes = self.mapping.node_shapes
        links = self.mapping.edge_links
        path = self._locate(old_id)
        parser = self.engine.parser

        tree = self.parsed
        for owner, edge_path, item in self.engine.edge_entries(self.parsed.data, self.mapping):
            explicit_from = owner is None or not links.from_implicit
            if explicit_from and _endpoint(item, links.from_field) == old_id:
                tree = parser.set_value(tree, edge_path + parse_path(links.from_field), new_id)
            if _endpoint(item, links.to_field) == old_id:
                tree = parser.set_value(tree, edge_path + parse_path(links.to_field), new_id)

        entry = data_at(self.parsed.data, path)
        keyed = isinstance(path[-1], str)
        if keyed and (shapes.id_field == KEY_ID_FIELD or not (isinstance(entry, dict) and shapes.id_field in entry)):
            tree = parser.rename_key(tree, path, new_id)
        else:
            tree = parser.set_value(tree, path + parse_path(shapes.id_field), new_id)

        logger.info(f"Renamed node '{old_id}' to '{new_id}'")
        return self._commit(tree)

    def add_connection(self, node_id: str, target_id: str,
                       fields: dict[str, Any] | None = None) -> ConversionResult | None:
        self._require()
        links = self.mapping.edge_links
        path = self._locate(node_id)
        edge = {links.to_field: target_id, **(fields or {})}

        colocated = links.colocated
        if colocated:
            if not links.from_implicit:
                edge = {links.from_field: node_id, **edge}
            edges_path = path + [colocated[1]]
        else:
            edge = {links.from_field: node_id, **edge}
            edges_path = parse_path(links.source_path)

        existing = data_at(self.parsed.data, edges_path)
        if isinstance(existing, list):
            tree = self.engine.parser.append_item(self.parsed, edges_path, edge)
        else:
            tree = self.engine.parser.set_value(self.parsed, edges_path, [edge])
        return self._commit(tree)

    def delete_connection(self, node_id: str, index: int) -> ConversionResult | None:
        """Remove the ``index``-th outgoing edge of a node."""
        self._require()
        self._locate(node_id)
        links = self.mapping.edge_links
        outgoing = [
            edge_path
            for owner, edge_path, item in self.engine.edge_entries(self.parsed.data, self.mapping)
            if (owner == node_id if links.colocated else _endpoint(item, links.from_field) == node_id)
        ]
        if not 0 <= index < len(outgoing):
            raise SessionError(f"Node '{node_id}' has no outgoing connection {index}")
        tree = self.engine.parser.delete_entry(self.parsed, outgoing[index])
        return self._commit(tree)

    def change_direction(self, direction: str) -> ConversionResult | None:
        self._require()
        value = direction.upper()
        if value not in DIRECTIONS:
            raise SessionError(f"Invalid direction '{direction}' (expected one of {sorted(DIRECTIONS)})")
        field = self.mapping.map.direction_field
        if not field:
            raise SessionError(f"Graph type '{self.graph_type.id}' has no direction field")
        return self._commit(self.engine.parser.set_value(self.parsed, field, value))

    # ------------------------------------------------------------------
    # Outbound messages
    # ------------------------------------------------------------------

    def update_all(self) -> UpdateAllMessage:
        result = self.result or ConversionResult()
        return UpdateAllMessage(
            yaml_text=self.text,
            diagram_source=result.diagram_text,
            tree_data=[entry.to_dict() for entry in result.tree_data],
            errors=[ErrorEntry.model_validate(error.to_dict()) for error in result.errors],
        )

    def select_node(self, node_id: str) -> SelectNodeMessage:
        return SelectNodeMessage(node_id=node_id)

    def highlight_node(self, node_id: str) -> HighlightNodeMessage:
        return HighlightNodeMessage(node_id=node_id)

    def select_at_offset(self, offset: int) -> SelectNodeMessage | None:
        """Source-to-diagram sync: the node whose entry spans ``offset``."""
        self._require()
        shapes = self.mapping.node_shapes
        node_id = self.engine.parser.find_node_at_offset(
            self.parsed, offset, shapes.source_path, shapes.id_field
        )
        return self.select_node(node_id) if node_id else None

    def show_node(self, node_id: str) -> ShowNodeMessage:
        """Editable fields and current values of a node (``__meta__`` for document metadata)."""
        self._require()
        path = self._locate(node_id)
        values = data_at(self.parsed.data, path)
        resolver = SchemaResolver(self.graph_type.json_schema)
        section = "meta" if node_id == META_NODE_ID else self.mapping.node_shapes.source_path
        if node_id == META_NODE_ID:
            values = data_at(self.parsed.data, "meta")
        schema = resolver.extract_node_sub_schema(section)
        fields = resolver.build_field_schemas(schema) if schema else []
        return ShowNodeMessage(node_id=node_id, fields=fields, values=values if isinstance(values, dict) else {})

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, raw: dict[str, Any]) -> list[Message]:
        """Dispatch one inbound message dict; returns the outbound replies."""
        try:
            message = parse_message(raw)
        except MessageValidationError as e:
            return [ErrorMessage(message=f"Invalid message: {e}")]

        try:
            if isinstance(message, ApplyEditMessage):
                self.apply_edit(message.node_id, message.edits)
                return [self.update_all()]
            if isinstance(message, AddNodeMessage):
                new_id = self.add_node(message.node_id, message.label, message.fields)
                return [self.update_all(), self.select_node(new_id)]
            if isinstance(message, DuplicateNodeMessage):
                new_id = self.duplicate_node(message.source_node_id, message.new_id)
                return [self.update_all(), self.select_node(new_id)]
            if isinstance(message, DeleteNodeMessage):
                self.delete_node(message.node_id)
                return [self.update_all()]
            if isinstance(message, RenameNodeMessage):
                self.rename_node(message.old_id, message.new_id)
                return [self.update_all(), self.select_node(message.new_id)]
            if isinstance(message, AddConnectionMessage):
                self.add_connection(message.node_id, message.target_id, message.fields)
                return [self.update_all()]
            if isinstance(message, DeleteConnectionMessage):
                self.delete_connection(message.node_id, message.index)
                return [self.update_all()]
            if isinstance(message, ChangeDirectionMessage):
                self.change_direction(message.direction)
                return [self.update_all()]
            if isinstance(message, SelectNodeRequest):
                return [self.highlight_node(message.node_id), self.show_node(message.node_id)]
        except (SessionError, NodeNotFoundError, YamlPathError, YamlEditError) as e:
            logger.warning(f"{message.type} failed: {e}")
            return [ErrorMessage(message=str(e))]

        return [ErrorMessage(message=f"Unhandled message type '{message.type}'")]
