"""Position-tracking YAML parsing with text-span edits.

PyYAML's composer yields a node graph in which every node carries start and
end marks into the source text. ``ParsedYaml`` keeps that graph next to the
original text: serialising returns the text itself, and every edit splices a
recorded span of it, so all bytes outside the edited span stay identical.
"""

import copy
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import yaml
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

logger = logging.getLogger(__name__)

NULL_TAG = "tag:yaml.org,2002:null"
MERGE_TAG = "tag:yaml.org,2002:merge"

_ALIAS_TOKEN = re.compile(r"\*[^\s,\[\]{}]+")

_INDEX_SUFFIX = re.compile(r"^(.*)\[(\d+)\]$")


class YamlSyntaxError(ValueError):
    """Raised when document text is not well-formed YAML."""

    def __init__(self, message: str, source_range: "SourceRange | None" = None):
        super().__init__(message)
        self.source_range = source_range


class YamlPathError(LookupError):
    """Raised when a path does not address a node of the expected kind."""


class YamlEditError(ValueError):
    """Raised when a structural edit cannot be expressed on the source text."""


class DocumentLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamps as strings so data stays JSON-compatible."""

    def construct_mapping(self, node, deep=False):
        # PyYAML flattens merge keys in place; flatten a copy so the composed graph keeps the source layout
        if isinstance(node, MappingNode) and any(key.tag == MERGE_TAG for key, _ in node.value):
            node = _detached(node)
        return super().construct_mapping(node, deep=deep)


def _detached(node: MappingNode) -> MappingNode:
    """Copy of a mapping whose merge sources are copied as well."""
    entries = []
    for key_node, value_node in node.value:
        if key_node.tag == MERGE_TAG:
            if isinstance(value_node, MappingNode):
                value_node = _detached(value_node)
            elif isinstance(value_node, SequenceNode):
                value_node = SequenceNode(
                    value_node.tag,
                    [_detached(item) if isinstance(item, MappingNode) else item for item in value_node.value],
                    value_node.start_mark, value_node.end_mark, value_node.flow_style,
                )
        entries.append((key_node, value_node))
    return MappingNode(node.tag, entries, node.start_mark, node.end_mark, node.flow_style)


DocumentLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


@dataclass(frozen=True)
class SourceRange:
    """Span of source text. Lines and columns are 0-based, offsets are character indices."""
    start_line: int
    start_column: int
    end_line: int
    end_column: int
    start_offset: int
    end_offset: int

    @classmethod
    def from_offsets(cls, text: str, start: int, end: int) -> "SourceRange":
        start_line, start_column = _position(text, start)
        end_line, end_column = _position(text, end)
        return cls(start_line, start_column, end_line, end_column, start, end)

    @classmethod
    def from_mark(cls, mark) -> "SourceRange":
        return cls(mark.line, mark.column, mark.line, mark.column, mark.index, mark.index)

    def contains(self, offset: int) -> bool:
        return self.start_offset <= offset <= self.end_offset

    def to_dict(self) -> dict:
        return {
            "startLine": self.start_line,
            "startColumn": self.start_column,
            "endLine": self.end_line,
            "endColumn": self.end_column,
            "startOffset": self.start_offset,
            "endOffset": self.end_offset,
        }

    def __str__(self) -> str:
        return f"{self.start_line + 1}:{self.start_column + 1}"


@dataclass(eq=False)
class ParsedYaml:
    """A parsed document: source text, composed node graph and constructed data.

    Instances are never mutated; edits return a new ``ParsedYaml``.
    """
    text: str
    root: Node | None
    data: Any

    @property
    def is_empty(self) -> bool:
        return self.root is None


@dataclass
class _Slot:
    """Where a node sits: its parent, and the key node or index that holds it.

    ``alias`` marks a value written as ``*name`` at this position; ``borrowed``
    marks a slot reached through such an alias, whose text is shared.
    """
    parent: Node | None
    key: ScalarNode | None
    index: int | None
    node: Node | None
    alias: bool = False
    borrowed: bool = False


def parse_path(path: str | list | tuple | None) -> list[str | int]:
    """Split a dotted path into segments.

    ``"nodes.start.label"`` -> ``["nodes", "start", "label"]``;
    ``"edges.0.from"`` and ``"edges[0].from"`` -> ``["edges", 0, "from"]``.
    """
    if path is None or path == "":
        return []
    if isinstance(path, (list, tuple)):
        return list(path)

    segments: list[str | int] = []
    for part in str(path).split("."):
        indices: list[int] = []
        match = _INDEX_SUFFIX.match(part)
        while match:
            part = match.group(1)
            indices.insert(0, int(match.group(2)))
            match = _INDEX_SUFFIX.match(part)
        if part != "":
            segments.append(int(part) if part.isdigit() else part)
        segments.extend(indices)
    return segments


def format_path(segments: list[str | int]) -> str:
    return ".".join(str(s) for s in segments)


def data_at(data: Any, path: str | list | tuple | None, default: Any = None) -> Any:
    """Navigate plain (or frozen) data with a dotted path, returning ``default`` when absent."""
    current = data
    for segment in parse_path(path):
        if isinstance(current, Mapping):
            if segment in current:
                current = current[segment]
            elif str(segment) in current:
                current = current[str(segment)]
            else:
                return default
        elif isinstance(current, (list, tuple)) and isinstance(segment, int):
            if not 0 <= segment < len(current):
                return default
            current = current[segment]
        else:
            return default
    return current


def render_scalar(value: Any, style: str | None = None) -> str:
    """Render a value as a single-line YAML flow token.

    Strings keep the quoting style of the scalar they replace when possible.
    """
    if isinstance(value, str):
        if style == '"':
            return json.dumps(value, ensure_ascii=False)
        if style == "'" and "\n" not in value:
            return "'" + value.replace("'", "''") + "'"
    dumped = yaml.safe_dump([value], default_flow_style=True, allow_unicode=True, width=float("inf"))
    return dumped.strip()[1:-1]


def render_block(value: Any) -> list[str]:
    """Render a non-empty mapping or sequence as block-style lines (no indentation)."""
    dumped = yaml.safe_dump(value, default_flow_style=False, sort_keys=False,
                            allow_unicode=True, width=float("inf"))
    return dumped.rstrip("\n").split("\n")


def _is_collection(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _position(text: str, offset: int) -> tuple[int, int]:
    line = text.count("\n", 0, offset)
    return line, offset - (text.rfind("\n", 0, offset) + 1)


def _line_start(text: str, offset: int) -> int:
    return text.rfind("\n", 0, offset) + 1


def _line_end(text: str, offset: int) -> int:
    """Offset just past the line break of the line containing ``offset``."""
    newline = text.find("\n", offset)
    return len(text) if newline == -1 else newline + 1


def _is_null(node: Node) -> bool:
    return isinstance(node, ScalarNode) and node.tag == NULL_TAG


def _alias_span(text: str, floor: int) -> tuple[int, int]:
    """Span of the first ``*name`` token at or after ``floor``."""
    match = _ALIAS_TOKEN.search(text, floor)
    if match is None:
        raise YamlEditError(f"No alias found after offset {floor}")
    return match.start(), match.end()


def _item_anchor(text: str, start: int) -> int:
    """The dash introducing the block sequence item that starts at ``start``."""
    dash = text.rfind("-", 0, start)
    return dash if dash != -1 else start


def _assign(data: Any, segments: list, value: Any) -> None:
    for segment in segments[:-1]:
        if isinstance(data, dict):
            data = data.setdefault(segment, {})
        else:
            data = data[segment]
    last = segments[-1]
    if isinstance(data, list) and last == len(data):
        data.append(value)
    else:
        data[last] = value


class YamlParserWrapper:
    """Parses YAML into ``ParsedYaml`` trees and edits them through source spans."""

    def parse(self, text: str) -> ParsedYaml:
        """Parse text into a position-aware tree.

        Raises:
            YamlSyntaxError: If the text is not a single well-formed YAML document
        """
        loader = DocumentLoader(text)
        try:
            root = loader.get_single_node()
            data = loader.construct_document(root) if root is not None else None
        except yaml.MarkedYAMLError as e:
            mark = e.problem_mark or e.context_mark
            source_range = SourceRange.from_mark(mark) if mark is not None else None
            raise YamlSyntaxError(str(e), source_range) from e
        except yaml.YAMLError as e:
            raise YamlSyntaxError(str(e)) from e
        finally:
            loader.dispose()
        return ParsedYaml(text=text, root=root, data=data)

    def serialize(self, tree: ParsedYaml) -> str:
        """Return the document text; identical to the parsed input when unedited."""
        return tree.text

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_node(self, tree: ParsedYaml, path) -> Node:
        return self._resolve(tree, parse_path(path)).node

    def get_source_range(self, tree: ParsedYaml, path) -> SourceRange | None:
        """Source range of the value at ``path`` as written (None when absent).

        An alias value spans its ``*name`` token rather than the anchored original.
        """
        try:
            slot = self._resolve(tree, parse_path(path))
        except YamlPathError:
            return None
        start, end = self._value_span(tree.text, slot)
        return SourceRange.from_offsets(tree.text, start, end)

    def get_entry_range(self, tree: ParsedYaml, path) -> SourceRange | None:
        """Source range covering a whole mapping entry (key + value) or sequence item (dash + value)."""
        segments = parse_path(path)
        if not segments:
            return self.get_source_range(tree, segments)
        try:
            slot = self._resolve(tree, segments)
        except YamlPathError:
            return None
        start = self._anchor_offset(tree.text, slot)
        return SourceRange.from_offsets(tree.text, start, self._slot_end(tree.text, slot))

    def find_node_at_offset(self, tree: ParsedYaml, offset: int, nodes_path: str = "nodes",
                            id_field: str | None = None) -> str | None:
        """Return the id of the node entry whose source span contains ``offset``.

        Keyed collections use the mapping key as id; sequences use ``id_field``.
        """
        try:
            slot = self._resolve(tree, parse_path(nodes_path))
        except YamlPathError:
            return None
        collection = slot.node
        base = parse_path(nodes_path)
        text = tree.text

        if isinstance(collection, MappingNode):
            for key_node, value_node in collection.value:
                start = key_node.start_mark.index
                if start <= offset <= self._value_end(text, key_node, value_node):
                    if id_field and id_field != "_key":
                        entry = data_at(tree.data, base + [key_node.value])
                        if isinstance(entry, dict) and id_field in entry:
                            return str(entry[id_field])
                    return str(key_node.value)
        elif isinstance(collection, SequenceNode) and id_field:
            for index, (start, end, _) in enumerate(self._item_spans(text, collection)):
                if not collection.flow_style:
                    start = _item_anchor(text, start)
                if start <= offset <= end:
                    entry = data_at(tree.data, base + [index])
                    if isinstance(entry, dict) and id_field in entry:
                        return str(entry[id_field])
                    return None
        return None

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def patch_scalar(self, tree: ParsedYaml, path, new_value: Any) -> ParsedYaml:
        """Replace the text span of the scalar at ``path`` and nothing else.

        A scalar written as ``*name`` gets a literal of its own; the anchored
        original and its other aliases keep their value.
        """
        segments = parse_path(path)
        slot = self._resolve_local(tree, segments, allow_alias=True)
        node = slot.node
        if not isinstance(node, ScalarNode):
            raise YamlPathError(f"'{format_path(segments)}' is not a scalar")
        if _is_collection(new_value):
            raise YamlEditError(f"Cannot patch scalar '{format_path(segments)}' with a {type(new_value).__name__}")
        if slot.alias:
            return self._replace_alias(tree, slot, new_value)

        text = tree.text
        start = node.start_mark.index
        end = self._content_end(text, node)

        if node.style in ("|", ">") and isinstance(new_value, str):
            replacement = self._render_block_scalar(text, node, new_value)
        else:
            replacement = render_scalar(new_value, node.style)
            if start == end and start > 0 and text[start - 1] == ":":
                replacement = " " + replacement

        logger.debug(f"Patching scalar {format_path(segments)} at {start}-{end}")
        return self._splice(text, start, end, replacement)

    def set_value(self, tree: ParsedYaml, path, value: Any) -> ParsedYaml:
        """Set the value at ``path``: patch it in place, or insert missing entries.

        Keys that only arrive through a ``<<`` merge are missing here, so they
        get a local entry that overrides the merged one. Values inside an
        aliased collection are set on a local copy that replaces the alias.
        """
        segments = parse_path(path)
        try:
            slot = self._resolve(tree, segments)
        except YamlPathError:
            if not segments:
                raise
            parent_segments, key = segments[:-1], segments[-1]
            try:
                parent = self._resolve(tree, parent_segments).node
            except YamlPathError:
                return self.set_value(tree, parent_segments, {key: value})
            if isinstance(parent, SequenceNode) and isinstance(key, int) and key == len(parent.value):
                return self.append_item(tree, parent_segments, value)
            return self.insert_entry(tree, parent_segments, key, value)

        if slot.borrowed:
            return self._override_alias(tree, segments, value)
        if slot.alias:
            return self._replace_alias(tree, slot, value)
        if isinstance(slot.node, ScalarNode) and not _is_collection(value):
            return self.patch_scalar(tree, segments, value)
        return self._replace_value(tree, slot, segments, value)

    def insert_entry(self, tree: ParsedYaml, map_path, key: str, value: Any) -> ParsedYaml:
        """Append ``key: value`` to the mapping at ``map_path``."""
        segments = parse_path(map_path)
        text = tree.text

        if tree.root is None and not segments:
            prefix = text if not text or text.endswith("\n") else text + "\n"
            return self.parse(prefix + self._entry_text(key, value, 0))

        slot = self._resolve(tree, segments)
        node = slot.node

        shared = slot.borrowed or slot.alias
        if _is_null(node) and segments and not shared:
            return self._replace_value(tree, slot, segments, {key: value})
        if not isinstance(node, MappingNode):
            raise YamlEditError(f"'{format_path(segments)}' is not a mapping")
        if any(isinstance(k, ScalarNode) and k.value == str(key) for k, _ in node.value):
            raise YamlEditError(f"Key '{key}' already exists in '{format_path(segments)}'")
        if shared:
            return self._override_alias(tree, segments + [key], value)

        if node.flow_style and node.value:
            last_key, last_value = node.value[-1]
            position = self._value_end(text, last_key, last_value)
            return self._splice(text, position, position, f", {render_scalar(key)}: {render_scalar(value)}")
        if not node.value:
            return self._replace_value(tree, slot, segments, {key: value})

        indent = node.value[0][0].start_mark.column
        position = _line_end(text, self._content_end(text, node))
        insertion = self._entry_text(key, value, indent)
        if position == len(text) and text and not text.endswith("\n"):
            insertion = "\n" + insertion
        return self._splice(text, position, position, insertion)

    def append_item(self, tree: ParsedYaml, seq_path, value: Any) -> ParsedYaml:
        """Append ``value`` as the last item of the sequence at ``seq_path``."""
        segments = parse_path(seq_path)
        slot = self._resolve(tree, segments)
        node = slot.node
        text = tree.text

        shared = slot.borrowed or slot.alias
        if _is_null(node) and segments and not shared:
            return self._replace_value(tree, slot, segments, [value])
        if not isinstance(node, SequenceNode):
            raise YamlEditError(f"'{format_path(segments)}' is not a sequence")
        if shared:
            return self._override_alias(tree, segments + [len(node.value)], value)

        spans = self._item_spans(text, node)
        if node.flow_style and node.value:
            position = spans[-1][1]
            return self._splice(text, position, position, ", " + render_scalar(value))
        if not node.value:
            return self._replace_value(tree, slot, segments, [value])

        dash = _item_anchor(text, spans[0][0])
        indent = dash - _line_start(text, dash)
        position = _line_end(text, spans[-1][1])
        insertion = self._item_text(value, indent)
        if position == len(text) and text and not text.endswith("\n"):
            insertion = "\n" + insertion
        return self._splice(text, position, position, insertion)

    def delete_entry(self, tree: ParsedYaml, path) -> ParsedYaml:
        """Remove a mapping entry or sequence item, including its whole lines."""
        segments = parse_path(path)
        if not segments:
            raise YamlEditError("Cannot delete the document root")
        slot = self._resolve_local(tree, segments, allow_alias=True)
        parent = slot.parent
        text = tree.text

        if parent.flow_style or len(parent.value) == 1:
            remaining = copy.deepcopy(data_at(tree.data, segments[:-1]))
            if isinstance(remaining, dict):
                remaining.pop(segments[-1], None)
                remaining.pop(str(segments[-1]), None)
            else:
                del remaining[segments[-1]]
            parent_slot = self._resolve_local(tree, segments[:-1])
            return self._replace_value(tree, parent_slot, segments[:-1], remaining)

        anchor = self._anchor_offset(text, slot)
        line_start = _line_start(text, anchor)
        end = _line_end(text, self._slot_end(text, slot))

        if text[line_start:anchor].strip() == "":
            return self._splice(text, line_start, end, "")

        # Entry shares its line with a sequence dash ("- id: a"): pull the next sibling onto it.
        position = slot.index if slot.index is not None else self._key_position(parent, slot.key)
        if position + 1 < len(parent.value):
            sibling = self._sibling_slot(parent, position + 1)
            return self._splice(text, anchor, self._anchor_offset(text, sibling), "")
        return self._splice(text, anchor, self._slot_end(text, slot),
                            "{}" if isinstance(parent, MappingNode) else "[]")

    def rename_key(self, tree: ParsedYaml, path, new_key: str) -> ParsedYaml:
        """Rewrite the key of the mapping entry at ``path``."""
        segments = parse_path(path)
        slot = self._resolve_local(tree, segments, allow_alias=True)
        if slot.key is None:
            raise YamlEditError(f"'{format_path(segments)}' is not a mapping entry")
        if any(isinstance(k, ScalarNode) and k.value == str(new_key) for k, _ in slot.parent.value):
            raise YamlEditError(f"Key '{new_key}' already exists")
        key = slot.key
        return self._splice(tree.text, key.start_mark.index, key.end_mark.index,
                            render_scalar(new_key, key.style))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, tree: ParsedYaml, segments: list[str | int]) -> _Slot:
        current = tree.root
        slot = _Slot(None, None, None, current)
        for depth, segment in enumerate(segments):
            borrowed = slot.borrowed or slot.alias
            if isinstance(current, MappingNode):
                for key_node, value_node in current.value:
                    if isinstance(key_node, ScalarNode) and key_node.value == str(segment):
                        alias = value_node.start_mark.index < key_node.end_mark.index
                        slot = _Slot(current, key_node, None, value_node, alias, borrowed)
                        current = value_node
                        break
                else:
                    raise YamlPathError(f"No key '{segment}' at '{format_path(segments[:depth])}'")
            elif isinstance(current, SequenceNode):
                if not isinstance(segment, int) or not 0 <= segment < len(current.value):
                    raise YamlPathError(f"No item '{segment}' at '{format_path(segments[:depth])}'")
                alias = self._item_spans(tree.text, current)[segment][2]
                slot = _Slot(current, None, segment, current.value[segment], alias, borrowed)
                current = current.value[segment]
            else:
                raise YamlPathError(f"Cannot descend into '{format_path(segments[:depth]) or '<root>'}'")
        if current is None:
            raise YamlPathError("Document is empty")
        return slot

    def _resolve_local(self, tree: ParsedYaml, segments: list[str | int], allow_alias: bool = False) -> _Slot:
        """Resolve a slot whose text belongs to this position alone.

        Raises:
            YamlEditError: The slot is reached through an alias, or is one when
                           ``allow_alias`` is false
        """
        slot = self._resolve(tree, segments)
        if slot.borrowed or (slot.alias and not allow_alias):
            raise YamlEditError(f"'{format_path(segments)}' is shared through an alias; edit the anchored value")
        return slot

    def _content_end(self, text: str, node: Node) -> int:
        """Offset just past the last significant character of ``node``."""
        if isinstance(node, ScalarNode):
            end = node.end_mark.index
            if node.style in ("|", ">"):
                while end > node.start_mark.index and text[end - 1] in " \t\r\n":
                    end -= 1
            return end
        if node.flow_style or not node.value:
            return node.end_mark.index
        if isinstance(node, MappingNode):
            key_node, value_node = node.value[-1]
            return self._value_end(text, key_node, value_node)
        return self._item_spans(text, node)[-1][1]

    def _value_end(self, text: str, key_node: Node, value_node: Node) -> int:
        """End of a mapping entry; an alias value ends with its ``*name`` token."""
        if value_node.start_mark.index < key_node.end_mark.index:
            return _alias_span(text, key_node.end_mark.index)[1]
        return max(key_node.end_mark.index, self._content_end(text, value_node))

    def _item_spans(self, text: str, sequence: SequenceNode) -> list[tuple[int, int, bool]]:
        """``(start, end, is_alias)`` of each item as written in ``text``.

        An item that starts before the end of its predecessor is an alias to an
        earlier anchor, so its span is the ``*name`` token after that point.
        """
        spans = []
        floor = sequence.start_mark.index
        for item in sequence.value:
            if item.start_mark.index < floor:
                start, end = _alias_span(text, floor)
                spans.append((start, end, True))
            else:
                start, end = item.start_mark.index, self._content_end(text, item)
                spans.append((start, end, False))
            floor = end
        return spans

    def _value_span(self, text: str, slot: _Slot) -> tuple[int, int]:
        if slot.alias:
            if slot.key is not None:
                return _alias_span(text, slot.key.end_mark.index)
            start, end, _ = self._item_spans(text, slot.parent)[slot.index]
            return start, end
        return slot.node.start_mark.index, self._content_end(text, slot.node)

    def _slot_end(self, text: str, slot: _Slot) -> int:
        end = self._value_span(text, slot)[1]
        return max(end, slot.key.end_mark.index) if slot.key is not None else end

    def _anchor_offset(self, text: str, slot: _Slot) -> int:
        """Start of an entry: the key for mapping entries, the dash for block sequence items."""
        if slot.key is not None:
            return slot.key.start_mark.index
        start = self._value_span(text, slot)[0]
        if slot.index is not None and not slot.parent.flow_style:
            return _item_anchor(text, start)
        return start

    def _replace_alias(self, tree: ParsedYaml, slot: _Slot, value: Any) -> ParsedYaml:
        """Swap a ``*name`` alias for a literal of its own, leaving the anchor untouched."""
        start, end = self._value_span(tree.text, slot)
        logger.debug(f"Replacing alias {tree.text[start:end]} at {start}-{end}")
        return self._splice(tree.text, start, end, render_scalar(value))

    def _override_alias(self, tree: ParsedYaml, segments: list, value: Any) -> ParsedYaml:
        """Set ``segments`` on a local copy of the aliased collection that holds it."""
        for cut in range(len(segments) - 1, 0, -1):
            slot = self._resolve(tree, segments[:cut])
            if slot.alias and not slot.borrowed:
                local = copy.deepcopy(data_at(tree.data, segments[:cut]))
                _assign(local, segments[cut:], value)
                return self._replace_alias(tree, slot, local)
        raise YamlEditError(f"'{format_path(segments)}' is not inside an alias")

    def _key_position(self, mapping: MappingNode, key: ScalarNode) -> int:
        for position, (key_node, _) in enumerate(mapping.value):
            if key_node is key:
                return position
        raise YamlPathError(f"Key '{key.value}' not found")

    def _sibling_slot(self, parent: Node, position: int) -> _Slot:
        if isinstance(parent, MappingNode):
            key_node, value_node = parent.value[position]
            return _Slot(parent, key_node, None, value_node)
        return _Slot(parent, None, position, parent.value[position])

    def _replace_value(self, tree: ParsedYaml, slot: _Slot, segments: list, value: Any) -> ParsedYaml:
        """Replace a whole value node (scalar or collection) with ``value``."""
        text = tree.text
        node = slot.node
        end = self._content_end(text, node)

        if not (_is_collection(value) and value):
            if slot.key is not None and not isinstance(node, ScalarNode):
                colon = text.index(":", slot.key.end_mark.index) + 1
                return self._splice(text, colon, end, " " + render_scalar(value))
            if isinstance(node, ScalarNode) and not _is_collection(value):
                return self.patch_scalar(tree, segments, value)
            if isinstance(node, ScalarNode):
                return self._splice_empty(text, node, end, render_scalar(value))
            return self._splice(text, node.start_mark.index, end, render_scalar(value))

        inline = slot.parent is not None and slot.parent.flow_style
        if not isinstance(node, ScalarNode) and node.flow_style and node.value:
            inline = True
        if inline:
            return self._splice(text, node.start_mark.index, end, render_scalar(value))

        lines = render_block(value)
        if slot.key is not None:
            indent = slot.key.start_mark.column + 2
            colon = text.index(":", slot.key.end_mark.index) + 1
            body = "".join("\n" + " " * indent + line for line in lines)
            return self._splice(text, colon, end, body)

        if slot.index is not None:
            column = node.start_mark.column
            if isinstance(value, dict):
                body = lines[0] + "".join("\n" + " " * column + line for line in lines[1:])
            else:
                body = "\n".join([lines[0]] + [" " * column + line for line in lines[1:]])
            return self._splice(text, node.start_mark.index, end, body)

        return self._splice(text, node.start_mark.index, end, "\n".join(lines))

    def _splice_empty(self, text: str, node: ScalarNode, end: int, replacement: str) -> ParsedYaml:
        start = node.start_mark.index
        if start == end and start > 0 and text[start - 1] == ":":
            replacement = " " + replacement
        return self._splice(text, start, end, replacement)

    def _render_block_scalar(self, text: str, node: ScalarNode, value: str) -> str:
        start = node.start_mark.index
        end = self._content_end(text, node)
        header_end = text.find("\n", start)
        if header_end == -1 or header_end > end:
            header_end = end
        header = text[start:header_end]
        if header.startswith(">"):
            header = "|" + header[1:]

        indent = None
        for line in text[header_end:end].split("\n"):
            if line.strip():
                indent = len(line) - len(line.lstrip(" "))
                break
        if indent is None:
            line_start = _line_start(text, start)
            prefix = text[line_start:start]
            indent = len(prefix) - len(prefix.lstrip(" ")) + 2

        body = [(" " * indent + line) if line else "" for line in value.rstrip("\n").split("\n")]
        return header + "\n" + "\n".join(body)

    def _entry_text(self, key: Any, value: Any, indent: int) -> str:
        pad = " " * indent
        if _is_collection(value) and value:
            body = "".join(pad + "  " + line + "\n" for line in render_block(value))
            return f"{pad}{render_scalar(key)}:\n{body}"
        return f"{pad}{render_scalar(key)}: {render_scalar(value)}\n"

    def _item_text(self, value: Any, indent: int) -> str:
        pad = " " * indent
        if _is_collection(value) and value:
            lines = render_block(value)
            if isinstance(value, dict):
                return pad + "- " + lines[0] + "\n" + "".join(pad + "  " + line + "\n" for line in lines[1:])
            return pad + "-\n" + "".join(pad + "  " + line + "\n" for line in lines)
        return f"{pad}- {render_scalar(value)}\n"

    def _splice(self, text: str, start: int, end: int, replacement: str) -> ParsedYaml:
        return self.parse(text[:start] + replacement + text[end:])
