"""Graph type registry: owns loaded graph types and resolves them for documents."""

import fnmatch
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from yamlgraph.config import YamlGraphConfig
from yamlgraph.mapping import MappingLoader
from yamlgraph.mapping.loader import VERSION_DIR_PATTERN
from yamlgraph.models import DomainRegistration, GraphType
from yamlgraph.resources import builtin_graph_types_dir
from yamlgraph.schemas import compose_schemas, merge_default_shapes

logger = logging.getLogger(__name__)

GRAPH_TYPE_KEY = "graph-type"
GRAPH_VERSION_KEY = "graph-version"
DOMAIN_KEY = "domain"


class GraphTypeConflictError(Exception):
    """A registration collides with an existing (id, version) or file pattern owner."""

    def __init__(self, message: str, graph_type_id: str, existing_id: str | None = None,
                 pattern: str | None = None):
        super().__init__(message)
        self.graph_type_id = graph_type_id
        self.existing_id = existing_id
        self.pattern = pattern


class DomainNotFoundError(LookupError):
    """No registered graph type (or domain overlay) matches the request."""


class GraphTypeRegistry:
    """Explicitly owned store of graph types, keyed by ``"<id>@<version>"``.

    Each registry is independent; construct one per workspace (or per test).
    """

    def __init__(self):
        self._versions: dict[str, GraphType] = {}
        self._pattern_owners: dict[str, str] = {}
        self._domains: dict[str, DomainRegistration] = {}
        self.warnings: list[str] = []

    def register(self, graph_type: GraphType) -> None:
        """Add a graph type.

        Raises:
            GraphTypeConflictError: The (id, version) pair already exists, or a
                file pattern is already claimed by a different id
        """
        self.register_many([graph_type])

    def register_many(self, graph_types: list[GraphType]) -> None:
        """Add several graph types together: all of them, or none when any conflicts."""
        versions = dict(self._versions)
        pattern_owners = dict(self._pattern_owners)
        for graph_type in graph_types:
            self._claim(graph_type, versions, pattern_owners)

        self._versions, self._pattern_owners = versions, pattern_owners
        for graph_type in graph_types:
            logger.debug(f"Registered graph type {graph_type.version_key} for {graph_type.file_patterns}")

    def _claim(self, graph_type: GraphType, versions: dict[str, GraphType], pattern_owners: dict[str, str]) -> None:
        if graph_type.version_key in versions:
            raise GraphTypeConflictError(
                f"Graph type '{graph_type.version_key}' is already registered", graph_type.id
            )
        for pattern in graph_type.file_patterns:
            owner = pattern_owners.get(pattern)
            if owner is not None and owner != graph_type.id:
                raise GraphTypeConflictError(
                    f"Graph type '{graph_type.id}' conflicts with '{owner}' on pattern '{pattern}'",
                    graph_type.id, owner, pattern,
                )

        versions[graph_type.version_key] = graph_type
        for pattern in graph_type.file_patterns:
            pattern_owners[pattern] = graph_type.id

    def register_from_folder(self, folder: Path, loader: MappingLoader | None = None) -> list[GraphType]:
        """Load and register every version found in a graph-type folder.

        The versions register together; a conflict in any of them leaves the
        registry as it was.
        """
        loader = loader or MappingLoader()
        graph_types = loader.load_from_folder(folder)
        self.warnings.extend(loader.consume_warnings())
        self.register_many(graph_types)
        return graph_types

    def register_all_from_directory(self, directory: Path) -> list[str]:
        """Register every graph-type folder under ``directory``.

        A failing folder does not stop the others. Returns the collected
        error messages and loader warnings for display.
        """
        problems: list[str] = []
        directory = Path(directory)
        if not directory.is_dir():
            return [f"Graph type directory not found: {directory}"]

        for entry in sorted(directory.iterdir()):
            if not entry.is_dir():
                continue
            try:
                self.register_from_folder(entry)
            except Exception as e:
                message = f"Graph type '{entry.name}': {e}"
                logger.error(message)
                problems.append(message)
            problems.extend(f"Warning: {w}" for w in self.consume_warnings())

        return problems

    def consume_warnings(self) -> list[str]:
        warnings, self.warnings = self.warnings, []
        return warnings

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def list_version_keys(self) -> list[str]:
        return [gt.version_key for gt in self.list()]

    def get(self, graph_type_id: str, version: int | None = None) -> GraphType | None:
        """A specific version, or the highest registered version when ``version`` is None."""
        if version is not None:
            return self._versions.get(f"{graph_type_id}@{version}")
        candidates = [gt for gt in self._versions.values() if gt.id == graph_type_id]
        return max(candidates, key=lambda gt: gt.version) if candidates else None

    def get_by_version_key(self, key: str) -> GraphType | None:
        return self._versions.get(key)

    def get_for_file(self, filename: str) -> GraphType | None:
        """Highest version of the graph type whose file patterns match ``filename``."""
        candidates = self._matching_file(filename)
        return max(candidates, key=lambda gt: gt.version) if candidates else None

    def get_for_file_version(self, filename: str, version: int) -> GraphType | None:
        for graph_type in self._matching_file(filename):
            if graph_type.version == version:
                return graph_type
        return None

    def _matching_file(self, filename: str) -> list[GraphType]:
        name = Path(filename).name
        return [
            gt for gt in self._versions.values()
            if any(fnmatch.fnmatch(name, pattern) for pattern in gt.file_patterns)
        ]

    # ------------------------------------------------------------------
    # Document resolution
    # ------------------------------------------------------------------

    def resolve_for_document(self, document: Any, filename: str | None = None) -> GraphType:
        """Pick the graph type for a document.

        The document may declare ``graph-type`` / ``graph-version`` / ``domain``
        at the top level or under ``meta``; otherwise ``filename`` is matched
        against registered file patterns. The highest version wins unless one
        is pinned.

        Raises:
            DomainNotFoundError: Nothing matches, or the pinned version or
                declared domain is not registered
        """
        data = getattr(document, "data", document)
        declared_id = _declared(data, GRAPH_TYPE_KEY)
        pinned = _declared(data, GRAPH_VERSION_KEY)

        if declared_id is not None:
            candidates = [gt for gt in self._versions.values() if gt.id == str(declared_id)]
            source = f"graph type '{declared_id}'"
        elif filename:
            candidates = self._matching_file(filename)
            source = f"file '{Path(filename).name}'"
        else:
            candidates = []
            source = "document without graph-type"

        if not candidates:
            raise DomainNotFoundError(f"No registered graph type matches {source}")

        if pinned is not None:
            try:
                pinned_version = int(pinned)
            except (TypeError, ValueError):
                raise DomainNotFoundError(f"Invalid graph-version {pinned!r} for {source}") from None
            matches = [gt for gt in candidates if gt.version == pinned_version]
            if not matches:
                available = sorted(gt.version for gt in candidates)
                raise DomainNotFoundError(
                    f"Version {pinned_version} of {source} is not registered (available: {available})"
                )
            graph_type = matches[0]
        else:
            graph_type = max(candidates, key=lambda gt: gt.version)

        domain_id = _declared(data, DOMAIN_KEY)
        if domain_id is not None:
            graph_type = self.resolve_with_domain(graph_type, str(domain_id))

        logger.debug(f"Resolved {source} to {graph_type.version_key}")
        return graph_type

    # ------------------------------------------------------------------
    # Domain overlays
    # ------------------------------------------------------------------

    def register_domain(self, domain: DomainRegistration) -> None:
        self._domains[domain.id] = domain

    def register_domain_from_folder(self, folder: Path) -> DomainRegistration:
        """Load ``*.domain.json`` (and optional ``domain.yaml`` with default-shapes)."""
        folder = Path(folder)
        schema_files = sorted(folder.glob("*.domain.json"))
        if not schema_files:
            raise FileNotFoundError(f"No *.domain.json file found in {folder}")

        schema = json.loads(schema_files[0].read_text(encoding="utf-8"))
        domain_id = schema.get("$id") or f"{folder.parent.name}/{folder.name}"

        default_shapes = {}
        meta_file = folder / "domain.yaml"
        if meta_file.is_file():
            meta = yaml.safe_load(meta_file.read_text(encoding="utf-8")) or {}
            default_shapes = meta.get("default-shapes") or {}

        domain = DomainRegistration(id=domain_id, json_schema=schema, default_shapes=default_shapes)
        self.register_domain(domain)
        return domain

    def register_all_domains_from_directory(self, directory: Path) -> list[str]:
        """Register ``<domain>/v<N>/`` folders; a missing directory is not an error."""
        errors: list[str] = []
        directory = Path(directory)
        if not directory.is_dir():
            return errors

        for domain_dir in sorted(p for p in directory.iterdir() if p.is_dir()):
            for version_dir in sorted(p for p in domain_dir.iterdir() if p.is_dir()):
                if not VERSION_DIR_PATTERN.match(version_dir.name):
                    continue
                try:
                    self.register_domain_from_folder(version_dir)
                except (OSError, ValueError) as e:
                    errors.append(f"Domain '{domain_dir.name}/{version_dir.name}': {e}")
        return errors

    def get_domain(self, domain_id: str) -> DomainRegistration | None:
        return self._domains.get(domain_id)

    def list_domain_ids(self) -> list[str]:
        return list(self._domains)

    def resolve_with_domain(self, base: GraphType, domain_id: str) -> GraphType:
        """A copy of ``base`` with the domain's schema and default shapes overlaid."""
        domain = self._domains.get(domain_id)
        if domain is None:
            raise DomainNotFoundError(f"Domain '{domain_id}' is not registered")

        node_shapes = base.mapping.node_shapes.model_copy(update={
            "default_shapes": merge_default_shapes(base.mapping.node_shapes.default_shapes,
                                                   domain.default_shapes),
        })
        mapping = base.mapping.model_copy(update={"node_shapes": node_shapes})
        return base.model_copy(update={
            "json_schema": compose_schemas(base.json_schema, domain.json_schema),
            "mapping": mapping,
        })

    # Kept last: inside the class body this name shadows the builtin used in annotations.
    def list(self):
        """All registered graph types, ordered by id then version."""
        return sorted(self._versions.values(), key=lambda gt: (gt.id, gt.version))


def _declared(data: Any, key: str) -> Any:
    if not isinstance(data, dict):
        return None
    if key in data:
        return data[key]
    meta = data.get("meta")
    if isinstance(meta, dict):
        return meta.get(key)
    return None


def create_registry(config: YamlGraphConfig | None = None) -> tuple[GraphTypeRegistry, list[str]]:
    """Registry populated from the built-in graph types and configured directories.

    Returns the registry and the problems collected while loading.
    """
    config = config or YamlGraphConfig()
    registry = GraphTypeRegistry()
    problems: list[str] = []
    if config.graph_types.include_builtin:
        problems.extend(registry.register_all_from_directory(builtin_graph_types_dir()))
    for directory in config.graph_types.dirs:
        problems.extend(registry.register_all_from_directory(Path(directory)))
    for directory in config.graph_types.domain_dirs:
        problems.extend(registry.register_all_domains_from_directory(Path(directory)))
    return registry, problems
