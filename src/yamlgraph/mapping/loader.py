"""Discovery and parsing of versioned graph-type specifications on disk.

A graph-type folder holds one ``v<N>/`` subfolder per mapping format version::

    flowchart/
      v1/
        flowchart.schema.json      (exactly one)
        flowchart.graph-map.yaml   (exactly one)
        style.css                  (optional)
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import yaml
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for
from pydantic import ValidationError as PydanticValidationError

from yamlgraph.models import GraphMapping, GraphType

logger = logging.getLogger(__name__)

VERSION_DIR_PATTERN = re.compile(r"^v(\d+)$")
SCHEMA_SUFFIX = ".schema.json"
MAPPING_SUFFIX = ".graph-map.yaml"
STYLE_SHEET_NAME = "style.css"

# Convention: mapping id -> file globs claimed by that graph type
FILE_PATTERNS = {
    "flowchart": ["*.flow.yaml"],
    "state-machine": ["*.state.yaml"],
    "er-diagram": ["*.er.yaml"],
    "class-diagram": ["*.class.yaml"],
}


class UnsupportedMappingVersionError(Exception):
    """No mapping parser is registered for the requested format version."""

    def __init__(self, version: int, supported: list[int]):
        self.version = version
        self.supported = supported
        super().__init__(
            f"Mapping format version {version} is not supported. "
            f"Supported: {', '.join(str(v) for v in supported)}"
        )


class MappingVersionMismatchError(Exception):
    """A mapping file declares a version different from its v<N>/ folder."""

    def __init__(self, path: Path, declared: Any, folder_version: int):
        self.path = path
        self.declared = declared
        self.folder_version = folder_version
        super().__init__(
            f"Version mismatch in {path}: file says {declared}, subfolder is v{folder_version}"
        )


class MappingFormatError(Exception):
    """A mapping file is not parsable YAML or does not have the expected structure."""


class InvalidSchemaError(Exception):
    """A schema file is not JSON or is not a valid JSON Schema."""


class MissingSpecFileError(Exception):
    """A version folder lacks exactly one file with a required suffix."""


class MappingParser(ABC):
    """Version-specific parser turning raw mapping YAML into a GraphMapping."""

    @property
    @abstractmethod
    def version(self) -> int:
        """Mapping format version handled by this parser."""
        pass

    @abstractmethod
    def parse(self, raw: Any) -> GraphMapping:
        """Parse raw (already YAML-decoded) mapping data."""
        pass


class MappingParserV1(MappingParser):
    """Parser for format version 1 (kebab-case keys)."""

    @property
    def version(self) -> int:
        return 1

    def parse(self, raw: Any) -> GraphMapping:
        if not isinstance(raw, dict):
            raise MappingFormatError(f"Mapping must be a YAML mapping, got {type(raw).__name__}")
        if not isinstance(raw.get("map"), dict):
            raise MappingFormatError("Mapping is missing its 'map' section")
        try:
            return GraphMapping.model_validate(raw)
        except PydanticValidationError as e:
            raise MappingFormatError(f"Invalid mapping structure: {e}") from e


class MappingLoader:
    """Loads all versions of a graph type from a folder of v<N>/ subfolders.

    Warnings accumulate on the instance until ``consume_warnings`` is called,
    so one instance must not serve overlapping loads.
    """

    def __init__(self, parsers: list[MappingParser] | None = None):
        self.warnings: list[str] = []
        self.parsers: dict[int, MappingParser] = {}
        for parser in parsers or [MappingParserV1()]:
            self.register_parser(parser)

    def register_parser(self, parser: MappingParser) -> None:
        """Register (or replace) the parser for ``parser.version``."""
        self.parsers[parser.version] = parser

    def consume_warnings(self) -> list[str]:
        """Return and clear accumulated warnings."""
        warnings, self.warnings = self.warnings, []
        return warnings

    def load_from_folder(self, folder: Path) -> list[GraphType]:
        """Load every valid version folder, sorted ascending by version.

        Raises:
            UnsupportedMappingVersionError: A version folder has no registered parser
            MappingVersionMismatchError: A mapping's map.version differs from its folder
            MappingFormatError: A mapping file is malformed
            InvalidSchemaError: A schema file is malformed
        """
        folder = Path(folder)
        logger.debug(f"Loading graph type versions from {folder}")
        results: list[GraphType] = []

        for version, version_dir in self._find_version_folders(folder):
            schema_file = self._find_file(version_dir, SCHEMA_SUFFIX)
            mapping_file = self._find_file(version_dir, MAPPING_SUFFIX)

            schema = self._load_schema(schema_file)
            raw = self._load_mapping_yaml(mapping_file)
            mapping = self._parser_for(version).parse(raw)

            declared = raw.get("map", {}).get("version")
            if declared != version:
                raise MappingVersionMismatchError(mapping_file, declared, version)

            style_sheet = None
            style_file = version_dir / STYLE_SHEET_NAME
            if style_file.is_file():
                style_sheet = style_file.read_text(encoding="utf-8")

            results.append(GraphType(
                id=mapping.map.id,
                version=version,
                file_patterns=self.derive_file_patterns(mapping),
                json_schema=schema,
                mapping=mapping,
                style_sheet=style_sheet,
            ))
            logger.debug(f"Loaded {mapping.map.id}@{version} from {version_dir}")

        return results

    def load_mapping_from_string(self, yaml_text: str, version: int = 1) -> GraphMapping:
        """Parse an isolated mapping spec with the parser for ``version``."""
        parser = self._parser_for(version)
        try:
            raw = yaml.safe_load(yaml_text)
        except yaml.YAMLError as e:
            raise MappingFormatError(f"Mapping is not valid YAML: {e}") from e
        return parser.parse(raw)

    def derive_file_patterns(self, mapping: GraphMapping) -> list[str]:
        return list(FILE_PATTERNS.get(mapping.map.id, [f"*.{mapping.map.id}.yaml"]))

    def _parser_for(self, version: int) -> MappingParser:
        parser = self.parsers.get(version)
        if parser is None:
            raise UnsupportedMappingVersionError(version, sorted(self.parsers))
        return parser

    def _find_version_folders(self, folder: Path) -> list[tuple[int, Path]]:
        """Version subfolders with their required files, sorted by version."""
        found: list[tuple[int, Path]] = []
        for entry in folder.iterdir():
            if not entry.is_dir():
                continue
            match = VERSION_DIR_PATTERN.match(entry.name)
            if not match:
                continue

            try:
                self._find_file(entry, MAPPING_SUFFIX)
                self._find_file(entry, SCHEMA_SUFFIX)
            except MissingSpecFileError as e:
                message = f"Skipping {entry}: {e}"
                logger.warning(message)
                self.warnings.append(message)
                continue

            found.append((int(match.group(1)), entry))

        found.sort(key=lambda item: item[0])
        return found

    def _find_file(self, directory: Path, suffix: str) -> Path:
        matches = sorted(p for p in directory.iterdir() if p.is_file() and p.name.endswith(suffix))
        if len(matches) != 1:
            raise MissingSpecFileError(
                f"Expected exactly one {suffix} file in {directory}, found {len(matches)}"
            )
        return matches[0]

    def _load_schema(self, path: Path) -> dict[str, Any]:
        try:
            schema = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InvalidSchemaError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(schema, dict):
            raise InvalidSchemaError(f"{path} must contain a JSON object")
        try:
            validator_for(schema).check_schema(schema)
        except SchemaError as e:
            raise InvalidSchemaError(f"{path} is not a valid JSON Schema: {e.message}") from e
        return schema

    def _load_mapping_yaml(self, path: Path) -> dict[str, Any]:
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise MappingFormatError(f"{path} is not valid YAML: {e}") from e
        if not isinstance(raw, dict):
            raise MappingFormatError(f"{path} must contain a YAML mapping")
        return raw
