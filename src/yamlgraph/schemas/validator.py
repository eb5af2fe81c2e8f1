"""JSON Schema validation of parsed YAML documents with source correlation."""

import logging
from dataclasses import dataclass
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.validators import validator_for

from yamlgraph.parser import ParsedYaml, SourceRange, YamlParserWrapper

logger = logging.getLogger(__name__)

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"


@dataclass
class ValidationError:
    """A problem found in a document, located in its source text when possible."""
    path: str
    message: str
    source_range: SourceRange | None = None
    severity: str = SEVERITY_ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "message": self.message,
            "severity": self.severity,
            "sourceRange": self.source_range.to_dict() if self.source_range else None,
        }

    def __str__(self) -> str:
        location = f" ({self.source_range})" if self.source_range else ""
        return f"{self.severity}: {self.path}{location}: {self.message}"


def to_json_pointer(segments) -> str:
    """``["nodes", 0, "id"]`` -> ``/nodes/0/id``; the document root is ``/``."""
    if not segments:
        return "/"
    escaped = (str(s).replace("~", "~0").replace("/", "~1") for s in segments)
    return "/" + "/".join(escaped)


class SchemaValidator:
    """Validates documents against JSON Schemas; data errors are returned, never raised."""

    def __init__(self, parser: YamlParserWrapper | None = None):
        self.parser = parser or YamlParserWrapper()
        self._cache: dict[int, tuple[dict, Any]] = {}

    def validate(self, document: ParsedYaml, schema: dict[str, Any]) -> list[ValidationError]:
        """Validate a parsed document, attaching source ranges to every error."""
        errors = []
        for error in self._iter_errors(document.data, schema):
            segments = list(error.absolute_path)
            errors.append(ValidationError(
                path=to_json_pointer(segments),
                message=error.message,
                source_range=self._locate(document, segments),
            ))
        if errors:
            logger.debug(f"Schema validation found {len(errors)} error(s)")
        return errors

    def validate_data(self, data: Any, schema: dict[str, Any]) -> list[ValidationError]:
        """Validate plain data (no source ranges available)."""
        return [
            ValidationError(path=to_json_pointer(list(e.absolute_path)), message=e.message)
            for e in self._iter_errors(data, schema)
        ]

    def is_valid(self, data: Any, schema: dict[str, Any]) -> bool:
        return not self.validate_data(data, schema)

    def _iter_errors(self, data: Any, schema: dict[str, Any]):
        validator = self._validator_for(schema)
        return sorted(
            validator.iter_errors(data),
            key=lambda e: ([str(s) for s in e.absolute_path], e.message),
        )

    def _validator_for(self, schema: dict[str, Any]):
        cached = self._cache.get(id(schema))
        if cached is not None and cached[0] is schema:
            return cached[1]
        cls = validator_for(schema, default=Draft202012Validator)
        validator = cls(schema)
        self._cache[id(schema)] = (schema, validator)
        return validator

    def _locate(self, document: ParsedYaml, segments: list) -> SourceRange | None:
        """Source range of the offending node, or of its nearest existing ancestor."""
        while True:
            source_range = self.parser.get_source_range(document, segments)
            if source_range is not None or not segments:
                return source_range
            segments = segments[:-1]
