"""Position-aware YAML parsing and editing."""

from .yaml_wrapper import (
    DocumentLoader,
    ParsedYaml,
    SourceRange,
    YamlEditError,
    YamlParserWrapper,
    YamlPathError,
    YamlSyntaxError,
    data_at,
    format_path,
    parse_path,
    render_scalar,
)

__all__ = [
    "DocumentLoader",
    "ParsedYaml",
    "SourceRange",
    "YamlEditError",
    "YamlParserWrapper",
    "YamlPathError",
    "YamlSyntaxError",
    "data_at",
    "format_path",
    "parse_path",
    "render_scalar",
]
