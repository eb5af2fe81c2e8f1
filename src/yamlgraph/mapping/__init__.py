"""Loading of versioned graph-type mapping specifications."""

from .loader import (
    FILE_PATTERNS,
    InvalidSchemaError,
    MappingFormatError,
    MappingLoader,
    MappingParser,
    MappingParserV1,
    MappingVersionMismatchError,
    MissingSpecFileError,
    UnsupportedMappingVersionError,
)

__all__ = [
    "FILE_PATTERNS",
    "InvalidSchemaError",
    "MappingFormatError",
    "MappingLoader",
    "MappingParser",
    "MappingParserV1",
    "MappingVersionMismatchError",
    "MissingSpecFileError",
    "UnsupportedMappingVersionError",
]
