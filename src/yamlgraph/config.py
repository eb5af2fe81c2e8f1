"""Configuration management for yamlgraph using Pydantic models."""

import json
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

CONFIG_FILE_NAME = ".yamlgraph.json"


class Direction(str, Enum):
    """Diagram orientation values understood by Mermaid."""
    TD = "TD"
    TB = "TB"
    LR = "LR"
    RL = "RL"
    BT = "BT"


class LogLevel(str, Enum):
    """Logging levels."""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"


class GraphTypesConfig(BaseModel):
    """Graph type discovery configuration section."""
    dirs: list[str] = Field(default_factory=list)
    domain_dirs: list[str] = Field(alias="domainDirs", default_factory=list)
    include_builtin: bool = Field(alias="includeBuiltin", default=True)

    model_config = ConfigDict(populate_by_name=True)


class TransformsConfig(BaseModel):
    """Transform snippet execution configuration section."""
    enabled: bool = True
    timeout_seconds: float = Field(alias="timeoutSeconds", default=1.0)

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if v > 30:
            raise ValueError("timeout_seconds must be <= 30 so a snippet cannot stall conversion")
        return v

    model_config = ConfigDict(populate_by_name=True)


class RenderingConfig(BaseModel):
    """Diagram rendering configuration section."""
    default_direction: Direction = Field(alias="defaultDirection", default=Direction.TD)
    indent: int = 4

    @field_validator("indent")
    @classmethod
    def validate_indent(cls, v):
        if v < 0 or v > 8:
            raise ValueError(f"indent must be between 0-8, got: {v}")
        return v

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)


class LoggingConfig(BaseModel):
    """Logging configuration section."""
    level: LogLevel = LogLevel.INFO

    model_config = ConfigDict(use_enum_values=True)


class YamlGraphConfig(BaseModel):
    """Complete yamlgraph configuration model."""
    graph_types: GraphTypesConfig = Field(alias="graphTypes", default_factory=GraphTypesConfig)
    transforms: TransformsConfig = Field(default_factory=TransformsConfig)
    rendering: RenderingConfig = Field(default_factory=RenderingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


def load_config(config_path: str | Path | None = None) -> YamlGraphConfig:
    """Load a .yamlgraph.json file, or the defaults when there is none.

    Args:
        config_path: Explicit file to read. When omitted, the current directory
                    and its parents are searched for .yamlgraph.json

    Raises:
        ValueError: The file is not JSON or its values do not validate
    """
    path = find_config_file() if config_path is None else Path(config_path)
    if path is None or not path.exists():
        return create_default_config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file {path}: {e}") from e
    except OSError as e:
        raise ValueError(f"Failed to load config from {path}: {e}") from e

    try:
        return YamlGraphConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Failed to load config from {path}: {e}") from e


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Nearest .yamlgraph.json at or above start_dir (default: current directory)."""
    start = Path(start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate
    return None


def create_default_config() -> YamlGraphConfig:
    """Create default configuration (built-in graph types, 1s transform budget)."""
    return YamlGraphConfig()
