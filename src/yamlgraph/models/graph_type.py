"""Graph type model: one registered, versioned mapping + schema pair."""

from typing import Any

from pydantic import BaseModel, Field

from yamlgraph.models.mapping import GraphMapping


class GraphType(BaseModel):
    """A versioned diagram type. Identity is ``(id, version)``."""
    id: str
    version: int
    file_patterns: list[str] = Field(alias="filePatterns", default_factory=list)
    json_schema: dict[str, Any] = Field(alias="schema", default_factory=dict)
    mapping: GraphMapping
    style_sheet: str | None = Field(alias="styleSheet", default=None)

    model_config = {"populate_by_name": True, "frozen": True}

    @property
    def version_key(self) -> str:
        return f"{self.id}@{self.version}"

    def __str__(self) -> str:
        return self.version_key


class DomainRegistration(BaseModel):
    """A domain overlay adding schema constraints and default shapes to a base type."""
    id: str
    json_schema: dict[str, Any] = Field(alias="schema", default_factory=dict)
    default_shapes: dict[str, str] = Field(alias="defaultShapes", default_factory=dict)

    model_config = {"populate_by_name": True, "frozen": True}
