"""Models for *.graph-map.yaml mapping specifications (format version 1)."""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator


class MapInfo(BaseModel):
    """The ``map`` section: diagram dialect and orientation control."""
    id: str
    version: int | None = None
    mermaid_type: str = Field(alias="mermaid-type", default="flowchart")
    direction_field: str | None = Field(alias="direction-field", default=None)
    default_direction: str | None = Field(alias="default-direction", default=None)

    model_config = {"populate_by_name": True}


class NodeShapes(BaseModel):
    """The ``node-shapes`` section: where nodes live and how they look."""
    source_path: str = Field(alias="source-path", default="nodes")
    id_field: str = Field(alias="id-field", default="id")
    label_field: str = Field(alias="label-field", default="label")
    # Older mappings call this "type-field"
    shape_field: str = Field(
        default="shape",
        validation_alias=AliasChoices("shape-field", "type-field", "shape_field"),
        serialization_alias="shape-field",
    )
    default_shapes: dict[str, str] = Field(alias="default-shapes", default_factory=dict)
    shapes: dict[str, str] = Field(default_factory=dict)
    initial_connector: str | None = Field(alias="initial-connector", default=None)
    final_connector: str | None = Field(alias="final-connector", default=None)

    model_config = {"populate_by_name": True}

    @field_validator("default_shapes", "shapes", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v if v is not None else {}


class EdgeLinks(BaseModel):
    """The ``edge-links`` section: where edges live and how they are drawn."""
    source_path: str = Field(alias="source-path", default="edges")
    from_field: str = Field(alias="from-field", default="from")
    from_implicit: str | None = Field(alias="from-implicit", default=None)
    to_field: str = Field(alias="to-field", default="to")
    label_field: str | None = Field(alias="label-field", default="label")
    link_styles: dict[str, str] = Field(alias="link-styles", default_factory=dict)
    label_template: str | None = Field(alias="label-template", default=None)

    model_config = {"populate_by_name": True}

    @field_validator("link_styles", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v if v is not None else {}

    @property
    def colocated(self) -> tuple[str, str] | None:
        """Split ``<nodes>.*.<array>`` into its two halves; None for standalone edge lists."""
        if ".*." not in self.source_path:
            return None
        nodes_path, array_name = self.source_path.split(".*.", 1)
        return nodes_path, array_name


class StyleRule(BaseModel):
    """Inline Mermaid style for one style-rule value."""
    fill: str | None = None
    stroke: str | None = None
    color: str | None = None

    def to_css(self) -> str:
        parts = [f"{name}:{value}" for name, value in
                 (("fill", self.fill), ("stroke", self.stroke), ("color", self.color)) if value]
        return ",".join(parts)


class StyleRules(BaseModel):
    """The ``style-rules`` section: field value -> style class or inline style."""
    field: str
    rules: dict[str, str | StyleRule] = Field(default_factory=dict)

    @field_validator("rules", mode="before")
    @classmethod
    def keys_as_text(cls, v):
        # YAML reads `true:` and `1:` keys as bool and int
        if not isinstance(v, dict):
            return v if v is not None else {}
        return {(str(k).lower() if isinstance(k, bool) else str(k)): rule for k, rule in v.items()}


class Annotations(BaseModel):
    """The ``annotations`` section: supplementary label text from one field."""
    source_field: str = Field(alias="source-field")
    template: str = "${value}"

    model_config = {"populate_by_name": True}


class TransformMatch(BaseModel):
    """Condition selecting which elements a transform applies to."""
    field: str
    exists: bool | None = None
    equals: str | int | float | bool | None = None
    pattern: str | None = None


class TransformRule(BaseModel):
    """A user-authored derivation snippet and the elements it applies to."""
    scope: Literal["node", "edge"] = "node"
    match: TransformMatch | None = None
    code: str = Field(validation_alias=AliasChoices("code", "js"))

    model_config = {"populate_by_name": True}

    @field_validator("scope", mode="before")
    @classmethod
    def default_scope(cls, v):
        return v if v is not None else "node"


class GraphMapping(BaseModel):
    """A complete mapping specification for one graph-type version."""
    map: MapInfo
    node_shapes: NodeShapes = Field(alias="node-shapes", default_factory=NodeShapes)
    edge_links: EdgeLinks = Field(alias="edge-links", default_factory=EdgeLinks)
    style_rules: StyleRules | None = Field(alias="style-rules", default=None)
    annotations: Annotations | None = None
    transforms: list[TransformRule] = Field(default_factory=list)
    custom_renderer: str | None = Field(alias="custom-renderer", default=None)

    model_config = {"populate_by_name": True}

    @field_validator("transforms", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v if v is not None else []

    @property
    def mermaid_type(self) -> str:
        return self.map.mermaid_type

    def to_yaml_dict(self) -> dict[str, Any]:
        """Dump using the on-disk kebab-case keys."""
        return self.model_dump(by_alias=True, exclude_none=True)
