"""Field schema models driving schema-agnostic node editing forms."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class FieldType(str, Enum):
    """Editable field kinds."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    ARRAY = "array"
    OBJECT = "object"


class FieldSchema(BaseModel):
    """Description of one editable field, derived from JSON Schema."""
    path: str
    label: str
    field_type: FieldType = Field(alias="fieldType")
    required: bool = False
    description: str | None = None
    x_widget: str | None = Field(alias="xWidget", default=None)
    # string
    multiline: bool | None = None
    # number
    minimum: float | None = None
    maximum: float | None = None
    # enum
    options: list[Any] | None = None
    # array
    item_schema: "FieldSchema | None" = Field(alias="itemSchema", default=None)
    min_items: int | None = Field(alias="minItems", default=None)
    max_items: int | None = Field(alias="maxItems", default=None)
    # object
    properties: list["FieldSchema"] | None = None
    allow_additional: bool | None = Field(alias="allowAdditional", default=None)

    model_config = {"populate_by_name": True, "use_enum_values": True}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
