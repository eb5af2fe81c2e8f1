"""Messages exchanged with the rendering surface.

Field names follow the wire format (camelCase); Python code uses the
snake_case attribute names.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from yamlgraph.models import FieldSchema


class Message(BaseModel):
    """Common config for protocol messages."""

    model_config = {"populate_by_name": True}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class FieldEdit(BaseModel):
    """One field change, ``path`` relative to the node entry."""

    path: str
    value: Any = None


# Surface -> engine

class ApplyEditMessage(Message):
    type: Literal["applyEdit"] = "applyEdit"
    node_id: str = Field(alias="nodeId")
    edits: list[FieldEdit] = Field(default_factory=list)


class AddNodeMessage(Message):
    type: Literal["addNode"] = "addNode"
    node_id: str | None = Field(default=None, alias="nodeId")
    label: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)


class DuplicateNodeMessage(Message):
    type: Literal["duplicateNode"] = "duplicateNode"
    source_node_id: str = Field(alias="sourceNodeId")
    new_id: str | None = Field(default=None, alias="newId")


class DeleteNodeMessage(Message):
    type: Literal["deleteNode"] = "deleteNode"
    node_id: str = Field(alias="nodeId")


class RenameNodeMessage(Message):
    type: Literal["renameNode"] = "renameNode"
    old_id: str = Field(alias="oldId")
    new_id: str = Field(alias="newId")


class AddConnectionMessage(Message):
    type: Literal["addConnection"] = "addConnection"
    node_id: str = Field(alias="nodeId")
    target_id: str = Field(alias="targetId")
    fields: dict[str, Any] = Field(default_factory=dict)


class DeleteConnectionMessage(Message):
    type: Literal["deleteConnection"] = "deleteConnection"
    node_id: str = Field(alias="nodeId")
    index: int = Field(ge=0)


class ChangeDirectionMessage(Message):
    type: Literal["changeDirection"] = "changeDirection"
    direction: str


class SelectNodeRequest(Message):
    """Surface asks for the editable fields of a node (diagram click)."""

    type: Literal["requestNode"] = "requestNode"
    node_id: str = Field(alias="nodeId")


InboundMessage = Annotated[
    Union[
        ApplyEditMessage,
        AddNodeMessage,
        DuplicateNodeMessage,
        DeleteNodeMessage,
        RenameNodeMessage,
        AddConnectionMessage,
        DeleteConnectionMessage,
        ChangeDirectionMessage,
        SelectNodeRequest,
    ],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundMessage)


def parse_message(raw: dict[str, Any]):
    """Validate a raw inbound message dict into its typed model.

    Raises:
        pydantic.ValidationError: Unknown ``type`` or missing fields
    """
    return _inbound_adapter.validate_python(raw)


# Engine -> surface

class ErrorEntry(BaseModel):
    """Wire form of a ValidationError."""

    model_config = {"populate_by_name": True}

    path: str
    message: str
    severity: str = "error"
    source_range: dict[str, int] | None = Field(default=None, alias="sourceRange")


class UpdateAllMessage(Message):
    type: Literal["updateAll"] = "updateAll"
    yaml_text: str = Field(alias="yamlText")
    diagram_source: str = Field(alias="diagramSource")
    tree_data: list[dict[str, Any]] = Field(default_factory=list, alias="treeData")
    errors: list[ErrorEntry] = Field(default_factory=list)


class SelectNodeMessage(Message):
    type: Literal["selectNode"] = "selectNode"
    node_id: str = Field(alias="nodeId")


class HighlightNodeMessage(Message):
    type: Literal["highlightNode"] = "highlightNode"
    node_id: str = Field(alias="nodeId")


class ShowNodeMessage(Message):
    type: Literal["showNode"] = "showNode"
    node_id: str = Field(alias="nodeId")
    fields: list[FieldSchema] = Field(default_factory=list)
    values: dict[str, Any] = Field(default_factory=dict)


class ErrorMessage(Message):
    type: Literal["error"] = "error"
    message: str
