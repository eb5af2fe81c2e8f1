"""Conversion engine, protocol messages and document sessions."""

from .conversion import ConversionEngine, NodeNotFoundError
from .protocol import FieldEdit, parse_message
from .session import DocumentSession, DocumentState, SessionError

__all__ = [
    "ConversionEngine",
    "DocumentSession",
    "DocumentState",
    "FieldEdit",
    "NodeNotFoundError",
    "SessionError",
    "parse_message",
]
