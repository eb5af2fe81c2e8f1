"""Sandboxed execution of mapping transform snippets."""

from .helpers import HELPERS, freeze, substitute, thaw
from .runtime import (
    AstNodeTransformerRuntime,
    SandboxedSnippetRuntime,
    SnippetRejectedError,
    SnippetRuntime,
    SnippetTimeoutError,
    TransformContext,
    matches,
)

__all__ = [
    "HELPERS",
    "AstNodeTransformerRuntime",
    "SandboxedSnippetRuntime",
    "SnippetRejectedError",
    "SnippetRuntime",
    "SnippetTimeoutError",
    "TransformContext",
    "freeze",
    "matches",
    "substitute",
    "thaw",
]
