"""Graph models, renderers and outline construction."""

from .framework import ConversionCallbacks, DiagramRenderer
from .mermaid import MermaidRenderer
from .models import (
    FINAL_NODE_ID,
    INITIAL_NODE_ID,
    META_NODE_ID,
    ConversionResult,
    DiagramSpec,
    EdgeData,
    NodeData,
    NodeLocation,
    TreeNode,
    safe_id,
)
from .tree import TreeDataBuilder

__all__ = [
    "FINAL_NODE_ID",
    "INITIAL_NODE_ID",
    "META_NODE_ID",
    "ConversionCallbacks",
    "ConversionResult",
    "DiagramRenderer",
    "DiagramSpec",
    "EdgeData",
    "MermaidRenderer",
    "NodeData",
    "NodeLocation",
    "TreeDataBuilder",
    "TreeNode",
    "safe_id",
]
