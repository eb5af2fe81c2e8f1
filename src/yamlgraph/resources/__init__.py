"""Packaged data: built-in graph-type definitions."""

from pathlib import Path

GRAPH_TYPES_DIR_NAME = "graph-types"


def builtin_graph_types_dir() -> Path:
    """Directory holding one folder per built-in graph type."""
    return Path(__file__).parent / GRAPH_TYPES_DIR_NAME
