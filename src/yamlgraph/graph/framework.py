"""Renderer and callback interfaces for diagram generation."""

from abc import ABC, abstractmethod

from .models import DiagramSpec, EdgeData, NodeData


class ConversionCallbacks:
    """Host hooks around the built-in renderer. Override only what you need.

    ``on_node_emit`` / ``on_edge_emit`` / ``on_complete`` return extra diagram
    lines to append (e.g. click directives for navigation).
    """

    def prepare(self) -> None:
        """Called once before conversion starts."""

    def set_mermaid_type(self, mermaid_type: str) -> None:
        """Called once before rendering with the diagram dialect."""

    def on_node_emit(self, node: NodeData, emitted: list[str]) -> list[str]:
        return []

    def on_edge_emit(self, edge: EdgeData, emitted: list[str]) -> list[str]:
        return []

    def on_complete(self, node_ids: list[str], output: list[str]) -> list[str]:
        return []


class DiagramRenderer(ABC):
    """Abstract base class for diagram renderers."""

    @property
    @abstractmethod
    def format_name(self) -> str:
        """Name under which the renderer is registered (``custom-renderer`` value)."""
        pass

    @abstractmethod
    def render(self, spec: DiagramSpec, callbacks: ConversionCallbacks | None = None) -> str:
        """Render already-converted nodes and edges to diagram text."""
        pass

    def get_file_extension(self) -> str:
        return ".txt"

    def node_lines(self, node: NodeData, spec: DiagramSpec) -> list[str]:
        """Default lines for one node; transforms see these as ``output``."""
        return []

    def edge_lines(self, edge: EdgeData, spec: DiagramSpec) -> list[str]:
        return []
