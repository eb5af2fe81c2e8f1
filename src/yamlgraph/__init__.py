"""yamlgraph - Declarative YAML-to-diagram conversion engine.

yamlgraph loads versioned graph-type specifications (mapping + JSON Schema),
validates YAML documents against them, converts them into Mermaid diagrams
and writes edits back into the source text without disturbing its formatting.
"""

__version__ = "0.1.0"
__author__ = "rpapub"
__email__ = "contact@rpapub.dev"
__description__ = "Declarative YAML-to-diagram conversion engine"

from yamlgraph.config import YamlGraphConfig
from yamlgraph.engine import ConversionEngine, DocumentSession
from yamlgraph.mapping import MappingLoader
from yamlgraph.parser import YamlParserWrapper
from yamlgraph.registry import GraphTypeRegistry

__all__ = [
    "__version__",
    "__author__",
    "__email__",
    "__description__",
    "YamlGraphConfig",
    "ConversionEngine",
    "DocumentSession",
    "GraphTypeRegistry",
    "MappingLoader",
    "YamlParserWrapper",
]
