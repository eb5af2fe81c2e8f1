"""Fixtures for end-to-end tests over the sample documents."""

from pathlib import Path

import pytest

from yamlgraph.engine import DocumentSession

DOCUMENTS_DIR = Path(__file__).parent / "documents"


@pytest.fixture
def load_document():
    """Factory returning the text of a sample document by file name."""
    return lambda name: (DOCUMENTS_DIR / name).read_text(encoding="utf-8")


@pytest.fixture
def open_session(builtin_registry, load_document):
    """Factory opening a session on a sample document, optionally prefixed with extra lines."""
    def factory(name: str, prefix: str = "", **kwargs) -> DocumentSession:
        return DocumentSession(builtin_registry, filename=name, text=prefix + load_document(name), **kwargs)
    return factory
