"""
Pytest fixtures for the semantic search tests.
"""

import uuid

import chromadb
import pytest

from semantic_search.embedder import CheckedEmbedder, HashingEmbedder
from semantic_search.models import DocumentInput
from semantic_search.search import SearchEngine
from semantic_search.store import DocumentStore
from semantic_search.vector_index import ChromaVectorIndex, InMemoryVectorIndex

DIMENSIONS = 512


@pytest.fixture
def embedder():
    """Deterministic embedder shared by store and engine."""
    return CheckedEmbedder(HashingEmbedder(dimensions=DIMENSIONS))


@pytest.fixture
def index():
    return InMemoryVectorIndex()


@pytest.fixture
def store(embedder, index):
    with DocumentStore(embedder, index, embed_concurrency=4) as document_store:
        yield document_store


@pytest.fixture
def engine(embedder, index):
    return SearchEngine(embedder, index, default_top_k=4, max_top_k=100)


@pytest.fixture
def chroma_index():
    """ChromaDB index on an in-memory client with a unique collection."""
    return ChromaVectorIndex(
        persist_directory="unused",
        collection_name=f"test_{uuid.uuid4().hex[:8]}",
        chroma_client=chromadb.EphemeralClient(),
    )


@pytest.fixture
def animal_docs():
    """The cats/dogs/stocks example set, in insertion order A, B, C."""
    return [
        DocumentInput(text="cats are mammals", metadata={"category": "bio"}),
        DocumentInput(text="dogs are mammals", metadata={"category": "bio"}),
        DocumentInput(text="stocks rose today", metadata={"category": "finance"}),
    ]
