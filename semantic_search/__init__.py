"""
Semantic search service.

Stores text documents with string metadata in a vector index and answers
similarity queries, optionally restricted by exact metadata matches.

Quick Start:
    from semantic_search import SearchConfig, SemanticSearchService

    service = SemanticSearchService(SearchConfig(embedding_provider="hashing", in_memory=True))
    service.seed_defaults()
    for result in service.search("vector search", top_k=2):
        print(result.score, result.document.text)
"""

__version__ = "1.0.0"

from .config import SearchConfig
from .deadline import Deadline
from .embedder import CheckedEmbedder, EmbeddingProvider, HashingEmbedder, OllamaEmbedder
from .exceptions import (
    EmbeddingError,
    ErrorKind,
    IndexOperationError,
    IndexQueryError,
    IndexWriteError,
    InvalidArgumentError,
    OperationCancelledError,
    SearchServiceError,
    format_error_chain,
    is_retryable,
)
from .models import Document, DocumentInput, DocumentView, SearchResult
from .search import SearchEngine, SearchState
from .service import SemanticSearchService
from .store import DocumentStore
from .vector_index import ChromaVectorIndex, InMemoryVectorIndex, VectorIndex

__all__ = [
    "__version__",
    "SearchConfig",
    "Deadline",
    "EmbeddingProvider",
    "OllamaEmbedder",
    "HashingEmbedder",
    "CheckedEmbedder",
    "VectorIndex",
    "ChromaVectorIndex",
    "InMemoryVectorIndex",
    "DocumentStore",
    "SearchEngine",
    "SearchState",
    "SemanticSearchService",
    "Document",
    "DocumentInput",
    "DocumentView",
    "SearchResult",
    "ErrorKind",
    "SearchServiceError",
    "InvalidArgumentError",
    "EmbeddingError",
    "IndexOperationError",
    "IndexWriteError",
    "IndexQueryError",
    "OperationCancelledError",
    "is_retryable",
    "format_error_chain",
]
