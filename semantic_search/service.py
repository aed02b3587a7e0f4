import logging
from typing import Any, Iterable, Mapping, Optional

import chromadb

from .config import SearchConfig
from .deadline import Deadline
from .embedder import CheckedEmbedder, EmbeddingProvider, HashingEmbedder, OllamaEmbedder
from .models import SearchResult
from .search import SearchEngine
from .seeds import DEFAULT_SEED_DOCUMENTS
from .store import DocumentStore, ItemLike
from .vector_index import ChromaVectorIndex, VectorIndex

logger = logging.getLogger(__name__)


def build_embedder(config: SearchConfig) -> EmbeddingProvider:
    if config.embedding_provider == "ollama":
        return OllamaEmbedder(
            model=config.embedding_model,
            base_url=config.ollama_base_url,
            timeout=config.request_timeout_seconds,
        )
    if config.embedding_provider == "hashing":
        return HashingEmbedder(dimensions=config.embedding_dimensions or 512)
    raise ValueError(f"Unknown embedding provider: {config.embedding_provider!r}")


def build_index(config: SearchConfig) -> VectorIndex:
    chroma_client = chromadb.EphemeralClient() if config.in_memory else None
    return ChromaVectorIndex(
        persist_directory=config.persist_directory,
        collection_name=config.collection_name,
        chroma_client=chroma_client,
        batch_size=config.index_batch_size,
    )


class SemanticSearchService:
    """
    Composition root: one embedder, index, store and engine per process.

    Every call gets a fresh Deadline from ``request_timeout_seconds``.
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        embedder: Optional[EmbeddingProvider] = None,
        index: Optional[VectorIndex] = None,
    ):
        self.config = config or SearchConfig()
        provider = embedder or build_embedder(self.config)
        if isinstance(provider, CheckedEmbedder):
            self.embedder = provider
        else:
            self.embedder = CheckedEmbedder(provider, dimensions=self.config.embedding_dimensions)
        self.index = index or build_index(self.config)
        self.store = DocumentStore(
            self.embedder,
            self.index,
            embed_concurrency=self.config.embed_concurrency,
        )
        self.engine = SearchEngine(
            self.embedder,
            self.index,
            default_top_k=self.config.default_top_k,
            max_top_k=self.config.max_top_k,
            overfetch_factor=self.config.overfetch_factor,
            min_score=self.config.min_score,
        )

    def new_deadline(self) -> Deadline:
        return Deadline.after(self.config.request_timeout_seconds)

    def add_documents(self, items: Iterable[ItemLike]) -> list[str]:
        return self.store.add_documents(items, deadline=self.new_deadline())

    def seed(self, items: Iterable[ItemLike]) -> list[str]:
        return self.store.seed(items, deadline=self.new_deadline())

    def seed_defaults(self) -> list[str]:
        ids = self.seed(DEFAULT_SEED_DOCUMENTS)
        logger.info("Default seed set ready (%d documents)", len(ids))
        return ids

    def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> list[SearchResult]:
        return self.engine.search(query, top_k=top_k, filters=filters, deadline=self.new_deadline())

    def search_filtered(
        self,
        query: str,
        category: str,
        top_k: Optional[int] = None,
    ) -> list[SearchResult]:
        return self.engine.search_filtered(
            query, category, top_k=top_k, deadline=self.new_deadline()
        )

    def health(self) -> dict:
        embedding = self.embedder.health_check()
        if not embedding["healthy"]:
            logger.warning("Embedding provider unhealthy: %s", embedding["error"])
        return {
            "status": "ok" if embedding["healthy"] else "degraded",
            "documents": self.index.count(),
            "embedding_model": self.embedder.model,
            "embedding_dimensions": self.embedder.dimensions,
            "embedding": embedding,
        }

    def close(self) -> None:
        self.store.close()
