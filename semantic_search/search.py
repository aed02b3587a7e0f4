"""
Search Engine - similarity search with optional metadata filtering

Each request walks the same states:

    RECEIVED -> EMBEDDING_QUERY -> QUERYING_INDEX -> (FILTERING) -> RANKED -> RETURNED

and ends in ERRORED if embedding or the index query fails. Nothing is
shared between requests except the embedder and index handles.

Ranking is by descending score; equal scores keep insertion order.
"""

import logging
from enum import Enum
from typing import Any, Mapping, Optional, Union

from .deadline import Deadline, ensure_deadline
from .embedder import CheckedEmbedder, EmbeddingProvider
from .exceptions import (
    IndexQueryError,
    InvalidArgumentError,
    SearchServiceError,
    format_error_chain,
)
from .models import IndexHit, SearchResult
from .store import normalize_metadata
from .vector_index import VectorIndex, matches_filters

logger = logging.getLogger(__name__)

CATEGORY_KEY = "category"


class SearchState(str, Enum):
    RECEIVED = "received"
    EMBEDDING_QUERY = "embedding_query"
    QUERYING_INDEX = "querying_index"
    FILTERING = "filtering"
    RANKED = "ranked"
    RETURNED = "returned"
    ERRORED = "errored"


class SearchEngine:
    """
    Answers "most similar documents to this text" requests.

    Args:
        embedder: Embedding provider; share the store's CheckedEmbedder so
            both agree on the dimension.
        index: Vector index to query.
        default_top_k: Used when the caller passes no ``top_k``.
        max_top_k: Larger ``top_k`` values are clamped to this.
        overfetch_factor: Candidate multiplier when the index cannot filter.
        min_score: Hits must score strictly above this; ``None`` keeps all.
            The default 0.0 drops unrelated (orthogonal or opposed) documents.
            This is stricter than a similarity threshold of zero that admits
            every stored document: an unrelated query can return fewer than
            ``top_k`` results, or none, even when the index holds more.
            Pass ``None`` to get the accept-everything behaviour.
    """

    def __init__(
        self,
        embedder: Union[CheckedEmbedder, EmbeddingProvider],
        index: VectorIndex,
        default_top_k: int = 4,
        max_top_k: int = 100,
        overfetch_factor: int = 4,
        min_score: Optional[float] = 0.0,
    ):
        if max_top_k <= 0:
            raise ValueError("max_top_k must be positive")
        if not 0 < default_top_k <= max_top_k:
            raise ValueError("default_top_k must be between 1 and max_top_k")
        if overfetch_factor < 1:
            raise ValueError("overfetch_factor must be at least 1")
        if not isinstance(embedder, CheckedEmbedder):
            embedder = CheckedEmbedder(embedder)
        self._embedder = embedder
        self._index = index
        self.default_top_k = default_top_k
        self.max_top_k = max_top_k
        self.overfetch_factor = overfetch_factor
        self.min_score = min_score

    def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        filters: Optional[Mapping[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> list[SearchResult]:
        """
        Find the documents most similar to ``query``.

        Args:
            query: Non-empty query text.
            top_k: Maximum number of results (default ``default_top_k``).
                Values above ``max_top_k`` are clamped.
            filters: Optional exact-match metadata filter.
            deadline: Optional deadline/cancellation signal.

        Returns:
            Up to ``top_k`` results scoring above ``min_score``, best first.
            Fewer if fewer qualify.

        Raises:
            InvalidArgumentError: Empty query, ``top_k <= 0`` or a bad filter.
            EmbeddingError: The query could not be embedded.
            IndexQueryError: The index query failed.
            OperationCancelledError: The deadline passed.
        """
        state = SearchState.RECEIVED
        deadline = ensure_deadline(deadline)
        limit = self._validate_top_k(top_k)
        if not isinstance(query, str) or not query.strip():
            raise InvalidArgumentError("query must be a non-empty string")
        where = normalize_metadata(filters, what="filter") if filters is not None else None

        try:
            state = self._advance(state, SearchState.EMBEDDING_QUERY)
            deadline.check("query embedding")
            vector = self._embedder.embed(query)

            state = self._advance(state, SearchState.QUERYING_INDEX)
            deadline.check("index query")
            hits = self._query_index(vector, limit, where)
        except SearchServiceError as exc:
            self._advance(state, SearchState.ERRORED)
            logger.warning("Search failed:\n%s", format_error_chain(exc))
            raise

        if where:
            state = self._advance(state, SearchState.FILTERING)
            hits = [hit for hit in hits if matches_filters(hit.metadata, where)]

        state = self._advance(state, SearchState.RANKED)
        if self.min_score is not None:
            hits = [hit for hit in hits if hit.score > self.min_score]
        hits.sort(key=lambda hit: (-hit.score, hit.sequence))
        results = [hit.to_result() for hit in hits[:limit]]

        self._advance(state, SearchState.RETURNED)
        return results

    def search_filtered(
        self,
        query: str,
        category: str,
        top_k: Optional[int] = None,
        deadline: Optional[Deadline] = None,
    ) -> list[SearchResult]:
        if not isinstance(category, str) or not category.strip():
            raise InvalidArgumentError("category must be a non-empty string")
        return self.search(query, top_k=top_k, filters={CATEGORY_KEY: category}, deadline=deadline)

    def _validate_top_k(self, top_k: Optional[int]) -> int:
        if top_k is None:
            return self.default_top_k
        if isinstance(top_k, bool) or not isinstance(top_k, int):
            raise InvalidArgumentError("top_k must be an integer", details=repr(top_k))
        if top_k <= 0:
            raise InvalidArgumentError("top_k must be positive", details=str(top_k))
        return min(top_k, self.max_top_k)

    def _query_index(
        self,
        vector: list[float],
        limit: int,
        where: Optional[dict[str, str]],
    ) -> list[IndexHit]:
        native = bool(where) and self._index.supports_filtering
        if where and not native:
            n_candidates = limit * self.overfetch_factor
        else:
            n_candidates = limit
        try:
            return list(self._index.query(vector, n_candidates, where if native else None))
        except SearchServiceError:
            raise
        except Exception as exc:
            raise IndexQueryError(original_error=exc) from exc

    @staticmethod
    def _advance(current: SearchState, new: SearchState) -> SearchState:
        logger.debug("search: %s -> %s", current.value, new.value)
        return new
