"""
Vector Index adapters - where embedded documents live

Provides:
- VectorIndex: the protocol the Document Store and Search Engine use
- ChromaVectorIndex: ChromaDB collection in cosine space (production)
- InMemoryVectorIndex: numpy brute-force cosine search (tests/development)

Both report scores as cosine similarity (1 - cosine distance) and carry
each record's insertion ``sequence`` so callers can break ties
deterministically. Metadata comes back as dict[str, str].
"""

import logging
import threading
from typing import Iterable, Optional, Protocol, Sequence

import chromadb
import numpy as np

from .exceptions import IndexQueryError, IndexWriteError
from .models import IndexHit, IndexRecord

logger = logging.getLogger(__name__)

SEQUENCE_KEY = "_sequence"


class VectorIndex(Protocol):
    """Contract for the external vector index collaborator."""

    supports_filtering: bool

    def upsert(self, records: list[IndexRecord]) -> None:
        ...

    def query(
        self,
        vector: Sequence[float],
        top_k: int,
        where: Optional[dict[str, str]] = None,
    ) -> list[IndexHit]:
        ...

    def existing_ids(self, ids: Iterable[str]) -> set[str]:
        ...

    def delete(self, ids: list[str]) -> None:
        ...

    def count(self) -> int:
        ...


def matches_filters(metadata: dict[str, str], filters: Optional[dict[str, str]]) -> bool:
    """True if every filter key is present in ``metadata`` with an equal value."""
    if not filters:
        return True
    for key, value in filters.items():
        if key not in metadata or metadata[key] != value:
            return False
    return True


class ChromaVectorIndex:
    """
    Vector index backed by a ChromaDB collection.

    Writes are chunked (ChromaDB has a batch size limit). If a chunk fails,
    the chunks already written are deleted again so the batch is all or
    nothing; if that rollback also fails, the error lists what stayed.
    """

    supports_filtering = True

    def __init__(
        self,
        persist_directory: str,
        collection_name: str,
        chroma_client: Optional[chromadb.ClientAPI] = None,
        batch_size: int = 500,
    ):
        """
        Initialize the index.

        Args:
            persist_directory: Directory for ChromaDB persistent storage.
            collection_name: ChromaDB collection name.
            chroma_client: Optional pre-created ChromaDB client (for testing).
                           If not provided, a PersistentClient is created.
            batch_size: Maximum records per ChromaDB upsert call.
        """
        self.collection_name = collection_name
        self.batch_size = batch_size
        self._client = chroma_client or chromadb.PersistentClient(path=persist_directory)
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    def upsert(self, records: list[IndexRecord]) -> None:
        if not records:
            return
        ids = [record.id for record in records]
        documents = [record.text for record in records]
        embeddings = [record.embedding for record in records]
        metadatas = [self._to_chroma_metadata(record) for record in records]

        written = 0
        for start in range(0, len(ids), self.batch_size):
            end = min(start + self.batch_size, len(ids))
            try:
                self._collection.upsert(
                    ids=ids[start:end],
                    embeddings=embeddings[start:end],
                    documents=documents[start:end],
                    metadatas=metadatas[start:end],
                )
            except Exception as exc:
                succeeded = self._rollback(ids[:end])
                visible = set(succeeded)
                raise IndexWriteError(
                    succeeded_ids=succeeded,
                    failed_ids=[i for i in ids if i not in visible],
                    original_error=exc,
                ) from exc
            written = end

        logger.debug("Upserted %d records into '%s'", written, self.collection_name)

    def query(
        self,
        vector: Sequence[float],
        top_k: int,
        where: Optional[dict[str, str]] = None,
    ) -> list[IndexHit]:
        try:
            total = self._collection.count()
            if total == 0:
                return []
            params = {
                "query_embeddings": [list(vector)],
                "n_results": min(top_k, total),
                "include": ["documents", "metadatas", "distances"],
            }
            if where:
                params["where"] = self._build_where(where)
            raw = self._collection.query(**params)
        except Exception as exc:
            raise IndexQueryError(original_error=exc) from exc

        hits: list[IndexHit] = []
        if not raw["ids"] or not raw["ids"][0]:
            return hits

        for idx, record_id in enumerate(raw["ids"][0]):
            distance = raw["distances"][0][idx]
            metadata, sequence = self._from_chroma_metadata(raw["metadatas"][0][idx])
            hits.append(
                IndexHit(
                    id=record_id,
                    text=raw["documents"][0][idx],
                    metadata=metadata,
                    score=float(1 - distance),
                    sequence=sequence,
                )
            )
        return hits

    def existing_ids(self, ids: Iterable[str]) -> set[str]:
        ids = list(ids)
        if not ids:
            return set()
        try:
            result = self._collection.get(ids=ids, include=[])
        except Exception as exc:
            raise IndexQueryError("Vector index lookup failed", original_error=exc) from exc
        return set(result["ids"])

    def delete(self, ids: list[str]) -> None:
        if ids:
            self._collection.delete(ids=ids)

    def count(self) -> int:
        return self._collection.count()

    def _rollback(self, ids: list[str]) -> list[str]:
        """Delete ``ids``; return the ids still visible afterwards."""
        try:
            self._collection.delete(ids=ids)
        except Exception as exc:
            logger.warning(
                "Rollback of %d record(s) in '%s' failed: %s",
                len(ids), self.collection_name, exc,
            )
            try:
                remaining = self.existing_ids(ids)
                return [i for i in ids if i in remaining]
            except IndexQueryError:
                return list(ids)
        logger.warning("Rolled back %d record(s) in '%s'", len(ids), self.collection_name)
        return []

    @staticmethod
    def _build_where(filters: dict[str, str]) -> dict:
        clauses = [{key: value} for key, value in filters.items()]
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    @staticmethod
    def _to_chroma_metadata(record: IndexRecord) -> dict:
        flat: dict = dict(record.metadata)
        flat[SEQUENCE_KEY] = record.sequence
        return flat

    @staticmethod
    def _from_chroma_metadata(raw: Optional[dict]) -> tuple[dict[str, str], int]:
        raw = dict(raw or {})
        sequence = int(raw.pop(SEQUENCE_KEY, 0))
        return {str(key): str(value) for key, value in raw.items()}, sequence


class InMemoryVectorIndex:
    """
    Thread-safe in-process index with exact cosine search.

    Args:
        native_filtering: When False, ``query`` ignores ``where`` and
            ``supports_filtering`` is False, so the Search Engine filters
            client side.
    """

    def __init__(self, native_filtering: bool = True):
        self.supports_filtering = native_filtering
        self._records: dict[str, IndexRecord] = {}
        self._lock = threading.Lock()

    def upsert(self, records: list[IndexRecord]) -> None:
        with self._lock:
            for record in records:
                self._records[record.id] = record

    def query(
        self,
        vector: Sequence[float],
        top_k: int,
        where: Optional[dict[str, str]] = None,
    ) -> list[IndexHit]:
        with self._lock:
            candidates = list(self._records.values())
        if self.supports_filtering and where:
            candidates = [r for r in candidates if matches_filters(r.metadata, where)]
        if not candidates or top_k <= 0:
            return []

        matrix = np.asarray([r.embedding for r in candidates], dtype=np.float64)
        query = np.asarray(vector, dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        ranked = sorted(
            zip(candidates, scores.tolist()),
            key=lambda item: (-item[1], item[0].sequence),
        )
        return [
            IndexHit(
                id=record.id,
                text=record.text,
                metadata=dict(record.metadata),
                score=float(score),
                sequence=record.sequence,
            )
            for record, score in ranked[:top_k]
        ]

    def existing_ids(self, ids: Iterable[str]) -> set[str]:
        with self._lock:
            return {i for i in ids if i in self._records}

    def delete(self, ids: list[str]) -> None:
        with self._lock:
            for record_id in ids:
                self._records.pop(record_id, None)

    def count(self) -> int:
        with self._lock:
            return len(self._records)
