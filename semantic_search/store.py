"""
Document Store - turns (text, metadata) pairs into stored, embedded documents

Responsibilities:
- Validate input and scalarize metadata to dict[str, str]
- Assign ids (uuid4 for adds, deterministic uuid5 for seeds)
- Embed a batch concurrently, then write it to the index in one call,
  in input order
- Report failures with the ids that are still visible, never silently

Usage:
    from semantic_search.store import DocumentStore

    store = DocumentStore(embedder, index)
    ids = store.add_documents([("cats are mammals", {"category": "bio"})])
"""

import json
import logging
import threading
import time
import uuid
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, Iterable, Mapping, Optional, Union

from .deadline import Deadline, ensure_deadline
from .embedder import CheckedEmbedder, EmbeddingProvider
from .exceptions import (
    EmbeddingError,
    IndexWriteError,
    InvalidArgumentError,
    OperationCancelledError,
    SearchServiceError,
    format_error_chain,
)
from .models import Document, DocumentInput
from .vector_index import VectorIndex

logger = logging.getLogger(__name__)

RESERVED_KEY_PREFIX = "_"
# Chroma treats $-prefixed keys as query operators.
OPERATOR_KEY_PREFIX = "$"

# Cancellation is noticed at most this late while a batch is embedding.
_POLL_SECONDS = 0.05

_SEED_NAMESPACE = uuid.UUID("5c3e9a4e-8f61-4f0b-9d0e-2b7a4c1d6e93")

ItemLike = Union[DocumentInput, tuple[str, Optional[Mapping[str, Any]]]]


def normalize_metadata(metadata: Optional[Mapping[str, Any]], what: str = "metadata") -> dict[str, str]:
    """
    Scalarize a metadata mapping to dict[str, str].

    Strings pass through, ints and floats use ``str()``, booleans become
    ``"true"``/``"false"``. Anything else (None, lists, dicts, objects) is
    rejected, as are empty keys and keys starting with ``_`` or ``$``.
    """
    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        raise InvalidArgumentError(f"{what} must be a mapping", details=type(metadata).__name__)

    flat: dict[str, str] = {}
    for key, value in metadata.items():
        if not isinstance(key, str) or not key.strip():
            raise InvalidArgumentError(f"{what} keys must be non-empty strings", details=repr(key))
        if key.startswith((RESERVED_KEY_PREFIX, OPERATOR_KEY_PREFIX)):
            raise InvalidArgumentError(f"{what} key '{key}' is reserved")
        if isinstance(value, bool):
            flat[key] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            flat[key] = str(value)
        else:
            raise InvalidArgumentError(
                f"{what} value for '{key}' is not a scalar",
                details=type(value).__name__,
            )
    return flat


def seed_document_id(text: str, metadata: Mapping[str, str]) -> str:
    """Deterministic id for a seed item: same text and metadata, same id."""
    key = text + "\x1f" + json.dumps(sorted(metadata.items()), ensure_ascii=False)
    return uuid.uuid5(_SEED_NAMESPACE, key).hex


class _SequenceClock:
    """Hands out strictly increasing blocks of insertion sequence numbers."""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def reserve(self, count: int) -> int:
        with self._lock:
            start = max(time.time_ns(), self._last + 1)
            self._last = start + count - 1
            return start


class DocumentStore:
    """
    Owns document creation: validation, identity, embedding and insertion.

    The embedder and index are shared, process-wide collaborators. The only
    internal locks guard the sequence clock and the embedding dimension;
    neither is held across a provider or index call.
    """

    def __init__(
        self,
        embedder: Union[CheckedEmbedder, EmbeddingProvider],
        index: VectorIndex,
        embed_concurrency: int = 4,
    ):
        """
        Initialize the document store.

        Args:
            embedder: Embedding provider. Wrapped in CheckedEmbedder if needed.
            index: Vector index the documents are written to.
            embed_concurrency: Worker threads used to embed a batch.
        """
        if embed_concurrency <= 0:
            raise ValueError("embed_concurrency must be positive")
        if not isinstance(embedder, CheckedEmbedder):
            embedder = CheckedEmbedder(embedder)
        self._embedder = embedder
        self._index = index
        self._executor = ThreadPoolExecutor(
            max_workers=embed_concurrency,
            thread_name_prefix="embed",
        )
        self._clock = _SequenceClock()

    @property
    def embedder(self) -> CheckedEmbedder:
        return self._embedder

    @property
    def index(self) -> VectorIndex:
        return self._index

    @property
    def dimensions(self) -> Optional[int]:
        return self._embedder.dimensions

    def add_documents(
        self,
        items: Iterable[ItemLike],
        deadline: Optional[Deadline] = None,
    ) -> list[str]:
        """
        Embed and store a batch of documents.

        Args:
            items: Non-empty batch of DocumentInput or (text, metadata) pairs.
            deadline: Optional deadline/cancellation signal.

        Returns:
            New document ids, positionally matching ``items``.

        Raises:
            InvalidArgumentError: Empty batch, empty text or bad metadata.
            EmbeddingError: An item could not be embedded. Nothing is written.
            IndexWriteError: The index rejected the batch; ``succeeded_ids``
                lists ids that are nevertheless visible.
            OperationCancelledError: The deadline passed before the write.
        """
        deadline = ensure_deadline(deadline)
        inputs = self._validate_items(items)
        ids = [uuid.uuid4().hex for _ in inputs]
        self._write(inputs, ids, deadline)
        return ids

    def add_document(
        self,
        text: str,
        metadata: Optional[Mapping[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> str:
        return self.add_documents([(text, metadata)], deadline=deadline)[0]

    def seed(
        self,
        items: Iterable[ItemLike],
        deadline: Optional[Deadline] = None,
    ) -> list[str]:
        """
        Idempotently load a fixed set of documents.

        Ids are derived from content, and items already in the index are
        skipped without being re-embedded, so repeated calls change nothing.

        Returns:
            The id of every seed item, in input order.
        """
        deadline = ensure_deadline(deadline)
        inputs = self._validate_items(items)
        ids = [seed_document_id(text, metadata) for text, metadata in inputs]

        existing = self._index.existing_ids(ids)
        pending_inputs: list[tuple[str, dict[str, str]]] = []
        pending_ids: list[str] = []
        for item, doc_id in zip(inputs, ids):
            if doc_id in existing or doc_id in pending_ids:
                continue
            pending_inputs.append(item)
            pending_ids.append(doc_id)

        if pending_inputs:
            self._write(pending_inputs, pending_ids, deadline)
        logger.info(
            "Seeded %d new document(s), %d already present",
            len(pending_ids), len(set(ids)) - len(pending_ids),
        )
        return ids

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_items(self, items: Iterable[ItemLike]) -> list[tuple[str, dict[str, str]]]:
        if items is None:
            raise InvalidArgumentError("items must not be empty")
        validated: list[tuple[str, dict[str, str]]] = []
        for position, item in enumerate(items):
            if isinstance(item, DocumentInput):
                text, metadata = item.text, item.metadata
            elif isinstance(item, tuple) and len(item) == 2:
                text, metadata = item
            else:
                raise InvalidArgumentError(
                    f"Item {position} must be a DocumentInput or (text, metadata) pair"
                )
            if not isinstance(text, str) or not text.strip():
                raise InvalidArgumentError(f"Item {position} has empty text")
            validated.append((text, normalize_metadata(metadata, what=f"Item {position} metadata")))
        if not validated:
            raise InvalidArgumentError("items must not be empty")
        return validated

    def _write(
        self,
        inputs: list[tuple[str, dict[str, str]]],
        ids: list[str],
        deadline: Deadline,
    ) -> None:
        deadline.check("embedding")
        embeddings = self._embed_all([text for text, _ in inputs], deadline)

        deadline.check("index write")
        start = self._clock.reserve(len(inputs))
        records = [
            Document(id=doc_id, text=text, metadata=metadata, embedding=embedding).to_record(
                start + position
            )
            for position, ((text, metadata), doc_id, embedding) in enumerate(
                zip(inputs, ids, embeddings)
            )
        ]

        try:
            self._index.upsert(records)
        except IndexWriteError as exc:
            logger.warning("Index write failed:\n%s", format_error_chain(exc))
            raise
        except Exception as exc:
            visible = self._visible_ids(ids)
            written = set(visible)
            error = IndexWriteError(
                succeeded_ids=visible,
                failed_ids=[i for i in ids if i not in written],
                original_error=exc,
            )
            logger.warning("Index write failed:\n%s", format_error_chain(error))
            raise error from exc

        logger.info("Stored %d document(s)", len(records))

    def _embed_all(self, texts: list[str], deadline: Deadline) -> list[list[float]]:
        futures: list[Future] = [
            self._executor.submit(self._embedder.embed, text) for text in texts
        ]
        not_done = set(futures)
        while not_done:
            remaining = deadline.remaining()
            timeout = _POLL_SECONDS if remaining is None else min(remaining, _POLL_SECONDS)
            done, not_done = wait(not_done, timeout=timeout, return_when=FIRST_EXCEPTION)
            if any(future.exception() is not None for future in done):
                break
            if not_done and deadline.expired():
                break

        for position, future in enumerate(futures):
            if future.done() and not future.cancelled() and future.exception() is not None:
                self._cancel(not_done)
                error = future.exception()
                if isinstance(error, SearchServiceError):
                    raise error
                raise EmbeddingError(
                    f"Embedding failed for item {position}", original_error=error
                ) from error

        if not_done:
            self._cancel(not_done)
            deadline.check("embedding")
            raise OperationCancelledError("embedding")

        return [future.result() for future in futures]

    def _visible_ids(self, ids: list[str]) -> list[str]:
        try:
            existing = self._index.existing_ids(ids)
        except Exception as exc:
            logger.warning("Could not determine which ids were written: %s", exc)
            return list(ids)
        return [i for i in ids if i in existing]

    @staticmethod
    def _cancel(futures: Iterable[Future]) -> None:
        for future in futures:
            future.cancel()
