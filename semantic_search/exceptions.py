"""
Custom Exceptions for the Semantic Search Service.

Every failure the core can produce is one of these types. The HTTP layer
maps them to status codes through ``ErrorKind``; nothing in the core
reports a failure as an empty result.

Exception Hierarchy:
    SearchServiceError (base)
    ├── InvalidArgumentError
    ├── EmbeddingError
    ├── IndexOperationError
    │   ├── IndexWriteError
    │   └── IndexQueryError
    └── OperationCancelledError

Usage:
    from semantic_search.exceptions import InvalidArgumentError, SearchServiceError

    try:
        results = engine.search("vector search", top_k=3)
    except InvalidArgumentError as e:
        print(f"Bad request: {e}")
    except SearchServiceError as e:
        print(f"Search failed ({e.kind.value}): {e}")
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Stable, transport-independent error categories."""
    INVALID_ARGUMENT = "invalid_argument"
    EMBEDDING_FAILURE = "embedding_failure"
    INDEX_WRITE_FAILURE = "index_write_failure"
    INDEX_QUERY_FAILURE = "index_query_failure"
    CANCELLED = "cancelled"


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class SearchServiceError(Exception):
    """
    Base exception for all search-service errors.

    Attributes:
        message: Human-readable error description
        details: Additional technical details (optional)
        original_error: The underlying exception, if any
    """

    kind: ErrorKind = ErrorKind.INVALID_ARGUMENT

    def __init__(
        self,
        message: str = "A search service error occurred",
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.details = details
        self.original_error = original_error

        full_message = message
        if details:
            full_message = f"{message} | Details: {details}"

        super().__init__(full_message)


class InvalidArgumentError(SearchServiceError):
    """Raised for bad caller input. Never retried."""

    kind = ErrorKind.INVALID_ARGUMENT

    def __init__(self, message: str = "Invalid argument", details: Optional[str] = None):
        super().__init__(message, details)


# =============================================================================
# EMBEDDING ERRORS
# =============================================================================


class EmbeddingError(SearchServiceError):
    """
    Raised when the embedding provider cannot produce a usable vector.

    Covers connection failures, rate limits, provider-side rejections and
    vectors with the wrong dimension.

    Attributes:
        model: Embedding model name, if known
    """

    kind = ErrorKind.EMBEDDING_FAILURE

    def __init__(
        self,
        message: str = "Embedding failed",
        model: Optional[str] = None,
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.model = model
        if model:
            message = f"{message} [model={model}]"
        if details is None and original_error is not None:
            details = str(original_error)
        super().__init__(message, details, original_error)


# =============================================================================
# INDEX ERRORS
# =============================================================================


class IndexOperationError(SearchServiceError):
    """Base class for vector index failures."""

    def __init__(
        self,
        message: str = "Vector index error",
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        if details is None and original_error is not None:
            details = str(original_error)
        super().__init__(message, details, original_error)


class IndexWriteError(IndexOperationError):
    """
    Raised when the index rejects a batch.

    Attributes:
        succeeded_ids: Ids that are visible in the index despite the failure
        failed_ids: Ids that were not written (or were rolled back)
    """

    kind = ErrorKind.INDEX_WRITE_FAILURE

    def __init__(
        self,
        message: str = "Vector index rejected the batch",
        succeeded_ids: Optional[list[str]] = None,
        failed_ids: Optional[list[str]] = None,
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.succeeded_ids = list(succeeded_ids or [])
        self.failed_ids = list(failed_ids or [])
        if self.succeeded_ids:
            message = f"{message} ({len(self.succeeded_ids)} document(s) remain visible)"
        super().__init__(message, details, original_error)


class IndexQueryError(IndexOperationError):
    """Raised when a nearest-neighbor query fails (timeout, unavailable)."""

    kind = ErrorKind.INDEX_QUERY_FAILURE

    def __init__(
        self,
        message: str = "Vector index query failed",
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, details, original_error)


# =============================================================================
# CANCELLATION
# =============================================================================


class OperationCancelledError(SearchServiceError):
    """
    Raised when a deadline passes or the caller cancels.

    Attributes:
        stage: The processing stage at which cancellation was detected
    """

    kind = ErrorKind.CANCELLED

    def __init__(self, stage: str, reason: str = "deadline exceeded"):
        self.stage = stage
        self.reason = reason
        super().__init__(f"Operation cancelled during {stage}: {reason}")


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """
    Check if an error is potentially recoverable by retrying.

    Returns True for provider, index and cancellation errors. Returns
    False for invalid arguments and for anything outside the hierarchy.
    """
    if isinstance(error, (EmbeddingError, IndexOperationError, OperationCancelledError)):
        return True
    return False


def format_error_chain(error: Exception) -> str:
    """
    Format an exception and its chain for logging.

    Returns a multi-line string showing the error hierarchy.
    """
    lines = []
    current = error
    depth = 0

    while current is not None:
        prefix = "  " * depth + ("└─ " if depth > 0 else "")
        lines.append(f"{prefix}{type(current).__name__}: {current}")

        if getattr(current, "original_error", None) is not None:
            current = current.original_error
            depth += 1
        elif current.__cause__:
            current = current.__cause__
            depth += 1
        else:
            break

    return "\n".join(lines)
