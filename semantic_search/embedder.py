"""
Embedding Providers - text to fixed-dimension vectors

Provides:
- EmbeddingProvider: the protocol every provider satisfies
- OllamaEmbedder: local embeddings via a running Ollama server
- HashingEmbedder: deterministic hashed bag-of-words vectors (offline/tests)
- CheckedEmbedder: wraps a provider, types its failures and enforces the
  dimension D

Usage:
    from semantic_search.embedder import CheckedEmbedder, OllamaEmbedder

    embedder = CheckedEmbedder(OllamaEmbedder(model="nomic-embed-text"))
    vector = embedder.embed("Ein Beispieltext")
"""

import hashlib
import logging
import math
import re
import threading
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
import ollama

from .exceptions import EmbeddingError, InvalidArgumentError, SearchServiceError

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Contract for embedding generation."""

    def embed(self, text: str) -> Sequence[float]:
        """Generate an embedding for a single text."""
        ...


class OllamaEmbedder:
    """
    Generates text embeddings using a local Ollama model.

    The embedder connects to a running Ollama instance and uses a specified
    embedding model to convert text into dense vector representations.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        timeout: Optional[float] = None,
    ):
        """
        Initialize the embedder.

        Args:
            model: Ollama model name for embeddings.
            base_url: Ollama API base URL.
            timeout: Optional HTTP timeout in seconds for each request.
        """
        self.model = model
        self.base_url = base_url
        self._client = ollama.Client(host=base_url, timeout=timeout)
        self._dimensions: Optional[int] = None

    @property
    def dimensions(self) -> Optional[int]:
        """Return the embedding dimensions (available after first embed call)."""
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        """
        Generate an embedding for a single text.

        Raises:
            InvalidArgumentError: If the text is empty.
            EmbeddingError: If Ollama is unreachable or rejects the request.
        """
        if not text or not text.strip():
            raise InvalidArgumentError("Cannot embed empty text")
        try:
            response = self._client.embed(model=self.model, input=text)
            embedding = response["embeddings"][0]
            self._dimensions = len(embedding)
            return embedding
        except ollama.ResponseError as e:
            raise EmbeddingError(
                "Ollama embedding failed", model=self.model, original_error=e
            ) from e
        except Exception as e:
            raise self._wrap_error(e, "Embedding generation failed") from e

    def health_check(self) -> dict[str, Any]:
        """
        Ask the Ollama server whether the configured model is pulled.

        Never raises: an unreachable server or a missing model comes back
        as ``healthy=False`` with a readable ``error``.
        """
        try:
            listing = self._client.list()
        except Exception as e:
            return {
                "healthy": False,
                "model": self.model,
                "error": f"Cannot reach Ollama at {self.base_url}: {e}",
            }

        pulled = [entry.model for entry in listing.models]
        if not any(name == self.model or name.startswith(f"{self.model}:") for name in pulled):
            return {
                "healthy": False,
                "model": self.model,
                "error": f"Model '{self.model}' is not pulled (run: ollama pull {self.model})",
            }
        return {"healthy": True, "model": self.model, "error": ""}

    def _wrap_error(self, error: Exception, message: str) -> EmbeddingError:
        if "Connection" in type(error).__name__ or "refused" in str(error).lower():
            return EmbeddingError(
                f"Cannot connect to Ollama at {self.base_url}. "
                f"Is Ollama running? Start it with: ollama serve",
                model=self.model,
                original_error=error,
            )
        return EmbeddingError(message, model=self.model, original_error=error)


class HashingEmbedder:
    """
    Deterministic embeddings from hashed tokens.

    Each lowercase word token is hashed (md5) into one of ``dimensions``
    buckets with a +/-1 sign; the sum is L2-normalized. Texts sharing words
    therefore have positive cosine similarity and identical word bags give
    identical vectors. Stable across processes, unlike ``hash()``.
    """

    def __init__(self, dimensions: int = 512, model: str = "hashing"):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.model = model
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise InvalidArgumentError("Cannot embed empty text")
        tokens = [token.lower() for token in _TOKEN_PATTERN.findall(text)]
        if not tokens:
            # Punctuation-only text still needs a direction.
            tokens = [text.strip()]

        vector = np.zeros(self._dimensions, dtype=np.float64)
        for token in tokens:
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self._dimensions
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = np.linalg.norm(vector)
        if norm == 0:
            # Signs cancelled out exactly; fall back to the first bucket hit.
            digest = hashlib.md5(tokens[0].encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimensions] = 1.0
            norm = 1.0
        return (vector / norm).tolist()


class CheckedEmbedder:
    """
    Wraps a provider so every failure surfaces as ``EmbeddingError``.

    Also locks the embedding dimension D: either configured up front or
    taken from the first vector returned. Any later vector with a different
    length is rejected.
    """

    def __init__(self, provider: EmbeddingProvider, dimensions: Optional[int] = None):
        if dimensions is not None and dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.provider = provider
        self._dimensions = dimensions
        self._lock = threading.Lock()

    @property
    def model(self) -> Optional[str]:
        return getattr(self.provider, "model", None)

    @property
    def dimensions(self) -> Optional[int]:
        return self._dimensions

    def health_check(self) -> dict[str, Any]:
        """Delegate to the provider's own check; providers without one are always healthy."""
        check = getattr(self.provider, "health_check", None)
        if check is None:
            return {"healthy": True, "model": self.model, "error": ""}
        return check()

    def embed(self, text: str) -> list[float]:
        try:
            raw = self.provider.embed(text)
        except SearchServiceError:
            raise
        except Exception as e:
            raise EmbeddingError(
                "Embedding provider failed", model=self.model, original_error=e
            ) from e

        vector = self._validate(raw)
        self._check_dimensions(len(vector))
        return vector

    def _validate(self, raw: Sequence[float]) -> list[float]:
        try:
            vector = [float(value) for value in raw]
        except (TypeError, ValueError) as e:
            raise EmbeddingError(
                "Embedding provider returned a non-numeric vector",
                model=self.model,
                original_error=e,
            ) from e
        if not vector:
            raise EmbeddingError("Embedding provider returned an empty vector", model=self.model)
        if not all(math.isfinite(value) for value in vector):
            raise EmbeddingError(
                "Embedding provider returned non-finite values", model=self.model
            )
        return vector

    def _check_dimensions(self, size: int) -> None:
        with self._lock:
            if self._dimensions is None:
                self._dimensions = size
                logger.info("Embedding dimension locked at %d", size)
                return
            expected = self._dimensions
        if size != expected:
            raise EmbeddingError(
                "Embedding dimension mismatch",
                model=self.model,
                details=f"expected {expected}, got {size}",
            )
