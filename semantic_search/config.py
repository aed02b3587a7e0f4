from dataclasses import dataclass
from typing import Optional
import os


@dataclass
class SearchConfig:
    persist_directory: str = "data/semantic_search/chroma"
    collection_name: str = "documents"
    in_memory: bool = False
    embedding_provider: str = "ollama"
    embedding_model: str = "nomic-embed-text"
    ollama_base_url: str = "http://localhost:11434"
    embedding_dimensions: Optional[int] = None
    default_top_k: int = 4
    max_top_k: int = 100
    overfetch_factor: int = 4
    min_score: Optional[float] = 0.0
    embed_concurrency: int = 4
    index_batch_size: int = 500
    request_timeout_seconds: Optional[float] = None
    seed_on_startup: bool = True

    @classmethod
    def from_env(cls) -> "SearchConfig":
        def _int(name: str, default: Optional[int]) -> Optional[int]:
            value = os.environ.get(name)
            return int(value) if value else default

        def _float(name: str, default: Optional[float]) -> Optional[float]:
            value = os.environ.get(name)
            return float(value) if value else default

        def _optional_float(name: str, default: Optional[float]) -> Optional[float]:
            value = os.environ.get(name)
            if value and value.strip().lower() in ("none", "off"):
                return None
            return _float(name, default)

        def _bool(name: str, default: bool) -> bool:
            value = os.environ.get(name)
            if not value:
                return default
            return value.strip().lower() in ("1", "true", "yes", "on")

        return cls(
            persist_directory=os.environ.get("SEARCH_PERSIST_DIRECTORY", cls.persist_directory),
            collection_name=os.environ.get("SEARCH_COLLECTION_NAME", cls.collection_name),
            in_memory=_bool("SEARCH_CHROMA_IN_MEMORY", cls.in_memory),
            embedding_provider=os.environ.get("SEARCH_EMBEDDING_PROVIDER", cls.embedding_provider),
            embedding_model=os.environ.get("OLLAMA_EMBEDDING_MODEL", cls.embedding_model),
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL", cls.ollama_base_url),
            embedding_dimensions=_int("SEARCH_EMBEDDING_DIMENSIONS", cls.embedding_dimensions),
            default_top_k=_int("SEARCH_DEFAULT_TOP_K", cls.default_top_k),
            max_top_k=_int("SEARCH_MAX_TOP_K", cls.max_top_k),
            overfetch_factor=_int("SEARCH_OVERFETCH_FACTOR", cls.overfetch_factor),
            min_score=_optional_float("SEARCH_MIN_SCORE", cls.min_score),
            embed_concurrency=_int("SEARCH_EMBED_CONCURRENCY", cls.embed_concurrency),
            index_batch_size=_int("SEARCH_INDEX_BATCH_SIZE", cls.index_batch_size),
            request_timeout_seconds=_float(
                "SEARCH_REQUEST_TIMEOUT_SECONDS", cls.request_timeout_seconds
            ),
            seed_on_startup=_bool("SEARCH_SEED_ON_STARTUP", cls.seed_on_startup),
        )
