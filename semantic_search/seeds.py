"""Default seed documents loaded by the service at startup."""

from .models import DocumentInput

DEFAULT_SEED_DOCUMENTS: list[DocumentInput] = [
    DocumentInput(
        text="Spring Framework is a comprehensive framework for enterprise Java development.",
        metadata={"category": "framework", "technology": "java"},
    ),
    DocumentInput(
        text="Oracle AI Database introduces AI-powered vector search capabilities.",
        metadata={"category": "database", "technology": "oracle"},
    ),
    DocumentInput(
        text="Vector embeddings represent text as high-dimensional numerical vectors.",
        metadata={"category": "concept", "technology": "ai"},
    ),
    DocumentInput(
        text="Machine learning models can understand semantic similarity using embeddings.",
        metadata={"category": "concept", "technology": "ml"},
    ),
]
