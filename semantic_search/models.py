"""
Data Models for the Semantic Search Service

Defines:
1. DocumentInput - Raw (text, metadata) pair supplied by a caller
2. Document - A stored document with its store-assigned id and embedding
3. DocumentView / SearchResult - What a search returns (no embedding)
4. IndexRecord / IndexHit - What crosses the vector index boundary
5. Request/response models for the HTTP layer

Metadata on everything past the store boundary is dict[str, str].
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DocumentInput(BaseModel):
    """A document as submitted by a caller, before validation."""
    text: str = Field(
        ...,
        description="Document text content",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Scalar metadata values; converted to strings on insert",
    )


class Document(BaseModel):
    """A stored document. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Store-assigned identifier",
    )
    text: str = Field(
        ...,
        min_length=1,
        description="Document text content",
    )
    metadata: dict[str, str] = Field(
        default_factory=dict,
        description="Flat string metadata",
    )
    embedding: list[float] = Field(
        ...,
        description="Embedding vector of the configured dimension",
    )

    def to_record(self, sequence: int) -> "IndexRecord":
        return IndexRecord(
            id=self.id,
            text=self.text,
            metadata=self.metadata,
            embedding=self.embedding,
            sequence=sequence,
        )


class DocumentView(BaseModel):
    """Read-only view of a stored document; the embedding is withheld."""
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    metadata: dict[str, str] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """A single ranked search hit."""
    document: DocumentView = Field(
        ...,
        description="The matching document",
    )
    score: float = Field(
        ...,
        description="Cosine similarity (1 - cosine distance); higher is more similar",
    )

    def to_response(self) -> "SearchHitResponse":
        return SearchHitResponse(
            content=self.document.text,
            metadata=self.document.metadata,
        )


class IndexRecord(BaseModel):
    id: str
    text: str
    metadata: dict[str, str] = Field(default_factory=dict)
    embedding: list[float]
    sequence: int = Field(
        ...,
        description="Insertion order, used to break score ties",
    )


class IndexHit(BaseModel):
    id: str
    text: str
    metadata: dict[str, str] = Field(default_factory=dict)
    score: float
    sequence: int

    def to_result(self) -> SearchResult:
        return SearchResult(
            document=DocumentView(id=self.id, text=self.text, metadata=self.metadata),
            score=self.score,
        )


# ---------------------------------------------------------------------------
# HTTP models
# ---------------------------------------------------------------------------


class SearchHitResponse(BaseModel):
    content: str
    metadata: dict[str, str]


class AddDocumentsRequest(BaseModel):
    documents: list[DocumentInput] = Field(default_factory=list)


class AddDocumentsResponse(BaseModel):
    ids: list[str]


class ErrorResponse(BaseModel):
    detail: str
    kind: str
    succeeded_ids: list[str] | None = None
