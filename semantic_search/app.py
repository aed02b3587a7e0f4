from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .config import SearchConfig
from .exceptions import ErrorKind, IndexWriteError, SearchServiceError
from .models import (
    AddDocumentsRequest,
    AddDocumentsResponse,
    ErrorResponse,
    SearchHitResponse,
)
from .service import SemanticSearchService

STATUS_BY_KIND = {
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.EMBEDDING_FAILURE: 502,
    ErrorKind.INDEX_WRITE_FAILURE: 503,
    ErrorKind.INDEX_QUERY_FAILURE: 503,
    ErrorKind.CANCELLED: 504,
}


def create_app(
    config: SearchConfig | None = None,
    service: Optional[SemanticSearchService] = None,
) -> FastAPI:
    cfg = config or (service.config if service else SearchConfig.from_env())
    service = service or SemanticSearchService(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if cfg.seed_on_startup:
            await run_in_threadpool(service.seed_defaults)
        yield
        service.close()

    app = FastAPI(
        title="Semantic Search Service",
        version="1.0.0",
        description="Similarity search over embedded documents with metadata filters.",
        lifespan=lifespan,
    )
    app.state.service = service

    @app.exception_handler(SearchServiceError)
    async def search_service_error(request: Request, exc: SearchServiceError) -> JSONResponse:
        body = ErrorResponse(detail=str(exc), kind=exc.kind.value)
        if isinstance(exc, IndexWriteError):
            body.succeeded_ids = exc.succeeded_ids
        return JSONResponse(
            status_code=STATUS_BY_KIND.get(exc.kind, 500),
            content=body.model_dump(exclude_none=True),
        )

    @app.get("/health")
    def health() -> dict:
        try:
            return service.health()
        except Exception as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    @app.get("/api/search", response_model=list[SearchHitResponse])
    def search(query: str, topK: Optional[int] = None) -> list[SearchHitResponse]:
        results = service.search(query, top_k=topK)
        return [result.to_response() for result in results]

    @app.get("/api/search/filtered", response_model=list[SearchHitResponse])
    def search_filtered(
        query: str,
        category: str,
        topK: Optional[int] = None,
    ) -> list[SearchHitResponse]:
        results = service.search_filtered(query, category, top_k=topK)
        return [result.to_response() for result in results]

    @app.post("/api/documents", response_model=AddDocumentsResponse)
    def add_documents(request: AddDocumentsRequest) -> AddDocumentsResponse:
        ids = service.add_documents(request.documents)
        return AddDocumentsResponse(ids=ids)

    return app
