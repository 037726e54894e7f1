"""FastAPI server for the remote vector store backend."""

import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .index import VectorIndexManager
from .storage import ChunkRecordStore

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 8
MAX_TOP_K = 50


# ============ Request/Response Models ============

class VectorDocument(BaseModel):
    """One chunk to upsert, keyed by (fileId, chunkId)."""
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., alias="fileId")
    file_name: str = Field(default="", alias="fileName")
    chunk_id: str = Field(..., alias="chunkId")
    text: str = ""
    embedding: List[float]


class UpsertRequest(BaseModel):
    """Request body for chunk upserts."""
    documents: List[VectorDocument] = Field(default_factory=list)


class UpsertResponse(BaseModel):
    success: bool
    upserted: int


class QueryRequest(BaseModel):
    """Request body for nearest-neighbour queries."""
    model_config = ConfigDict(populate_by_name=True)

    embedding: Optional[List[float]] = None
    top_k: Optional[float] = Field(default=None, alias="topK")


class QueryResult(BaseModel):
    """Single query result."""
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., alias="fileId")
    file_name: str = Field(default="", alias="fileName")
    chunk_id: str = Field(..., alias="chunkId")
    text: str
    score: float


class QueryResponse(BaseModel):
    results: List[QueryResult]


def clamp_top_k(value: Optional[float]) -> int:
    """Requested result count, defaulting to 8 and clamped to 1..50."""
    try:
        requested = int(value) if value else DEFAULT_TOP_K
    except (TypeError, ValueError):
        requested = DEFAULT_TOP_K
    return max(1, min(requested, MAX_TOP_K))


# ============ App Factory ============

def create_app(
    db_path: str = "athena_vectors.db",
    index_path: str = "athena_vectors.usearch",
    api_key: Optional[str] = None,
) -> FastAPI:
    """
    Create a FastAPI app serving the remote vector store.

    Args:
        db_path: Path to the SQLite chunk metadata database
        index_path: Path to the USearch index file
        api_key: When set, every request must carry it in ``x-api-key``

    Returns:
        FastAPI app instance
    """
    records: Optional[ChunkRecordStore] = None
    index: Optional[VectorIndexManager] = None
    write_lock = threading.Lock()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal records, index
        records = ChunkRecordStore(db_path)
        index = VectorIndexManager(index_path)
        logger.info(f"[API] Vector store ready: {records.count()} chunks, {len(index)} vectors")
        yield
        index.save()
        records.close()

    app = FastAPI(
        title="Athena Vector Store",
        description="Chunk vector upserts and nearest-neighbour queries for Athena",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def check_api_key(request: Request, call_next):
        if api_key and request.headers.get("x-api-key") != api_key:
            return JSONResponse(status_code=401, content={"error": "Invalid API key"})
        return await call_next(request)

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": f"Invalid request body ({problems})"})

    def get_components():
        if records is None or index is None:
            raise HTTPException(status_code=503, detail="Vector store not initialized")
        return records, index

    # ============ Endpoints ============

    @app.get("/health", tags=["Health"])
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.post("/vectors/upsert", response_model=UpsertResponse, tags=["Vectors"])
    def upsert_vectors(request: UpsertRequest):
        """Insert or replace chunk vectors; idempotent on (fileId, chunkId)."""
        store, vectors = get_components()
        if not request.documents:
            raise HTTPException(status_code=400, detail="No documents provided")

        dims = {len(doc.embedding) for doc in request.documents}
        expected = vectors.embedding_dim
        if 0 in dims or len(dims) > 1 or (expected and dims != {expected}):
            raise HTTPException(
                status_code=400,
                detail=f"Embeddings must be non-empty with {expected or 'one shared'} dimensions",
            )

        with write_lock:
            try:
                for doc in request.documents:
                    row_id = store.upsert(doc.file_id, doc.chunk_id, doc.file_name, doc.text)
                    vectors.upsert(row_id, doc.embedding)
            except ValueError as e:
                store.rollback()
                raise HTTPException(status_code=400, detail=str(e))
            store.commit()
            vectors.save()

        logger.info(f"[API] Upserted {len(request.documents)} chunks")
        return UpsertResponse(success=True, upserted=len(request.documents))

    @app.post("/vectors/query", response_model=QueryResponse, tags=["Vectors"])
    def query_vectors(request: QueryRequest):
        """Nearest chunks by cosine similarity, best first."""
        store, vectors = get_components()
        if not request.embedding:
            raise HTTPException(status_code=400, detail="Embedding is required")

        results = []
        with write_lock:
            try:
                matches = vectors.search(request.embedding, clamp_top_k(request.top_k))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

            for row_id, score in matches:
                chunk = store.get_chunk(row_id)
                if not chunk:
                    continue
                results.append(QueryResult(
                    file_id=chunk["file_id"],
                    file_name=chunk["file_name"] or "",
                    chunk_id=chunk["chunk_id"],
                    text=chunk["text"],
                    score=score,
                ))
        return QueryResponse(results=results)

    return app


# Default app for `uvicorn athena.api:app`
app = create_app(
    db_path=os.environ.get("ATHENA_VECTOR_DB", "athena_vectors.db"),
    index_path=os.environ.get("ATHENA_VECTOR_INDEX", "athena_vectors.usearch"),
    api_key=os.environ.get("ATHENA_REMOTE_API_KEY") or None,
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
