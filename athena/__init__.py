"""
Athena: retrieval core for question answering over course documents

Given the plain text of a course's documents (syllabi, slides, handouts) and
a question, Athena selects the excerpts most relevant to the question and
returns them as one context string for a language model:

- Overlapping fixed-size chunking over whitespace-normalized text
- Embeddings from OpenAI, any OpenAI-compatible endpoint, Hugging Face
  feature extraction (token matrices are mean-pooled) or a local Ollama
- Incremental re-indexing keyed on a per-file content hash
- Versioned vector store persisted as one compressed SQLite blob, with
  float32/base64 compacted embeddings
- Optional remote vector store (FastAPI + USearch HNSW) with idempotent
  chunk upserts and server-side nearest-neighbour search
- Top-K cosine ranking with full-text fallback
"""

from .config import AthenaConfig
from .errors import (
    AthenaError,
    ConfigError,
    EmbeddingAPIError,
    RemoteStoreError,
    RetrievalError,
    StorageError,
)
from .models import Chunk, Document, Excerpt, FileEntry, RetrievalResult, VectorStore
from .loaders import load_document, load_sources
from .chunking import chunk_text, normalize_whitespace
from .embeddings import (
    BaseEmbeddingClient,
    EmbeddingCache,
    FlatEmbedding,
    HTTPEmbeddingClient,
    HuggingFaceEmbedding,
    OllamaEmbedding,
    OpenAIEmbedding,
    TokenMatrix,
    create_embedding_client,
    l2_normalize,
    mean_pool,
    parse_embedding_response,
)
from .vector_store import SCHEMA_VERSION, LocalVectorStore, compact_embedding, expand_embedding
from .storage import KeyValueStore
from .remote import RemoteVectorClient
from .search import LocalSearchBackend, RemoteSearchBackend, SearchBackend, cosine_similarity
from .retriever import Retriever
from .athena import Athena, create_athena, format_excerpts, full_text_context

__version__ = "1.0.0"
__all__ = [
    # Core
    "AthenaConfig",
    "Athena",
    "create_athena",
    "format_excerpts",
    "full_text_context",
    # Models
    "Document",
    "Chunk",
    "FileEntry",
    "VectorStore",
    "Excerpt",
    "RetrievalResult",
    # Errors
    "AthenaError",
    "ConfigError",
    "EmbeddingAPIError",
    "StorageError",
    "RemoteStoreError",
    "RetrievalError",
    # Loaders & Chunking
    "load_document",
    "load_sources",
    "chunk_text",
    "normalize_whitespace",
    # Embeddings
    "BaseEmbeddingClient",
    "EmbeddingCache",
    "FlatEmbedding",
    "TokenMatrix",
    "HTTPEmbeddingClient",
    "HuggingFaceEmbedding",
    "OllamaEmbedding",
    "OpenAIEmbedding",
    "create_embedding_client",
    "parse_embedding_response",
    "l2_normalize",
    "mean_pool",
    # Persistence & search
    "SCHEMA_VERSION",
    "KeyValueStore",
    "LocalVectorStore",
    "compact_embedding",
    "expand_embedding",
    "RemoteVectorClient",
    "SearchBackend",
    "LocalSearchBackend",
    "RemoteSearchBackend",
    "cosine_similarity",
    "Retriever",
]
