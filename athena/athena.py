"""Main Athena context builder: chunk, embed, persist, retrieve, format."""

import logging
import threading
from typing import Any, Dict, List, Optional

from .config import AthenaConfig
from .embeddings import BaseEmbeddingClient, create_embedding_client
from .errors import RetrievalError
from .models import Document, Excerpt, RetrievalResult
from .remote import RemoteVectorClient
from .retriever import Retriever
from .search import LocalSearchBackend, RemoteSearchBackend, SearchBackend
from .storage import KeyValueStore
from .vector_store import LocalVectorStore

logger = logging.getLogger(__name__)


def format_excerpts(excerpts: List[Excerpt]) -> str:
    """Render ranked excerpts as the context handed to the answer generator."""
    return "\n\n".join(
        f"[Excerpt {e.rank}] (Source: {e.file_name})\n{e.text}" for e in excerpts
    )


def full_text_context(documents: List[Document]) -> str:
    """Every document's full text, each prefixed with its file name."""
    return "\n\n".join(
        f"[Document: {doc.file_name}]\n{doc.raw_text}" for doc in documents
    )


class Athena:
    """Retrieval-augmented context builder for course documents."""

    def __init__(
        self,
        config: AthenaConfig,
        embedder: Optional[BaseEmbeddingClient] = None,
        backend: Optional[SearchBackend] = None,
    ):
        config.validate()
        self.config = config
        self._lock = threading.RLock()
        self.kv: Optional[KeyValueStore] = None

        # Initialize components
        self.embedder = embedder or create_embedding_client(
            config.embedding_provider,
            config.embedding_model,
            api_key=config.api_key,
            url=config.embedding_url,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
        )
        self.backend = backend or self._create_backend()
        self.retriever = Retriever(
            self.embedder,
            self.backend,
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            max_chunks=config.max_chunks_per_file,
            top_k=config.top_k,
        )

    def _create_backend(self) -> SearchBackend:
        self.kv = KeyValueStore(self.config.db_path)
        store = LocalVectorStore(self.kv, key=self.config.store_key, compress=self.config.compress)
        if self.config.backend == "remote":
            client = RemoteVectorClient(
                self.config.remote_url,
                api_key=self.config.remote_api_key,
                timeout=self.config.request_timeout,
                max_retries=self.config.max_retries,
            )
            return RemoteSearchBackend(store, client)
        return LocalSearchBackend(store)

    def retrieve(self, question: str, documents: List[Document]) -> RetrievalResult:
        """
        Select the excerpts most relevant to ``question``.

        Falls back to the documents' full text when no excerpt can be
        selected (for instance when every embedding came back empty).

        Raises:
            RetrievalError: indexing, embedding or persistence failed
        """
        if not documents:
            logger.warning("[RETRIEVER] RetrievalFallback: no documents, empty context")
            return RetrievalResult(context="", fallback="no documents")

        with self._lock:
            excerpts, stats = self.retriever.retrieve(question, documents)

        if not excerpts:
            logger.warning(
                f"[RETRIEVER] RetrievalFallback: no excerpts selected, "
                f"using full text of {len(documents)} documents"
            )
            return RetrievalResult(
                context=full_text_context(documents),
                fallback="no excerpts selected",
                stats=stats,
            )

        return RetrievalResult(context=format_excerpts(excerpts), excerpts=excerpts, stats=stats)

    def build_context(self, question: str, documents: List[Document]) -> str:
        """Context string for the answer generator. Raises ``RetrievalError``."""
        return self.retrieve(question, documents).context

    def build_context_or_full_text(self, question: str, documents: List[Document]) -> str:
        """Like ``build_context``, but a failed retrieval degrades to full text."""
        try:
            return self.build_context(question, documents)
        except RetrievalError as e:
            logger.warning(f"[RETRIEVER] Falling back to full text: {e.detail or e.message}")
            return full_text_context(documents)

    def index(self, documents: List[Document]) -> Dict[str, Any]:
        """
        Index documents ahead of any question.

        Returns:
            Stats dict with 'docs', 'indexed', 'reused' and 'chunks' counts
        """
        with self._lock:
            _, stats = self.retriever.index(documents)
        return stats

    def get_stats(self) -> Dict[str, Any]:
        """Get store and embedding statistics."""
        with self._lock:
            store = self.backend.load()
            return {
                "backend": self.backend.name,
                "db_path": self.config.db_path,
                "schema_version": store.version,
                "files": len(store.files),
                "chunks": store.chunk_count,
                "embedding_model": self.embedder.model,
                "cache_stats": self.embedder.cache.stats(),
            }

    def close(self) -> None:
        """Close the local store connection."""
        with self._lock:
            if self.kv is not None:
                self.kv.close()
                self.kv = None


def create_athena(
    db_path: str = "athena.db",
    *,
    embedding_provider: str = "openai",
    embedding_model: Optional[str] = None,
    api_key: Optional[str] = None,
    backend: str = "local",
    remote_url: Optional[str] = None,
    remote_api_key: Optional[str] = None,
) -> Athena:
    """
    Create an Athena instance with sensible defaults.

    Example:
        >>> athena = create_athena("course.db", embedding_provider="huggingface", api_key="hf_...")
        >>> docs = load_sources(["syllabus.pdf", "week1.txt"])
        >>> context = athena.build_context("When is the midterm?", docs)
    """
    config = AthenaConfig(
        db_path=db_path,
        embedding_provider=embedding_provider,
        embedding_model=embedding_model,
        api_key=api_key,
        backend=backend,
        remote_url=remote_url,
        remote_api_key=remote_api_key,
    )
    return Athena(config)
