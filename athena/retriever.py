"""Incremental indexing and top-K retrieval over the current document set."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .chunking import chunk_text
from .embeddings import BaseEmbeddingClient
from .errors import EmbeddingAPIError, RemoteStoreError, RetrievalError, StorageError
from .models import Chunk, Document, Excerpt, FileEntry
from .search import SearchBackend

logger = logging.getLogger(__name__)


class Retriever:
    """
    Keeps the vector store in step with the documents and ranks their chunks.

    A file is re-chunked and re-embedded only when its content hash differs
    from the stored entry, or the entry's vectors came from another embedding
    model or dimension; the new entry replaces the old one wholesale. The
    store is persisted once, after every changed file has been embedded, so a
    failure part-way leaves the previous store untouched.
    """

    def __init__(
        self,
        embedder: BaseEmbeddingClient,
        backend: SearchBackend,
        *,
        chunk_size: int = 1200,
        chunk_overlap: int = 150,
        max_chunks: int = 80,
        top_k: int = 8,
    ):
        self.embedder = embedder
        self.backend = backend
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_chunks = max_chunks
        self.top_k = top_k

    def _build_entry(self, doc: Document, digest: str) -> FileEntry:
        texts = chunk_text(
            doc.raw_text,
            chunk_size=self.chunk_size,
            overlap=self.chunk_overlap,
            max_chunks=self.max_chunks,
        )
        embeddings = self.embedder.embed(texts) if texts else []
        return FileEntry(
            file_name=doc.file_name,
            file_identity=doc.file_identity,
            content_hash=digest,
            chunks=[
                Chunk(id=Chunk.make_id(doc.file_identity, i), text=text, embedding=embedding)
                for i, (text, embedding) in enumerate(zip(texts, embeddings))
            ],
            embedding_model=self.embedder.model,
            embedding_dim=next((len(e) for e in embeddings if e), 0),
        )

    def _is_current(self, entry: Optional[FileEntry], digest: str, expected_dim: Optional[int]) -> bool:
        if entry is None or entry.content_hash != digest:
            return False
        if entry.embedding_model != self.embedder.model:
            logger.info(
                f"[RETRIEVER] {entry.file_name} was embedded with "
                f"'{entry.embedding_model or 'unknown'}', re-indexing with '{self.embedder.model}'"
            )
            return False
        if expected_dim and entry.embedding_dim and entry.embedding_dim != expected_dim:
            logger.info(
                f"[RETRIEVER] {entry.file_name} has {entry.embedding_dim}-dim vectors, "
                f"query has {expected_dim}; re-indexing"
            )
            return False
        return True

    def index(
        self,
        documents: List[Document],
        expected_dim: Optional[int] = None,
    ) -> Tuple[List[FileEntry], Dict[str, Any]]:
        """
        Bring the store up to date with ``documents``.

        A stored entry is reused only if its content hash and embedding model
        match, and, when ``expected_dim`` is given, its vector dimension too.

        Returns:
            The entries of the input documents (in input order, one per file
            identity) and stats: 'docs', 'indexed', 'reused', 'chunks'
        """
        store = self.backend.load()
        stats = {"docs": 0, "indexed": 0, "reused": 0, "chunks": 0}
        entries: List[FileEntry] = []
        changed: List[FileEntry] = []
        seen = set()

        for doc in documents:
            if doc.file_identity in seen:
                logger.debug(f"[RETRIEVER] Skipping repeated file {doc.file_identity}")
                continue
            seen.add(doc.file_identity)
            stats["docs"] += 1

            digest = doc.content_hash
            existing = store.files.get(doc.file_identity)
            if self._is_current(existing, digest, expected_dim):
                stats["reused"] += 1
                entries.append(existing)
                continue

            entry = self._build_entry(doc, digest)
            store.files[doc.file_identity] = entry
            changed.append(entry)
            entries.append(entry)
            stats["indexed"] += 1
            stats["chunks"] += len(entry.chunks)
            logger.info(f"[RETRIEVER] Indexed {doc.file_name}: {len(entry.chunks)} chunks")

        self.backend.persist(store, changed)
        return entries, stats

    def search(self, question: str, entries: List[FileEntry]) -> List[Excerpt]:
        """Embed the question and rank the chunks of ``entries`` against it."""
        query_vector = self.embedder.embed(question)[0]
        return self.backend.search(query_vector, entries, self.top_k)

    def retrieve(self, question: str, documents: List[Document]) -> Tuple[List[Excerpt], Dict[str, Any]]:
        """
        Embed the question, index, then search.

        The question is embedded first so that entries stored at another
        dimension are re-indexed. Any indexing or query failure raises
        ``RetrievalError``.
        """
        try:
            query_vector = self.embedder.embed(question)[0]
            entries, stats = self.index(documents, expected_dim=len(query_vector) or None)
            excerpts = self.backend.search(query_vector, entries, self.top_k)
        except (EmbeddingAPIError, RemoteStoreError, StorageError) as e:
            logger.error(f"[RETRIEVER] Retrieval failed: {e}")
            raise RetrievalError("Could not retrieve excerpts", detail=str(e)) from e

        logger.info(
            f"[RETRIEVER] Selected {len(excerpts)} excerpts "
            f"(indexed={stats['indexed']}, reused={stats['reused']})"
        )
        return excerpts, stats
