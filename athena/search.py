"""Similarity scoring and the local / remote search backends."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

import numpy as np

from .models import Excerpt, FileEntry, VectorStore
from .remote import RemoteVectorClient
from .vector_store import LocalVectorStore

logger = logging.getLogger(__name__)

# Server-side cap on query size
REMOTE_MAX_TOP_K = 50


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product of two unit vectors; empty or mismatched vectors score 0."""
    if not len(a) or len(a) != len(b):
        return 0.0
    return float(np.dot(np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64)))


def score_chunks(query_vector: Sequence[float], entries: List[FileEntry]) -> List[Excerpt]:
    """Score every usable chunk of the given entries, in document then chunk order.

    Chunks whose embedding is empty or of another dimension are not matches
    and are left out.
    """
    if not query_vector:
        return []

    candidates = []
    for entry in entries:
        for chunk in entry.chunks:
            if len(chunk.embedding) != len(query_vector):
                continue
            candidates.append(Excerpt(
                rank=0,
                file_name=entry.file_name,
                file_identity=entry.file_identity,
                chunk_id=chunk.id,
                text=chunk.text,
                score=cosine_similarity(query_vector, chunk.embedding),
            ))
    return candidates


def rank_excerpts(candidates: List[Excerpt], k: int) -> List[Excerpt]:
    """Top ``k`` by score. The sort is stable, so ties keep their input order."""
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)[:k]
    for i, excerpt in enumerate(ranked, 1):
        excerpt.rank = i
    return ranked


class SearchBackend(ABC):
    """Where chunk vectors live and how they are searched.

    Both backends keep the versioned store locally: it is the manifest of
    content hashes that decides which files need re-indexing.
    """

    name = "base"

    def __init__(self, store: LocalVectorStore):
        self.store = store

    def load(self) -> VectorStore:
        return self.store.load()

    @abstractmethod
    def persist(self, store: VectorStore, changed: List[FileEntry]) -> None:
        """Persist the store after re-indexing ``changed`` entries."""

    @abstractmethod
    def search(self, query_vector: List[float], entries: List[FileEntry], k: int) -> List[Excerpt]:
        """Best ``k`` chunks of ``entries`` for the query, ranked."""


class LocalSearchBackend(SearchBackend):
    """Single persisted blob; brute-force cosine scoring in process."""

    name = "local"

    def persist(self, store: VectorStore, changed: List[FileEntry]) -> None:
        if changed:
            self.store.save(store)

    def search(self, query_vector: List[float], entries: List[FileEntry], k: int) -> List[Excerpt]:
        return rank_excerpts(score_chunks(query_vector, entries), k)


class RemoteSearchBackend(SearchBackend):
    """Chunks upserted to a remote vector store, which also runs the search."""

    name = "remote"

    def __init__(self, store: LocalVectorStore, client: RemoteVectorClient):
        super().__init__(store)
        self.client = client

    def persist(self, store: VectorStore, changed: List[FileEntry]) -> None:
        if not changed:
            return
        for entry in changed:
            documents = [
                {
                    "fileId": entry.file_identity,
                    "fileName": entry.file_name,
                    "chunkId": chunk.id,
                    "text": chunk.text,
                    "embedding": chunk.embedding,
                }
                for chunk in entry.chunks
                if chunk.embedding
            ]
            skipped = len(entry.chunks) - len(documents)
            if skipped:
                logger.warning(f"[REMOTE] Not sending {skipped} chunks of {entry.file_name} without embeddings")
            self.client.upsert(documents)
        # Manifest is written only once every upsert went through
        self.store.save(store)

    def search(self, query_vector: List[float], entries: List[FileEntry], k: int) -> List[Excerpt]:
        if not query_vector:
            return []

        # Only chunks present in the current manifest count; the server never
        # deletes, so shrunk files may leave stale chunk ids behind.
        wanted: Dict[str, FileEntry] = {
            chunk.id: entry for entry in entries for chunk in entry.chunks
        }
        results = self.client.query(query_vector, top_k=min(REMOTE_MAX_TOP_K, k * 3))

        candidates = []
        for result in results:
            entry = wanted.get(result.get("chunkId"))
            if entry is None or result.get("fileId") != entry.file_identity:
                continue
            candidates.append(Excerpt(
                rank=0,
                file_name=result.get("fileName") or entry.file_name,
                file_identity=entry.file_identity,
                chunk_id=result["chunkId"],
                text=result.get("text", ""),
                score=float(result.get("score", 0.0)),
            ))
        return rank_excerpts(candidates, k)
