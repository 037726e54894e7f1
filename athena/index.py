"""Vector index management using USearch HNSW (remote store server side)."""

from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
from usearch.index import Index as USearchIndex


class VectorIndexManager:
    """Cosine HNSW index keyed by chunk row id.

    The dimension is fixed by the first vector added, or by the index file
    being restored.
    """

    def __init__(
        self,
        index_path: str,
        embedding_dim: Optional[int] = None,
        connectivity: int = 16,
        expansion_add: int = 128,
        expansion_search: int = 64,
    ):
        self.index_path = Path(index_path)
        self.connectivity = connectivity
        self.expansion_add = expansion_add
        self.expansion_search = expansion_search
        self.index: Optional[USearchIndex] = None

        if self.index_path.exists():
            self.index = USearchIndex.restore(str(self.index_path))
        elif embedding_dim:
            self.index = self._new_index(embedding_dim)

    def _new_index(self, ndim: int) -> USearchIndex:
        return USearchIndex(
            ndim=ndim,
            metric="cos",
            dtype="f32",
            connectivity=self.connectivity,
            expansion_add=self.expansion_add,
            expansion_search=self.expansion_search,
        )

    @property
    def embedding_dim(self) -> Optional[int]:
        return self.index.ndim if self.index is not None else None

    def upsert(self, key: int, embedding: List[float]) -> None:
        """Add or replace the vector stored under ``key``.

        Raises:
            ValueError: the vector's dimension differs from the index
        """
        vector = np.asarray(embedding, dtype=np.float32)
        if vector.ndim != 1 or vector.size == 0:
            raise ValueError("Embedding must be a non-empty flat vector")
        if self.index is None:
            self.index = self._new_index(int(vector.size))
        if vector.size != self.index.ndim:
            raise ValueError(
                f"Embedding has {vector.size} dimensions, index expects {self.index.ndim}"
            )
        if key in self.index:
            self.index.remove(key)
        self.index.add(key, vector)

    def search(self, embedding: List[float], k: int = 10) -> List[Tuple[int, float]]:
        """Nearest neighbours as (key, cosine similarity), best first."""
        if self.index is None or len(self.index) == 0:
            return []
        vector = np.asarray(embedding, dtype=np.float32)
        if vector.ndim != 1 or vector.size != self.index.ndim:
            raise ValueError(
                f"Query has {vector.size} dimensions, index expects {self.index.ndim}"
            )
        matches = self.index.search(vector, min(k, len(self.index)))
        return [(int(key), 1.0 - float(distance)) for key, distance in zip(matches.keys, matches.distances)]

    def save(self) -> None:
        """Persist index to disk."""
        if self.index is not None:
            self.index.save(str(self.index_path))

    def __len__(self) -> int:
        """Get number of vectors in index."""
        return len(self.index) if self.index is not None else 0
