"""Shared fixtures: a deterministic bag-of-words embedder and temp stores."""

import re
import zlib
from typing import List

import pytest

from athena import Athena, AthenaConfig, BaseEmbeddingClient, KeyValueStore, LocalVectorStore
from athena.errors import EmbeddingAPIError

STOPWORDS = {"the", "what", "and", "for", "are", "with", "this", "that", "will", "from", "per"}


def tokens(text: str) -> List[str]:
    """Lowercase word stems, stopwords and very short words dropped."""
    out = []
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        if word in STOPWORDS or len(word) < 3:
            continue
        if word.endswith("s") and len(word) > 3:
            word = word[:-1]
        out.append(word)
    return out


class FakeEmbeddingClient(BaseEmbeddingClient):
    """Hashes word stems into a count vector and records every batch sent."""

    requires_api_key = False

    def __init__(self, dim: int = 4096, fail: bool = False, model: str = "fake-bow"):
        super().__init__(model, use_cache=False)
        self.dim = dim
        self.fail = fail
        self.calls: List[List[str]] = []

    def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingAPIError(503, "Model is overloaded")
        vectors = []
        for text in texts:
            vector = [0.0] * self.dim
            for token in tokens(text):
                vector[zlib.crc32(token.encode()) % self.dim] += 1.0
            vectors.append(vector)
        return vectors


@pytest.fixture
def embedder() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "athena.db")


@pytest.fixture
def kv(db_path):
    store = KeyValueStore(db_path)
    yield store
    store.close()


@pytest.fixture
def vector_store(kv) -> LocalVectorStore:
    return LocalVectorStore(kv, key="test:vector-store")


@pytest.fixture
def athena(db_path, embedder):
    instance = Athena(AthenaConfig(db_path=db_path), embedder=embedder)
    yield instance
    instance.close()
