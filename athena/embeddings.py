"""Embedding generation with response-shape normalization and caching."""

import hashlib
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from numbers import Real
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import requests
from openai import APIConnectionError, APIStatusError, OpenAI
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import ConfigError, EmbeddingAPIError

logger = logging.getLogger(__name__)


class EmbeddingCache:
    """LRU cache for embeddings to avoid redundant API calls."""

    def __init__(self, maxsize: int = 1000):
        self._cache: "OrderedDict[str, List[float]]" = OrderedDict()
        self._maxsize = maxsize
        self._hits = 0
        self._misses = 0

    def _hash_text(self, text: str, model: str) -> str:
        """Create a hash key for text + model combination."""
        return hashlib.sha256(f"{model}:{text}".encode()).hexdigest()[:16]

    def get(self, text: str, model: str) -> Optional[List[float]]:
        """Get cached embedding if exists."""
        key = self._hash_text(text, model)
        if key in self._cache:
            self._hits += 1
            self._cache.move_to_end(key)
            return self._cache[key]
        self._misses += 1
        return None

    def set(self, text: str, model: str, embedding: List[float]) -> None:
        """Cache an embedding, evicting the least recently used at capacity."""
        key = self._hash_text(text, model)
        self._cache[key] = embedding
        self._cache.move_to_end(key)
        while len(self._cache) > self._maxsize:
            self._cache.popitem(last=False)

    def stats(self) -> Dict[str, Any]:
        """Return cache statistics."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total > 0 else 0,
            "size": len(self._cache),
            "maxsize": self._maxsize,
        }

    def clear(self) -> None:
        """Clear the cache."""
        self._cache.clear()
        self._hits = 0
        self._misses = 0


# ============ Response shapes ============

@dataclass(frozen=True)
class FlatEmbedding:
    """One vector for one input."""
    values: Sequence[Any]

    def pooled(self) -> List[float]:
        return _as_vector(self.values)


@dataclass(frozen=True)
class TokenMatrix:
    """One row per token for one input; pooled to a single vector."""
    rows: Sequence[Any]

    def pooled(self) -> List[float]:
        return mean_pool(self.rows)


Embedding = Union[FlatEmbedding, TokenMatrix]


def _nesting_depth(value: Any) -> int:
    """Depth of list nesting along the first element (a number is depth 0)."""
    depth = 0
    while isinstance(value, (list, tuple)):
        depth += 1
        if not value:
            break
        value = value[0]
    return depth


def _as_vector(values: Any) -> List[float]:
    try:
        arr = np.asarray(values, dtype=np.float64)
    except (TypeError, ValueError):
        return []
    if arr.ndim != 1 or arr.size == 0 or not np.all(np.isfinite(arr)):
        return []
    return arr.tolist()


def mean_pool(rows: Sequence[Sequence[float]]) -> List[float]:
    """Collapse a token matrix to one vector by averaging each column.

    The result has one value per column. Ragged or non-numeric matrices
    yield an empty vector.
    """
    try:
        matrix = np.asarray(rows, dtype=np.float64)
    except (TypeError, ValueError):
        return []
    if matrix.ndim != 2 or matrix.shape[0] == 0 or matrix.shape[1] == 0:
        return []
    return (matrix.sum(axis=0) / matrix.shape[0]).tolist()


def l2_normalize(vector: Sequence[float]) -> List[float]:
    """Scale a vector to unit length; zero, empty or malformed vectors become []."""
    values = _as_vector(vector)
    if not values:
        return []
    arr = np.asarray(values, dtype=np.float64)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0 or not np.isfinite(norm):
        return []
    return (arr / norm).tolist()


def _classify(item: Any, depth: int) -> Embedding:
    if depth == 1:
        return FlatEmbedding(item)
    if depth == 3 and isinstance(item, (list, tuple)) and len(item) == 1:
        # batch-of-one wrapper around a token matrix
        return TokenMatrix(item[0])
    return TokenMatrix(item)


def parse_embedding_response(payload: Any, expected: int) -> List[Embedding]:
    """
    Resolve a raw embedding response into one tagged embedding per input.

    Accepts ``{"data": [{"embedding": ...}]}``, ``{"embeddings": [...]}`` and
    bare arrays. The shape (flat vector vs token matrix) is decided once from
    the nesting depth of the first element and applied to every item.

    Args:
        payload: Decoded JSON (or SDK-provided lists)
        expected: Number of inputs sent

    Returns:
        List of ``FlatEmbedding`` / ``TokenMatrix`` of length ``expected``
    """
    if isinstance(payload, dict):
        if isinstance(payload.get("data"), list):
            items = payload["data"]
            if all(isinstance(item, dict) and "index" in item for item in items):
                items = sorted(items, key=lambda item: item["index"])
            raw = [item.get("embedding") if isinstance(item, dict) else item for item in items]
        elif isinstance(payload.get("embeddings"), list):
            raw = payload["embeddings"]
        elif isinstance(payload.get("embedding"), list):
            raw = [payload["embedding"]]
        else:
            raise EmbeddingAPIError(None, f"Unrecognized embedding response keys: {sorted(payload)}")
    elif isinstance(payload, (list, tuple)):
        raw = list(payload)
    else:
        raise EmbeddingAPIError(None, f"Unrecognized embedding response type: {type(payload).__name__}")

    # A single input may come back as one bare vector
    if raw and isinstance(raw[0], Real):
        raw = [raw]

    depth = _nesting_depth(raw[0]) if raw else 0
    embeddings = [_classify(item, depth) for item in raw[:expected]]

    if len(embeddings) < expected:
        logger.warning(
            f"[EMBEDDINGS] Expected {expected} embeddings, got {len(embeddings)}; "
            f"padding with empty vectors"
        )
        embeddings.extend(FlatEmbedding([]) for _ in range(expected - len(embeddings)))

    return embeddings


def _is_retryable(exc: BaseException) -> bool:
    """Retry transient failures only: network errors, rate limits, 5xx."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout, APIConnectionError)):
        return True
    status = getattr(exc, "status", None)
    if status is None:
        status = getattr(exc, "status_code", None)
    if isinstance(exc, (EmbeddingAPIError, APIStatusError)) and status is not None:
        return status == 429 or status >= 500
    return False


def _error_message(response: requests.Response) -> str:
    """Pull the server-supplied message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or "Unknown error"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if error:
            return str(error)
        if body.get("detail"):
            return str(body["detail"])
    return str(body)


# ============ Clients ============

class BaseEmbeddingClient(ABC):
    """Abstract base class for embedding clients."""

    requires_api_key = True

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        *,
        use_cache: bool = True,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
    ):
        if self.requires_api_key and not api_key:
            raise ConfigError(
                f"{type(self).__name__} requires an API key",
                detail="Set ATHENA_API_KEY (or the provider's key variable) or pass api_key.",
            )
        self.model = model
        self.api_key = api_key
        self.use_cache = use_cache
        self.cache = EmbeddingCache(maxsize=1000)
        self.max_retries = max(1, max_retries)
        self.retry_backoff = retry_backoff

    @abstractmethod
    def _embed_batch(self, texts: List[str]) -> Any:
        """Send one batched request; return the provider's raw response."""

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )

    def embed(self, texts: Union[str, List[str]]) -> List[List[float]]:
        """
        Generate L2-normalized embeddings, one per input text, in order.

        Args:
            texts: Single text or list of texts

        Returns:
            List of unit vectors; malformed results are empty lists
        """
        if isinstance(texts, str):
            texts = [texts]
        if not texts:
            return []

        results: List[Optional[List[float]]] = [None] * len(texts)
        texts_to_embed: List[Tuple[int, str]] = []

        for i, text in enumerate(texts):
            cached = self.cache.get(text, self.model) if self.use_cache else None
            if cached is not None:
                results[i] = cached
            else:
                texts_to_embed.append((i, text))

        if texts_to_embed:
            indices, uncached_texts = zip(*texts_to_embed)
            payload = self._embed_batch(list(uncached_texts))
            parsed = parse_embedding_response(payload, expected=len(uncached_texts))

            for idx, text, embedding in zip(indices, uncached_texts, parsed):
                vector = l2_normalize(embedding.pooled())
                if self.use_cache and vector:
                    self.cache.set(text, self.model, vector)
                results[idx] = vector

            logger.debug(f"[EMBEDDINGS] Embedded {len(uncached_texts)} texts with {self.model}")

        return results  # type: ignore


class HTTPEmbeddingClient(BaseEmbeddingClient):
    """OpenAI-compatible embedding endpoint reached with plain HTTP."""

    DEFAULT_URL = "https://api.openai.com/v1/embeddings"
    DEFAULT_MODEL = "text-embedding-3-small"

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        url: Optional[str] = None,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model or self.DEFAULT_MODEL, api_key, **kwargs)
        self.url = url or self.default_url()
        self.timeout = timeout

    def default_url(self) -> str:
        return self.DEFAULT_URL

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(self, texts: List[str]) -> Dict[str, Any]:
        return {"model": self.model, "input": texts}

    def _post(self, texts: List[str]) -> Any:
        response = requests.post(
            self.url,
            headers=self._headers(),
            json=self._payload(texts),
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            raise EmbeddingAPIError(response.status_code, _error_message(response))
        try:
            return response.json()
        except ValueError:
            raise EmbeddingAPIError(response.status_code, "Embedding response is not valid JSON")

    def _embed_batch(self, texts: List[str]) -> Any:
        try:
            return self._retrying()(self._post, texts)
        except requests.RequestException as e:
            raise EmbeddingAPIError(None, f"Embedding request failed: {e}") from e


class HuggingFaceEmbedding(HTTPEmbeddingClient):
    """
    Hugging Face feature-extraction endpoint.

    Sentence-transformer models answer with one vector per input; raw
    transformer models answer with token matrices, which are mean-pooled.

    Example:
        >>> embedder = HuggingFaceEmbedding("sentence-transformers/all-MiniLM-L6-v2", api_key="hf_...")
        >>> embedder.embed(["Late submissions lose 10% per day."])
    """

    DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
    URL_TEMPLATE = "https://router.huggingface.co/hf-inference/models/{model}/pipeline/feature-extraction"

    def default_url(self) -> str:
        return self.URL_TEMPLATE.format(model=self.model)

    def _payload(self, texts: List[str]) -> Dict[str, Any]:
        return {"inputs": texts, "options": {"wait_for_model": True}}


class OllamaEmbedding(HTTPEmbeddingClient):
    """Local Ollama server; no credential needed."""

    requires_api_key = False
    DEFAULT_URL = "http://localhost:11434/api/embed"
    DEFAULT_MODEL = "nomic-embed-text"


class OpenAIEmbedding(BaseEmbeddingClient):
    """OpenAI embeddings through the official SDK."""

    DEFAULT_MODEL = "text-embedding-3-small"

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        url: Optional[str] = None,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model or self.DEFAULT_MODEL, api_key, **kwargs)
        # Retries are handled by tenacity, not the SDK
        self.client = OpenAI(api_key=self.api_key, base_url=url, timeout=timeout, max_retries=0)

    def _embed_batch(self, texts: List[str]) -> Any:
        try:
            response = self._retrying()(self.client.embeddings.create, model=self.model, input=texts)
        except APIStatusError as e:
            raise EmbeddingAPIError(e.status_code, e.message) from e
        except APIConnectionError as e:
            raise EmbeddingAPIError(None, str(e)) from e

        data = sorted(response.data, key=lambda x: x.index)
        return [item.embedding for item in data]


# ============ Client Factory ============

PROVIDERS = {
    "openai": OpenAIEmbedding,
    "http": HTTPEmbeddingClient,
    "huggingface": HuggingFaceEmbedding,
    "ollama": OllamaEmbedding,
}


def create_embedding_client(
    provider: str = "openai",
    model: Optional[str] = None,
    **kwargs,
) -> BaseEmbeddingClient:
    """
    Factory function to create embedding clients.

    Args:
        provider: 'openai', 'http', 'huggingface' or 'ollama'
        model: Model name (uses provider default if not specified)
        **kwargs: api_key, url, timeout, max_retries, use_cache

    Example:
        >>> embedder = create_embedding_client("huggingface", api_key="hf_...")
        >>> embedder = create_embedding_client("ollama", "nomic-embed-text")
    """
    provider = provider.lower()
    aliases = {"hf": "huggingface", "openai-compatible": "http", "local": "ollama"}
    provider = aliases.get(provider, provider)

    if provider not in PROVIDERS:
        raise ConfigError(
            f"Unknown embedding provider: {provider}",
            detail=f"Supported: {', '.join(sorted(PROVIDERS))}",
        )
    return PROVIDERS[provider](model, **kwargs)
