"""HTTP client for the remote vector store (see ``athena.api`` for the server)."""

import logging
from typing import Any, Dict, List, Optional

import requests
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import RemoteStoreError

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, RemoteStoreError) and exc.status is not None:
        return exc.status == 429 or exc.status >= 500
    return False


class RemoteVectorClient:
    """
    Upserts chunk vectors to, and queries, a remote vector store.

    Upserts are idempotent on ``(fileId, chunkId)``; querying runs on the
    server's own nearest-neighbour index.

    Example:
        >>> client = RemoteVectorClient("http://localhost:8000", api_key="secret")
        >>> client.upsert([{"fileId": "...", "fileName": "syllabus.pdf",
        ...                 "chunkId": "...::0", "text": "...", "embedding": [...]}])
        >>> client.query(query_vector, top_k=8)
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = 60.0,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_backoff = retry_backoff

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _post_once(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.post(
            f"{self.base_url}{path}",
            headers=self._headers(),
            json=payload,
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            try:
                message = response.json().get("error") or response.text
            except (ValueError, AttributeError):
                message = response.text
            raise RemoteStoreError(response.status_code, str(message))
        try:
            return response.json()
        except ValueError:
            raise RemoteStoreError(response.status_code, "Response is not valid JSON")

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        try:
            return retrying(self._post_once, path, payload)
        except requests.RequestException as e:
            raise RemoteStoreError(None, f"Request to {path} failed: {e}") from e

    def upsert(self, documents: List[Dict[str, Any]]) -> int:
        """Upsert chunk documents. Returns how many were sent."""
        if not documents:
            return 0
        self._post("/vectors/upsert", {"documents": documents})
        logger.info(f"[REMOTE] Upserted {len(documents)} chunks")
        return len(documents)

    def query(self, embedding: List[float], top_k: int = 8) -> List[Dict[str, Any]]:
        """Nearest chunks for a query vector, best first."""
        body = self._post("/vectors/query", {"embedding": embedding, "topK": top_k})
        results = body.get("results") if isinstance(body, dict) else None
        return list(results or [])

    def health(self) -> bool:
        try:
            response = requests.get(f"{self.base_url}/health", headers=self._headers(), timeout=self.timeout)
        except requests.RequestException:
            return False
        return response.status_code == 200
