"""
Exception classes for the Athena RAG core.

Indexing and embedding failures abort the current request; the caller decides
whether to degrade to full-text context. Degrading inside the retriever (no
excerpts selected) is not an exception: it is logged and reported on the
``RetrievalResult``.
"""

from typing import Optional


class AthenaError(Exception):
    """Base exception for all Athena errors."""
    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ConfigError(AthenaError):
    """Raised when a credential or required setting is missing."""


class EmbeddingAPIError(AthenaError):
    """Raised when the remote embedding call fails."""
    def __init__(self, status: Optional[int], message: str):
        self.status = status
        super().__init__(
            message=f"Embedding API error ({status}): {message}",
            detail=message,
        )


class StorageError(AthenaError):
    """Raised when the persisted vector store cannot be written.

    Read failures never surface: the loader treats them as a cold start.
    """


class RemoteStoreError(AthenaError):
    """Raised when the remote vector store rejects or fails a request."""
    def __init__(self, status: Optional[int], message: str):
        self.status = status
        super().__init__(
            message=f"Remote vector store error ({status}): {message}",
            detail=message,
        )


class RetrievalError(AthenaError):
    """Raised when building the context fails; chained from the cause."""
