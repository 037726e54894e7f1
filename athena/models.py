"""Data models for the Athena RAG core."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse


def content_hash(text: str) -> str:
    """Fingerprint of a document's exact raw text.

    Used only to decide whether a file needs re-indexing; a collision would
    serve stale chunks for that file and is accepted as such.
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def file_identity_for(file_name: str, url: Optional[str] = None) -> str:
    """Derive a stable file identity from the source URL, or the name for uploads."""
    if url:
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https", "file") and (parsed.netloc or parsed.path):
            return url.split("#", 1)[0]
    return f"local-file://{file_name}"


@dataclass
class Document:
    """Plain text of one source file, as produced by the text extractor."""
    file_name: str
    raw_text: str
    file_identity: Optional[str] = None

    def __post_init__(self):
        if self.file_identity is None:
            self.file_identity = file_identity_for(self.file_name)

    @classmethod
    def from_source(cls, file_name: str, raw_text: str, url: Optional[str] = None) -> "Document":
        return cls(file_name=file_name, raw_text=raw_text, file_identity=file_identity_for(file_name, url))

    @property
    def content_hash(self) -> str:
        return content_hash(self.raw_text)


@dataclass
class Chunk:
    """A bounded slice of a document's normalized text and its embedding."""
    id: str
    text: str
    embedding: List[float] = field(default_factory=list)

    @staticmethod
    def make_id(file_identity: str, index: int) -> str:
        return f"{file_identity}::{index}"


@dataclass
class FileEntry:
    """Indexed state of one file.

    Rebuilt wholesale when its hash changes, or when it was embedded by
    another model or at another dimension than the current embedder's.
    """
    file_name: str
    file_identity: str
    content_hash: str
    chunks: List[Chunk] = field(default_factory=list)
    updated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    embedding_model: str = ""
    embedding_dim: int = 0  # 0 when no chunk has a usable vector


@dataclass
class VectorStore:
    """Versioned mapping from file identity to its indexed entry."""
    version: int
    files: Dict[str, FileEntry] = field(default_factory=dict)

    @property
    def chunk_count(self) -> int:
        return sum(len(entry.chunks) for entry in self.files.values())


@dataclass
class Excerpt:
    """A selected chunk, ranked against the query."""
    rank: int
    file_name: str
    file_identity: str
    chunk_id: str
    text: str
    score: float


@dataclass
class RetrievalResult:
    """Outcome of one retrieval pass."""
    context: str
    excerpts: List[Excerpt] = field(default_factory=list)
    fallback: Optional[str] = None  # reason when the context is full text
    stats: Dict[str, Any] = field(default_factory=dict)
