"""
Versioned persistence of the vector store.

The whole store is serialized as one JSON blob under a single key:

    {"version": 1, "compressed": true, "data": "<base64 gzip of the store JSON>"}
    {"version": 1, "compressed": false, "data": {...store object...}}

Embeddings inside the store are compacted to base64 little-endian float32
with their element count, which is roughly a quarter of the size of a JSON
float array. Anything unreadable or carrying another schema version loads as
an empty store.
"""

import base64
import binascii
import gzip
import json
import logging
import sqlite3
import zlib
from typing import Any, Dict, List, Sequence

import numpy as np

from .errors import StorageError
from .models import Chunk, FileEntry, VectorStore
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_FLOAT32 = np.dtype("<f4")


def compact_embedding(vector: Sequence[float]) -> Dict[str, Any]:
    """Pack a vector as base64 float32 bytes tagged with its length."""
    arr = np.asarray(vector, dtype=_FLOAT32)
    return {
        "dim": int(arr.size),
        "b64": base64.b64encode(arr.tobytes()).decode("ascii"),
    }


def expand_embedding(record: Any) -> List[float]:
    """Inverse of ``compact_embedding``; malformed records expand to []."""
    if isinstance(record, list):
        # already a plain float array
        try:
            return [float(x) for x in record]
        except (TypeError, ValueError):
            return []
    if not isinstance(record, dict):
        return []
    try:
        raw = base64.b64decode(record.get("b64", ""), validate=True)
        dim = int(record.get("dim", -1))
    except (binascii.Error, TypeError, ValueError):
        return []
    if dim <= 0 or len(raw) != dim * _FLOAT32.itemsize:
        return []
    return np.frombuffer(raw, dtype=_FLOAT32).astype(np.float64).tolist()


def store_to_dict(store: VectorStore) -> Dict[str, Any]:
    """Serialize a store with compacted embeddings."""
    return {
        "version": store.version,
        "files": {
            identity: {
                "fileName": entry.file_name,
                "fileIdentity": entry.file_identity,
                "contentHash": entry.content_hash,
                "updatedAt": entry.updated_at,
                "embeddingModel": entry.embedding_model,
                "embeddingDim": entry.embedding_dim,
                "chunks": [
                    {
                        "id": chunk.id,
                        "text": chunk.text,
                        "embedding": compact_embedding(chunk.embedding),
                    }
                    for chunk in entry.chunks
                ],
            }
            for identity, entry in store.files.items()
        },
    }


def store_from_dict(data: Dict[str, Any]) -> VectorStore:
    """Rebuild a store, expanding embeddings back to float lists."""
    files = {}
    for identity, entry in (data.get("files") or {}).items():
        files[identity] = FileEntry(
            file_name=entry["fileName"],
            file_identity=entry.get("fileIdentity", identity),
            content_hash=entry["contentHash"],
            updated_at=entry.get("updatedAt", ""),
            embedding_model=entry.get("embeddingModel", ""),
            embedding_dim=int(entry.get("embeddingDim") or 0),
            chunks=[
                Chunk(
                    id=chunk["id"],
                    text=chunk["text"],
                    embedding=expand_embedding(chunk.get("embedding")),
                )
                for chunk in entry.get("chunks", [])
            ],
        )
    return VectorStore(version=data["version"], files=files)


def encode_envelope(store: VectorStore, compress: bool = True) -> str:
    """Wrap the serialized store in its versioned envelope."""
    data = store_to_dict(store)
    if compress:
        packed = gzip.compress(json.dumps(data, separators=(",", ":")).encode("utf-8"))
        body: Any = base64.b64encode(packed).decode("ascii")
    else:
        body = data
    return json.dumps({"version": store.version, "compressed": compress, "data": body})


def decode_envelope(blob: str) -> VectorStore:
    """Unwrap an envelope. Raises ``StorageError`` for anything unusable."""
    try:
        envelope = json.loads(blob)
        if not isinstance(envelope, dict) or envelope.get("version") != SCHEMA_VERSION:
            raise StorageError(f"Schema version mismatch (expected {SCHEMA_VERSION})")
        data = envelope.get("data")
        if envelope.get("compressed"):
            data = json.loads(gzip.decompress(base64.b64decode(data)).decode("utf-8"))
        if not isinstance(data, dict) or data.get("version") != SCHEMA_VERSION:
            raise StorageError(f"Schema version mismatch (expected {SCHEMA_VERSION})")
        return store_from_dict(data)
    except StorageError:
        raise
    except (ValueError, TypeError, KeyError, AttributeError, OSError, EOFError, binascii.Error, zlib.error) as e:
        raise StorageError(f"Unreadable vector store blob: {e}") from e


def empty_store() -> VectorStore:
    return VectorStore(version=SCHEMA_VERSION, files={})


class LocalVectorStore:
    """Loads and saves the whole vector store under one key."""

    def __init__(self, kv: KeyValueStore, key: str = "athena:vector-store", compress: bool = True):
        self.kv = kv
        self.key = key
        self.compress = compress

    def load(self) -> VectorStore:
        """Return the persisted store, or an empty one on any problem (cold start)."""
        try:
            blob = self.kv.get(self.key)
        except sqlite3.Error as e:
            logger.warning(f"[VECTOR_STORE] Could not read '{self.key}': {e}; starting empty")
            return empty_store()

        if blob is None:
            return empty_store()

        try:
            store = decode_envelope(blob)
        except StorageError as e:
            logger.info(f"[VECTOR_STORE] Discarding stored vectors: {e.message}")
            return empty_store()

        logger.debug(
            f"[VECTOR_STORE] Loaded {len(store.files)} files, {store.chunk_count} chunks"
        )
        return store

    def save(self, store: VectorStore) -> None:
        """Persist the store. Write failures raise ``StorageError``."""
        try:
            blob = encode_envelope(store, compress=self.compress)
            self.kv.set(self.key, blob)
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise StorageError(f"Could not save vector store under '{self.key}'", detail=str(e)) from e

        logger.info(
            f"[VECTOR_STORE] Saved {len(store.files)} files, {store.chunk_count} chunks "
            f"({len(blob):,} bytes, compressed={self.compress})"
        )
