"""Configuration models for the Athena RAG core."""

import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError


# Environment variable holding the credential, per embedding provider
PROVIDER_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "http": "OPENAI_API_KEY",
    "huggingface": "HF_TOKEN",
    "ollama": None,
}


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AthenaConfig:
    """Configuration for the Athena RAG core."""

    # Embedding settings
    embedding_provider: str = "openai"  # 'openai', 'http', 'huggingface', 'ollama'
    embedding_model: Optional[str] = None  # provider default if None
    embedding_url: Optional[str] = None  # provider default if None
    api_key: Optional[str] = None

    # Chunking settings (characters, over whitespace-normalized text)
    chunk_size: int = 1200
    chunk_overlap: int = 150
    max_chunks_per_file: int = 80

    # Retrieval settings
    top_k: int = 8
    max_documents: int = 10

    # Local persistence
    db_path: str = "athena.db"
    store_key: str = "athena:vector-store"
    compress: bool = True

    # Backend: 'local' (SQLite blob) or 'remote' (HTTP vector store)
    backend: str = "local"
    remote_url: Optional[str] = None
    remote_api_key: Optional[str] = None

    # HTTP behaviour
    request_timeout: float = 60.0
    max_retries: int = 3

    @classmethod
    def from_env(cls, **overrides) -> "AthenaConfig":
        """Build a config from ATHENA_* environment variables.

        Explicit keyword overrides win over the environment.
        """
        values = {
            "embedding_provider": os.environ.get("ATHENA_EMBEDDING_PROVIDER", cls.embedding_provider),
            "embedding_model": os.environ.get("ATHENA_EMBEDDING_MODEL"),
            "embedding_url": os.environ.get("ATHENA_EMBEDDING_URL"),
            "api_key": os.environ.get("ATHENA_API_KEY") or None,
            "db_path": os.environ.get("ATHENA_DB_PATH", cls.db_path),
            "compress": _env_flag("ATHENA_COMPRESS", cls.compress),
            "backend": os.environ.get("ATHENA_BACKEND", cls.backend).lower(),
            "remote_url": os.environ.get("ATHENA_REMOTE_URL"),
            "remote_api_key": os.environ.get("ATHENA_REMOTE_API_KEY"),
        }

        top_k = os.environ.get("ATHENA_TOP_K")
        if top_k:
            try:
                values["top_k"] = int(top_k)
            except ValueError:
                raise ConfigError(f"ATHENA_TOP_K must be an integer, got {top_k!r}")

        values.update({k: v for k, v in overrides.items() if v is not None})
        values["embedding_provider"] = values["embedding_provider"].lower()

        # Provider key variable follows the provider actually chosen
        if not values["api_key"]:
            key_env = PROVIDER_KEY_ENV.get(values["embedding_provider"])
            values["api_key"] = os.environ.get(key_env) if key_env else None

        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        """Reject settings the pipeline cannot run with."""
        if self.backend not in ("local", "remote"):
            raise ConfigError(
                f"Unknown backend: {self.backend}",
                detail="Supported: 'local', 'remote'",
            )
        if self.backend == "remote" and not self.remote_url:
            raise ConfigError(
                "Remote backend requires a vector store URL",
                detail="Set ATHENA_REMOTE_URL or pass remote_url.",
            )
        if self.top_k < 1:
            raise ConfigError(f"top_k must be positive, got {self.top_k}")
        if self.chunk_size <= 0 or self.max_chunks_per_file <= 0:
            raise ConfigError(
                f"chunk_size ({self.chunk_size}) and max_chunks_per_file "
                f"({self.max_chunks_per_file}) must be positive"
            )
        if self.chunk_overlap < 0:
            raise ConfigError(f"chunk_overlap must not be negative, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
