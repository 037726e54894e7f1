#!/usr/bin/env python3
"""
Example 2: Embedding providers and the remote vector store

This example demonstrates:
- Hugging Face feature extraction (token matrices are mean-pooled)
- A local Ollama server (no API key)
- The remote backend, with chunks upserted to an Athena vector store server

Requirements:
    pip install "athena-rag[api]"

    # Optional:
    export HF_TOKEN=hf_...               # For Hugging Face
    ollama pull nomic-embed-text         # For Ollama
    athena serve --port 8000             # For the remote backend
    export ATHENA_REMOTE_URL=http://localhost:8000
"""

import os
from pathlib import Path

from athena import (
    Athena,
    AthenaConfig,
    AthenaError,
    Document,
    RemoteVectorClient,
    create_embedding_client,
)

DOCS = [
    Document("lecture1.txt", "Binary search trees keep keys ordered so lookups take logarithmic time."),
    Document("lecture2.txt", "Dijkstra's algorithm finds shortest paths in graphs with non-negative weights."),
]


def example_providers():
    """Embed the same texts with every provider that is reachable."""
    print("\n" + "=" * 60)
    print("🏭 Embedding Providers")
    print("=" * 60)

    candidates = []
    if os.environ.get("HF_TOKEN"):
        candidates.append(("Hugging Face", "huggingface", {"api_key": os.environ["HF_TOKEN"]}))
    else:
        print("   ⚠️  Hugging Face: No HF_TOKEN set")
    candidates.append(("Ollama", "ollama", {}))

    for name, provider, kwargs in candidates:
        embedder = create_embedding_client(provider, max_retries=1, **kwargs)
        try:
            vectors = embedder.embed([doc.raw_text for doc in DOCS])
        except AthenaError as e:
            print(f"   ⚠️  {name}: {e.message}")
            continue
        print(f"   ✅ {name} ({embedder.model}): {len(vectors)} vectors of {len(vectors[0])} dims")


def example_remote_backend():
    """Index into a running vector store server and query through it."""
    print("\n" + "=" * 60)
    print("🌐 Remote Vector Store")
    print("=" * 60)

    remote_url = os.environ.get("ATHENA_REMOTE_URL")
    if not remote_url:
        print("\n⚠️  Skipping: ATHENA_REMOTE_URL not set")
        return

    client = RemoteVectorClient(remote_url, api_key=os.environ.get("ATHENA_REMOTE_API_KEY"))
    if not client.health():
        print(f"\n❌ No vector store answering at {remote_url}")
        return

    config = AthenaConfig.from_env(
        backend="remote",
        embedding_provider="ollama",
        db_path="example_remote.db",
    )
    athena = Athena(config)

    question = "How do I find the shortest path?"
    print(f"\n🔍 Question: '{question}'")
    try:
        result = athena.retrieve(question, DOCS)
        for excerpt in result.excerpts:
            print(f"   {excerpt.rank}. [{excerpt.score:.3f}] {excerpt.file_name}")
    except AthenaError as e:
        print(f"   ❌ {e.message}: {e.detail}")
    finally:
        athena.close()
        Path("example_remote.db").unlink(missing_ok=True)

    print("\n✅ Remote backend example complete!")


def main():
    print("=" * 60)
    print("Example 2: Providers and Remote Store")
    print("=" * 60)

    example_providers()
    example_remote_backend()

    print("\n" + "=" * 60)
    print("All examples complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
