"""End-to-end retrieval through Athena with a deterministic embedder."""

from typing import List

import pytest

from athena import Athena, AthenaConfig, Document, format_excerpts, full_text_context
from athena.errors import ConfigError, EmbeddingAPIError, RetrievalError
from athena.models import Excerpt

from conftest import FakeEmbeddingClient

FILLER = "Students will study graphs and trees in weekly labs. "
LATE_POLICY = "Late submissions lose 10% per day."


def _syllabus() -> Document:
    text = ((FILLER * 48)[:2500] + LATE_POLICY + " " + FILLER * 50)[:5000]
    return Document.from_source("syllabus.pdf", text, url="https://canvas.example.edu/files/42/download")


def _schedule() -> Document:
    return Document("schedule.txt", "Midterm exam in week 7. Final project demos in week 14.")


def _document_batches(embedder: FakeEmbeddingClient, question: str) -> List[List[str]]:
    return [batch for batch in embedder.calls if batch != [question]]


class TestRetrieval:
    """Ranking, fallbacks and context formatting."""

    def test_late_policy_chunk_ranks_first(self, athena):
        result = athena.retrieve("What is the late policy?", [_syllabus(), _schedule()])

        assert result.fallback is None
        top = result.excerpts[0]
        assert top.rank == 1
        assert LATE_POLICY in top.text
        assert top.chunk_id == "https://canvas.example.edu/files/42/download::2"
        assert result.context.startswith("[Excerpt 1] (Source: syllabus.pdf)\n")

    def test_at_most_top_k_excerpts(self, athena):
        result = athena.retrieve("graphs and trees", [_syllabus(), _schedule()])

        assert len(result.excerpts) <= 8
        assert [e.rank for e in result.excerpts] == list(range(1, len(result.excerpts) + 1))
        scores = [e.score for e in result.excerpts]
        assert scores == sorted(scores, reverse=True)

    def test_no_documents_gives_empty_context_without_calls(self, athena, embedder):
        result = athena.retrieve("What is the late policy?", [])

        assert result.context == ""
        assert result.fallback == "no documents"
        assert embedder.calls == []

    def test_unembeddable_text_falls_back_to_full_text(self, athena):
        docs = [Document("notes.txt", "the and for"), Document("more.txt", "with this that")]
        result = athena.retrieve("What is the late policy?", docs)

        assert result.excerpts == []
        assert result.fallback == "no excerpts selected"
        assert result.context == "[Document: notes.txt]\nthe and for\n\n[Document: more.txt]\nwith this that"

    def test_ties_keep_document_order(self, athena):
        docs = [Document(f"doc{i}.txt", "Late submissions lose points.") for i in range(10)]
        result = athena.retrieve("late submissions", docs)

        assert [e.file_name for e in result.excerpts] == [f"doc{i}.txt" for i in range(8)]

    def test_excerpt_format(self):
        excerpts = [
            Excerpt(rank=1, file_name="a.pdf", file_identity="local-file://a.pdf", chunk_id="x::0", text="alpha", score=0.9),
            Excerpt(rank=2, file_name="b.pdf", file_identity="local-file://b.pdf", chunk_id="y::0", text="beta", score=0.5),
        ]
        assert format_excerpts(excerpts) == (
            "[Excerpt 1] (Source: a.pdf)\nalpha\n\n[Excerpt 2] (Source: b.pdf)\nbeta"
        )

    def test_full_text_context_format(self):
        docs = [Document("a.txt", "one"), Document("b.txt", "two")]
        assert full_text_context(docs) == "[Document: a.txt]\none\n\n[Document: b.txt]\ntwo"


class TestIncrementalIndexing:
    """Re-embedding only when a file's content hash changes."""

    def test_unchanged_documents_are_not_re_embedded(self, athena, embedder):
        question = "What is the late policy?"
        docs = [_syllabus(), _schedule()]

        athena.retrieve(question, docs)
        assert len(_document_batches(embedder, question)) == 2

        embedder.calls.clear()
        athena.retrieve(question, docs)
        assert embedder.calls == [[question]]

    def test_index_survives_a_new_instance(self, athena, db_path):
        question = "What is the late policy?"
        docs = [_syllabus(), _schedule()]
        athena.index(docs)

        fresh_embedder = FakeEmbeddingClient()
        fresh = Athena(AthenaConfig(db_path=db_path), embedder=fresh_embedder)
        try:
            result = fresh.retrieve(question, docs)
        finally:
            fresh.close()

        assert fresh_embedder.calls == [[question]]
        assert result.stats["reused"] == 2
        assert LATE_POLICY in result.excerpts[0].text

    def test_new_embedding_dimension_re_embeds_unchanged_files(self, athena, db_path):
        question = "What is the late policy?"
        docs = [_syllabus(), _schedule()]
        athena.index(docs)

        smaller = FakeEmbeddingClient(dim=512)
        fresh = Athena(AthenaConfig(db_path=db_path), embedder=smaller)
        try:
            result = fresh.retrieve(question, docs)
            stored = fresh.backend.load().files["local-file://schedule.txt"]
        finally:
            fresh.close()

        assert len(_document_batches(smaller, question)) == 2
        assert result.stats["indexed"] == 2 and result.stats["reused"] == 0
        assert result.fallback is None
        assert stored.embedding_dim == 512

    def test_new_embedding_model_re_embeds_unchanged_files(self, athena, db_path):
        docs = [_syllabus(), _schedule()]
        athena.index(docs)

        other = FakeEmbeddingClient(model="fake-bow-v2")
        fresh = Athena(AthenaConfig(db_path=db_path), embedder=other)
        try:
            stats = fresh.index(docs)
            stored = fresh.backend.load().files["local-file://schedule.txt"]
        finally:
            fresh.close()

        assert stats["indexed"] == 2 and stats["reused"] == 0
        assert len(other.calls) == 2
        assert stored.embedding_model == "fake-bow-v2"
        assert stored.embedding_dim == 4096

    def test_changed_text_replaces_the_entry(self, athena):
        long_doc = Document("week1.txt", FILLER * 60)
        first = athena.index([long_doc, _schedule()])
        assert first == {"docs": 2, "indexed": 2, "reused": 0, "chunks": 4}

        edited = Document("week1.txt", "Lab 1 is cancelled this week.")
        second = athena.index([edited, _schedule()])
        assert second["indexed"] == 1 and second["reused"] == 1

        entry = athena.backend.load().files["local-file://week1.txt"]
        assert entry.content_hash == edited.content_hash
        assert [c.text for c in entry.chunks] == ["Lab 1 is cancelled this week."]
        assert entry.chunks[0].id == "local-file://week1.txt::0"

    def test_repeated_identity_is_indexed_once(self, athena, embedder):
        docs = [Document("notes.txt", "Office hours on Monday."), Document("notes.txt", "Office hours on Friday.")]
        stats = athena.index(docs)

        assert stats["docs"] == 1
        assert embedder.calls == [["Office hours on Monday."]]

    def test_stats_report_store_contents(self, athena):
        athena.index([_syllabus(), _schedule()])
        stats = athena.get_stats()

        assert stats["backend"] == "local"
        assert stats["files"] == 2
        assert stats["chunks"] == 6
        assert stats["schema_version"] == 1


class FlakyEmbeddingClient(FakeEmbeddingClient):
    """Fails on any batch mentioning a timeout."""

    def _embed_batch(self, texts):
        if any("timeout" in text for text in texts):
            self.calls.append(list(texts))
            raise EmbeddingAPIError(504, "Gateway timeout")
        return super()._embed_batch(texts)


class TestFailures:
    """Embedding failures abort the request and leave the store untouched."""

    def test_failed_embedding_raises_retrieval_error(self, db_path):
        athena = Athena(AthenaConfig(db_path=db_path), embedder=FakeEmbeddingClient(fail=True))
        try:
            with pytest.raises(RetrievalError) as exc_info:
                athena.retrieve("What is the late policy?", [_syllabus()])
            assert isinstance(exc_info.value.__cause__, EmbeddingAPIError)
            assert exc_info.value.__cause__.status == 503
            assert athena.get_stats()["files"] == 0
        finally:
            athena.close()

    def test_caller_can_degrade_to_full_text(self, db_path):
        docs = [_schedule()]
        athena = Athena(AthenaConfig(db_path=db_path), embedder=FakeEmbeddingClient(fail=True))
        try:
            context = athena.build_context_or_full_text("When is the midterm?", docs)
        finally:
            athena.close()

        assert context == full_text_context(docs)

    def test_partial_batch_is_not_persisted(self, db_path):
        docs = [_schedule(), Document("broken.txt", "The server hit a timeout.")]
        athena = Athena(AthenaConfig(db_path=db_path), embedder=FlakyEmbeddingClient())
        try:
            with pytest.raises(RetrievalError):
                athena.retrieve("When is the midterm?", docs)
            assert athena.get_stats()["files"] == 0
        finally:
            athena.close()


class TestConfig:
    """Environment-driven configuration."""

    def test_from_env_reads_athena_variables(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ATHENA_EMBEDDING_PROVIDER", "HuggingFace")
        monkeypatch.setenv("HF_TOKEN", "hf_env")
        monkeypatch.setenv("ATHENA_DB_PATH", str(tmp_path / "course.db"))
        monkeypatch.setenv("ATHENA_COMPRESS", "false")
        monkeypatch.setenv("ATHENA_TOP_K", "5")
        monkeypatch.delenv("ATHENA_API_KEY", raising=False)
        monkeypatch.delenv("ATHENA_BACKEND", raising=False)

        config = AthenaConfig.from_env(top_k=None)

        assert config.embedding_provider == "huggingface"
        assert config.api_key == "hf_env"
        assert config.compress is False
        assert config.top_k == 5

    def test_overrides_win_over_environment(self, monkeypatch):
        monkeypatch.setenv("ATHENA_TOP_K", "5")
        monkeypatch.delenv("ATHENA_BACKEND", raising=False)
        assert AthenaConfig.from_env(top_k=3).top_k == 3

    def test_provider_override_picks_its_key_variable(self, monkeypatch):
        monkeypatch.setenv("HF_TOKEN", "hf_secret")
        for name in ("ATHENA_API_KEY", "ATHENA_EMBEDDING_PROVIDER", "ATHENA_BACKEND", "ATHENA_TOP_K"):
            monkeypatch.delenv(name, raising=False)

        config = AthenaConfig.from_env(embedding_provider="huggingface")

        assert config.embedding_provider == "huggingface"
        assert config.api_key == "hf_secret"

    def test_explicit_key_wins_over_provider_variable(self, monkeypatch):
        monkeypatch.setenv("HF_TOKEN", "hf_secret")
        for name in ("ATHENA_API_KEY", "ATHENA_BACKEND", "ATHENA_TOP_K"):
            monkeypatch.delenv(name, raising=False)

        config = AthenaConfig.from_env(embedding_provider="huggingface", api_key="hf_explicit")
        assert config.api_key == "hf_explicit"

    @pytest.mark.parametrize("kwargs", [
        {"backend": "pinecone"},
        {"backend": "remote"},
        {"top_k": 0},
        {"chunk_size": 100, "chunk_overlap": 100},
        {"chunk_overlap": -1},
        {"chunk_size": 0},
        {"max_chunks_per_file": 0},
    ])
    def test_invalid_settings_raise(self, kwargs, db_path, embedder):
        with pytest.raises(ConfigError):
            Athena(AthenaConfig(db_path=db_path, **kwargs), embedder=embedder)
