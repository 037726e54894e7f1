"""Tests for the remote backend and its HTTP client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from athena import Athena, AthenaConfig, Document, LocalVectorStore, RemoteSearchBackend, RemoteVectorClient
from athena.errors import RemoteStoreError, RetrievalError

SYLLABUS_ID = "https://canvas.example.edu/files/42/download"


def _docs():
    return [
        Document.from_source("syllabus.pdf", "Late submissions lose 10% per day.", url=SYLLABUS_ID),
        Document("schedule.txt", "Midterm exam in week 7."),
    ]


@pytest.fixture
def client():
    mock = MagicMock(spec=RemoteVectorClient)
    mock.query.return_value = []
    return mock


@pytest.fixture
def remote_athena(kv, embedder, client):
    backend = RemoteSearchBackend(LocalVectorStore(kv), client)
    config = AthenaConfig(db_path=":memory:", backend="remote", remote_url="http://vectors.test")
    return Athena(config, embedder=embedder, backend=backend)


class TestRemoteSearchBackend:
    """Upserts on change, remote query, manifest filtering."""

    def test_changed_files_are_upserted_once(self, remote_athena, client):
        remote_athena.retrieve("What is the late policy?", _docs())

        assert client.upsert.call_count == 2
        sent = client.upsert.call_args_list[0][0][0]
        assert sent[0]["fileId"] == SYLLABUS_ID
        assert sent[0]["chunkId"] == f"{SYLLABUS_ID}::0"
        assert sent[0]["fileName"] == "syllabus.pdf"
        assert len(sent[0]["embedding"]) == 4096

        client.upsert.reset_mock()
        remote_athena.retrieve("What is the late policy?", _docs())
        client.upsert.assert_not_called()

    def test_query_asks_for_three_times_k(self, remote_athena, client):
        remote_athena.retrieve("What is the late policy?", _docs())

        _, kwargs = client.query.call_args
        assert kwargs["top_k"] == 24

    def test_results_outside_the_manifest_are_dropped(self, remote_athena, client):
        client.query.return_value = [
            {"fileId": "local-file://old.txt", "chunkId": "local-file://old.txt::0", "fileName": "old.txt",
             "text": "Deleted file", "score": 0.99},
            {"fileId": SYLLABUS_ID, "chunkId": f"{SYLLABUS_ID}::7", "fileName": "syllabus.pdf",
             "text": "Chunk from a longer revision", "score": 0.95},
            {"fileId": SYLLABUS_ID, "chunkId": f"{SYLLABUS_ID}::0", "fileName": "syllabus.pdf",
             "text": "Late submissions lose 10% per day.", "score": 0.9},
            {"fileId": "local-file://schedule.txt", "chunkId": "local-file://schedule.txt::0",
             "fileName": "schedule.txt", "text": "Midterm exam in week 7.", "score": 0.1},
        ]

        result = remote_athena.retrieve("What is the late policy?", _docs())

        assert [e.chunk_id for e in result.excerpts] == [f"{SYLLABUS_ID}::0", "local-file://schedule.txt::0"]
        assert result.context.startswith("[Excerpt 1] (Source: syllabus.pdf)\nLate submissions")

    def test_failed_upsert_leaves_manifest_unsaved(self, remote_athena, client, kv):
        client.upsert.side_effect = RemoteStoreError(503, "Service unavailable")

        with pytest.raises(RetrievalError) as exc_info:
            remote_athena.retrieve("What is the late policy?", _docs())

        assert isinstance(exc_info.value.__cause__, RemoteStoreError)
        assert LocalVectorStore(kv).load().files == {}

    def test_stats_name_the_backend(self, remote_athena):
        assert remote_athena.get_stats()["backend"] == "remote"


def _response(status, body):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = body
    response.text = str(body)
    return response


class TestRemoteVectorClient:
    """Requests sent to the vector store server."""

    def test_query_request(self):
        client = RemoteVectorClient("http://vectors.test/", api_key="secret")
        results = [{"chunkId": "a::0", "score": 0.5}]

        with patch("athena.remote.requests.post", return_value=_response(200, {"results": results})) as post:
            assert client.query([0.6, 0.8], top_k=8) == results

        args, kwargs = post.call_args
        assert args[0] == "http://vectors.test/vectors/query"
        assert kwargs["headers"]["x-api-key"] == "secret"
        assert kwargs["json"] == {"embedding": [0.6, 0.8], "topK": 8}

    def test_upsert_request(self):
        client = RemoteVectorClient("http://vectors.test")
        documents = [{"fileId": "f", "fileName": "f.txt", "chunkId": "f::0", "text": "t", "embedding": [1.0]}]

        with patch("athena.remote.requests.post", return_value=_response(200, {"success": True, "upserted": 1})) as post:
            assert client.upsert(documents) == 1

        assert post.call_args[0][0] == "http://vectors.test/vectors/upsert"
        assert "x-api-key" not in post.call_args[1]["headers"]

    def test_empty_upsert_sends_nothing(self):
        client = RemoteVectorClient("http://vectors.test")
        with patch("athena.remote.requests.post") as post:
            assert client.upsert([]) == 0
        post.assert_not_called()

    def test_rejected_key_is_not_retried(self):
        client = RemoteVectorClient("http://vectors.test", api_key="wrong", retry_backoff=0)

        with patch("athena.remote.requests.post", return_value=_response(401, {"error": "Invalid API key"})) as post:
            with pytest.raises(RemoteStoreError) as exc_info:
                client.query([1.0])

        assert exc_info.value.status == 401
        assert exc_info.value.detail == "Invalid API key"
        assert post.call_count == 1

    def test_unreachable_server(self):
        client = RemoteVectorClient("http://vectors.test", max_retries=2, retry_backoff=0)

        with patch("athena.remote.requests.post", side_effect=requests.ConnectionError("refused")) as post:
            with pytest.raises(RemoteStoreError) as exc_info:
                client.query([1.0])

        assert exc_info.value.status is None
        assert post.call_count == 2
