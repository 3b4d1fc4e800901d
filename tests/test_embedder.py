import json

import httpx
import pytest

from gitflair.core.embedder import Embedder
from gitflair.core.errors import EmbeddingError, EmbeddingQuotaError, EmptyEmbeddingError, is_quota_error


class Recorder:
    def __init__(self, responder):
        self.requests = []
        self.responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.path, body))
        return self.responder(request, body)


def _batch_ok(request, body):
    # Encode each input's text length and position so order can be checked
    return httpx.Response(200, json={
        "embeddings": [{"values": [float(len(r["content"]["parts"][0]["text"])), 1.0]}
                       for r in body["requests"]]
    })


def _make(responder):
    recorder = Recorder(responder)
    client = httpx.Client(transport=httpx.MockTransport(recorder))
    return Embedder(api_key="test-key", http=client, api_url="https://gemini.test/v1beta"), recorder


class TestEmbedDocuments:
    def test_batches_of_one_hundred_in_order(self):
        embedder, recorder = _make(_batch_ok)
        texts = ["x" * (i + 1) for i in range(250)]

        vectors = embedder.embed_documents(texts)

        assert [len(body["requests"]) for _, body in recorder.requests] == [100, 100, 50]
        assert len(vectors) == 250
        assert [v[0] for v in vectors] == [float(i + 1) for i in range(250)]

    def test_uses_document_intent(self):
        embedder, recorder = _make(_batch_ok)
        embedder.embed_documents(["def main(): pass"])

        path, body = recorder.requests[0]
        assert path.endswith("/models/gemini-embedding-001:batchEmbedContents")
        assert body["requests"][0]["taskType"] == "RETRIEVAL_DOCUMENT"
        assert body["requests"][0]["model"] == "models/gemini-embedding-001"

    def test_empty_input_makes_no_call(self):
        embedder, recorder = _make(_batch_ok)
        assert embedder.embed_documents([]) == []
        assert recorder.requests == []

    def test_empty_vector_is_passed_through(self):
        def responder(request, body):
            return httpx.Response(200, json={"embeddings": [{"values": [0.5]}, {}]})

        embedder, _ = _make(responder)
        assert embedder.embed_documents(["a", "b"]) == [[0.5], []]

    def test_size_mismatch_is_an_error(self):
        def responder(request, body):
            return httpx.Response(200, json={"embeddings": [{"values": [0.5]}]})

        embedder, _ = _make(responder)
        with pytest.raises(EmbeddingError):
            embedder.embed_documents(["a", "b"])


class TestEmbedQuery:
    def test_uses_query_intent(self):
        def responder(request, body):
            return httpx.Response(200, json={"embedding": {"values": [0.1, 0.2]}})

        embedder, recorder = _make(responder)
        assert embedder.embed_query("where is auth?") == [0.1, 0.2]

        path, body = recorder.requests[0]
        assert path.endswith(":embedContent")
        assert body["taskType"] == "RETRIEVAL_QUERY"
        assert body["content"]["parts"][0]["text"] == "where is auth?"

    def test_empty_vector_is_an_error(self):
        def responder(request, body):
            return httpx.Response(200, json={"embedding": {"values": []}})

        embedder, _ = _make(responder)
        with pytest.raises(EmptyEmbeddingError):
            embedder.embed_query("anything")


class TestFailures:
    def test_rate_limit_is_classified_and_not_retried(self):
        def responder(request, body):
            return httpx.Response(429, json={"error": {"status": "RESOURCE_EXHAUSTED", "message": "Quota exceeded"}})

        embedder, recorder = _make(responder)
        with pytest.raises(EmbeddingQuotaError) as exc_info:
            embedder.embed_documents(["a"] * 150)

        assert len(recorder.requests) == 1
        assert is_quota_error(exc_info.value)
        assert exc_info.value.hint

    def test_resource_exhausted_without_429(self):
        def responder(request, body):
            return httpx.Response(400, json={"error": {"status": "RESOURCE_EXHAUSTED", "message": "daily limit"}})

        embedder, _ = _make(responder)
        with pytest.raises(EmbeddingQuotaError):
            embedder.embed_query("q")

    def test_server_error_is_not_quota(self):
        def responder(request, body):
            return httpx.Response(500, text="boom")

        embedder, _ = _make(responder)
        with pytest.raises(EmbeddingError) as exc_info:
            embedder.embed_query("q")
        assert not isinstance(exc_info.value, EmbeddingQuotaError)

    def test_transport_error_is_wrapped(self):
        def responder(request, body):
            raise httpx.ConnectError("unreachable", request=request)

        embedder, _ = _make(responder)
        with pytest.raises(EmbeddingError):
            embedder.embed_query("q")

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(RuntimeError):
            Embedder()
