"""
Tests for the embedding and completion HTTP clients.

Requests are served by httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest
from pydantic import SecretStr

from semse.config import settings
from semse.core.errors import CompletionError, ConfigurationError, EmbeddingError
from semse.embeddings.embedder import Embedder, compose_document_text
from semse.llm.client import CompletionClient


def transport_returning(payload=None, status_code=200, seen=None, text=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if text is not None:
            return httpx.Response(status_code, text=text)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


def embedding_payload(*vectors):
    return {"data": [{"index": i, "embedding": v} for i, v in enumerate(vectors)]}


def make_embedder(transport, dimensions=3):
    return Embedder(
        api_key="sk-test",
        model="text-embedding-3-small",
        dimensions=dimensions,
        base_url="https://api.example.test/v1/",
        transport=transport,
    )


class TestEmbedder:

    @pytest.mark.asyncio
    async def test_embed_one_sends_expected_request(self):
        seen = []
        embedder = make_embedder(transport_returning(embedding_payload([1, 0.5, 0.25]), seen=seen))

        vector = await embedder.embed_one("<h1>T</h1>\nB")

        assert vector == [1.0, 0.5, 0.25]
        request = seen[0]
        assert str(request.url) == "https://api.example.test/v1/embeddings"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body == {
            "model": "text-embedding-3-small",
            "input": ["<h1>T</h1>\nB"],
            "encoding_format": "float",
            "dimensions": 3,
        }

    @pytest.mark.asyncio
    async def test_http_error_raises_embedding_error(self):
        embedder = make_embedder(transport_returning({"error": "rate limit"}, status_code=429))

        with pytest.raises(EmbeddingError):
            await embedder.embed_one("text")

    @pytest.mark.asyncio
    async def test_non_json_response(self):
        embedder = make_embedder(transport_returning(text="<html>oops</html>"))

        with pytest.raises(EmbeddingError):
            await embedder.embed_one("text")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"object": "list"},
            {"data": "nope"},
            {"data": [{"index": 0}]},
            {"data": [{"index": 0, "embedding": ["a", "b", "c"]}]},
            embedding_payload([0.1, 0.2]),
            embedding_payload([0.1, 0.2, 0.3], [0.1, 0.2, 0.3]),
        ],
    )
    async def test_malformed_payloads(self, payload):
        embedder = make_embedder(transport_returning(payload))

        with pytest.raises(EmbeddingError):
            await embedder.embed_one("text")

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self):
        seen = []
        embedder = make_embedder(transport_returning(embedding_payload(), seen=seen))

        assert await embedder.embed([]) == []
        assert seen == []

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(settings, "openai_api_key", SecretStr(""))
        with pytest.raises(ConfigurationError):
            Embedder()

    def test_compose_document_text(self):
        assert compose_document_text("Title", "Body") == "<h1>Title</h1>\nBody"


class TestCompletionClient:

    @pytest.mark.asyncio
    async def test_returns_message_content(self):
        seen = []
        payload = {"choices": [{"message": {"role": "assistant", "content": '{"title": "T"}'}}]}
        client = CompletionClient(
            api_key="sk-test",
            model="gpt-3.5-turbo-0125",
            base_url="https://api.example.test/v1",
            transport=transport_returning(payload, seen=seen),
        )

        content = await client.complete("Parse this")

        assert content == '{"title": "T"}'
        body = json.loads(seen[0].content)
        assert str(seen[0].url) == "https://api.example.test/v1/chat/completions"
        assert body["messages"] == [{"role": "user", "content": "Parse this"}]
        assert "temperature" not in body

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [{"choices": []}, {"choices": [{"message": {"content": None}}]}, {"error": "x"}],
    )
    async def test_malformed_response(self, payload):
        client = CompletionClient(api_key="sk-test", transport=transport_returning(payload))

        with pytest.raises(CompletionError):
            await client.complete("Parse this")

    @pytest.mark.asyncio
    async def test_server_error(self):
        client = CompletionClient(
            api_key="sk-test",
            transport=transport_returning({"error": "boom"}, status_code=500),
        )

        with pytest.raises(CompletionError):
            await client.complete("Parse this")
