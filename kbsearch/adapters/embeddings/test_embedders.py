"""Tests for embedding providers."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import httpx
import numpy as np
import pytest
from tenacity import wait_none

from kbsearch.adapters.ollama import OllamaEmbedder
from kbsearch.config.errors import EmbeddingError
from kbsearch.config.settings import Settings

from .factory import create_embedder
from .local import SentenceTransformerEmbedder


# --- SentenceTransformerEmbedder Tests ---


@pytest.fixture
def mock_model() -> MagicMock:
    """Create a mock sentence transformer."""
    mock = MagicMock()
    mock.encode.return_value = np.array([[0.1, 0.2, 0.3]], dtype="float32")
    return mock


async def test_local_embed(mock_model: MagicMock) -> None:
    """Test a single text is encoded as a normalized vector."""
    with patch(
        "kbsearch.adapters.embeddings.local.SentenceTransformer",
        return_value=mock_model,
    ) as factory:
        embedder = SentenceTransformerEmbedder("all-MiniLM-L6-v2")
        vector = await embedder.embed("oauth")
        await embedder.embed("again")

    assert vector.tolist() == pytest.approx([0.1, 0.2, 0.3])
    factory.assert_called_once_with("all-MiniLM-L6-v2")
    assert mock_model.encode.call_args.kwargs["normalize_embeddings"] is True


async def test_local_embed_failure(mock_model: MagicMock) -> None:
    """Test encoder errors become EmbeddingError."""
    mock_model.encode.side_effect = RuntimeError("CUDA out of memory")
    with patch(
        "kbsearch.adapters.embeddings.local.SentenceTransformer",
        return_value=mock_model,
    ):
        embedder = SentenceTransformerEmbedder()
        with pytest.raises(EmbeddingError):
            await embedder.embed("oauth")


async def test_local_model_load_failure() -> None:
    """Test model load errors become EmbeddingError."""
    with patch(
        "kbsearch.adapters.embeddings.local.SentenceTransformer",
        side_effect=OSError("model not found"),
    ):
        with pytest.raises(EmbeddingError):
            await SentenceTransformerEmbedder("missing").embed("oauth")


# --- OllamaEmbedder Tests ---


def ollama_with(handler) -> OllamaEmbedder:
    embedder = OllamaEmbedder(model="nomic-embed-text")
    embedder._client = httpx.AsyncClient(
        base_url="http://ollama.test",
        transport=httpx.MockTransport(handler),
    )
    return embedder


async def test_ollama_embed() -> None:
    """Test the embed endpoint payload and response parsing."""
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"embeddings": [[0.5, 0.5]]})

    embedder = ollama_with(handler)
    vector = await embedder.embed("oauth")
    await embedder.close()

    assert vector.tolist() == [0.5, 0.5]
    assert seen == [{"model": "nomic-embed-text", "input": ["oauth"]}]


async def test_ollama_http_error() -> None:
    """Test non-2xx responses become EmbeddingError."""
    embedder = ollama_with(lambda request: httpx.Response(500, json={"error": "boom"}))
    with pytest.raises(EmbeddingError):
        await embedder.embed("oauth")


async def test_ollama_empty_response() -> None:
    """Test a response without embeddings is rejected."""
    embedder = ollama_with(lambda request: httpx.Response(200, json={}))
    with pytest.raises(EmbeddingError):
        await embedder.embed("oauth")


async def test_ollama_retries_transport_errors() -> None:
    """Test connection failures are retried before giving up."""
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("connection refused", request=request)

    embedder = ollama_with(handler)
    with patch.object(OllamaEmbedder._post_embed.retry, "wait", wait_none()):
        with pytest.raises(EmbeddingError):
            await embedder.embed("oauth")

    assert calls == 3


# --- Factory Tests ---


def test_create_embedder_local() -> None:
    """Test the default provider is sentence-transformers."""
    embedder = create_embedder(Settings(embedding_provider="sentence_transformers"))
    assert isinstance(embedder, SentenceTransformerEmbedder)


def test_create_embedder_ollama() -> None:
    """Test the ollama provider."""
    embedder = create_embedder(
        Settings(embedding_provider="ollama", ollama_embedding_model="mxbai-embed-large")
    )
    assert isinstance(embedder, OllamaEmbedder)
    assert embedder.model == "mxbai-embed-large"


def test_create_embedder_unknown() -> None:
    """Test unknown providers are rejected."""
    with pytest.raises(ValueError):
        create_embedder(Settings(embedding_provider="magic"))
