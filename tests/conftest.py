"""Pytest configuration and shared fakes for the RAG tests."""
import asyncio
import json
import math
from pathlib import Path

import pytest

from aionus import config
from aionus.errors import UpstreamError
from aionus.rag import embeddings as embeddings_module
from aionus.rag import retriever as retriever_module
from aionus.rag import store as store_module
from aionus.rag.models import EmbeddingResult
from aionus.rag.store_faiss import FAISSChunkStore

# Small vectors keep FAISS fixtures readable
TEST_DIMENSION = 8


def unit(*weights):
    """Build a TEST_DIMENSION vector from leading weights, e.g. unit(1, 1)."""
    vector = [float(w) for w in weights] + [0.0] * (TEST_DIMENSION - len(weights))
    norm = math.sqrt(sum(v * v for v in vector))
    return [v / norm for v in vector]


class FakeGeminiClient:
    """Stands in for GeminiClient; counts calls and replays scripted outcomes."""

    def __init__(self, responses=None, configured=True, fail_on=(), delay=0.0):
        self.configured = configured
        self.responses = list(responses or [])
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def embed_content(self, text, model=None, dimension=None):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if text in self.fail_on:
                raise UpstreamError("Embedding API returned HTTP 400", status_code=400)
            if self.responses:
                outcome = self.responses.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
            # Deterministic per-text vector so tests can check ordering
            return [float(len(text))] * (dimension or TEST_DIMENSION)
        finally:
            self.active -= 1


class FakeGateway:
    """Stands in for EmbeddingGateway with a fixed text-to-vector mapping."""

    def __init__(self, vectors=None, default=None, error=None, fail_indexes=()):
        self.vectors = vectors or {}
        self.default = default or unit(1)
        self.error = error
        self.fail_indexes = set(fail_indexes)
        self.calls = []

    async def embed(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return list(self.vectors.get(text, self.default))

    async def embed_result(self, text):
        try:
            return EmbeddingResult(vector=await self.embed(text))
        except Exception as e:
            return EmbeddingResult(error=e)

    async def embed_batch(self, texts):
        results = []
        for index, text in enumerate(texts):
            if index in self.fail_indexes:
                results.append(
                    EmbeddingResult(error=UpstreamError("Embedding API returned HTTP 400", status_code=400))
                )
            else:
                results.append(EmbeddingResult(vector=await self.embed(text)))
        return results


@pytest.fixture(autouse=True)
def test_config(monkeypatch, tmp_path):
    """Point config at test values and reset module singletons."""
    monkeypatch.setattr(config, "GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(config, "GEMINI_BASE_URL", "https://gemini.test")
    monkeypatch.setattr(config, "EMBEDDING_DIMENSION", TEST_DIMENSION)
    monkeypatch.setattr(config, "SUPABASE_URL", "")
    monkeypatch.setattr(config, "SUPABASE_SERVICE_ROLE_KEY", "")
    monkeypatch.setattr(config, "VECTOR_STORE", "faiss")
    monkeypatch.setattr(config, "DATA_DIR", tmp_path / "data")
    monkeypatch.setattr(config, "RETRY_INITIAL_WAIT", 0.0)
    monkeypatch.setattr(config, "RETRY_MAX_WAIT", 0.0)

    monkeypatch.setattr(store_module, "_store_instance", None)
    monkeypatch.setattr(embeddings_module, "_gateway_instance", None)
    monkeypatch.setattr(retriever_module, "_retriever_instance", None)
    yield


@pytest.fixture
def faiss_store(tmp_path):
    """Empty in-memory FAISS store."""
    return FAISSChunkStore(index_dir=tmp_path / "index", dimension=TEST_DIMENSION)


@pytest.fixture
def fake_gateway():
    """Factory for FakeGateway instances."""
    return FakeGateway


@pytest.fixture
def fake_client():
    """Factory for FakeGeminiClient instances."""
    return FakeGeminiClient


@pytest.fixture
def vector():
    """The unit() helper, for tests that build their own embeddings."""
    return unit


@pytest.fixture
def stale_index():
    """Persisted FAISS files in DATA_DIR built for a different dimension."""
    data_dir = Path(config.DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "chunks.index").write_bytes(b"\x00")
    (data_dir / "chunks.json").write_text(
        json.dumps({"embedding_dimension": 768, "next_id": 0, "records": {}})
    )
    return data_dir
