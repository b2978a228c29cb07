"""Tests for the HTTP routes."""
import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from quart.datastructures import FileStorage

import aionus.main as main
from aionus.errors import ConfigurationError, UpstreamError
from aionus.rag.chunker import TextChunker
from aionus.rag.ingest import DocumentProcessor
from aionus.rag.retriever import Retriever
from aionus.rag.store import ChunkStore

BROCHURE = (
    "Sea Breeze Towers offers two and three bedroom homes.\n\n"
    "Every flat has covered parking and a private balcony.\n\n"
    "Possession is planned for March, with a 10% booking amount."
)


@pytest.fixture
def client():
    """Quart test client."""
    return main.app.test_client()


@pytest.fixture
def wired(monkeypatch, faiss_store, fake_gateway, vector):
    """Route the app's singletons to an in-memory store and fake gateway."""
    gateway = fake_gateway(vectors={"parking": vector(1)}, default=vector(1, 0.5))
    retriever = Retriever(gateway=gateway, store=faiss_store)
    processor = DocumentProcessor(
        gateway=gateway,
        store=faiss_store,
        chunker=TextChunker(chunk_size=80, chunk_overlap=0, strategy="paragraph"),
    )
    monkeypatch.setattr(main, "get_retriever", lambda: retriever)
    monkeypatch.setattr(main, "get_processor", lambda: processor)
    monkeypatch.setattr(main, "get_chunk_store", lambda: faiss_store)
    return faiss_store


@pytest.mark.asyncio
async def test_rag_requires_query(client, wired):
    """Test that a missing query is a client error."""
    response = await client.get("/api/rag")

    assert response.status_code == 400
    assert (await response.get_json())["context"] == ""


@pytest.mark.asyncio
async def test_rag_rejects_bad_top_k(client, wired):
    """Test top_k validation."""
    response = await client.get("/api/rag", query_string={"query": "parking", "top_k": "many"})
    assert response.status_code == 400

    response = await client.get("/api/rag", query_string={"query": "parking", "top_k": "0"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_process_then_retrieve(client, wired):
    """Test uploading a raw text body and querying it back."""
    response = await client.post(
        "/api/documents/doc-1/process?document_type=brochure",
        data=BROCHURE.encode(),
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 200
    body = await response.get_json()
    assert body["success"] is True
    assert body["total_chunks"] == 3
    assert body["chunks_created"] == 3

    response = await client.get("/api/rag", query_string={"query": "parking", "top_k": "3"})

    assert response.status_code == 200
    body = await response.get_json()
    assert body["source"] == "vector_search"
    assert body["chunks"] == 3
    assert "\n\n---\n\n" in body["context"]


@pytest.mark.asyncio
async def test_process_multipart_upload(client, wired):
    """Test the form upload path with a document_type field."""
    upload = FileStorage(
        stream=io.BytesIO(BROCHURE.encode()),
        filename="faq.md",
        content_type="text/markdown",
    )

    response = await client.post(
        "/api/documents/doc-2/process",
        files={"file": upload},
        form={"document_type": "faq"},
    )

    assert response.status_code == 200
    record = next(iter(wired.records.values()))
    assert record["document_type"] == "faq"


@pytest.mark.asyncio
async def test_process_rejects_invalid_document_type(client, wired):
    """Test document_type validation."""
    response = await client.post(
        "/api/documents/doc-1/process?document_type=flyer",
        data=BROCHURE.encode(),
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_process_rejects_empty_body(client, wired):
    """Test that an empty upload is a client error."""
    response = await client.post(
        "/api/documents/doc-1/process",
        data=b"",
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_process_unsupported_type_is_unprocessable(client, wired):
    """Test that pipeline failures map to 422 with the error message."""
    response = await client.post(
        "/api/documents/doc-1/process",
        data=b"GIF89a....",
        headers={"Content-Type": "image/gif"},
    )

    assert response.status_code == 422
    body = await response.get_json()
    assert body["success"] is False
    assert "Unsupported file type" in body["error"]


@pytest.mark.asyncio
async def test_insert_embedding(client, wired, vector):
    """Test single chunk insertion."""
    response = await client.post(
        "/api/embeddings",
        json={
            "document_id": "doc-3",
            "chunk_index": 0,
            "content": "Maintenance is 3 per sq ft.",
            "embedding": vector(0, 1),
            "document_type": "pricing",
        },
    )

    assert response.status_code == 201
    row_id = (await response.get_json())["id"]
    assert any(r["id"] == row_id for r in wired.records.values())


@pytest.mark.asyncio
async def test_insert_embedding_validation(client, wired):
    """Test missing fields and wrong dimensions."""
    response = await client.post("/api/embeddings", json={"content": "x"})
    assert response.status_code == 400

    response = await client.post(
        "/api/embeddings",
        json={"document_id": "d", "content": "x", "embedding": [0.1, 0.2]},
    )
    assert response.status_code == 400
    assert "dimension" in (await response.get_json())["error"]


@pytest.mark.asyncio
async def test_insert_embedding_store_not_configured(client, monkeypatch, vector):
    """Test that a missing store configuration is a 503."""
    store = MagicMock(spec=ChunkStore)
    store.insert_embedding = AsyncMock(side_effect=ConfigurationError("no url"))
    monkeypatch.setattr(main, "get_chunk_store", lambda: store)

    response = await client.post(
        "/api/embeddings",
        json={"document_id": "d", "content": "x", "embedding": vector(1)},
    )

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_health_endpoints(client, monkeypatch):
    """Test liveness and readiness reporting."""
    response = await client.get("/health/live")
    assert response.status_code == 200

    response = await client.get("/health/ready")
    assert response.status_code == 200
    assert (await response.get_json())["status"] == "healthy"

    from aionus import config

    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    response = await client.get("/health/ready")
    assert response.status_code == 503
    assert (await response.get_json())["status"] == "degraded"


@pytest.mark.asyncio
async def test_delete_document_chunks(client, wired):
    """Test that a document's chunks can be removed and the count reported."""
    await client.post(
        "/api/documents/doc-1/process",
        data=BROCHURE.encode(),
        headers={"Content-Type": "text/plain"},
    )

    response = await client.delete("/api/documents/doc-1/chunks")

    assert response.status_code == 200
    assert await response.get_json() == {"document_id": "doc-1", "deleted": 3}
    assert wired.records == {}

    response = await client.delete("/api/documents/doc-1/chunks")
    assert (await response.get_json())["deleted"] == 0


@pytest.mark.asyncio
async def test_delete_document_chunks_store_errors(client, monkeypatch):
    """Test that store failures map to 503 and 502."""
    store = MagicMock(spec=ChunkStore)
    monkeypatch.setattr(main, "get_chunk_store", lambda: store)

    store.delete_document = AsyncMock(side_effect=ConfigurationError("no url"))
    response = await client.delete("/api/documents/doc-1/chunks")
    assert response.status_code == 503

    store.delete_document = AsyncMock(side_effect=UpstreamError("down", status_code=500))
    response = await client.delete("/api/documents/doc-1/chunks")
    assert response.status_code == 502


@pytest.mark.asyncio
async def test_rag_with_unloadable_store_still_answers(client, stale_index, monkeypatch, fake_gateway):
    """Test that a store that cannot be loaded gives an empty context, not a 500."""
    from aionus.rag import embeddings

    monkeypatch.setattr(embeddings, "_gateway_instance", fake_gateway())

    response = await client.get("/api/rag", query_string={"query": "parking"})

    assert response.status_code == 200
    assert await response.get_json() == {"context": "", "chunks": 0, "source": "fallback"}
