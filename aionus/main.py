"""Quart application exposing the RAG core over HTTP.

Routes:
- GET  /api/rag                               context retrieval for the chat layer
- POST /api/documents/<document_id>/process   ingestion of an uploaded document
- POST /api/embeddings                        single chunk insertion for corpus upkeep
- GET  /health/live, /health/ready
"""
import asyncio
import logging
from typing import Optional

import structlog
from quart import Quart, jsonify, request

from aionus import config
from aionus.errors import ConfigurationError, UpstreamError
from aionus.rag.ingest import DocumentProcessor
from aionus.rag.models import DocumentType
from aionus.rag.retriever import get_retriever
from aionus.rag.store import get_chunk_store


def configure_logging(level: Optional[str] = None) -> None:
    """Configure structured JSON logging for the app and scripts."""
    level = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(format="%(message)s", level=level, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


configure_logging()

logger = structlog.get_logger()

# Initialize Quart app
app = Quart(__name__)
app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES

_processor: Optional[DocumentProcessor] = None


def get_processor() -> DocumentProcessor:
    """Get or create the shared document processor."""
    global _processor
    if _processor is None:
        _processor = DocumentProcessor()
    return _processor


def _parse_document_type(value: Optional[str]) -> Optional[DocumentType]:
    try:
        return DocumentType(value or DocumentType.BROCHURE.value)
    except ValueError:
        return None


@app.route("/api/rag", methods=["GET"])
async def rag_context():
    """Retrieve document context for a query.

    Query params:
        query: the search query (required)
        top_k: maximum chunks to return (optional)
        document_id: restrict the search to one document (optional)

    Returns JSON:
    {
        "context": "chunk one\\n\\n---\\n\\nchunk two",
        "chunks": 2,
        "source": "vector_search" | "fallback"
    }
    """
    query = (request.args.get("query") or "").strip()
    if not query:
        return jsonify({"context": "", "error": "Query parameter is required"}), 400

    try:
        top_k = int(request.args["top_k"]) if request.args.get("top_k") else None
    except ValueError:
        return jsonify({"context": "", "error": "top_k must be an integer"}), 400
    if top_k is not None and top_k <= 0:
        return jsonify({"context": "", "error": "top_k must be positive"}), 400

    logger.info("rag_request_received", query_preview=query[:50], top_k=top_k)

    try:
        result = await get_retriever().retrieve(
            query, top_k=top_k, document_id=request.args.get("document_id")
        )
    except asyncio.CancelledError:
        logger.info("rag_request_cancelled", query_preview=query[:50])
        raise

    return jsonify(result.to_dict())


@app.route("/api/documents/<document_id>/process", methods=["POST"])
async def process_document_endpoint(document_id: str):
    """Run an uploaded document through the ingestion pipeline.

    Accepts either a multipart form with a ``file`` field (and optional
    ``document_type`` field) or a raw body whose Content-Type names the
    document format, with ``document_type`` as a query parameter.

    Returns JSON:
    {
        "success": true,
        "document_id": "...",
        "chunks_created": 4,
        "total_chunks": 5,
        "chunks_skipped": 1
    }
    """
    requested_type = request.args.get("document_type")

    if request.mimetype == "multipart/form-data":
        files = await request.files
        form = await request.form
        upload = files.get("file")
        if upload is None:
            return jsonify({"success": False, "error": "Missing 'file' field"}), 400
        raw_bytes = upload.read()
        content_type = upload.mimetype
        requested_type = form.get("document_type") or requested_type
    else:
        raw_bytes = await request.get_data()
        content_type = request.mimetype

    document_type = _parse_document_type(requested_type)
    if document_type is None:
        return jsonify({
            "success": False,
            "error": "document_type must be one of: "
            + ", ".join(t.value for t in DocumentType),
        }), 400

    if not raw_bytes:
        return jsonify({"success": False, "error": "No document content provided"}), 400

    result = await get_processor().process_document(
        raw_bytes, document_id, content_type, document_type
    )

    status = 200 if result.success else 422
    return jsonify(result.to_dict()), status


@app.route("/api/embeddings", methods=["POST"])
async def insert_embedding_endpoint():
    """Insert a single chunk with a precomputed embedding.

    Expects JSON body:
    {
        "document_id": "...",
        "chunk_index": 0,
        "content": "text",
        "embedding": [0.1, ...],
        "metadata": {},             // optional
        "document_type": "faq"      // optional, defaults to brochure
    }

    Returns JSON: {"id": "new-row-id"} with status 201
    """
    data = await request.get_json(silent=True)

    if not data or not data.get("document_id") or not data.get("content"):
        return jsonify({"error": "document_id and content are required"}), 400
    if not isinstance(data.get("embedding"), list):
        return jsonify({"error": "embedding must be a list of numbers"}), 400

    document_type = _parse_document_type(data.get("document_type"))
    if document_type is None:
        return jsonify({"error": "Invalid document_type"}), 400

    try:
        row_id = await get_chunk_store().insert_embedding(
            document_id=data["document_id"],
            chunk_index=int(data.get("chunk_index", 0)),
            content=data["content"],
            embedding=data["embedding"],
            metadata=data.get("metadata"),
            document_type=document_type,
        )
    except (ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400
    except ConfigurationError as e:
        logger.error("insert_embedding_not_configured", error=str(e))
        return jsonify({"error": "Chunk store not configured"}), 503
    except UpstreamError as e:
        logger.error("insert_embedding_failed", error=str(e))
        return jsonify({"error": "Chunk store unavailable"}), 502

    return jsonify({"id": row_id}), 201


@app.route("/api/documents/<document_id>/chunks", methods=["DELETE"])
async def delete_document_chunks_endpoint(document_id: str):
    """Remove every stored chunk of a document.

    Returns JSON: {"document_id": "...", "deleted": 3}
    """
    try:
        deleted = await get_chunk_store().delete_document(document_id)
    except ConfigurationError as e:
        logger.error("delete_chunks_not_configured", error=str(e))
        return jsonify({"error": "Chunk store not configured"}), 503
    except (ValueError, RuntimeError) as e:
        logger.error("delete_chunks_store_unavailable", error=str(e))
        return jsonify({"error": "Chunk store unavailable"}), 503
    except UpstreamError as e:
        logger.error("delete_chunks_failed", document_id=document_id, error=str(e))
        return jsonify({"error": "Chunk store unavailable"}), 502

    return jsonify({"document_id": document_id, "deleted": deleted}), 200


@app.route("/health/ready")
async def health_ready():
    """Readiness probe - report which external services are configured."""
    checks = {
        "status": "healthy",
        "gemini": config.is_configured("gemini"),
        "vector_store": config.VECTOR_STORE,
        "supabase": config.is_configured("supabase"),
    }

    store_ready = config.VECTOR_STORE == "faiss" or checks["supabase"]
    if not (checks["gemini"] and store_ready):
        checks["status"] = "degraded"

    status_code = 200 if checks["status"] == "healthy" else 503
    return jsonify(checks), status_code


@app.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


@app.errorhandler(404)
async def not_found(error):
    """Handle 404 errors."""
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(413)
async def too_large(error):
    """Handle uploads over MAX_UPLOAD_BYTES."""
    return jsonify({"success": False, "error": "Document too large"}), 413


@app.errorhandler(500)
async def internal_error(error):
    """Handle 500 errors."""
    logger.error("internal_server_error", error=str(error))
    return jsonify({"error": "Internal server error"}), 500


if __name__ == "__main__":
    # For development - serve with hypercorn in production
    app.run(host="0.0.0.0", port=5000, debug=True)
