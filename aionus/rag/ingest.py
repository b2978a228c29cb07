"""Ingest pipeline for uploaded documents.

Orchestrates:
- Text extraction
- Whitespace normalization
- Text chunking
- Embedding generation
- Chunk storage, replacing any earlier chunks of the same document

Expected failures are reported in the returned ProcessingResult rather than
raised, so upload flows can show a clean message to the user.
"""
from typing import Optional, Union

import structlog

from aionus import config
from aionus.errors import ConfigurationError, ExtractionError, UpstreamError
from aionus.rag.chunker import TextChunker
from aionus.rag.embeddings import EmbeddingGateway, get_embedding_gateway
from aionus.rag.extract import extract_text
from aionus.rag.models import ChunkRecord, DocumentType, ProcessingResult
from aionus.rag.normalizer import normalize_text
from aionus.rag.store import ChunkStore, get_chunk_store

logger = structlog.get_logger()


class DocumentProcessor:
    """Pipeline for turning one uploaded document into stored chunks."""

    def __init__(
        self,
        gateway: Optional[EmbeddingGateway] = None,
        store: Optional[ChunkStore] = None,
        chunker: Optional[TextChunker] = None,
    ):
        """Initialize the processor.

        Args:
            gateway: Embedding gateway (default singleton if not provided)
            store: Chunk store (default from config if not provided)
            chunker: Text chunker (default config if not provided)
        """
        self.gateway = gateway
        self.store = store
        self.chunker = chunker or TextChunker()

        logger.info(
            "document_processor_initialized",
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            strategy=self.chunker.strategy,
        )

    async def process_document(
        self,
        raw_bytes: bytes,
        document_id: str,
        content_type: str,
        document_type: Union[DocumentType, str] = DocumentType.BROCHURE,
    ) -> ProcessingResult:
        """Process a document for RAG.

        Args:
            raw_bytes: Uploaded file content
            document_id: Id of the parent document record
            content_type: MIME type of the upload
            document_type: brochure, faq or pricing

        Returns:
            ProcessingResult; ``chunks_created < total_chunks`` when some
            embeddings failed and those chunks were dropped
        """
        document_type = DocumentType(document_type)
        logger.info(
            "processing_document",
            document_id=document_id,
            content_type=content_type,
            document_type=document_type.value,
            size_bytes=len(raw_bytes),
        )

        # Step 1: Extract text
        try:
            text = extract_text(raw_bytes, content_type)
        except ExtractionError as e:
            return self._failed(document_id, str(e))

        # Step 2: Normalize; blank lines are kept for the paragraph strategy
        text = normalize_text(text, keep_paragraphs=self.chunker.strategy == "paragraph")
        if len(text) < config.MIN_EXTRACTED_CHARS:
            return self._failed(document_id, "Document contains no extractable text")

        # Step 3: Split into chunks
        chunks = self.chunker.chunk_text(text)
        total = len(chunks)

        try:
            if self.gateway is None:
                self.gateway = get_embedding_gateway()
            if self.store is None:
                self.store = get_chunk_store()
        except ConfigurationError as e:
            return self._failed(document_id, f"service not configured: {e}", total_chunks=total)
        except (ValueError, RuntimeError) as e:
            # local index that cannot be loaded
            return self._failed(document_id, f"chunk store unavailable: {e}", total_chunks=total)

        try:
            # Step 4: Generate embeddings
            results = await self.gateway.embed_batch([c.content for c in chunks])

            records = [
                ChunkRecord(
                    chunk_index=chunk.chunk_index,
                    content=chunk.content,
                    char_start=chunk.char_start,
                    char_end=chunk.char_end,
                    embedding=result.vector if result.ok else None,
                    document_type=document_type,
                )
                for chunk, result in zip(chunks, results)
            ]
            embedded = sum(1 for r in records if r.embedding is not None)
            logger.info(
                "embeddings_generated",
                document_id=document_id,
                generated=embedded,
                total=total,
            )

            if embedded == 0:
                return self._failed(
                    document_id,
                    "Embedding generation failed for every chunk",
                    total_chunks=total,
                    chunks_skipped=total,
                )

            # Step 5: Save to the chunk store
            inserted = await self.store.insert_chunks(document_id, records, replace=True)

        except ConfigurationError as e:
            return self._failed(document_id, f"service not configured: {e}", total_chunks=total)
        except UpstreamError as e:
            return self._failed(document_id, f"chunk storage failed: {e}", total_chunks=total)

        if inserted.skipped:
            logger.warning(
                "partial_embedding_failure",
                document_id=document_id,
                chunks_created=inserted.inserted,
                chunks_skipped=inserted.skipped,
                total_chunks=total,
            )

        logger.info(
            "document_processed",
            document_id=document_id,
            chunks_created=inserted.inserted,
            total_chunks=total,
        )

        return ProcessingResult(
            success=True,
            document_id=document_id,
            chunks_created=inserted.inserted,
            total_chunks=total,
            chunks_skipped=inserted.skipped,
        )

    def _failed(
        self,
        document_id: str,
        error: str,
        total_chunks: int = 0,
        chunks_skipped: int = 0,
    ) -> ProcessingResult:
        logger.error("document_processing_failed", document_id=document_id, error=error)
        return ProcessingResult(
            success=False,
            document_id=document_id,
            chunks_created=0,
            total_chunks=total_chunks,
            chunks_skipped=chunks_skipped,
            error=error,
        )


# Convenience function for one-off processing
async def process_document(
    raw_bytes: bytes,
    document_id: str,
    content_type: str,
    document_type: Union[DocumentType, str] = DocumentType.BROCHURE,
) -> ProcessingResult:
    """Process a document with the default pipeline (convenience function)."""
    processor = DocumentProcessor()
    return await processor.process_document(
        raw_bytes, document_id, content_type, document_type
    )
