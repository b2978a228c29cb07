"""Chunk store interface and backend selection."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import structlog

from aionus import config
from aionus.errors import ConfigurationError
from aionus.rag.models import ChunkMatch, ChunkRecord, DocumentType, InsertResult

logger = structlog.get_logger()


class ChunkStore(ABC):
    """Persists chunks with their vectors and answers similarity queries.

    Implementations raise ConfigurationError when they cannot run at all and
    UpstreamError when the backing service fails.
    """

    @abstractmethod
    async def insert_chunks(
        self,
        document_id: str,
        records: Sequence[ChunkRecord],
        replace: bool = True,
    ) -> InsertResult:
        """Store a document's chunks.

        Records without an embedding are skipped and counted. With
        ``replace`` the document's previous chunks are removed in the same
        step, so re-processing never duplicates context.
        """

    @abstractmethod
    async def insert_embedding(
        self,
        document_id: str,
        chunk_index: int,
        content: str,
        embedding: List[float],
        metadata: Optional[Dict[str, Any]] = None,
        document_type: DocumentType = DocumentType.BROCHURE,
    ) -> str:
        """Insert a single chunk outside the batch pipeline; returns its id."""

    @abstractmethod
    async def nearest_neighbors(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int,
        document_id: Optional[str] = None,
    ) -> List[ChunkMatch]:
        """Return chunks with cosine similarity above ``threshold``.

        Results are ordered by similarity, highest first, and hold at most
        ``limit`` entries.
        """

    @abstractmethod
    async def text_search(
        self, query: str, limit: int, document_id: Optional[str] = None
    ) -> List[ChunkMatch]:
        """Keyword lookup used when vector search is unavailable."""

    @abstractmethod
    async def recent_chunks(
        self, limit: int, document_id: Optional[str] = None
    ) -> List[ChunkMatch]:
        """Most recently stored chunks, the last-resort fallback."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> int:
        """Remove every chunk of a document; returns how many were removed."""


def validate_embedding(embedding: Sequence[float], dimension: Optional[int] = None) -> None:
    """Reject vectors that do not match the configured dimensionality.

    Raises:
        ValueError: If the vector is empty or has the wrong size
    """
    dimension = dimension or config.EMBEDDING_DIMENSION
    if not embedding:
        raise ValueError("Embedding must not be empty")
    if len(embedding) != dimension:
        raise ValueError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(embedding)}"
        )


def query_terms(query: str, max_terms: int = 3) -> List[str]:
    """Pick the leading keywords of a query for text search."""
    terms = []
    for raw in query.split():
        term = "".join(ch for ch in raw if ch.isalnum())
        if len(term) >= 2:
            terms.append(term.lower())
        if len(terms) == max_terms:
            break
    return terms


# Singleton instance for convenience
_store_instance: Optional[ChunkStore] = None


def get_chunk_store() -> ChunkStore:
    """Get or create the chunk store selected by config.VECTOR_STORE.

    Raises:
        ConfigurationError: If the configured backend is unknown
    """
    global _store_instance
    if _store_instance is None:
        backend = config.VECTOR_STORE
        if backend == "supabase":
            from aionus.rag.store_supabase import SupabaseChunkStore

            _store_instance = SupabaseChunkStore()
        elif backend == "faiss":
            from aionus.rag.store_faiss import FAISSChunkStore

            _store_instance = FAISSChunkStore.load_or_create()
        else:
            raise ConfigurationError(
                f"Unknown VECTOR_STORE {backend!r}, expected 'supabase' or 'faiss'"
            )
        logger.info("chunk_store_selected", backend=backend)
    return _store_instance
