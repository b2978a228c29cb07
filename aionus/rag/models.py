"""Data types passed between the RAG pipeline stages."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DocumentType(str, Enum):
    """Kind of uploaded document a chunk came from."""

    BROCHURE = "brochure"
    FAQ = "faq"
    PRICING = "pricing"


class RetrievalSource(str, Enum):
    """Which lookup produced a retrieval context."""

    VECTOR_SEARCH = "vector_search"
    FALLBACK = "fallback"


@dataclass
class ChunkRecord:
    """A chunk ready to be written to a chunk store.

    ``embedding`` is None when embedding generation failed; such records are
    skipped by the store rather than written with a null vector.
    """

    chunk_index: int
    content: str
    char_start: int
    char_end: int
    embedding: Optional[List[float]] = None
    document_type: DocumentType = DocumentType.BROCHURE
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChunkMatch:
    """A chunk returned by a similarity or text search."""

    chunk_id: str
    document_id: str
    content: str
    similarity: Optional[float] = None
    chunk_index: Optional[int] = None
    document_type: Optional[str] = None


@dataclass
class InsertResult:
    """Outcome of a batch chunk insertion."""

    inserted: int
    skipped: int = 0


@dataclass
class EmbeddingResult:
    """One item of a batch embedding call: a vector or the error it hit."""

    vector: Optional[List[float]] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.vector is not None and self.error is None


@dataclass
class RetrievalContext:
    """Context assembled for a query, ready for the generation step.

    ``chunk_count == 0`` means no relevant information was found.
    """

    context_text: str
    chunk_count: int
    source: RetrievalSource
    matches: List[ChunkMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context": self.context_text,
            "chunks": self.chunk_count,
            "source": self.source.value,
        }


@dataclass
class ProcessingResult:
    """Outcome of running one document through the ingestion pipeline."""

    success: bool
    document_id: str
    chunks_created: int = 0
    total_chunks: int = 0
    chunks_skipped: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "document_id": self.document_id,
            "chunks_created": self.chunks_created,
            "total_chunks": self.total_chunks,
            "chunks_skipped": self.chunks_skipped,
        }
        if self.error:
            data["error"] = self.error
        return data
