"""Retriever for context lookup over stored document chunks.

Handles:
- Query embedding generation
- Vector similarity search in the chunk store
- Keyword and most-recent fallbacks when vector search is unavailable
- Context assembly for the generation step

Retrieval sits on the chat response path, so ``retrieve`` never raises for
provider or store failures. It always returns a context, possibly empty,
tagged with the lookup that produced it.
"""
from typing import List, Optional

import structlog

from aionus import config
from aionus.errors import ConfigurationError
from aionus.rag.embeddings import EmbeddingGateway, get_embedding_gateway
from aionus.rag.models import ChunkMatch, RetrievalContext, RetrievalSource
from aionus.rag.store import ChunkStore, get_chunk_store

logger = structlog.get_logger()


def assemble_context(matches: List[ChunkMatch], separator: Optional[str] = None) -> str:
    """Join chunk contents in the given order with a visible separator."""
    separator = config.CONTEXT_SEPARATOR if separator is None else separator
    return separator.join(m.content.strip() for m in matches if m.content.strip())


class Retriever:
    """Semantic retriever for RAG pipeline."""

    def __init__(
        self,
        gateway: Optional[EmbeddingGateway] = None,
        store: Optional[ChunkStore] = None,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ):
        """Initialize the retriever.

        Args:
            gateway: Embedding gateway (default singleton if not provided)
            store: Chunk store (default from config if not provided)
            top_k: Number of chunks to retrieve (default from config)
            threshold: Minimum cosine similarity, exclusive (default from config)
        """
        self.gateway = gateway
        self.store = store
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.threshold = config.MATCH_THRESHOLD if threshold is None else threshold

        logger.info(
            "retriever_initialized",
            top_k=self.top_k,
            threshold=self.threshold,
        )

    def _ensure_collaborators(self) -> None:
        if self.gateway is None:
            self.gateway = get_embedding_gateway()
        if self.store is None:
            self.store = get_chunk_store()

    async def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        document_id: Optional[str] = None,
    ) -> RetrievalContext:
        """Retrieve context for a query.

        Args:
            query: User query text
            top_k: Maximum chunks to return (overrides default)
            document_id: Restrict the lookup to one document

        Returns:
            RetrievalContext; ``chunk_count == 0`` means nothing relevant
            was found
        """
        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return RetrievalContext("", 0, RetrievalSource.FALLBACK)

        top_k = top_k or self.top_k

        logger.info(
            "retrieval_started",
            query_length=len(query),
            top_k=top_k,
            document_id=document_id,
        )

        try:
            self._ensure_collaborators()
        except ConfigurationError as e:
            logger.error("retrieval_not_configured", error=str(e))
            return RetrievalContext("", 0, RetrievalSource.FALLBACK)
        except Exception as e:
            logger.error(
                "retrieval_store_unavailable",
                error=str(e),
                error_type=type(e).__name__,
            )
            return RetrievalContext("", 0, RetrievalSource.FALLBACK)

        embedded = await self.gateway.embed_result(query)
        if not embedded.ok:
            logger.warning(
                "query_embedding_failed",
                error=str(embedded.error),
                error_type=type(embedded.error).__name__,
            )
            return await self._fallback(query, top_k, document_id)
        query_embedding = embedded.vector

        try:
            matches = await self.store.nearest_neighbors(
                query_embedding,
                threshold=self.threshold,
                limit=top_k,
                document_id=document_id,
            )
        except Exception as e:
            logger.warning(
                "vector_search_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return await self._fallback(query, top_k, document_id)

        context = RetrievalContext(
            context_text=assemble_context(matches),
            chunk_count=len(matches),
            source=RetrievalSource.VECTOR_SEARCH,
            matches=matches,
        )

        logger.info(
            "retrieval_completed",
            source=context.source.value,
            chunk_count=context.chunk_count,
            top_similarity=matches[0].similarity if matches else None,
        )
        return context

    async def _fallback(
        self,
        query: str,
        top_k: int,
        document_id: Optional[str] = None,
    ) -> RetrievalContext:
        """Degraded lookup: keyword search, then most recent chunks.

        A document filter applies here too, so a scoped lookup never
        returns another document's chunks.
        """
        matches: List[ChunkMatch] = []

        try:
            matches = await self.store.text_search(query, top_k, document_id=document_id)
        except Exception as e:
            logger.warning(
                "text_search_failed",
                error=str(e),
                error_type=type(e).__name__,
            )

        if not matches:
            try:
                matches = await self.store.recent_chunks(top_k, document_id=document_id)
            except Exception as e:
                logger.error(
                    "recent_chunks_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                matches = []

        context = RetrievalContext(
            context_text=assemble_context(matches),
            chunk_count=len(matches),
            source=RetrievalSource.FALLBACK,
            matches=matches,
        )

        logger.info(
            "retrieval_completed",
            source=context.source.value,
            chunk_count=context.chunk_count,
        )
        return context


# Singleton instance for convenience
_retriever_instance: Optional[Retriever] = None


def get_retriever() -> Retriever:
    """Get or create a singleton retriever instance.

    Returns:
        Retriever instance
    """
    global _retriever_instance
    if _retriever_instance is None:
        _retriever_instance = Retriever()
    return _retriever_instance


# Convenience function
async def retrieve_context(
    query: str,
    top_k: Optional[int] = None,
    document_id: Optional[str] = None,
) -> RetrievalContext:
    """Retrieve context for a query (convenience function).

    Args:
        query: User query text
        top_k: Maximum chunks to return

    Returns:
        RetrievalContext
    """
    retriever = get_retriever()
    return await retriever.retrieve(query, top_k=top_k, document_id=document_id)
