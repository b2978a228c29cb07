"""Chunk store backed by Supabase Postgres with pgvector.

Similarity search runs server-side in the ``match_document_chunks`` function
(cosine distance, HNSW index when present, exact scan otherwise). Batch
insertion goes through ``replace_document_chunks`` so the delete of a
document's old chunks and the insert of the new ones share one transaction.
Both functions are defined in migrations/001_document_chunks.sql.
"""
from typing import Any, Dict, List, Optional, Sequence

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from aionus import config
from aionus.errors import UpstreamError
from aionus.rag.models import ChunkMatch, ChunkRecord, DocumentType, InsertResult
from aionus.rag.store import ChunkStore, query_terms, validate_embedding
from aionus.supabase_client import SupabaseClient, supabase_client

logger = structlog.get_logger()

MATCH_FUNCTION = "match_document_chunks"
REPLACE_FUNCTION = "replace_document_chunks"
SELECT_COLUMNS = "id,document_id,content,chunk_index,document_type"


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.transient


def _to_match(row: Dict[str, Any]) -> ChunkMatch:
    similarity = row.get("similarity")
    return ChunkMatch(
        chunk_id=str(row["id"]),
        document_id=str(row.get("document_id")),
        content=row.get("content") or "",
        similarity=float(similarity) if similarity is not None else None,
        chunk_index=row.get("chunk_index"),
        document_type=row.get("document_type"),
    )


class SupabaseChunkStore(ChunkStore):
    """pgvector chunk store reached through PostgREST."""

    def __init__(
        self,
        client: Optional[SupabaseClient] = None,
        table: Optional[str] = None,
        search_attempts: Optional[int] = None,
    ):
        """Initialize the store.

        Args:
            client: Supabase client (defaults to the module-level client)
            table: Chunk table name (default from config)
            search_attempts: Attempts per similarity search (default from config)
        """
        self.client = client or supabase_client
        self.table = table or config.CHUNKS_TABLE
        self.search_attempts = search_attempts or config.SEARCH_MAX_ATTEMPTS

    def _row(self, document_id: str, record: ChunkRecord) -> Dict[str, Any]:
        return {
            "document_id": document_id,
            "chunk_index": record.chunk_index,
            "content": record.content,
            "char_start": record.char_start,
            "char_end": record.char_end,
            "embedding": record.embedding,
            "document_type": DocumentType(record.document_type).value,
            "metadata": record.metadata or {},
        }

    async def insert_chunks(
        self,
        document_id: str,
        records: Sequence[ChunkRecord],
        replace: bool = True,
    ) -> InsertResult:
        rows = []
        skipped = 0
        for record in records:
            if record.embedding is None or not record.content:
                logger.warning(
                    "chunk_skipped_no_embedding",
                    document_id=document_id,
                    chunk_index=record.chunk_index,
                )
                skipped += 1
                continue
            validate_embedding(record.embedding)
            rows.append(self._row(document_id, record))

        if not rows:
            logger.warning("no_chunks_to_insert", document_id=document_id, skipped=skipped)
            return InsertResult(inserted=0, skipped=skipped)

        # Writes are not retried: a repeated insert would duplicate rows.
        if replace:
            inserted = await self.client.rpc(
                REPLACE_FUNCTION,
                {"p_document_id": document_id, "p_chunks": rows},
            )
            inserted = int(inserted or 0)
        else:
            stored = await self.client.insert(self.table, rows)
            inserted = len(stored)

        logger.info(
            "chunks_inserted",
            document_id=document_id,
            inserted=inserted,
            skipped=skipped,
            replaced=replace,
        )
        return InsertResult(inserted=inserted, skipped=skipped)

    async def insert_embedding(
        self,
        document_id: str,
        chunk_index: int,
        content: str,
        embedding: List[float],
        metadata: Optional[Dict[str, Any]] = None,
        document_type: DocumentType = DocumentType.BROCHURE,
    ) -> str:
        if not content or not content.strip():
            raise ValueError("Chunk content must not be empty")
        validate_embedding(embedding)

        stored = await self.client.insert(
            self.table,
            {
                "document_id": document_id,
                "chunk_index": chunk_index,
                "content": content,
                "embedding": list(embedding),
                "document_type": DocumentType(document_type).value,
                "metadata": metadata or {},
            },
        )
        if not stored or "id" not in stored[0]:
            raise UpstreamError("Supabase insert returned no row")

        row_id = str(stored[0]["id"])
        logger.info(
            "embedding_inserted",
            id=row_id,
            document_id=document_id,
            chunk_index=chunk_index,
        )
        return row_id

    async def nearest_neighbors(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int,
        document_id: Optional[str] = None,
    ) -> List[ChunkMatch]:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Threshold must be within [0, 1], got {threshold}")
        if limit <= 0:
            return []
        validate_embedding(query_embedding)

        args = {
            "query_embedding": list(query_embedding),
            "match_threshold": threshold,
            "match_count": limit,
            "filter_document_id": document_id,
        }

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.search_attempts),
            wait=wait_exponential_jitter(
                initial=config.RETRY_INITIAL_WAIT,
                max=config.RETRY_MAX_WAIT,
                jitter=config.RETRY_INITIAL_WAIT,
            ),
            retry=retry_if_exception(_is_transient),
            before_sleep=lambda state: logger.warning(
                "similarity_search_retry",
                attempt=state.attempt_number,
                error=str(state.outcome.exception()),
            ),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                rows = await self.client.rpc(MATCH_FUNCTION, args)

        if not isinstance(rows, list):
            raise UpstreamError(f"{MATCH_FUNCTION} returned an unexpected body")

        matches = [_to_match(row) for row in rows]
        # The function already filters and orders; enforce the contract anyway.
        matches = [
            m for m in matches if m.similarity is not None and m.similarity > threshold
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        matches = matches[:limit]

        logger.info(
            "vector_search_completed",
            results_found=len(matches),
            limit=limit,
            threshold=threshold,
            document_id=document_id,
        )
        return matches

    async def text_search(
        self, query: str, limit: int, document_id: Optional[str] = None
    ) -> List[ChunkMatch]:
        terms = query_terms(query)
        if not terms or limit <= 0:
            return []

        filters = ",".join(f"content.ilike.*{term}*" for term in terms)
        params = {
            "select": SELECT_COLUMNS,
            "or": f"({filters})",
            "order": "created_at.desc",
            "limit": str(limit),
        }
        if document_id is not None:
            params["document_id"] = f"eq.{document_id}"
        rows = await self.client.select(self.table, params)

        logger.info("text_search_completed", terms=terms, results_found=len(rows))
        return [_to_match(row) for row in rows]

    async def recent_chunks(
        self, limit: int, document_id: Optional[str] = None
    ) -> List[ChunkMatch]:
        if limit <= 0:
            return []

        params = {
            "select": SELECT_COLUMNS,
            "order": "created_at.desc",
            "limit": str(limit),
        }
        if document_id is not None:
            params["document_id"] = f"eq.{document_id}"
        rows = await self.client.select(self.table, params)
        return [_to_match(row) for row in rows]

    async def delete_document(self, document_id: str) -> int:
        deleted = await self.client.delete(
            self.table, {"document_id": f"eq.{document_id}"}
        )
        logger.info("document_chunks_deleted", document_id=document_id, count=len(deleted))
        return len(deleted)
