"""FAISS chunk store for local and small-corpus use.

Handles:
- Exact (brute-force) cosine search over L2-normalized vectors
- Replace-on-reprocess of a document's chunks
- Keyword and most-recent fallbacks
- Index and chunk metadata persistence
"""
import asyncio
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import faiss
import numpy as np
import structlog

from aionus import config
from aionus.rag.models import ChunkMatch, ChunkRecord, DocumentType, InsertResult
from aionus.rag.store import ChunkStore, query_terms, validate_embedding

logger = structlog.get_logger()


class FAISSChunkStore(ChunkStore):
    """In-process chunk store using a flat inner-product FAISS index."""

    def __init__(
        self,
        index_dir: Optional[Path] = None,
        dimension: Optional[int] = None,
        autosave: bool = False,
    ):
        """Initialize an empty store.

        Args:
            index_dir: Directory to store index and metadata (default: DATA_DIR)
            dimension: Embedding dimension (default from config)
            autosave: Write index and metadata to disk after every change
        """
        self.index_dir = Path(index_dir or config.DATA_DIR)
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.autosave = autosave

        self.index_path = self.index_dir / "chunks.index"
        self.metadata_path = self.index_dir / "chunks.json"

        # IndexFlatIP on unit vectors scores by cosine similarity
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(self.dimension))
        self.records: Dict[int, Dict[str, Any]] = {}
        self._next_id = 0
        self._lock = asyncio.Lock()

        logger.info(
            "faiss_store_initialized",
            index_dir=str(self.index_dir),
            dimension=self.dimension,
        )

    @classmethod
    def load_or_create(
        cls, index_dir: Optional[Path] = None, dimension: Optional[int] = None
    ) -> "FAISSChunkStore":
        """Load a persisted store if one exists, otherwise start empty.

        The returned store saves itself after every change.

        Raises:
            ValueError: If the persisted index has a different dimension
            RuntimeError: If loading fails
        """
        store = cls(index_dir=index_dir, dimension=dimension, autosave=True)
        if store.index_path.exists() and store.metadata_path.exists():
            logger.info("existing_index_detected", path=str(store.index_path))
            store.load()
        else:
            logger.info("no_index_found_initializing_new")
        return store

    def _as_matrix(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        matrix = np.array(vectors, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got {matrix.shape[-1] if matrix.ndim else 0}"
            )
        if not np.all(np.linalg.norm(matrix, axis=1) > 0):
            raise ValueError("Zero vectors have no cosine similarity")
        faiss.normalize_L2(matrix)
        return matrix

    def _add(self, document_id: str, rows: List[Dict[str, Any]], vectors: List[List[float]]) -> List[str]:
        matrix = self._as_matrix(vectors)
        ids = np.arange(self._next_id, self._next_id + len(rows), dtype=np.int64)
        self.index.add_with_ids(matrix, ids)

        created_at = datetime.now(timezone.utc).isoformat()
        row_ids = []
        for faiss_id, row in zip(ids.tolist(), rows):
            row_id = str(uuid.uuid4())
            self.records[faiss_id] = {
                "id": row_id,
                "document_id": document_id,
                "created_at": created_at,
                **row,
            }
            row_ids.append(row_id)

        self._next_id += len(rows)
        return row_ids

    def _remove_document(self, document_id: str) -> int:
        faiss_ids = [
            fid for fid, rec in self.records.items() if rec["document_id"] == document_id
        ]
        if faiss_ids:
            self.index.remove_ids(np.array(faiss_ids, dtype=np.int64))
            for fid in faiss_ids:
                del self.records[fid]
        return len(faiss_ids)

    def _to_match(self, faiss_id: int, similarity: Optional[float] = None) -> ChunkMatch:
        rec = self.records[faiss_id]
        return ChunkMatch(
            chunk_id=rec["id"],
            document_id=rec["document_id"],
            content=rec["content"],
            similarity=similarity,
            chunk_index=rec["chunk_index"],
            document_type=rec["document_type"],
        )

    def _newest_first(self, document_id: Optional[str] = None) -> List[int]:
        # FAISS ids are assigned in insertion order
        ids = sorted(self.records, reverse=True)
        if document_id is None:
            return ids
        return [fid for fid in ids if self.records[fid]["document_id"] == document_id]

    async def insert_chunks(
        self,
        document_id: str,
        records: Sequence[ChunkRecord],
        replace: bool = True,
    ) -> InsertResult:
        rows = []
        vectors = []
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
            validate_embedding(record.embedding, self.dimension)
            vectors.append(record.embedding)
            rows.append(
                {
                    "chunk_index": record.chunk_index,
                    "content": record.content,
                    "char_start": record.char_start,
                    "char_end": record.char_end,
                    "document_type": DocumentType(record.document_type).value,
                    "metadata": record.metadata or {},
                }
            )

        if not rows:
            logger.warning("no_chunks_to_insert", document_id=document_id, skipped=skipped)
            return InsertResult(inserted=0, skipped=skipped)

        async with self._lock:
            removed = self._remove_document(document_id) if replace else 0
            self._add(document_id, rows, vectors)
            self._persist()

        logger.info(
            "chunks_inserted",
            document_id=document_id,
            inserted=len(rows),
            skipped=skipped,
            replaced=removed,
            total_vectors=self.index.ntotal,
        )
        return InsertResult(inserted=len(rows), skipped=skipped)

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
        validate_embedding(embedding, self.dimension)

        async with self._lock:
            (row_id,) = self._add(
                document_id,
                [
                    {
                        "chunk_index": chunk_index,
                        "content": content,
                        "char_start": None,
                        "char_end": None,
                        "document_type": DocumentType(document_type).value,
                        "metadata": metadata or {},
                    }
                ],
                [embedding],
            )
            self._persist()

        logger.info("embedding_inserted", id=row_id, document_id=document_id)
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
        validate_embedding(query_embedding, self.dimension)

        if limit <= 0 or self.index.ntotal == 0:
            return []

        query = self._as_matrix([query_embedding])

        # A document filter is applied after scoring, so scan everything
        k = self.index.ntotal if document_id else min(limit, self.index.ntotal)
        scores, ids = self.index.search(query, k)

        matches = []
        for faiss_id, score in zip(ids[0].tolist(), scores[0].tolist()):
            if faiss_id == -1 or faiss_id not in self.records:
                continue
            if score <= threshold:
                continue
            if document_id and self.records[faiss_id]["document_id"] != document_id:
                continue
            matches.append(self._to_match(faiss_id, float(score)))
            if len(matches) == limit:
                break

        logger.info(
            "vector_search_completed",
            results_found=len(matches),
            limit=limit,
            threshold=threshold,
        )
        return matches

    async def text_search(
        self, query: str, limit: int, document_id: Optional[str] = None
    ) -> List[ChunkMatch]:
        terms = query_terms(query)
        if not terms or limit <= 0:
            return []

        matches = []
        for faiss_id in self._newest_first(document_id):
            content = self.records[faiss_id]["content"].lower()
            if any(term in content for term in terms):
                matches.append(self._to_match(faiss_id))
                if len(matches) == limit:
                    break

        logger.info("text_search_completed", terms=terms, results_found=len(matches))
        return matches

    async def recent_chunks(
        self, limit: int, document_id: Optional[str] = None
    ) -> List[ChunkMatch]:
        if limit <= 0:
            return []
        return [self._to_match(fid) for fid in self._newest_first(document_id)[:limit]]

    async def delete_document(self, document_id: str) -> int:
        async with self._lock:
            removed = self._remove_document(document_id)
            self._persist()
        logger.info("document_chunks_deleted", document_id=document_id, count=removed)
        return removed

    def _persist(self) -> None:
        if self.autosave:
            self.save()

    def save(self) -> None:
        """Save FAISS index and chunk metadata to disk.

        Raises:
            RuntimeError: If save fails
        """
        self.index_dir.mkdir(parents=True, exist_ok=True)

        try:
            faiss.write_index(self.index, str(self.index_path))
        except Exception as e:
            raise RuntimeError(f"Failed to save FAISS index: {e}") from e

        metadata = {
            "embedding_model": config.EMBEDDING_MODEL,
            "embedding_dimension": self.dimension,
            "index_type": "IndexIDMap2(IndexFlatIP)",
            "next_id": self._next_id,
            "records": {str(fid): rec for fid, rec in self.records.items()},
        }
        try:
            with open(self.metadata_path, "w") as f:
                json.dump(metadata, f)
        except OSError as e:
            raise RuntimeError(f"Failed to save metadata: {e}") from e

        logger.info(
            "faiss_index_saved",
            index_path=str(self.index_path),
            vector_count=self.index.ntotal,
        )

    def load(self) -> None:
        """Load index and chunk metadata from disk.

        Raises:
            ValueError: If the stored dimension differs from the configured one
            RuntimeError: If loading fails
        """
        try:
            with open(self.metadata_path, "r") as f:
                metadata = json.load(f)
        except (OSError, ValueError) as e:
            raise RuntimeError(f"Failed to load metadata: {e}") from e

        stored_dim = metadata.get("embedding_dimension")
        if stored_dim != self.dimension:
            raise ValueError(
                f"Dimension mismatch: index was built with dim={stored_dim}, "
                f"but the configured dimension is {self.dimension}. "
                "Please rebuild the index."
            )

        try:
            self.index = faiss.read_index(str(self.index_path))
        except Exception as e:
            raise RuntimeError(f"Failed to load FAISS index: {e}") from e

        self.records = {int(fid): rec for fid, rec in metadata["records"].items()}
        self._next_id = metadata.get("next_id", len(self.records))

        logger.info(
            "faiss_index_loaded",
            dimension=self.dimension,
            vector_count=self.index.ntotal,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the store."""
        return {
            "vector_count": self.index.ntotal,
            "document_count": len({r["document_id"] for r in self.records.values()}),
            "dimension": self.dimension,
            "index_exists_on_disk": self.index_path.exists(),
        }
