"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Text extraction from uploaded documents
- Whitespace normalization
- Document chunking with overlap
- Embedding generation
- Chunk storage (Supabase pgvector or local FAISS)
- Semantic retrieval with fallback search
"""
