"""AIONUS document RAG core: brochure ingestion and context retrieval."""

__version__ = "0.1.0"
