"""Application configuration with sensible defaults."""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Gemini configuration
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"
)
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-004")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "768"))

# Supabase (Postgres + pgvector behind PostgREST)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
CHUNKS_TABLE = os.getenv("CHUNKS_TABLE", "document_chunks")

# Which chunk store backs retrieval: "supabase" or "faiss"
VECTOR_STORE = os.getenv("VECTOR_STORE", "supabase")

# RAG parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "900"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "100"))
CHUNK_STRATEGY = os.getenv("CHUNK_STRATEGY", "sentence")   # or "paragraph"
PARAGRAPH_SEPARATOR = "\n\n"
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
MATCH_THRESHOLD = float(os.getenv("MATCH_THRESHOLD", "0.5"))
CONTEXT_SEPARATOR = "\n\n---\n\n"
MIN_EXTRACTED_CHARS = 10

# Outbound calls
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "20.0"))
EMBEDDING_CONCURRENCY = int(os.getenv("EMBEDDING_CONCURRENCY", "5"))
EMBED_MAX_ATTEMPTS = int(os.getenv("EMBED_MAX_ATTEMPTS", "3"))
SEARCH_MAX_ATTEMPTS = int(os.getenv("SEARCH_MAX_ATTEMPTS", "2"))
RETRY_INITIAL_WAIT = float(os.getenv("RETRY_INITIAL_WAIT", "0.5"))
RETRY_MAX_WAIT = float(os.getenv("RETRY_MAX_WAIT", "4.0"))

# Uploads
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def is_configured(service: str) -> bool:
    """Check whether the credentials for an external service are present.

    Args:
        service: "gemini" or "supabase"

    Returns:
        True if every required setting for the service is non-empty
    """
    if service == "gemini":
        return bool(GEMINI_API_KEY)
    if service == "supabase":
        return bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY)
    return False
