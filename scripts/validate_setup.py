#!/usr/bin/env python
"""Validate setup - check dependencies, configuration and external services."""
import sys
import asyncio
from pathlib import Path

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

def print_success(msg):
    print(f"{GREEN}✓{RESET} {msg}")

def print_error(msg):
    print(f"{RED}✗{RESET} {msg}")

def print_info(msg):
    print(f"{BLUE}ℹ{RESET} {msg}")

def print_warning(msg):
    print(f"{YELLOW}⚠{RESET} {msg}")

def print_section(title):
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}{title:^60}{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

async def main():
    print_section("AIONUS RAG - Setup Validation")

    errors = []
    warnings = []

    # 1. Python version check
    print_section("1. Python Environment")
    python_version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    print_info(f"Python version: {python_version}")
    if sys.version_info >= (3, 10):
        print_success("Python version >= 3.10")
    else:
        print_error("Python version < 3.10 (required)")
        errors.append("Python version too old")

    # 2. Import core dependencies
    print_section("2. Core Dependencies")

    dependencies = [
        ("quart", "Quart web framework"),
        ("hypercorn", "Hypercorn ASGI server"),
        ("httpx", "HTTP client"),
        ("faiss", "FAISS vector store"),
        ("numpy", "Numerics"),
        ("pypdf", "PDF text extraction"),
        ("docx", "DOCX text extraction"),
        ("tenacity", "Retry policies"),
        ("dotenv", "Environment loading"),
        ("structlog", "Structured logging"),
    ]

    for module_name, description in dependencies:
        try:
            __import__(module_name)
            print_success(f"{description:30} ({module_name})")
        except ImportError as e:
            print_error(f"{description:30} ({module_name}) - {e}")
            errors.append(f"Missing: {module_name}")

    # 3. Test configuration
    print_section("3. Configuration")

    try:
        # Add parent directory to path to import aionus
        sys.path.insert(0, str(Path(__file__).parent.parent))
        from aionus import config

        print_success("Config loaded successfully")
        print_info(f"  Embedding model: {config.EMBEDDING_MODEL} (dim {config.EMBEDDING_DIMENSION})")
        print_info(f"  Vector store: {config.VECTOR_STORE}")
        print_info(f"  Chunking: {config.CHUNK_STRATEGY}, {config.CHUNK_SIZE} chars, overlap {config.CHUNK_OVERLAP}")
        print_info(f"  Match threshold: {config.MATCH_THRESHOLD}, top-k {config.RETRIEVAL_TOP_K}")

        if config.is_configured("gemini"):
            print_success("GEMINI_API_KEY is set")
        else:
            print_error("GEMINI_API_KEY missing - embeddings disabled, retrieval will use fallback search")
            errors.append("Gemini not configured")

        if config.VECTOR_STORE == "supabase":
            if config.is_configured("supabase"):
                print_success(f"Supabase configured: {config.SUPABASE_URL}")
            else:
                print_error("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY missing")
                errors.append("Supabase not configured")
        else:
            print_warning(f"Using local FAISS store in {config.DATA_DIR}")
            warnings.append("Local vector store")

    except Exception as e:
        print_error(f"Failed to load config: {e}")
        errors.append("Config loading failed")
        return errors, warnings

    # 4. Test embedding API with a simple request
    print_section("4. Embedding API Test")

    if config.is_configured("gemini"):
        from aionus.rag.embeddings import EmbeddingGateway

        try:
            vector = await EmbeddingGateway().embed("test")
            print_success(f"Embedding API working (dimension: {len(vector)})")
        except Exception as e:
            print_error(f"Embedding API test failed: {e}")
            errors.append(f"API test failed: {e}")
    else:
        print_warning("Skipped - no API key")

    # 5. Test chunk store
    print_section("5. Chunk Store")

    try:
        from aionus.rag.store import get_chunk_store

        store = get_chunk_store()
        recent = await store.recent_chunks(1)
        print_success(f"Chunk store reachable ({type(store).__name__})")
        if not recent:
            print_warning("Chunk store is empty - process a document first")
            warnings.append("No chunks stored")
    except Exception as e:
        print_error(f"Chunk store check failed: {e}")
        errors.append(f"Chunk store error: {e}")

    # 6. Summary
    print_section("Summary")

    if not errors:
        print_success("All checks passed! ✨")
    else:
        print_error(f"Found {len(errors)} error(s):")
        for i, error in enumerate(errors, 1):
            print(f"  {i}. {error}")

    if warnings:
        print_warning(f"\nFound {len(warnings)} warning(s):")
        for i, warning in enumerate(warnings, 1):
            print(f"  {i}. {warning}")

    print()
    return errors, warnings

if __name__ == "__main__":
    errors, warnings = asyncio.run(main())
    sys.exit(1 if errors else 0)
