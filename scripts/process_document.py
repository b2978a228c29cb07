#!/usr/bin/env python
"""Process a local document into the chunk store.

Usage:
    python scripts/process_document.py brochure.pdf --document-id <uuid>
    python scripts/process_document.py faq.md --document-id <uuid> --type faq --store faiss
    python scripts/process_document.py prices.docx --document-id <uuid> --query "2BHK price"
"""
import argparse
import asyncio
import mimetypes
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from aionus import config
from aionus.main import configure_logging
from aionus.rag import store as store_module
from aionus.rag.chunker import TextChunker
from aionus.rag.extract import DOCX, extract_text
from aionus.rag.ingest import DocumentProcessor
from aionus.rag.models import DocumentType
from aionus.rag.normalizer import normalize_text
from aionus.rag.retriever import Retriever
import structlog

logger = structlog.get_logger()

mimetypes.add_type(DOCX, ".docx")
mimetypes.add_type("text/markdown", ".md")


def guess_content_type(path: Path) -> str:
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or "application/octet-stream"


def print_summary(result, stats: dict, elapsed_seconds: float):
    """Print the processing outcome."""
    print(f"\n{'=' * 60}")
    print("  Processing Complete!" if result.success else "  Processing Failed")
    print(f"{'=' * 60}\n")
    print(f"  📝 Chunks created:       {result.chunks_created}")
    print(f"  📄 Total chunks:         {result.total_chunks}")
    print(f"  ❌ Chunks skipped:       {result.chunks_skipped}")
    if stats.get("chunk_count"):
        print(f"  📏 Chunk sizes:          {stats['min_chunk_size']}-{stats['max_chunk_size']} chars "
              f"(avg {stats['avg_chunk_size']})")
    print(f"  ⏱️  Time elapsed:         {elapsed_seconds:.1f}s")
    if result.error:
        print(f"\n  Error: {result.error}")
    print(f"\n{'=' * 60}\n")


async def main():
    """Main entry point for the processing script."""
    parser = argparse.ArgumentParser(
        description="Chunk, embed and store a document for RAG",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("path", type=Path, help="Document to process (pdf, docx, txt, md)")
    parser.add_argument("--document-id", required=True, help="Id of the parent document record")
    parser.add_argument(
        "--type",
        dest="document_type",
        choices=[t.value for t in DocumentType],
        default=DocumentType.BROCHURE.value,
        help="Document type (default: brochure)",
    )
    parser.add_argument("--content-type", default=None, help="Override the guessed MIME type")
    parser.add_argument(
        "--store",
        choices=["supabase", "faiss"],
        default=None,
        help=f"Chunk store backend (default: {config.VECTOR_STORE})",
    )
    parser.add_argument(
        "--strategy",
        choices=["sentence", "paragraph"],
        default=None,
        help=f"Chunking strategy (default: {config.CHUNK_STRATEGY})",
    )
    parser.add_argument("--query", default=None, help="Run a retrieval after processing")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logs")

    args = parser.parse_args()

    configure_logging("DEBUG" if args.verbose else "WARNING")

    if args.store:
        config.VECTOR_STORE = args.store

    if not args.path.exists():
        print(f"\n❌ Error: file not found: {args.path}\n")
        sys.exit(1)

    content_type = args.content_type or guess_content_type(args.path)
    raw_bytes = args.path.read_bytes()

    print("\n📋 Configuration:")
    print(f"   Document:         {args.path} ({content_type})")
    print(f"   Document type:    {args.document_type}")
    print(f"   Vector store:     {config.VECTOR_STORE}")
    print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
    print(f"   Chunk size:       {config.CHUNK_SIZE} chars")
    print(f"   Chunk overlap:    {config.CHUNK_OVERLAP} chars")

    try:
        chunker = TextChunker(strategy=args.strategy)
        processor = DocumentProcessor(chunker=chunker)

        start_time = datetime.now()
        result = await processor.process_document(
            raw_bytes, args.document_id, content_type, args.document_type
        )
        elapsed = (datetime.now() - start_time).total_seconds()

        # Chunk statistics for the report only; extraction is cheap to repeat
        stats = {}
        if result.total_chunks:
            text = normalize_text(
                extract_text(raw_bytes, content_type),
                keep_paragraphs=chunker.strategy == "paragraph",
            )
            stats = chunker.get_chunk_stats(chunker.chunk_text(text))

        print_summary(result, stats, elapsed)

        if args.query and result.success:
            context = await Retriever(store=store_module.get_chunk_store()).retrieve(args.query)
            print(f"🔍 Query: {args.query}")
            print(f"   Source: {context.source.value}, chunks: {context.chunk_count}\n")
            print(context.context_text or "(no relevant information found)")
            print()

        if not result.success:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\n⚠️  Processing cancelled by user.\n")
        sys.exit(1)

    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("process_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
