"""
RAG CLI
=======

Command-line interface for corpus management.

Usage:
    python -m ciprag.rag.cli seed                 # Index the seed directory
    python -m ciprag.rag.cli ingest a.pdf b.txt   # Store and index uploads
    python -m ciprag.rag.cli search "query"       # Test search
    python -m ciprag.rag.cli remove KEY           # Remove an upload
    python -m ciprag.rag.cli stats                # Show statistics
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from ciprag.config import get_settings
from ciprag.errors import RAGError
from ciprag.logging_config import setup_logging
from ciprag.rag.engine import RAGEngine

logger = logging.getLogger(__name__)


async def seed_corpus(engine: RAGEngine) -> bool:
    """Rebuild the seeded corpus."""
    await asyncio.to_thread(engine.cache.load)
    results = await engine.reindex_seeded()

    for r in results:
        if r.ok:
            logger.info(f"Indexed {r.document_key}: {r.chunk_count} chunks")
        else:
            logger.error(f"Failed {r.document_key}: {r.error}")

    stats = engine.pipeline.stats
    logger.info(
        f"Seeding complete: {stats['documents_ingested']} documents, "
        f"{stats['chunks_created']} chunks, cache hit rate {stats['cache']['hit_rate']:.0%}"
    )
    return all(r.ok for r in results)


async def ingest_files(engine: RAGEngine, paths) -> bool:
    """Store files as uploads and index them."""
    await engine.startup(restore_uploads=True)

    success = True
    for path in paths:
        path = Path(path)
        try:
            result = await engine.ingest_upload(path.name, path.read_bytes())
            print(f"{path.name} -> {result.document_key}: {result.chunk_count} chunks")
            if result.failed_pages:
                print(f"  pages not embedded: {result.failed_pages}")
        except (OSError, ValueError, RAGError) as e:
            logger.error(f"Failed to ingest '{path}': {e}")
            success = False
    return success


async def test_search(engine: RAGEngine, query: str, k: int) -> bool:
    """Test retrieval."""
    await engine.startup(restore_uploads=True)
    results = await engine.retrieve(query, k)

    print(f"\n{'=' * 60}")
    print(f"Query: {query}")
    print(f"Normalized: {engine.registry.normalize_query(query)}")
    print(f"Results: {len(results)}")
    print('=' * 60)

    for i, r in enumerate(results, 1):
        marker = " (exact id match)" if r.exact_match else ""
        print(f"\n[{i}] Score: {r.score:.3f} cos={r.cosine:.3f} kw={r.keyword_score:.0f}{marker}")
        print(f"    Source: {r.source_label} -> {r.locator}")
        print(f"    Content: {r.text[:200]}...")

    print(f"\n{'=' * 60}")
    print("FORMATTED CONTEXT FOR LLM:")
    print('=' * 60)
    print(engine.retriever.format_context(results))
    return True


async def remove_upload(engine: RAGEngine, document_key: str) -> bool:
    """Remove an uploaded document."""
    await engine.startup(restore_uploads=True)
    try:
        removed = engine.remove_upload(document_key)
    except RAGError as e:
        logger.error(str(e))
        return False
    print(f"Removed {document_key}: {removed} chunks")
    return True


async def show_stats(engine: RAGEngine) -> bool:
    """Show corpus statistics."""
    await engine.startup(restore_uploads=True)
    stats = engine.stats()

    print(f"\n{'=' * 60}")
    print("RAG STATISTICS")
    print('=' * 60)

    print("\nChunks by source:")
    for source, count in sorted(stats["sources"].items()):
        print(f"  {source}: {count}")

    print(f"\nDocuments: {stats['documents']}")
    print(f"Total chunks: {stats['total_chunks']}")

    print("\nStandards:")
    for base, versions in sorted(stats["standards"].items()):
        print(f"  {base}: versions {versions}")

    print(f"\nCached embeddings: {stats['cache']['entries']}")
    return True


def main():
    parser = argparse.ArgumentParser(description="ciprag corpus CLI")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("seed", help="Index the seed directory")

    ingest_parser = subparsers.add_parser("ingest", help="Store and index files")
    ingest_parser.add_argument("files", nargs="+", help="PDF, TXT or MD files")

    search_parser = subparsers.add_parser("search", help="Test search")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("-k", type=int, default=None, help="Number of results")

    remove_parser = subparsers.add_parser("remove", help="Remove an uploaded document")
    remove_parser.add_argument("key", help="Stored document key")

    subparsers.add_parser("stats", help="Show statistics")

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.logging)
    engine = RAGEngine.from_settings(settings)

    if args.command == "seed":
        coro = seed_corpus(engine)
    elif args.command == "ingest":
        coro = ingest_files(engine, args.files)
    elif args.command == "search":
        coro = test_search(engine, args.query, args.k)
    elif args.command == "remove":
        coro = remove_upload(engine, args.key)
    elif args.command == "stats":
        coro = show_stats(engine)
    else:
        parser.print_help()
        return

    try:
        success = asyncio.run(coro)
    finally:
        engine.shutdown()

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
