#!/usr/bin/env python
"""Ingest PDFs into a document and optionally ask a question about it.

Usage:
    python scripts/ingest_pdf.py book.pdf                       # New document
    python scripts/ingest_pdf.py a.pdf b.pdf --document-id ID   # Add to a document
    python scripts/ingest_pdf.py book.pdf --ask "What is X?"    # Ingest, then ask
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from elearn.config import Settings
from elearn.db import ChunkStore
from elearn.embeddings import create_embedding_provider
from elearn.errors import RAGError
from elearn.llm_client import create_text_generator
from elearn.rag.answer import GroundedAnswerPipeline, load_prompt_template
from elearn.rag.ingest import IngestPipeline
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self):
        self.start_time = None
        self.totals = {
            "files_processed": 0,
            "files_failed": 0,
            "chunks_created": 0,
            "embeddings_generated": 0,
            "embeddings_failed": 0,
        }

    def start(self, message: str):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def file_done(self, current: int, total: int, path: Path, result):
        self.totals["files_processed"] += 1
        self.totals["chunks_created"] += result.chunks_created
        self.totals["embeddings_generated"] += result.embeddings_generated
        self.totals["embeddings_failed"] += result.embeddings_failed
        print(
            f"  ({current}/{total}) {path.name[:30]:<30} "
            f"{result.chunks_created} chunks, {result.embeddings_failed} without vector"
        )

    def file_failed(self, current: int, total: int, path: Path, error: Exception):
        self.totals["files_failed"] += 1
        print(f"  ({current}/{total}) {path.name[:30]:<30} failed: {error}")

    def finish(self, document_id: str):
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"\n{'=' * 60}")
        print("  Ingestion Complete")
        print(f"{'=' * 60}\n")
        print(f"  Document:             {document_id}")
        print(f"  Files processed:      {self.totals['files_processed']}")
        print(f"  Files failed:         {self.totals['files_failed']}")
        print(f"  Chunks created:       {self.totals['chunks_created']}")
        print(f"  Embeddings generated: {self.totals['embeddings_generated']}")
        print(f"  Embeddings failed:    {self.totals['embeddings_failed']}")
        print(f"  Time elapsed:         {elapsed_seconds:.1f}s")
        print(f"\n{'=' * 60}\n")


async def main():
    """Main entry point for the ingest script."""
    parser = argparse.ArgumentParser(
        description="Ingest PDFs and ask grounded questions about them",
    )
    parser.add_argument("pdfs", nargs="+", type=Path, help="PDF files to ingest")
    parser.add_argument(
        "--document-id",
        default=None,
        help="Existing document to add the files to (default: create one)",
    )
    parser.add_argument("--title", default=None, help="Title for a new document")
    parser.add_argument("--ask", default=None, help="Question to ask after ingesting")

    args = parser.parse_args()
    settings = Settings.from_env()

    print("\nConfiguration:")
    print(f"   Database:            {settings.db_path}")
    print(f"   Embedding provider:  {settings.embedding_provider} ({settings.embedding_model})")
    print(f"   Chunk size:          {settings.chunk_size} chars")
    print(f"   Chunk overlap:       {settings.chunk_overlap} chars")
    print(f"   Top-K retrieval:     {settings.retrieval_top_k}")

    store = ChunkStore(settings.db_path)
    store.init_database()
    embedder = create_embedding_provider(settings)
    pipeline = IngestPipeline(settings, store, embedder)

    progress = ProgressReporter()
    progress.start(f"Ingesting {len(args.pdfs)} file(s)")

    document_id = args.document_id
    for idx, pdf_path in enumerate(args.pdfs, 1):
        try:
            result = await pipeline.ingest_pdf(
                pdf_path, document_id=document_id, title=args.title
            )
        except (FileNotFoundError, RuntimeError) as e:
            logger.error("file_ingestion_failed", path=str(pdf_path), error=str(e))
            progress.file_failed(idx, len(args.pdfs), pdf_path, e)
            continue

        document_id = result.document_id
        progress.file_done(idx, len(args.pdfs), pdf_path, result)

    if document_id is None:
        print("No file was ingested.\n")
        sys.exit(1)

    progress.finish(document_id)

    if args.ask:
        answerer = GroundedAnswerPipeline(
            store,
            embedder,
            create_text_generator(settings),
            top_k=settings.retrieval_top_k,
            generation_timeout=settings.generation_timeout,
            prompt_template=load_prompt_template(settings.prompts_dir),
        )
        try:
            answer = await answerer.ask(document_id, args.ask)
        except RAGError as e:
            print(f"Error ({e.kind.value}): {e.message}\n")
            sys.exit(1)

        print(f"Q: {args.ask}\n")
        print(f"{answer.answer}\n")
        for citation in answer.citations:
            print(f"  - {citation}")
        print()

    if progress.totals["files_failed"] > 0:
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\nIngestion cancelled by user.\n")
        sys.exit(1)
