"""Ingest pipeline for PDF documents.

Orchestrates:
- Document and source-file bookkeeping
- PDF text extraction
- Text chunking
- Embedding generation (one vector per chunk, failures tolerated)
- Chunk and vector storage
"""
from dataclasses import dataclass
from pathlib import Path
from typing import List, Dict, Any, Optional, Union
import asyncio
import uuid
import structlog

from elearn.config import Settings
from elearn.db import Chunk, ChunkStore, EmbeddingVector
from elearn.embeddings import EmbeddingProvider
from elearn.errors import ProviderError
from elearn.rag.chunker import TextChunker
from elearn.rag.pdf_parser import PDFParser

logger = structlog.get_logger()


@dataclass
class IngestResult:
    """Outcome of ingesting one file."""

    document_id: str
    source_file_id: str
    filename: str
    chunks_created: int
    embeddings_generated: int
    embeddings_failed: int


class IngestPipeline:
    """Pipeline for ingesting PDFs into the chat-ask store."""

    def __init__(
        self,
        settings: Settings,
        store: ChunkStore,
        embedder: EmbeddingProvider,
        parser: Optional[PDFParser] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            settings: Application settings (chunking, concurrency)
            store: Chunk and vector storage
            embedder: Embedding backend
            parser: PDF text extractor (a default one if not provided)
        """
        self.store = store
        self.embedder = embedder
        self.parser = parser or PDFParser()
        self.chunker = TextChunker(
            chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap
        )
        self.concurrency = max(1, settings.embedding_concurrency)

        logger.info(
            "ingest_pipeline_initialized",
            embedding_provider=embedder.provider_name,
            embedding_model=embedder.model_name,
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            concurrency=self.concurrency,
        )

    async def _embed_one(
        self, chunk: Chunk, semaphore: asyncio.Semaphore
    ) -> Optional[List[float]]:
        """Embed a chunk, returning None when the provider fails."""
        async with semaphore:
            try:
                return await self.embedder.embed(chunk.content)
            except ProviderError as e:
                logger.warning(
                    "embedding_generation_failed",
                    document_id=chunk.document_id,
                    chunk_index=chunk.chunk_index,
                    provider=e.provider,
                    error=str(e),
                )
                return None

    async def generate_embeddings(
        self, chunks: List[Chunk]
    ) -> List[Optional[List[float]]]:
        """Generate embeddings for chunks, one result per chunk.

        Runs up to ``concurrency`` requests at once; with the default of 1
        the chunks are embedded sequentially. A failed chunk yields None.
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        return await asyncio.gather(
            *(self._embed_one(chunk, semaphore) for chunk in chunks)
        )

    async def ingest_text(
        self,
        document_id: str,
        text: str,
        source_file_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Chunk, persist and embed a document's text.

        Every chunk is stored even when its embedding fails; such chunks are
        kept text-only and are not retried.

        Args:
            document_id: Owning document
            text: Extracted text
            source_file_id: File the text came from, if any

        Returns:
            Dictionary with chunks_created, embeddings_generated and
            embeddings_failed
        """
        text_chunks = self.chunker.chunk_text(text)

        if not text_chunks:
            logger.warning("no_chunks_created", document_id=document_id)
            return {"chunks_created": 0, "embeddings_generated": 0, "embeddings_failed": 0}

        # Text added to the same document and source continues its sequence
        first_index = self.store.next_chunk_index(document_id, source_file_id)

        chunks = [
            Chunk(
                id=str(uuid.uuid4()),
                document_id=document_id,
                source_file_id=source_file_id,
                chunk_index=first_index + tc.chunk_index,
                content=tc.content,
                char_start=tc.char_start,
                char_end=tc.char_end,
            )
            for tc in text_chunks
        ]

        for chunk in chunks:
            self.store.save_chunk(chunk)

        embeddings = await self.generate_embeddings(chunks)

        # Writes happen in sequence order regardless of completion order
        generated = 0
        for chunk, embedding in zip(chunks, embeddings):
            if embedding is None:
                continue
            self.store.save_vector(
                EmbeddingVector(
                    id=str(uuid.uuid4()),
                    chunk_id=chunk.id,
                    vector=tuple(embedding),
                    dimension=self.embedder.dimension,
                    model=self.embedder.model_name,
                )
            )
            generated += 1

        stats = {
            "chunks_created": len(chunks),
            "embeddings_generated": generated,
            "embeddings_failed": len(chunks) - generated,
        }

        chunk_stats = self.chunker.get_chunk_stats(text_chunks)
        logger.info(
            "text_ingested",
            document_id=document_id,
            avg_chunk_size=chunk_stats["avg_chunk_size"],
            max_chunk_size=chunk_stats["max_chunk_size"],
            **stats,
        )

        return stats

    async def ingest_pdf(
        self,
        pdf_path: Union[str, Path],
        document_id: Optional[str] = None,
        filename: Optional[str] = None,
        title: Optional[str] = None,
    ) -> IngestResult:
        """Ingest a single PDF file into a document.

        Args:
            pdf_path: Path to the stored PDF
            document_id: Existing document to add to (a new one if omitted)
            filename: Original upload name (defaults to the file name)
            title: Title for a newly created document

        Returns:
            IngestResult for the file

        Raises:
            FileNotFoundError: If the PDF or the given document doesn't exist
            RuntimeError: If the PDF cannot be opened
        """
        pdf_path = Path(pdf_path)
        filename = filename or pdf_path.name

        logger.info("ingesting_file", path=str(pdf_path), document_id=document_id)

        if document_id is not None and self.store.get_document(document_id) is None:
            raise FileNotFoundError(f"Document not found: {document_id}")

        text = self.parser.extract_text(pdf_path)

        created_document = document_id is None
        if created_document:
            document_id = self.store.create_document(title=title or filename)

        source = None
        try:
            source = self.store.add_source_file(
                document_id=document_id,
                filename=filename,
                file_path=str(pdf_path),
                file_size=pdf_path.stat().st_size,
            )
            stats = await self.ingest_text(document_id, text, source_file_id=source.id)
        except Exception as e:
            logger.error(
                "file_ingestion_rolled_back",
                path=str(pdf_path),
                document_id=document_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            if created_document:
                self.store.delete_document(document_id)
            elif source is not None:
                self.store.delete_source_file(source.id, delete_empty_document=False)
            raise

        logger.info(
            "file_ingested",
            path=str(pdf_path),
            document_id=document_id,
            source_file_id=source.id,
            chunks_created=stats["chunks_created"],
        )

        return IngestResult(
            document_id=document_id,
            source_file_id=source.id,
            filename=filename,
            **stats,
        )
