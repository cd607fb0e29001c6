"""SQLite persistence for documents, chunks and embedding vectors.

Stores:
- Documents (the unit a question is asked against)
- Source files uploaded into a document
- Text chunks, in sequence order
- One embedding vector per chunk, with its dimension and model
"""
import sqlite3
import json
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime, timezone
import structlog

logger = structlog.get_logger()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Chunk:
    """A persisted slice of a document's extracted text."""

    id: str
    document_id: str
    content: str
    chunk_index: int
    source_file_id: Optional[str] = None
    char_start: Optional[int] = None
    char_end: Optional[int] = None


@dataclass(frozen=True)
class EmbeddingVector:
    """The embedding of exactly one chunk."""

    id: str
    chunk_id: str
    vector: Tuple[float, ...]
    dimension: int
    model: str


@dataclass(frozen=True)
class SourceFile:
    id: str
    document_id: str
    filename: str
    file_path: str
    file_size: int
    created_at: str


class ChunkStore:
    """Chunk and vector storage backed by one SQLite file."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection to the SQLite database.

        Returns:
            sqlite3.Connection with row_factory set to sqlite3.Row and
            foreign keys enforced
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_database(self) -> None:
        """Initialize the database schema.

        Creates tables if they don't exist:
        - documents: one row per document
        - source_files: uploaded files belonging to a document
        - chunks: text chunks with sequence index and offsets
        - embeddings: one vector per chunk (JSON-encoded)
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    title TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS source_files (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL
                        REFERENCES documents(id) ON DELETE CASCADE,
                    filename TEXT NOT NULL,
                    file_path TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL
                        REFERENCES documents(id) ON DELETE CASCADE,
                    source_file_id TEXT
                        REFERENCES source_files(id) ON DELETE CASCADE,
                    chunk_index INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    char_start INTEGER,
                    char_end INTEGER,
                    created_at TEXT NOT NULL,
                    UNIQUE(document_id, source_file_id, chunk_index)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS embeddings (
                    id TEXT PRIMARY KEY,
                    chunk_id TEXT NOT NULL UNIQUE
                        REFERENCES chunks(id) ON DELETE CASCADE,
                    vector TEXT NOT NULL,
                    dimension INTEGER NOT NULL,
                    model TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_chunks_document_id
                ON chunks(document_id, chunk_index)
            """)

            # NULL source ids are distinct to UNIQUE, so text ingested without a
            # source file needs its own constraint
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_chunks_unsourced_index
                ON chunks(document_id, chunk_index)
                WHERE source_file_id IS NULL
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_source_files_document_id
                ON source_files(document_id)
            """)

            conn.commit()
            logger.info("database_initialized", db_path=str(self.db_path))

        except Exception as e:
            conn.rollback()
            logger.error("database_init_failed", error=str(e))
            raise
        finally:
            conn.close()

    def create_document(
        self, document_id: Optional[str] = None, title: Optional[str] = None
    ) -> str:
        """Create a document row.

        Args:
            document_id: ID to use (generated when omitted)
            title: Optional display title

        Returns:
            The document ID
        """
        document_id = document_id or _new_id()
        conn = self.get_connection()

        try:
            conn.execute(
                "INSERT INTO documents (id, title, created_at) VALUES (?, ?, ?)",
                (document_id, title, _now()),
            )
            conn.commit()
            logger.info("document_created", document_id=document_id)
            return document_id

        except Exception as e:
            conn.rollback()
            logger.error("document_create_failed", error=str(e), document_id=document_id)
            raise
        finally:
            conn.close()

    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        """Get a document row as a dict, or None if it doesn't exist."""
        conn = self.get_connection()
        try:
            row = conn.execute(
                "SELECT id, title, created_at FROM documents WHERE id = ?",
                (document_id,),
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def add_source_file(
        self,
        document_id: str,
        filename: str,
        file_path: str,
        file_size: int,
        source_file_id: Optional[str] = None,
    ) -> SourceFile:
        """Record an uploaded file as a source of a document."""
        source = SourceFile(
            id=source_file_id or _new_id(),
            document_id=document_id,
            filename=filename,
            file_path=file_path,
            file_size=file_size,
            created_at=_now(),
        )
        conn = self.get_connection()

        try:
            conn.execute(
                """
                INSERT INTO source_files (
                    id, document_id, filename, file_path, file_size, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    source.id,
                    source.document_id,
                    source.filename,
                    source.file_path,
                    source.file_size,
                    source.created_at,
                ),
            )
            conn.commit()
            logger.info(
                "source_file_added",
                document_id=document_id,
                source_file_id=source.id,
                filename=filename,
            )
            return source

        except Exception as e:
            conn.rollback()
            logger.error("source_file_insert_failed", error=str(e), filename=filename)
            raise
        finally:
            conn.close()

    def get_source_file(self, source_file_id: str) -> Optional[SourceFile]:
        conn = self.get_connection()
        try:
            row = conn.execute(
                """
                SELECT id, document_id, filename, file_path, file_size, created_at
                FROM source_files WHERE id = ?
                """,
                (source_file_id,),
            ).fetchone()
            return SourceFile(**dict(row)) if row else None
        finally:
            conn.close()

    def list_source_files(self, document_id: str) -> List[SourceFile]:
        """List a document's source files, oldest first."""
        conn = self.get_connection()
        try:
            rows = conn.execute(
                """
                SELECT id, document_id, filename, file_path, file_size, created_at
                FROM source_files
                WHERE document_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (document_id,),
            ).fetchall()
            return [SourceFile(**dict(row)) for row in rows]
        finally:
            conn.close()

    def save_chunk(self, chunk: Chunk) -> None:
        """Insert a text chunk.

        Chunks are immutable: saving the same ID twice fails.
        """
        conn = self.get_connection()

        try:
            conn.execute(
                """
                INSERT INTO chunks (
                    id, document_id, source_file_id, chunk_index, content,
                    char_start, char_end, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.id,
                    chunk.document_id,
                    chunk.source_file_id,
                    chunk.chunk_index,
                    chunk.content,
                    chunk.char_start,
                    chunk.char_end,
                    _now(),
                ),
            )
            conn.commit()

        except Exception as e:
            conn.rollback()
            logger.error(
                "chunk_insert_failed",
                error=str(e),
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
            )
            raise
        finally:
            conn.close()

    def save_vector(self, vector: EmbeddingVector) -> None:
        """Insert the embedding of a chunk.

        Raises:
            ValueError: If the vector length doesn't match its declared dimension
            sqlite3.IntegrityError: If the chunk already has a vector
        """
        if len(vector.vector) != vector.dimension:
            raise ValueError(
                f"Vector length {len(vector.vector)} does not match "
                f"declared dimension {vector.dimension}"
            )

        conn = self.get_connection()

        try:
            conn.execute(
                """
                INSERT INTO embeddings (
                    id, chunk_id, vector, dimension, model, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    vector.id,
                    vector.chunk_id,
                    json.dumps(list(vector.vector)),
                    vector.dimension,
                    vector.model,
                    _now(),
                ),
            )
            conn.commit()

        except Exception as e:
            conn.rollback()
            logger.error("vector_insert_failed", error=str(e), chunk_id=vector.chunk_id)
            raise
        finally:
            conn.close()

    def load_chunks_and_vectors(
        self, document_id: str
    ) -> List[Tuple[Chunk, Optional[EmbeddingVector]]]:
        """Load every chunk of a document with its vector, if it has one.

        Returns:
            ``(chunk, vector)`` pairs ordered by source file then chunk
            index; ``vector`` is None for chunks whose embedding failed
        """
        conn = self.get_connection()

        try:
            rows = conn.execute(
                """
                SELECT
                    c.id, c.document_id, c.source_file_id, c.chunk_index,
                    c.content, c.char_start, c.char_end,
                    e.id AS embedding_id, e.vector, e.dimension, e.model
                FROM chunks c
                LEFT JOIN source_files s ON s.id = c.source_file_id
                LEFT JOIN embeddings e ON e.chunk_id = c.id
                WHERE c.document_id = ?
                ORDER BY s.created_at ASC, s.rowid ASC, c.chunk_index ASC, c.rowid ASC
                """,
                (document_id,),
            ).fetchall()

            pairs = []
            for row in rows:
                chunk = Chunk(
                    id=row["id"],
                    document_id=row["document_id"],
                    source_file_id=row["source_file_id"],
                    chunk_index=row["chunk_index"],
                    content=row["content"],
                    char_start=row["char_start"],
                    char_end=row["char_end"],
                )
                vector = None
                if row["embedding_id"] is not None:
                    vector = EmbeddingVector(
                        id=row["embedding_id"],
                        chunk_id=row["id"],
                        vector=tuple(json.loads(row["vector"])),
                        dimension=row["dimension"],
                        model=row["model"],
                    )
                pairs.append((chunk, vector))

            return pairs

        except Exception as e:
            logger.error("chunks_retrieval_failed", error=str(e), document_id=document_id)
            raise
        finally:
            conn.close()

    def count_chunks(self, document_id: Optional[str] = None) -> int:
        """Count chunks, for one document or overall."""
        conn = self.get_connection()
        try:
            if document_id is None:
                row = conn.execute("SELECT COUNT(*) FROM chunks").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM chunks WHERE document_id = ?",
                    (document_id,),
                ).fetchone()
            return row[0]
        finally:
            conn.close()

    def next_chunk_index(
        self, document_id: str, source_file_id: Optional[str] = None
    ) -> int:
        """Sequence index the next chunk of this document and source should get."""
        conn = self.get_connection()
        try:
            row = conn.execute(
                """
                SELECT COALESCE(MAX(chunk_index) + 1, 0) FROM chunks
                WHERE document_id = ? AND source_file_id IS ?
                """,
                (document_id, source_file_id),
            ).fetchone()
            return row[0]
        finally:
            conn.close()

    def delete_document(self, document_id: str) -> bool:
        """Delete a document with its source files, chunks and vectors.

        Returns:
            True if the document existed
        """
        conn = self.get_connection()

        try:
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
            logger.info("document_deleted", document_id=document_id, existed=deleted)
            return deleted

        except Exception as e:
            conn.rollback()
            logger.error("document_delete_failed", error=str(e), document_id=document_id)
            raise
        finally:
            conn.close()

    def delete_source_file(
        self, source_file_id: str, delete_empty_document: bool = True
    ) -> Dict[str, Any]:
        """Delete one source file with its chunks and vectors.

        When it was the document's last source file the document goes too,
        unless ``delete_empty_document`` is False.

        Returns:
            Dict with ``deleted``, ``files_remaining`` and ``document_deleted``
        """
        conn = self.get_connection()

        try:
            row = conn.execute(
                "SELECT document_id FROM source_files WHERE id = ?",
                (source_file_id,),
            ).fetchone()
            if row is None:
                return {"deleted": False, "files_remaining": 0, "document_deleted": False}

            document_id = row["document_id"]
            conn.execute("DELETE FROM source_files WHERE id = ?", (source_file_id,))

            remaining = conn.execute(
                "SELECT COUNT(*) FROM source_files WHERE document_id = ?",
                (document_id,),
            ).fetchone()[0]

            document_deleted = False
            if remaining == 0 and delete_empty_document:
                conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
                document_deleted = True

            conn.commit()

            logger.info(
                "source_file_deleted",
                source_file_id=source_file_id,
                document_id=document_id,
                files_remaining=remaining,
                document_deleted=document_deleted,
            )

            return {
                "deleted": True,
                "files_remaining": remaining,
                "document_deleted": document_deleted,
            }

        except Exception as e:
            conn.rollback()
            logger.error("source_file_delete_failed", error=str(e), source_file_id=source_file_id)
            raise
        finally:
            conn.close()
