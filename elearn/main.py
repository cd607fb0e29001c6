"""Main Quart application for the elearn document chat service."""
import logging
import uuid
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError
from quart import Quart, request, jsonify
import structlog

from elearn.config import Settings
from elearn.db import ChunkStore
from elearn.embeddings import create_embedding_provider
from elearn.errors import ErrorKind, RAGError
from elearn.llm_client import OllamaGenerator, create_text_generator
from elearn.rag.answer import GroundedAnswerPipeline, load_prompt_template
from elearn.rag.ingest import IngestPipeline

logger = structlog.get_logger()

MAX_QUESTION_LENGTH = 2000


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(format="%(message)s", level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


class ChatAskRequest(BaseModel):
    """Body of POST /api/chat/ask."""

    document_id: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1, max_length=MAX_QUESTION_LENGTH)


def _status_for(error: RAGError) -> int:
    if error.kind is ErrorKind.NO_CONTENT:
        return 404
    if error.kind is ErrorKind.EMBEDDING_FAILED:
        return 503
    return 504 if error.timed_out else 502


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ChunkStore] = None,
    ingest_pipeline: Optional[IngestPipeline] = None,
    answer_pipeline: Optional[GroundedAnswerPipeline] = None,
) -> Quart:
    """Build the application and its collaborators once.

    Any collaborator passed in is used as-is; the rest are built from
    ``settings``.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    if store is None:
        store = ChunkStore(settings.db_path)
        store.init_database()

    generator = None
    if ingest_pipeline is None or answer_pipeline is None:
        embedder = create_embedding_provider(settings)
        if ingest_pipeline is None:
            ingest_pipeline = IngestPipeline(settings, store, embedder)
        if answer_pipeline is None:
            generator = create_text_generator(settings)
            answer_pipeline = GroundedAnswerPipeline(
                store,
                embedder,
                generator,
                top_k=settings.retrieval_top_k,
                generation_timeout=settings.generation_timeout,
                prompt_template=load_prompt_template(settings.prompts_dir),
            )

    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_size

    @app.route("/api/upload", methods=["POST"])
    async def upload_pdf():
        """Upload a PDF and ingest it.

        Expects multipart form data:
            file: the PDF
            document_id: optional, adds the file to an existing document

        Returns JSON:
        {
            "document_id": "uuid",
            "source_file_id": "uuid",
            "pdf_name": "file.pdf",
            "chunks_created": 3,
            "embeddings_generated": 3,
            "message": "..."
        }
        """
        files = await request.files
        form = await request.form
        upload = files.get("file")

        if upload is None or not upload.filename:
            return jsonify({"error": "No file provided"}), 400

        if not upload.filename.lower().endswith(".pdf"):
            return jsonify({"error": "Only PDF files are allowed"}), 400

        document_id = form.get("document_id") or None
        if document_id and store.get_document(document_id) is None:
            return jsonify({"error": "Document not found"}), 404

        settings.upload_dir.mkdir(parents=True, exist_ok=True)
        safe_name = Path(upload.filename).name
        saved_path = settings.upload_dir / f"{uuid.uuid4()}_{safe_name}"
        await upload.save(saved_path)

        if saved_path.stat().st_size > settings.max_upload_size:
            saved_path.unlink()
            return jsonify({"error": "File size exceeds upload limit"}), 400

        try:
            result = await ingest_pipeline.ingest_pdf(
                saved_path, document_id=document_id, filename=safe_name
            )
        except RuntimeError as e:
            logger.error("pdf_extraction_failed", error=str(e), filename=safe_name)
            saved_path.unlink(missing_ok=True)
            return jsonify({"error": "Failed to extract text from PDF"}), 422
        except Exception:
            saved_path.unlink(missing_ok=True)
            raise

        return jsonify({
            "document_id": result.document_id,
            "source_file_id": result.source_file_id,
            "pdf_name": result.filename,
            "chunks_created": result.chunks_created,
            "embeddings_generated": result.embeddings_generated,
            "message": f"PDF uploaded and processed into {result.chunks_created} chunks",
        })

    @app.route("/api/chat/ask", methods=["POST"])
    async def chat_ask():
        """Answer a question grounded in one document.

        Expects JSON body:
        {
            "document_id": "uuid",
            "question": "..."
        }

        Returns JSON:
        {
            "answer": "...",
            "citations": ["Chunk 1 (similarity: 0.91)", ...]
        }
        """
        data = await request.get_json(silent=True)
        try:
            body = ChatAskRequest.model_validate(data or {})
        except ValidationError as e:
            logger.warning("invalid_chat_request", errors=e.error_count())
            return jsonify({"error": "Request needs non-empty 'document_id' and 'question'"}), 400

        question = body.question.strip()
        if not question:
            return jsonify({"error": "Question cannot be empty"}), 400

        try:
            result = await answer_pipeline.ask(body.document_id, question)
        except RAGError as e:
            return jsonify(e.to_dict()), _status_for(e)

        return jsonify(result.to_dict())

    @app.route("/api/files/<document_id>", methods=["GET"])
    async def list_source_files(document_id: str):
        files = store.list_source_files(document_id)
        return jsonify({
            "document_id": document_id,
            "files": [
                {
                    "id": f.id,
                    "filename": f.filename,
                    "file_size": f.file_size,
                    "created_at": f.created_at,
                }
                for f in files
            ],
        })

    @app.route("/api/files/<document_id>/<file_id>", methods=["DELETE"])
    async def delete_source_file(document_id: str, file_id: str):
        """Delete a source file with its chunks and vectors.

        Removing a document's last file removes the document too.
        """
        source = store.get_source_file(file_id)
        if source is None or source.document_id != document_id:
            return jsonify({"error": "File not found"}), 404

        outcome = store.delete_source_file(file_id)

        try:
            Path(source.file_path).unlink()
        except OSError as e:
            logger.warning("stored_file_delete_failed", file_path=source.file_path, error=str(e))

        return jsonify({
            "message": "File deleted successfully",
            "files_remaining": outcome["files_remaining"],
            "document_deleted": outcome["document_deleted"],
        })

    @app.route("/api/documents/<document_id>", methods=["DELETE"])
    async def delete_document(document_id: str):
        files = store.list_source_files(document_id)
        if not store.delete_document(document_id):
            return jsonify({"error": "Document not found"}), 404

        for f in files:
            Path(f.file_path).unlink(missing_ok=True)

        return "", 204

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - check if app can serve requests.

        Checks:
        - The database is readable
        - A local Ollama generator has its chat model
        """
        checks = {
            "status": "healthy",
            "database": False,
            "model_provider": settings.model_provider,
            "embedding_provider": settings.embedding_provider,
        }

        try:
            store.count_chunks()
            checks["database"] = True

            if isinstance(generator, OllamaGenerator):
                models = await generator.list_models()
                if generator.model not in models:
                    checks["status"] = "unhealthy"
                    checks["error"] = f"Missing chat model: {generator.model}"

            status_code = 200 if checks["status"] == "healthy" else 503
            return jsonify(checks), status_code

        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            checks["status"] = "unhealthy"
            checks["error"] = str(e)
            return jsonify(checks), 503

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    async def too_large(error):
        return jsonify({"error": "File size exceeds upload limit"}), 413

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    logger.info(
        "app_created",
        model_provider=settings.model_provider,
        embedding_provider=settings.embedding_provider,
        db_path=str(settings.db_path),
    )

    return app


def run() -> None:
    """Development entry point; use hypercorn in production."""
    create_app().run(host="0.0.0.0", port=8080)


if __name__ == "__main__":
    run()
