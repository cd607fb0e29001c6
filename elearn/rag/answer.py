"""Grounded chat-ask pipeline.

Handles, per request:
- Query embedding generation
- Candidate loading for one document
- Cosine scoring and top-K selection
- Context and citation assembly
- Answer generation from a fixed prompt template

Read-only on storage, no retries and no caching: repeated questions are
re-embedded and re-generated every time.
"""
import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple
import structlog

from elearn import config
from elearn.db import ChunkStore
from elearn.embeddings import EmbeddingProvider
from elearn.errors import EmbeddingFailed, GenerationFailed, NoContent, ProviderError
from elearn.llm_client import TextGenerator
from elearn.rag.similarity import ScoredChunk, rank

logger = structlog.get_logger()

DEFAULT_TOP_K = 6
PROMPT_TEMPLATE_NAME = "answer_grounded.md"


@dataclass
class GroundedAnswer:
    """Answer text plus the ranked chunks it was grounded on."""

    answer: str
    citations: List[str]
    sources: List[ScoredChunk] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"answer": self.answer, "citations": self.citations}


def build_context(ranked: List[ScoredChunk]) -> Tuple[str, List[str]]:
    """Label ranked chunks for the prompt and build matching citations.

    Returns:
        ``(context, citations)``: ``"[Chunk N] ..."`` blocks in rank order,
        and ``"Chunk N (similarity: 0.99)"`` labels in the same order
    """
    context_parts = []
    citations = []
    for position, scored in enumerate(ranked, 1):
        context_parts.append(f"[Chunk {position}] {scored.chunk.content}\n\n")
        citations.append(f"Chunk {position} (similarity: {scored.score:.2f})")
    return "".join(context_parts), citations


def load_prompt_template(prompts_dir: Path = config.PROMPTS_DIR) -> str:
    return (Path(prompts_dir) / PROMPT_TEMPLATE_NAME).read_text(encoding="utf-8")


def render_prompt(template: str, context: str, question: str) -> str:
    # str.replace, not str.format: chunk text may contain braces
    return template.replace("{context}", context).replace("{question}", question)


class GroundedAnswerPipeline:
    """Answers a question from one document's most similar chunks."""

    def __init__(
        self,
        store: ChunkStore,
        embedder: EmbeddingProvider,
        generator: TextGenerator,
        top_k: int = DEFAULT_TOP_K,
        prompt_template: Optional[str] = None,
        generation_timeout: Optional[float] = None,
    ):
        """Initialize the pipeline.

        Args:
            store: Chunk and vector storage (read only)
            embedder: Embedding backend, same model the document was indexed with
            generator: Text-generation backend
            top_k: Number of chunks used as context
            prompt_template: Template with ``{context}`` and ``{question}``
                (the packaged template if not provided)
            generation_timeout: Overall limit in seconds for the generation
                step (the generator's own timeout if not provided)
        """
        self.store = store
        self.embedder = embedder
        self.generator = generator
        self.top_k = top_k
        self.prompt_template = prompt_template or load_prompt_template()
        self.generation_timeout = generation_timeout

    async def _generate(self, prompt: str, system_prompt: str) -> str:
        if self.generation_timeout is None:
            return await self.generator.generate(prompt, system_prompt)
        async with asyncio.timeout(self.generation_timeout):
            return await self.generator.generate(prompt, system_prompt)

    async def ask(self, document_id: str, question: str) -> GroundedAnswer:
        """Answer a question about a document.

        Args:
            document_id: Document to search
            question: The learner's question

        Returns:
            GroundedAnswer with the answer and ordered citations

        Raises:
            EmbeddingFailed: If the question cannot be embedded
            NoContent: If the document has no embedded chunks
            GenerationFailed: If the text-generation call fails or times out
        """
        logger.info(
            "chat_ask_started",
            document_id=document_id,
            question_length=len(question),
            top_k=self.top_k,
        )

        try:
            query_vector = await self.embedder.embed(question)
        except ProviderError as e:
            logger.error(
                "query_embedding_failed",
                document_id=document_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise EmbeddingFailed(
                "Failed to embed question", timed_out=e.timed_out
            ) from e

        pairs = self.store.load_chunks_and_vectors(document_id)
        candidates = [
            (chunk, vector.vector) for chunk, vector in pairs if vector is not None
        ]

        if not candidates:
            logger.warning(
                "no_content_for_document",
                document_id=document_id,
                chunks_stored=len(pairs),
            )
            raise NoContent("No content found for this document. Upload a document first.")

        ranked = rank(query_vector, candidates, self.top_k)
        context, citations = build_context(ranked)

        logger.debug(
            "candidates_ranked",
            document_id=document_id,
            chunks_stored=len(pairs),
            candidates_scored=len(candidates),
            selected=len(ranked),
            top_score=ranked[0].score,
        )

        system_prompt = render_prompt(self.prompt_template, context, question)

        try:
            answer = await self._generate(question, system_prompt)
        except ProviderError as e:
            logger.error(
                "answer_generation_failed",
                document_id=document_id,
                error=str(e),
                timed_out=e.timed_out,
            )
            raise GenerationFailed("Failed to generate answer", timed_out=e.timed_out) from e
        except TimeoutError as e:
            logger.error(
                "answer_generation_failed",
                document_id=document_id,
                error="timeout",
                timed_out=True,
            )
            raise GenerationFailed("Answer generation timed out", timed_out=True) from e

        logger.info(
            "chat_ask_completed",
            document_id=document_id,
            answer_length=len(answer),
            citations=len(citations),
        )

        return GroundedAnswer(answer=answer, citations=citations, sources=ranked)
