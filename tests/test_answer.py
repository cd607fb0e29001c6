"""Tests for the grounded chat-ask pipeline."""
import asyncio

import pytest

from elearn.db import Chunk, EmbeddingVector
from elearn.errors import (
    EmbeddingFailed,
    ErrorKind,
    GenerationFailed,
    NoContent,
    ProviderError,
)
from elearn.rag.answer import (
    GroundedAnswerPipeline,
    build_context,
    load_prompt_template,
    render_prompt,
)
from elearn.rag.similarity import ScoredChunk
from tests.conftest import FakeEmbedder, FakeGenerator

QUESTION = "What do plants make from light?"


def _seed(store, contents_and_vectors):
    """Store chunks in order; a None vector leaves the chunk text-only."""
    doc = store.create_document()
    for index, (content, vector) in enumerate(contents_and_vectors):
        chunk = Chunk(
            id=f"{doc}-{index}", document_id=doc, content=content, chunk_index=index
        )
        store.save_chunk(chunk)
        if vector is not None:
            store.save_vector(
                EmbeddingVector(
                    id=f"v-{index}",
                    chunk_id=chunk.id,
                    vector=tuple(vector),
                    dimension=len(vector),
                    model="fake-embed",
                )
            )
    return doc


@pytest.fixture
def three_chunk_doc(store):
    return _seed(
        store,
        [
            ("Plants make sugar from light.", [1.0, 0.0]),
            ("Rocks are made of minerals.", [0.0, 1.0]),
            ("Chlorophyll absorbs light.", [0.9, 0.1]),
        ],
    )


@pytest.mark.asyncio
async def test_ask_uses_top_k_chunks_in_rank_order(store, three_chunk_doc):
    embedder = FakeEmbedder(vectors={QUESTION: [1.0, 0.0]})
    generator = FakeGenerator(answer="Sugar (Chunk 1).")
    pipeline = GroundedAnswerPipeline(store, embedder, generator, top_k=2)

    result = await pipeline.ask(three_chunk_doc, QUESTION)

    assert result.answer == "Sugar (Chunk 1)."
    assert result.citations == ["Chunk 1 (similarity: 1.00)", "Chunk 2 (similarity: 0.99)"]
    assert [s.chunk.content for s in result.sources] == [
        "Plants make sugar from light.",
        "Chlorophyll absorbs light.",
    ]

    prompt, system_prompt = generator.calls[0]
    assert prompt == QUESTION
    assert "[Chunk 1] Plants make sugar from light.\n\n" in system_prompt
    assert "[Chunk 2] Chlorophyll absorbs light.\n\n" in system_prompt
    assert "Rocks" not in system_prompt
    assert QUESTION in system_prompt
    assert "{context}" not in system_prompt
    assert "{question}" not in system_prompt


@pytest.mark.asyncio
async def test_ask_with_fewer_candidates_than_top_k(store, three_chunk_doc):
    embedder = FakeEmbedder(vectors={QUESTION: [1.0, 0.0]})
    pipeline = GroundedAnswerPipeline(store, embedder, FakeGenerator(), top_k=6)

    result = await pipeline.ask(three_chunk_doc, QUESTION)

    assert len(result.citations) == 3
    assert result.citations[-1] == "Chunk 3 (similarity: 0.00)"


@pytest.mark.asyncio
async def test_chunks_without_vectors_are_not_candidates(store):
    doc = _seed(
        store,
        [
            ("embedded one", [1.0, 0.0]),
            ("failed to embed", None),
            ("embedded two", [0.5, 0.5]),
        ],
    )
    generator = FakeGenerator()
    pipeline = GroundedAnswerPipeline(
        store, FakeEmbedder(default=[1.0, 0.0]), generator, top_k=6
    )

    result = await pipeline.ask(doc, QUESTION)

    assert len(result.citations) == 2
    assert "failed to embed" not in generator.calls[0][1]


@pytest.mark.asyncio
async def test_query_embedding_failure_raises_embedding_failed(store, three_chunk_doc):
    generator = FakeGenerator()
    pipeline = GroundedAnswerPipeline(
        store, FakeEmbedder(fail_on=["plants"]), generator
    )

    with pytest.raises(EmbeddingFailed) as exc_info:
        await pipeline.ask(three_chunk_doc, QUESTION)

    assert exc_info.value.kind is ErrorKind.EMBEDDING_FAILED
    assert generator.calls == []


@pytest.mark.asyncio
async def test_unknown_document_raises_no_content(store):
    generator = FakeGenerator()
    pipeline = GroundedAnswerPipeline(store, FakeEmbedder(), generator)

    with pytest.raises(NoContent) as exc_info:
        await pipeline.ask("no-such-document", QUESTION)

    assert exc_info.value.to_dict()["kind"] == "no_content"
    assert generator.calls == []


@pytest.mark.asyncio
async def test_document_with_only_text_chunks_raises_no_content(store):
    doc = _seed(store, [("text only", None), ("also text only", None)])
    pipeline = GroundedAnswerPipeline(store, FakeEmbedder(), FakeGenerator())

    with pytest.raises(NoContent):
        await pipeline.ask(doc, QUESTION)


@pytest.mark.asyncio
async def test_provider_error_raises_generation_failed(store, three_chunk_doc):
    generator = FakeGenerator(error=ProviderError("boom", provider="fake", status_code=500))
    pipeline = GroundedAnswerPipeline(store, FakeEmbedder(), generator)

    with pytest.raises(GenerationFailed) as exc_info:
        await pipeline.ask(three_chunk_doc, QUESTION)

    assert exc_info.value.kind is ErrorKind.GENERATION_FAILED
    assert not exc_info.value.timed_out


@pytest.mark.asyncio
async def test_provider_timeout_is_reported_as_timed_out(store, three_chunk_doc):
    generator = FakeGenerator(error=ProviderError("slow", provider="fake", timed_out=True))
    pipeline = GroundedAnswerPipeline(store, FakeEmbedder(), generator)

    with pytest.raises(GenerationFailed) as exc_info:
        await pipeline.ask(three_chunk_doc, QUESTION)

    assert exc_info.value.timed_out


@pytest.mark.asyncio
async def test_overall_generation_timeout(store, three_chunk_doc):
    class HangingGenerator(FakeGenerator):
        async def generate(self, prompt, system_prompt=""):
            await asyncio.sleep(5)
            return "too late"

    pipeline = GroundedAnswerPipeline(
        store, FakeEmbedder(), HangingGenerator(), generation_timeout=0.05
    )

    with pytest.raises(GenerationFailed) as exc_info:
        await pipeline.ask(three_chunk_doc, QUESTION)

    assert exc_info.value.timed_out


@pytest.mark.asyncio
async def test_asking_twice_calls_backends_twice(store, three_chunk_doc):
    embedder = FakeEmbedder()
    generator = FakeGenerator()
    pipeline = GroundedAnswerPipeline(store, embedder, generator)

    await pipeline.ask(three_chunk_doc, QUESTION)
    await pipeline.ask(three_chunk_doc, QUESTION)

    assert embedder.calls == [QUESTION, QUESTION]
    assert len(generator.calls) == 2


def test_build_context_labels_by_rank():
    ranked = [
        ScoredChunk(Chunk(id="b", document_id="d", content="second", chunk_index=5), 0.876),
        ScoredChunk(Chunk(id="a", document_id="d", content="first", chunk_index=0), 0.5),
    ]

    context, citations = build_context(ranked)

    assert context == "[Chunk 1] second\n\n[Chunk 2] first\n\n"
    assert citations == ["Chunk 1 (similarity: 0.88)", "Chunk 2 (similarity: 0.50)"]


def test_render_prompt_leaves_braces_in_chunk_text_alone():
    rendered = render_prompt("C: {context} Q: {question}", "f(x) = {x}", "why?")
    assert rendered == "C: f(x) = {x} Q: why?"


def test_packaged_template_has_placeholders():
    template = load_prompt_template()
    assert "{context}" in template
    assert "{question}" in template


@pytest.mark.asyncio
async def test_template_from_custom_prompts_dir(store, three_chunk_doc, tmp_path):
    (tmp_path / "answer_grounded.md").write_text(
        "Use this:\n{context}\nTo answer: {question}", encoding="utf-8"
    )
    generator = FakeGenerator()
    pipeline = GroundedAnswerPipeline(
        store,
        FakeEmbedder(),
        generator,
        top_k=1,
        prompt_template=load_prompt_template(tmp_path),
    )

    await pipeline.ask(three_chunk_doc, QUESTION)

    system_prompt = generator.calls[0][1]
    assert system_prompt.startswith("Use this:\n[Chunk 1] ")
    assert system_prompt.endswith(f"To answer: {QUESTION}")
