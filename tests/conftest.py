"""Pytest configuration and shared fixtures.

Provides fake embedding and generation backends that never touch the
network, a temporary SQLite store, and settings pointing at tmp_path.
"""
from typing import Dict, List, Optional, Sequence

import fitz
import pytest

from elearn.config import Settings
from elearn.db import ChunkStore
from elearn.errors import ProviderError


class FakeEmbedder:
    """Embedding backend driven by a lookup table.

    Texts in ``vectors`` map to fixed vectors; texts containing any of
    ``fail_on`` raise ProviderError; everything else gets ``default``.
    """

    provider_name = "fake"

    def __init__(
        self,
        vectors: Optional[Dict[str, Sequence[float]]] = None,
        dimension: int = 2,
        default: Optional[Sequence[float]] = None,
        fail_on: Sequence[str] = (),
    ):
        self.vectors = dict(vectors or {})
        self.dimension = dimension
        self.default = list(default) if default is not None else [1.0] * dimension
        self.fail_on = list(fail_on)
        self.calls: List[str] = []

    @property
    def model_name(self) -> str:
        return "fake-embed"

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise ProviderError("fake embedding failure", provider=self.provider_name)
        return list(self.vectors.get(text, self.default))


class FakeGenerator:
    """Text generator that records its prompts and returns a fixed answer."""

    provider_name = "fake"
    model = "fake-chat"

    def __init__(self, answer: str = "Grounded answer.", error: Optional[Exception] = None):
        self.answer = answer
        self.error = error
        self.calls: List[tuple] = []

    async def generate(self, prompt: str, system_prompt: str = "") -> str:
        self.calls.append((prompt, system_prompt))
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with all storage under tmp_path."""
    return Settings(
        data_dir=tmp_path,
        db_path=tmp_path / "test.sqlite",
        upload_dir=tmp_path / "uploads",
        chunk_size=1000,
        chunk_overlap=200,
        retrieval_top_k=6,
        embedding_concurrency=1,
    )


@pytest.fixture
def store(settings) -> ChunkStore:
    """Initialized SQLite store in a temp directory."""
    chunk_store = ChunkStore(settings.db_path)
    chunk_store.init_database()
    return chunk_store


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def make_pdf(tmp_path):
    """Factory writing a PDF with one page per given string."""

    def _make(name: str, pages: Sequence[str]):
        path = tmp_path / name
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            page.insert_text((72, 72), text)
        doc.save(str(path))
        doc.close()
        return path

    return _make
