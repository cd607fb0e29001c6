"""Tests for settings loading."""
from pathlib import Path

from elearn.config import Settings


def test_from_env_reads_current_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("CHUNK_SIZE", "500")
    monkeypatch.setenv("EMBEDDING_PROVIDER", "ollama")
    monkeypatch.setenv("EMBEDDING_DIMENSION", "1024")
    monkeypatch.delenv("DB_PATH", raising=False)

    settings = Settings.from_env()

    assert settings.chunk_size == 500
    assert settings.embedding_provider == "ollama"
    assert settings.embedding_dimension == 1024
    assert settings.db_path == tmp_path / "elearn.sqlite"


def test_from_env_defaults(monkeypatch):
    names = ["CHUNK_SIZE", "CHUNK_OVERLAP", "RETRIEVAL_TOP_K", "EMBEDDING_DIMENSION", "PROMPTS_DIR"]
    for name in names:
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.chunk_size == 1000
    assert settings.chunk_overlap == 200
    assert settings.retrieval_top_k == 6
    assert settings.embedding_dimension is None
    assert (Path(settings.prompts_dir) / "answer_grounded.md").exists()
