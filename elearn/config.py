"""Application configuration with sensible defaults."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "storage")))
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "elearn.sqlite")))
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(DATA_DIR / "uploads")))
PROMPTS_DIR = Path(os.getenv("PROMPTS_DIR", str(Path(__file__).parent / "prompts")))

# Text generation
MODEL_PROVIDER = os.getenv("MODEL_PROVIDER", "anthropic")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
ANTHROPIC_BASE_URL = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com")

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama3.2")

# Embeddings
EMBEDDING_PROVIDER = os.getenv("EMBEDDING_PROVIDER", "openai")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
# Unset or 0 falls back to the provider default for the model
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "0")) or None
EMBEDDING_CONCURRENCY = int(os.getenv("EMBEDDING_CONCURRENCY", "1"))

# RAG parameters (character-based, counted in code points)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "6"))

# Timeouts in seconds. LLM calls are slow, so generation gets minutes.
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "300.0"))

# Uploads
MAX_UPLOAD_SIZE = int(os.getenv("MAX_UPLOAD_SIZE", str(50 * 1024 * 1024)))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class Settings:
    """Snapshot of the configuration, built once at startup and passed around."""

    data_dir: Path = DATA_DIR
    db_path: Path = DB_PATH
    upload_dir: Path = UPLOAD_DIR
    prompts_dir: Path = PROMPTS_DIR

    model_provider: str = MODEL_PROVIDER
    anthropic_api_key: str = ANTHROPIC_API_KEY
    anthropic_model: str = ANTHROPIC_MODEL
    anthropic_base_url: str = ANTHROPIC_BASE_URL
    openai_api_key: str = OPENAI_API_KEY
    openai_model: str = OPENAI_MODEL
    openai_base_url: str = OPENAI_BASE_URL
    ollama_base_url: str = OLLAMA_BASE_URL
    chat_model: str = CHAT_MODEL

    embedding_provider: str = EMBEDDING_PROVIDER
    embedding_model: str = EMBEDDING_MODEL
    embedding_dimension: Optional[int] = EMBEDDING_DIMENSION
    embedding_concurrency: int = EMBEDDING_CONCURRENCY

    chunk_size: int = CHUNK_SIZE
    chunk_overlap: int = CHUNK_OVERLAP
    retrieval_top_k: int = RETRIEVAL_TOP_K

    embedding_timeout: float = EMBEDDING_TIMEOUT
    generation_timeout: float = GENERATION_TIMEOUT

    max_upload_size: int = MAX_UPLOAD_SIZE
    log_level: str = LOG_LEVEL

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment as it is now.

        Unset variables take the same defaults as the module constants.
        """
        data_dir = Path(os.getenv("DATA_DIR", str(BASE_DIR / "storage")))
        return cls(
            data_dir=data_dir,
            db_path=Path(os.getenv("DB_PATH", str(data_dir / "elearn.sqlite"))),
            upload_dir=Path(os.getenv("UPLOAD_DIR", str(data_dir / "uploads"))),
            prompts_dir=Path(os.getenv("PROMPTS_DIR", str(Path(__file__).parent / "prompts"))),
            model_provider=os.getenv("MODEL_PROVIDER", "anthropic"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022"),
            anthropic_base_url=os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            chat_model=os.getenv("CHAT_MODEL", "llama3.2"),
            embedding_provider=os.getenv("EMBEDDING_PROVIDER", "openai"),
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            embedding_dimension=int(os.getenv("EMBEDDING_DIMENSION", "0")) or None,
            embedding_concurrency=int(os.getenv("EMBEDDING_CONCURRENCY", "1")),
            chunk_size=int(os.getenv("CHUNK_SIZE", "1000")),
            chunk_overlap=int(os.getenv("CHUNK_OVERLAP", "200")),
            retrieval_top_k=int(os.getenv("RETRIEVAL_TOP_K", "6")),
            embedding_timeout=float(os.getenv("EMBEDDING_TIMEOUT", "30.0")),
            generation_timeout=float(os.getenv("GENERATION_TIMEOUT", "300.0")),
            max_upload_size=int(os.getenv("MAX_UPLOAD_SIZE", str(50 * 1024 * 1024))),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
