"""Error taxonomy for the ingestion and chat-ask pipelines."""
from enum import Enum
from typing import Optional


class ProviderError(Exception):
    """A call to an embedding or text-generation backend failed.

    Raised for transport errors, timeouts, non-success responses and
    payloads that cannot be parsed into the expected shape.
    """

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: Optional[int] = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.timed_out = timed_out


class ErrorKind(str, Enum):
    EMBEDDING_FAILED = "embedding_failed"
    NO_CONTENT = "no_content"
    GENERATION_FAILED = "generation_failed"


class RAGError(Exception):
    """Fatal chat-ask failure. Carries a kind tag and never a partial answer."""

    kind: ErrorKind

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.message = message
        self.timed_out = timed_out

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind.value}


class EmbeddingFailed(RAGError):
    kind = ErrorKind.EMBEDDING_FAILED


class NoContent(RAGError):
    kind = ErrorKind.NO_CONTENT


class GenerationFailed(RAGError):
    kind = ErrorKind.GENERATION_FAILED
