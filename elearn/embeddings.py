"""Embedding providers: remote OpenAI-compatible API and local Ollama.

Both variants share one async contract and are selected once at startup
from configuration.
"""
from abc import ABC, abstractmethod
from numbers import Real
from typing import Any, Dict, List, Optional
import httpx
import structlog

from elearn.config import Settings
from elearn.errors import ProviderError

logger = structlog.get_logger()

OPENAI_DEFAULT_MODEL = "text-embedding-3-small"
OPENAI_DEFAULT_DIMENSION = 1536
OPENAI_LARGE_DIMENSION = 3072
OLLAMA_DEFAULT_DIMENSION = 768  # nomic-embed-text


class EmbeddingProvider(ABC):
    """Converts text into a fixed-dimension vector."""

    provider_name: str = ""

    def __init__(
        self,
        base_url: str,
        model: str,
        dimension: int,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the provider.

        Args:
            base_url: API base URL
            model: Embedding model name
            dimension: Declared vector length; responses must match it
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.dimension = dimension
        self.timeout = timeout
        self._transport = transport

    @property
    def model_name(self) -> str:
        return self.model

    @abstractmethod
    def _build_request(self, text: str) -> tuple[str, Dict[str, Any], Dict[str, str]]:
        """Return (url, json payload, headers) for one embedding call."""

    @abstractmethod
    def _extract_vector(self, data: Any) -> Any:
        """Pull the raw vector out of a decoded response body."""

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding for a text.

        Args:
            text: Text to embed

        Returns:
            Vector of ``self.dimension`` floats

        Raises:
            ProviderError: On transport errors, timeouts, non-success
                responses or payloads of the wrong shape
        """
        url, payload, headers = self._build_request(text)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                logger.debug(
                    "embedding_request",
                    provider=self.provider_name,
                    model=self.model,
                    text_length=len(text),
                )

                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException as e:
            logger.error("embedding_timeout", provider=self.provider_name, error=str(e))
            raise ProviderError(
                f"{self.provider_name} embedding request timed out",
                provider=self.provider_name,
                timed_out=True,
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(
                "embedding_http_error",
                provider=self.provider_name,
                status_code=status_code,
                body_preview=e.response.text[:200],
            )
            raise ProviderError(
                f"{self.provider_name} API error ({status_code}): {e.response.text[:200]}",
                provider=self.provider_name,
                status_code=status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("embedding_connection_error", provider=self.provider_name, error=str(e))
            raise ProviderError(
                f"Failed to reach {self.provider_name}: {e}",
                provider=self.provider_name,
            ) from e
        except ValueError as e:
            raise ProviderError(
                f"Failed to parse {self.provider_name} response: {e}",
                provider=self.provider_name,
            ) from e

        vector = self._validate(self._extract_vector(data))

        logger.debug(
            "embedding_response",
            provider=self.provider_name,
            model=self.model,
            dimension=len(vector),
        )

        return vector

    def _validate(self, raw: Any) -> List[float]:
        if not isinstance(raw, list) or not raw:
            raise ProviderError(
                f"No embedding data in {self.provider_name} response",
                provider=self.provider_name,
            )
        if not all(isinstance(x, Real) and not isinstance(x, bool) for x in raw):
            raise ProviderError(
                f"Non-numeric embedding in {self.provider_name} response",
                provider=self.provider_name,
            )
        if len(raw) != self.dimension:
            raise ProviderError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(raw)}",
                provider=self.provider_name,
            )
        return [float(x) for x in raw]


class OpenAIEmbedding(EmbeddingProvider):
    """Embeddings from the OpenAI ``/embeddings`` endpoint."""

    provider_name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = OPENAI_DEFAULT_MODEL,
        dimension: Optional[int] = None,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if dimension is None:
            dimension = (
                OPENAI_LARGE_DIMENSION
                if model == "text-embedding-3-large"
                else OPENAI_DEFAULT_DIMENSION
            )
        super().__init__(base_url, model, dimension, timeout, transport)
        self.api_key = api_key

    def _build_request(self, text: str):
        return (
            f"{self.base_url}/embeddings",
            {"input": text, "model": self.model},
            {"Authorization": f"Bearer {self.api_key}"},
        )

    def _extract_vector(self, data: Any) -> Any:
        try:
            return data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            return None


class OllamaEmbedding(EmbeddingProvider):
    """Embeddings from a local Ollama server."""

    provider_name = "ollama"

    def __init__(
        self,
        model: str,
        base_url: str = "http://localhost:11434",
        dimension: Optional[int] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url, model, dimension or OLLAMA_DEFAULT_DIMENSION, timeout, transport
        )

    def _build_request(self, text: str):
        return (
            f"{self.base_url}/api/embeddings",
            {"model": self.model, "prompt": text},
            {},
        )

    def _extract_vector(self, data: Any) -> Any:
        if not isinstance(data, dict):
            return None
        return data.get("embedding")


def create_embedding_provider(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> EmbeddingProvider:
    """Select the embedding backend from configuration.

    Unknown provider names fall back to OpenAI with its default model.
    """
    provider = settings.embedding_provider.lower()

    if provider == "ollama":
        embedder = OllamaEmbedding(
            model=settings.embedding_model,
            base_url=settings.ollama_base_url,
            dimension=settings.embedding_dimension,
            timeout=settings.embedding_timeout,
            transport=transport,
        )
    elif provider == "openai":
        embedder = OpenAIEmbedding(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            base_url=settings.openai_base_url,
            timeout=settings.embedding_timeout,
            transport=transport,
        )
    else:
        logger.warning("unknown_embedding_provider", provider=provider, fallback="openai")
        embedder = OpenAIEmbedding(
            api_key=settings.openai_api_key,
            model=OPENAI_DEFAULT_MODEL,
            base_url=settings.openai_base_url,
            timeout=settings.embedding_timeout,
            transport=transport,
        )

    logger.info(
        "embedding_provider_selected",
        provider=embedder.provider_name,
        model=embedder.model_name,
        dimension=embedder.dimension,
    )
    return embedder
