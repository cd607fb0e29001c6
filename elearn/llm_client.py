"""Text-generation clients with error handling.

Each backend turns ``(prompt, system_prompt)`` into a completion string and
reports every failure as ``ProviderError``.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import httpx
import structlog

from elearn.config import Settings
from elearn.errors import ProviderError

logger = structlog.get_logger()


class TextGenerator(ABC):
    """Async text-completion backend."""

    provider_name: str = ""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the generator.

        Args:
            base_url: API base URL
            model: Model to use
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @abstractmethod
    def _build_request(
        self, prompt: str, system_prompt: str
    ) -> tuple[str, Dict[str, Any], Dict[str, str]]:
        """Return (url, json payload, headers) for one completion call."""

    @abstractmethod
    def _extract_text(self, data: Any) -> Optional[str]:
        """Pull the completion text out of a decoded response body."""

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()

        except httpx.TimeoutException as e:
            logger.error(
                "generation_timeout",
                provider=self.provider_name,
                timeout=self.timeout,
            )
            raise ProviderError(
                f"{self.provider_name} request timed out after {self.timeout}s",
                provider=self.provider_name,
                timed_out=True,
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(
                "generation_http_error",
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
            logger.error(
                "generation_connection_error",
                provider=self.provider_name,
                base_url=self.base_url,
                error=str(e),
            )
            raise ProviderError(
                f"Failed to reach {self.provider_name}: {e}",
                provider=self.provider_name,
            ) from e
        except ValueError as e:
            raise ProviderError(
                f"Failed to parse {self.provider_name} response: {e}",
                provider=self.provider_name,
            ) from e

    async def generate(self, prompt: str, system_prompt: str = "") -> str:
        """Generate a completion.

        Args:
            prompt: User prompt
            system_prompt: System instructions

        Returns:
            The completion text

        Raises:
            ProviderError: On API errors, timeouts or empty content
        """
        url, payload, headers = self._build_request(prompt, system_prompt)

        logger.info(
            "generation_request",
            provider=self.provider_name,
            model=self.model,
            prompt_length=len(prompt),
            system_prompt_length=len(system_prompt),
        )

        data = await self._post(url, payload, headers)
        text = self._extract_text(data)

        if not text:
            raise ProviderError(
                f"No content in {self.provider_name} response",
                provider=self.provider_name,
            )

        logger.info(
            "generation_response",
            provider=self.provider_name,
            model=self.model,
            response_length=len(text),
        )

        return text


class AnthropicGenerator(TextGenerator):
    """Claude via the Anthropic Messages API."""

    provider_name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.anthropic.com",
        max_tokens: int = 4096,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, model, timeout, transport)
        self.api_key = api_key
        self.max_tokens = max_tokens

    def _build_request(self, prompt, system_prompt):
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
        }
        return f"{self.base_url}/v1/messages", payload, headers

    def _extract_text(self, data):
        try:
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None


class OpenAIGenerator(TextGenerator):
    """OpenAI chat completions."""

    provider_name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, model, timeout, transport)
        self.api_key = api_key

    def _build_request(self, prompt, system_prompt):
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        payload = {"model": self.model, "messages": messages}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        return f"{self.base_url}/chat/completions", payload, headers

    def _extract_text(self, data):
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None


class OllamaGenerator(TextGenerator):
    """Local models served by Ollama."""

    provider_name = "ollama"

    def __init__(
        self,
        model: str,
        base_url: str = "http://localhost:11434",
        temperature: Optional[float] = None,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, model, timeout, transport)
        self.temperature = temperature

    def _build_request(self, prompt, system_prompt):
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        payload = {"model": self.model, "messages": messages, "stream": False}
        if self.temperature is not None:
            payload["options"] = {"temperature": self.temperature}
        return f"{self.base_url}/api/chat", payload, {}

    def _extract_text(self, data):
        if not isinstance(data, dict):
            return None
        return (data.get("message") or {}).get("content")

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Raises:
            ProviderError: On API errors
        """
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise ProviderError(
                f"Failed to list Ollama models: {e}", provider=self.provider_name
            ) from e


def create_text_generator(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TextGenerator:
    """Select the text-generation backend from configuration.

    Unknown provider names fall back to Anthropic.
    """
    provider = settings.model_provider.lower()

    if provider == "openai":
        generator = OpenAIGenerator(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.generation_timeout,
            transport=transport,
        )
    elif provider == "ollama":
        generator = OllamaGenerator(
            model=settings.chat_model,
            base_url=settings.ollama_base_url,
            timeout=settings.generation_timeout,
            transport=transport,
        )
    else:
        if provider != "anthropic":
            logger.warning("unknown_model_provider", provider=provider, fallback="anthropic")
        generator = AnthropicGenerator(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            base_url=settings.anthropic_base_url,
            timeout=settings.generation_timeout,
            transport=transport,
        )

    logger.info(
        "text_generator_selected",
        provider=generator.provider_name,
        model=generator.model,
    )
    return generator
