"""
LLM Clients

Generative-model boundary for the classification cascade. Every client
returns one JSON object as text; rate limiting is reported with its own
exception so callers can tell "try later" from "broken".
"""

import json
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from loguru import logger


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    GROQ = "groq"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    MOCK = "mock"


GROQ_BASE_URL = "https://api.groq.com/openai/v1"

DEFAULT_MODELS = {
    LLMProvider.GROQ: "llama-3.1-8b-instant",
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.ANTHROPIC: "claude-sonnet-4-20250514",
}


class LLMError(Exception):
    """A generation call failed."""


class LLMRateLimitError(LLMError):
    """The provider rejected the call for rate limiting."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


def _retry_after(error: Exception) -> Optional[float]:
    """Read ``Retry-After`` off an SDK error's HTTP response, if any."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def _translate_error(error: Exception, provider: str) -> LLMError:
    if getattr(error, "status_code", None) == 429:
        return LLMRateLimitError(f"{provider} rate limit reached", retry_after=_retry_after(error))
    return LLMError(f"{provider} generation failed: {type(error).__name__}: {error}")


@dataclass
class GeneratedResponse:
    """Complete response from a client."""

    content: str

    # Metadata
    model: str = ""
    provider: LLMProvider = LLMProvider.GROQ
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    # Timing
    generation_time_ms: float = 0.0


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    model: str = ""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.1,
    ) -> GeneratedResponse:
        """Generate one JSON-object response."""
        pass

    async def close(self):
        pass


class OpenAICompatibleClient(BaseLLMClient):
    """
    Chat-completions client for OpenAI and OpenAI-compatible APIs.

    Defaults to Groq, which serves Llama models behind the same API.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODELS[LLMProvider.GROQ],
        base_url: Optional[str] = GROQ_BASE_URL,
        provider: LLMProvider = LLMProvider.GROQ,
        timeout: float = 30.0,
    ):
        """
        Initialize client.

        Args:
            api_key: Provider API key
            model: Model identifier
            base_url: API base URL; None uses the OpenAI default
            provider: Provider tag reported in responses
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.provider = provider
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        """Lazy initialization of the OpenAI SDK client."""
        if self._client is None:
            import openai
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.1,
    ) -> GeneratedResponse:
        start_time = time.time()
        client = self._get_client()

        try:
            response = await client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except Exception as e:
            logger.error(f"{self.provider.value} generation failed: {type(e).__name__}: {e}")
            raise _translate_error(e, self.provider.value) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError(f"Empty response from {self.provider.value}")

        usage = response.usage
        return GeneratedResponse(
            content=content,
            model=self.model,
            provider=self.provider,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
            generation_time_ms=(time.time() - start_time) * 1000,
        )

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None


class AnthropicClient(BaseLLMClient):
    """
    Anthropic Claude client.

    Claude has no JSON response mode; the system prompt already demands
    a bare JSON object.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODELS[LLMProvider.ANTHROPIC],
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        """Lazy initialization of Anthropic client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.1,
    ) -> GeneratedResponse:
        start_time = time.time()
        client = self._get_client()

        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt}
                ],
            )
        except Exception as e:
            logger.error(f"Anthropic generation failed: {type(e).__name__}: {e}")
            raise _translate_error(e, LLMProvider.ANTHROPIC.value) from e

        content = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not content:
            raise LLMError("Empty response from anthropic")

        return GeneratedResponse(
            content=content,
            model=self.model,
            provider=LLMProvider.ANTHROPIC,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            generation_time_ms=(time.time() - start_time) * 1000,
        )

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None


class MockLLMClient(BaseLLMClient):
    """
    Scripted client for tests and offline development.

    Returns ``response`` (a dict is serialized to JSON) or raises
    ``error``; every call is recorded in ``calls``.
    """

    def __init__(
        self,
        response: Any = None,
        error: Optional[Exception] = None,
        model: str = "mock",
    ):
        self.response = response if response is not None else {}
        self.error = error
        self.model = model
        self.calls: list[tuple[str, str]] = []

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.1,
    ) -> GeneratedResponse:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error

        content = self.response if isinstance(self.response, str) else json.dumps(self.response)
        return GeneratedResponse(content=content, model=self.model, provider=LLMProvider.MOCK)


def create_llm_client(
    provider: LLMProvider = LLMProvider.GROQ,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
) -> Optional[BaseLLMClient]:
    """
    Factory function to create an LLM client.

    Returns None when no API key is available; the cascade then stops
    after its free layers.
    """
    provider = LLMProvider(provider)

    if provider == LLMProvider.MOCK:
        return MockLLMClient()

    if provider == LLMProvider.GROQ:
        key = api_key or os.environ.get("GROQ_API_KEY")
        if key:
            return OpenAICompatibleClient(
                api_key=key,
                model=model or DEFAULT_MODELS[LLMProvider.GROQ],
                base_url=base_url or GROQ_BASE_URL,
                provider=LLMProvider.GROQ,
            )

    elif provider == LLMProvider.OPENAI:
        key = api_key or os.environ.get("OPENAI_API_KEY")
        if key:
            return OpenAICompatibleClient(
                api_key=key,
                model=model or DEFAULT_MODELS[LLMProvider.OPENAI],
                base_url=base_url,
                provider=LLMProvider.OPENAI,
            )

    elif provider == LLMProvider.ANTHROPIC:
        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if key:
            return AnthropicClient(
                api_key=key,
                model=model or DEFAULT_MODELS[LLMProvider.ANTHROPIC],
            )

    logger.warning(f"No API key found for LLM provider {provider.value}; AI classification disabled")
    return None
