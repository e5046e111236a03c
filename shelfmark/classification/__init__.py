"""
Classification Module

Cache-first classification cascade: verified cache, Open Library,
then an LLM seeded with similar cached records.
"""

from shelfmark.classification.cache import (
    ClassificationCacheRepository,
    ClassificationCacheEntry,
    ClassificationSource,
)
from shelfmark.classification.llm import (
    BaseLLMClient,
    OpenAICompatibleClient,
    AnthropicClient,
    MockLLMClient,
    GeneratedResponse,
    LLMProvider,
    LLMError,
    LLMRateLimitError,
    create_llm_client,
)
from shelfmark.classification.cascade import (
    ClassificationCascade,
    build_call_number,
    normalize_classification,
)

__all__ = [
    # Cache
    "ClassificationCacheRepository",
    "ClassificationCacheEntry",
    "ClassificationSource",
    # LLM
    "BaseLLMClient",
    "OpenAICompatibleClient",
    "AnthropicClient",
    "MockLLMClient",
    "GeneratedResponse",
    "LLMProvider",
    "LLMError",
    "LLMRateLimitError",
    "create_llm_client",
    # Cascade
    "ClassificationCascade",
    "build_call_number",
    "normalize_classification",
]
