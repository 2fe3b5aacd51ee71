"""
LLM providers backing the reasoning operation.
"""

from .base import LLMProvider, LLMResponse, UsageStats, ProviderAPIError
from .factory import (
    register_provider,
    get_provider,
    get_provider_from_config,
    list_providers,
)
from .litellm_provider import LiteLLMProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "UsageStats",
    "ProviderAPIError",
    "register_provider",
    "get_provider",
    "get_provider_from_config",
    "list_providers",
    "LiteLLMProvider",
]
