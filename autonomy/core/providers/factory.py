"""
Provider Factory for Multi-LLM Support.

Provides factory functions to instantiate the correct LLM provider
based on configuration.
"""

import logging
from typing import Any, Dict, List

from autonomy.core.providers.base import LLMProvider, ProviderAPIError
from autonomy.core.providers.litellm_provider import LiteLLMProvider

logger = logging.getLogger(__name__)

# Provider registry
_PROVIDER_REGISTRY: Dict[str, type] = {}


def register_provider(name: str, provider_class: type):
    """
    Register a provider class.

    Args:
        name: Provider name (e.g., "litellm", "ollama")
        provider_class: Provider class inheriting from LLMProvider
    """
    if not issubclass(provider_class, LLMProvider):
        raise ValueError(f"{provider_class} must inherit from LLMProvider")

    _PROVIDER_REGISTRY[name.lower()] = provider_class
    logger.debug(f"Registered provider: {name}")


def get_provider(provider_name: str, config: Dict[str, Any]) -> LLMProvider:
    """
    Get a provider instance by name.

    Args:
        provider_name: Registered provider name
        config: Provider-specific configuration dictionary

    Returns:
        LLMProvider: Instantiated provider

    Raises:
        ProviderAPIError: If provider is unknown or initialization fails

    Example:
        ```python
        provider = get_provider("litellm", {"model": "gpt-4o-mini"})
        response = await provider.generate_async("Hello world")
        ```
    """
    provider_name_lower = provider_name.lower()

    if provider_name_lower not in _PROVIDER_REGISTRY:
        available = ", ".join(_PROVIDER_REGISTRY.keys())
        raise ProviderAPIError(
            provider_name,
            f"Unknown provider '{provider_name}'. Available providers: {available}",
            recoverable=False
        )

    provider_class = _PROVIDER_REGISTRY[provider_name_lower]

    try:
        provider = provider_class(config)
        logger.info(f"Instantiated {provider_name} provider")
        return provider
    except Exception as e:
        logger.error(f"Failed to instantiate {provider_name} provider: {e}")
        raise ProviderAPIError(
            provider_name,
            f"Failed to initialize provider: {e}",
            raw_error=e,
            recoverable=False
        )


def get_provider_from_config(autonomy_config) -> LLMProvider:
    """
    Get provider from an AutonomyConfig.

    Example:
        ```python
        from autonomy.config import get_config
        from autonomy.core.providers import get_provider_from_config

        provider = get_provider_from_config(get_config())
        ```
    """
    llm = autonomy_config.llm
    provider_config = {
        'model': llm.model,
        'api_key': llm.api_key,
        'api_base': llm.api_base,
        'max_tokens': llm.max_tokens,
        'temperature': llm.temperature,
        'timeout': llm.timeout,
    }
    return get_provider(llm.provider, provider_config)


def list_providers() -> List[str]:
    """Names of registered providers."""
    return list(_PROVIDER_REGISTRY.keys())


def _register_builtin_providers():
    """Register built-in provider implementations."""
    register_provider("litellm", LiteLLMProvider)
    # Aliases for convenience; the model string selects the backend
    register_provider("openai", LiteLLMProvider)
    register_provider("anthropic", LiteLLMProvider)
    register_provider("ollama", LiteLLMProvider)
    register_provider("deepseek", LiteLLMProvider)
    logger.debug("LiteLLM provider registered with aliases: openai, anthropic, ollama, deepseek")


# Register on module import
_register_builtin_providers()
