"""
LiteLLM Provider for Multi-LLM Support.

Supports 100+ LLM providers through the LiteLLM library:
- Anthropic (claude-3-5-sonnet, claude-3-5-haiku, etc.)
- OpenAI (gpt-4o, gpt-4o-mini, etc.)
- Ollama (ollama/llama3.1, ollama/mistral, etc.)
- DeepSeek (deepseek/deepseek-chat)
- Azure OpenAI (azure/deployment-name)

Model Format Examples:
    Anthropic: "claude-3-5-sonnet-20241022"
    OpenAI: "gpt-4o-mini"
    Ollama: "ollama/llama3.1:8b"
    LM Studio: Set api_base to "http://localhost:1234/v1"
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import litellm

from autonomy.core.providers.base import (
    LLMProvider,
    UsageStats,
    LLMResponse,
    ProviderAPIError
)

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    LiteLLM-based provider supporting many LLM backends.

    Example usage:
        ```python
        provider = LiteLLMProvider({
            'model': 'ollama/llama3.1:8b',
            'api_base': 'http://localhost:11434'
        })
        response = await provider.generate_async("Hello!")
        print(response.content)
        ```
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize LiteLLM provider.

        Args:
            config: Configuration dictionary with:
                - model: Model identifier (e.g., "ollama/llama3.1", "gpt-4o-mini")
                - api_key: API key (optional for local models like Ollama)
                - api_base: Custom API base URL (for Ollama, LM Studio, etc.)
                - max_tokens: Default max tokens
                - temperature: Default temperature
                - timeout: Request timeout in seconds
        """
        super().__init__(config)

        self.model = config.get('model', 'gpt-4o-mini')
        self.api_key = config.get('api_key')
        self.api_base = config.get('api_base')
        self.max_tokens_default = config.get('max_tokens', 4096)
        self.temperature_default = config.get('temperature', 0.7)
        self.timeout = config.get('timeout', 120)

        self._detect_provider_type()

        logger.info(
            f"LiteLLM provider initialized: model={self.model}, "
            f"provider_type={self.provider_type}, api_base={self.api_base}"
        )

    @property
    def provider_name(self) -> str:
        return f"litellm/{self.provider_type}"

    def _detect_provider_type(self):
        """Detect provider type from model name."""
        model_lower = self.model.lower()

        if model_lower.startswith('ollama/'):
            self.provider_type = 'ollama'
        elif model_lower.startswith('deepseek/'):
            self.provider_type = 'deepseek'
        elif model_lower.startswith('azure/'):
            self.provider_type = 'azure'
        elif 'claude' in model_lower:
            self.provider_type = 'anthropic'
        elif 'gpt' in model_lower or model_lower.startswith('openai/'):
            self.provider_type = 'openai'
        else:
            self.provider_type = 'unknown'

    def _estimate_cost(self, response) -> float:
        """Cost from LiteLLM's price map; 0.0 for models it does not price."""
        try:
            return float(litellm.completion_cost(completion_response=response))
        except Exception as e:
            logger.debug(f"No cost available for {self.model}: {e}")
            return 0.0

    def _build_messages(
        self,
        prompt: str,
        system: Optional[str] = None
    ) -> List[Dict[str, str]]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _parse_response(self, response) -> LLMResponse:
        """Parse LiteLLM response into unified format."""
        content = response.choices[0].message.content or ""

        usage_data = response.usage if hasattr(response, 'usage') else None
        input_tokens = getattr(usage_data, 'prompt_tokens', 0) if usage_data else 0
        output_tokens = getattr(usage_data, 'completion_tokens', 0) if usage_data else 0
        total_tokens = getattr(usage_data, 'total_tokens', input_tokens + output_tokens) if usage_data else 0

        usage = UsageStats(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            cost_usd=self._estimate_cost(response),
            model=self.model,
            provider=self.provider_name,
            timestamp=datetime.now()
        )

        self._update_usage_stats(usage)

        return LLMResponse(
            content=content,
            usage=usage,
            model=getattr(response, 'model', None) or self.model,
            finish_reason=response.choices[0].finish_reason if response.choices else None,
            raw_response=response
        )

    async def generate_async(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Generate text from a prompt.

        Args:
            prompt: The user prompt/query
            system: Optional system prompt
            max_tokens: Maximum tokens to generate (default from config)
            temperature: Sampling temperature (default from config)
            **kwargs: Additional LiteLLM parameters

        Returns:
            LLMResponse: Unified response object
        """
        try:
            response = await litellm.acompletion(
                model=self.model,
                messages=self._build_messages(prompt, system),
                max_tokens=max_tokens or self.max_tokens_default,
                temperature=temperature if temperature is not None else self.temperature_default,
                api_key=self.api_key,
                api_base=self.api_base,
                timeout=self.timeout,
                **kwargs
            )
        except Exception as e:
            logger.error(f"LiteLLM generation failed: {e}")
            raise ProviderAPIError(
                "litellm",
                f"Generation failed: {e}",
                raw_error=e
            )

        return self._parse_response(response)

    def __repr__(self) -> str:
        return f"LiteLLMProvider(model={self.model}, provider_type={self.provider_type})"
