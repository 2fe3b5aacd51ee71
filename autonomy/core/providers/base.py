"""
Base interface for LLM providers.

A provider turns a prompt into text. The orchestration core never talks to a
provider directly; it goes through a ReasoningOperation (see
``autonomy.core.reasoning``).
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from autonomy.core.errors import ProviderAPIError

__all__ = [
    "LLMProvider",
    "UsageStats",
    "LLMResponse",
    "ProviderAPIError",
]


@dataclass
class UsageStats:
    """Token usage and cost of one call."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    model: str = ""
    provider: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class LLMResponse:
    """Provider-independent response."""
    content: str
    usage: UsageStats
    model: str
    finish_reason: Optional[str] = None
    raw_response: Any = None


class LLMProvider(ABC):
    """
    Abstract LLM provider.

    Subclasses implement ``generate_async`` and call ``_update_usage_stats``
    for every response.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize provider.

        Args:
            config: Provider-specific configuration dictionary
        """
        self.config = config
        self._usage_lock = threading.Lock()
        self._total_input_tokens = 0
        self._total_output_tokens = 0
        self._total_cost_usd = 0.0
        self._request_count = 0

    @abstractmethod
    async def generate_async(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate text from a prompt."""
        pass

    @property
    def model_name(self) -> str:
        return self.config.get("model", "unknown")

    @property
    def provider_name(self) -> str:
        return type(self).__name__

    def _update_usage_stats(self, usage: UsageStats):
        with self._usage_lock:
            self._total_input_tokens += usage.input_tokens
            self._total_output_tokens += usage.output_tokens
            self._total_cost_usd += usage.cost_usd
            self._request_count += 1

    def get_usage_stats(self) -> Dict[str, Any]:
        """Cumulative usage since the provider was created."""
        with self._usage_lock:
            return {
                "total_input_tokens": self._total_input_tokens,
                "total_output_tokens": self._total_output_tokens,
                "total_tokens": self._total_input_tokens + self._total_output_tokens,
                "total_cost_usd": round(self._total_cost_usd, 6),
                "request_count": self._request_count,
            }
