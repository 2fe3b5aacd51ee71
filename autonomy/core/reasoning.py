"""
The reasoning operation: a black-box text generator invoked at each phase.

The scheduler compiles a prompt for a phase and hands it to
``ReasoningOperation.invoke`` as ``{"prompt": ..., "system": ...}``. Output is
untrusted text; callers parse what they need out of it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from autonomy.core.errors import ProviderAPIError, ReasoningTimeout
from autonomy.core.prompts import PromptKind
from autonomy.core.providers.base import LLMProvider

logger = logging.getLogger(__name__)


class ReasoningOperation(ABC):
    """Black-box text generation used by the scheduler."""

    provider_id: str = "unknown"
    model_id: str = "unknown"

    @abstractmethod
    async def invoke(self, prompt_kind: PromptKind, variables: Dict[str, Any]) -> str:
        """
        Run one reasoning call.

        Args:
            prompt_kind: Phase the call belongs to
            variables: At least ``prompt``; optionally ``system``

        Returns:
            Generated text
        """
        pass


class ProviderReasoning(ReasoningOperation):
    """ReasoningOperation backed by an LLMProvider."""

    def __init__(
        self,
        provider: LLMProvider,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None
    ):
        self.provider = provider
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.provider_id = provider.provider_name
        self.model_id = provider.model_name

    async def invoke(self, prompt_kind: PromptKind, variables: Dict[str, Any]) -> str:
        if "prompt" not in variables:
            raise ValueError(f"Reasoning call '{prompt_kind.value}' needs a 'prompt' variable")

        logger.debug(f"Invoking {self.provider_id}/{self.model_id} for {prompt_kind.value}")
        response = await self.provider.generate_async(
            prompt=variables["prompt"],
            system=variables.get("system"),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        return response.content


class RetryPolicy:
    """
    Bounded retry with exponential backoff for reasoning calls.

    Only transport-level failures are retried: recoverable provider errors and
    timeouts. Reasoning calls are pure queries, so repeating one is safe.
    """

    def __init__(self, max_retries: int = 2, base_delay: float = 1.0, max_delay: float = 30.0):
        """
        Initialize retry policy.

        Args:
            max_retries: Maximum retry attempts after the first call
            base_delay: Delay before the first retry (doubles each attempt)
            max_delay: Upper bound for a single delay
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def should_retry(self, attempt: int, error: Exception) -> bool:
        """Determine if a failed attempt (0-based) should be retried."""
        if attempt >= self.max_retries:
            return False
        if isinstance(error, ReasoningTimeout):
            return True
        if isinstance(error, ProviderAPIError):
            return error.recoverable
        return False

    def get_delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)


async def invoke_reasoning(
    reasoning: ReasoningOperation,
    prompt_kind: PromptKind,
    variables: Dict[str, Any],
    timeout: Optional[float] = None,
    retry_policy: Optional[RetryPolicy] = None
) -> str:
    """
    Invoke a reasoning operation with a timeout and bounded retries.

    Raises:
        ReasoningTimeout: The final attempt exceeded ``timeout``
        ProviderAPIError: The final attempt failed in the provider
    """
    policy = retry_policy or RetryPolicy(max_retries=0)
    attempt = 0

    while True:
        try:
            call = reasoning.invoke(prompt_kind, variables)
            if timeout is None:
                return await call
            try:
                return await asyncio.wait_for(call, timeout=timeout)
            except asyncio.TimeoutError:
                raise ReasoningTimeout(prompt_kind.value, timeout)

        except (ReasoningTimeout, ProviderAPIError) as e:
            if not policy.should_retry(attempt, e):
                raise
            delay = policy.get_delay(attempt)
            attempt += 1
            logger.warning(
                f"Reasoning call '{prompt_kind.value}' failed ({e}); "
                f"retry {attempt}/{policy.max_retries} in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
