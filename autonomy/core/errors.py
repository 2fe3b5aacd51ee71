"""
Error types for the autonomy core.

Task-level errors (MalformedResponse during execution, PermissionDenied,
provider failures inside a task) are captured into the task's outcome.
Phase-level errors (analysis, planning, materialization, synthesis) fail the
session and propagate to the caller.
"""

from typing import Optional


class AutonomyError(Exception):
    """Base class for all autonomy errors."""
    pass


class CyclicDependency(AutonomyError):
    """Raised when inserting a task would close a dependency cycle."""

    def __init__(self, task_id: str, path: Optional[list] = None):
        self.task_id = task_id
        self.path = path or []
        detail = f" via {' -> '.join(self.path)}" if self.path else ""
        super().__init__(f"Task {task_id} would create a dependency cycle{detail}")


class InvalidTransition(AutonomyError):
    """Raised when a status change is attempted from a state that disallows it."""

    def __init__(self, entity_id: str, from_state: str, to_state: str):
        self.entity_id = entity_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition for {entity_id}: {from_state} -> {to_state}"
        )


class MalformedResponse(AutonomyError):
    """Raised when reasoning output cannot be parsed into the expected structure."""

    def __init__(self, phase: str, message: str, raw_text: Optional[str] = None):
        self.phase = phase
        self.raw_text = raw_text
        super().__init__(f"Malformed {phase} response: {message}")


class PermissionDenied(AutonomyError):
    """Raised when a remote action is attempted without the required capability."""
    pass


class Unreachable(AutonomyError):
    """Raised when execution finds a cycle or dangling dependency that evaded validation."""
    pass


class PromptTemplateMissing(AutonomyError):
    """Raised when no template is registered for a prompt kind."""

    def __init__(self, kind: str, provider: Optional[str] = None, model: Optional[str] = None):
        self.kind = kind
        self.provider = provider
        self.model = model
        super().__init__(
            f"No prompt template for kind={kind} provider={provider} model={model}"
        )


class ReasoningTimeout(AutonomyError):
    """Raised when a reasoning invocation exceeds its time budget."""

    def __init__(self, prompt_kind: str, timeout: float):
        self.prompt_kind = prompt_kind
        self.timeout = timeout
        super().__init__(f"Reasoning call '{prompt_kind}' timed out after {timeout}s")


class RunCancelled(AutonomyError):
    """Raised inside a run once its session has been cancelled."""
    pass


class ProviderAPIError(AutonomyError):
    """
    Error raised by an LLM provider.

    Args:
        provider: Provider name
        message: Error description
        raw_error: Underlying exception, if any
        recoverable: Whether retrying the call may succeed
    """

    def __init__(
        self,
        provider: str,
        message: str,
        raw_error: Optional[Exception] = None,
        recoverable: bool = True
    ):
        self.provider = provider
        self.raw_error = raw_error
        self.recoverable = recoverable
        super().__init__(f"[{provider}] {message}")
