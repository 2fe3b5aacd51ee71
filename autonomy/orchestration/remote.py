"""
Remote actions performed on the user's machine through a capability service.

The transport (screen share, input injection) lives outside this package.
``CapabilityService`` is the seam: it reports whether control permission is
granted and performs single actions. Permission is checked before every
action.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from autonomy.core.errors import PermissionDenied
from autonomy.models.responses import RemoteAction

logger = logging.getLogger(__name__)


ACTION_TYPES: Dict[str, str] = {
    "mouse_move": "Move the cursor to given coordinates",
    "mouse_click": "Click at given coordinates",
    "key_press": "Press a keyboard key",
    "text_input": "Type text",
    "open_application": "Open an application",
    "close_application": "Close an application",
    "screenshot": "Capture the screen",
}


def describe_actions() -> str:
    """Action catalogue rendered for the remote execution prompt."""
    return "\n".join(f"- {name}: {desc}" for name, desc in ACTION_TYPES.items())


class CapabilityService(ABC):
    """Grants and performs remote-control actions."""

    @abstractmethod
    def has_permission(self) -> bool:
        """Whether the user currently allows remote control."""
        pass

    @abstractmethod
    def perform_action(self, action_type: str, parameters: Dict[str, Any]) -> bool:
        """
        Perform one action.

        May be a coroutine function. Returns False if the action did not
        take effect.
        """
        pass


@dataclass
class ActionSequenceResult:
    """Outcome of running a list of remote actions."""

    success: bool
    completed_actions: int
    total_actions: int
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "completed_actions": self.completed_actions,
            "total_actions": self.total_actions,
            "errors": list(self.errors),
        }


class RemoteActionExecutor:
    """
    Runs model-proposed actions through a capability service.

    Example:
        ```python
        executor = RemoteActionExecutor(capability)
        result = await executor.execute_action_sequence([
            RemoteAction(action_type="screenshot", purpose="Inspect the screen"),
        ])
        ```
    """

    def __init__(self, capability: CapabilityService, action_delay: float = 0.0):
        """
        Args:
            capability: Service performing the actions
            action_delay: Pause between consecutive actions (seconds)
        """
        self.capability = capability
        self.action_delay = action_delay

    def _require_permission(self):
        if not self.capability.has_permission():
            raise PermissionDenied("Remote control permission not granted")

    async def execute_remote_action(self, action_type: str, parameters: Dict[str, Any]) -> bool:
        """
        Perform a single action.

        Returns:
            True if the service performed the action

        Raises:
            PermissionDenied: Control permission is not granted
        """
        self._require_permission()

        if action_type not in ACTION_TYPES:
            logger.warning(f"Unknown remote action type: {action_type}")
            return False

        try:
            result = self.capability.perform_action(action_type, parameters)
            if inspect.isawaitable(result):
                result = await result
            return bool(result)
        except PermissionDenied:
            raise
        except Exception as e:
            logger.error(f"Remote action {action_type} failed: {e}")
            return False

    async def execute_action_sequence(self, actions: Sequence[RemoteAction]) -> ActionSequenceResult:
        """
        Perform actions in order, continuing past individual failures.

        Raises:
            PermissionDenied: Permission is missing before or during the sequence
        """
        self._require_permission()

        result = ActionSequenceResult(
            success=True,
            completed_actions=0,
            total_actions=len(actions),
        )

        for index, action in enumerate(actions):
            if await self.execute_remote_action(action.action_type, action.parameters):
                result.completed_actions += 1
            else:
                result.errors.append(f"Action {action.action_type} failed: {action.purpose}")
                result.success = False

            if self.action_delay > 0 and index < len(actions) - 1:
                await asyncio.sleep(self.action_delay)

        logger.info(
            f"Remote sequence finished: {result.completed_actions}/{result.total_actions} actions"
        )
        return result
