"""
Data models for autonomy.
"""

from .task import (
    Task,
    TaskStatus,
    TaskSpec,
    UserRequest,
    Success,
    Failure,
    Outcome,
)
from .responses import (
    Complexity,
    ExecutionOutcome,
    RequestAnalysis,
    PlannedTask,
    TaskPlan,
    ExecutionStep,
    RemoteAction,
    ExecutionReport,
)
from .experience import (
    ExperienceMetadata,
    Connection,
    ExperienceNode,
    Interaction,
    PredictedNeed,
    UserProfile,
    PromptSuggestion,
    NetworkSnapshot,
    clamp_effectiveness,
    clamp_score,
)

__all__ = [
    "Task",
    "TaskStatus",
    "TaskSpec",
    "UserRequest",
    "Success",
    "Failure",
    "Outcome",
    "Complexity",
    "ExecutionOutcome",
    "RequestAnalysis",
    "PlannedTask",
    "TaskPlan",
    "ExecutionStep",
    "RemoteAction",
    "ExecutionReport",
    "ExperienceMetadata",
    "Connection",
    "ExperienceNode",
    "Interaction",
    "PredictedNeed",
    "UserProfile",
    "PromptSuggestion",
    "NetworkSnapshot",
    "clamp_effectiveness",
    "clamp_score",
]
