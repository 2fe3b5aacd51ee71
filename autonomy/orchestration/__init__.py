"""
Orchestration module for autonomy.

Turns a request into a dependency-ordered task graph and runs it.

Key Components:
1. TaskGraphStore: Holds task DAGs and answers "what can run now"
2. AutonomyScheduler: Analysis -> planning -> execution -> synthesis
3. RemoteActionExecutor: Runs model-proposed actions through a CapabilityService
4. parsing: Pulls structured results out of reasoning output

Run Flow:
    Request → Analysis → Plan → Task Graph → Ready tasks (parallel) → Synthesis
                                     ↑                  ↓
                                     └── status change ─┘
"""

from .task_graph import TaskGraphStore
from .remote import ActionSequenceResult, CapabilityService, RemoteActionExecutor, ACTION_TYPES
from .scheduler import AutonomyScheduler, RunResult, TOOL_CATALOGUE

__all__ = [
    "TaskGraphStore",
    "ActionSequenceResult",
    "CapabilityService",
    "RemoteActionExecutor",
    "ACTION_TYPES",
    "AutonomyScheduler",
    "RunResult",
    "TOOL_CATALOGUE",
]
