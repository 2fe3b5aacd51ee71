"""
Shared fixtures: a scripted reasoning operation and canned phase responses.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from autonomy.config import ExperienceConfig, SchedulerConfig
from autonomy.core.prompts import PromptKind
from autonomy.core.reasoning import ReasoningOperation


class ScriptedReasoning(ReasoningOperation):
    """
    Reasoning operation answering from a script keyed by prompt kind.

    A script entry may be a string, an exception to raise, a callable taking
    the compiled prompt text, or a list of those consumed in order.
    """

    provider_id = "scripted"
    model_id = "scripted-model"

    def __init__(self, script: Dict[PromptKind, Any]):
        self.script = dict(script)
        self.calls: List[Tuple[PromptKind, Dict[str, Any]]] = []

    async def invoke(self, prompt_kind: PromptKind, variables: Dict[str, Any]) -> str:
        self.calls.append((prompt_kind, dict(variables)))

        response = self.script[prompt_kind]
        if isinstance(response, list):
            response = response.pop(0)
        if callable(response) and not isinstance(response, Exception):
            response = response(variables["prompt"])
        if isinstance(response, Exception):
            raise response
        return response

    def prompts_for(self, kind: PromptKind) -> List[str]:
        return [v["prompt"] for k, v in self.calls if k == kind]


def analysis_json(
    objective: str = "Produce a short report",
    domains: Optional[List[str]] = None,
    clarification: bool = False,
    questions: Optional[List[str]] = None
) -> str:
    return json.dumps({
        "mainObjective": objective,
        "knowledgeDomains": domains if domains is not None else ["reporting"],
        "constraints": ["keep it short"],
        "complexity": "simple",
        "clarificationNeeded": clarification,
        "clarificationQuestions": questions or [],
    })


def plan_json(tasks: List[Dict[str, Any]]) -> str:
    return json.dumps({"tasks": tasks})


def planned(task_id: str, description: str, dependencies=None, tools=None) -> Dict[str, Any]:
    return {
        "id": task_id,
        "description": description,
        "dependencies": dependencies or [],
        "estimatedTime": "5",
        "tools": tools or [],
        "expectedOutput": f"Output of {task_id}",
    }


def report_json(outcome: str = "success", result: Any = "done", issues=None, actions=None) -> str:
    data = {
        "taskId": "t",
        "steps": [{"stepNumber": 1, "description": "work", "toolUsed": "search", "result": "ok"}],
        "outcome": outcome,
        "result": result,
        "issues": issues or [],
    }
    if actions is not None:
        data["actions"] = actions
    return json.dumps(data)


def by_task(responses: Dict[str, Any]) -> Callable[[str], str]:
    """Execution responder that picks a response by the task description in the prompt."""

    def respond(prompt: str) -> str:
        for description, response in responses.items():
            if f"## Task\n{description}\n" in prompt:
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"Unexpected execution prompt: {prompt[:200]}")

    return respond


@pytest.fixture
def fast_config():
    """Scheduler settings without real waits."""
    return SchedulerConfig(
        poll_initial_delay=0.01,
        poll_max_delay=0.05,
        reasoning_timeout=5.0,
        reasoning_max_retries=0,
        reasoning_retry_delay=0.0,
    )


@pytest.fixture
def experience_config():
    return ExperienceConfig()
