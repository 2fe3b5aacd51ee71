"""
Parsing of reasoning output into structured results.

Reasoning output is untrusted text. A JSON object is pulled out of it (from a
fenced code block if present, otherwise from the first ``{`` to the last
``}``) and validated against the phase's model.
"""

import json
import logging
import re
from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel, ValidationError

from autonomy.core.errors import MalformedResponse
from autonomy.models.responses import ExecutionReport, RequestAnalysis, TaskPlan

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def extract_json_object(text: str, phase: str) -> Dict[str, Any]:
    """
    Extract the JSON object embedded in ``text``.

    Args:
        text: Raw reasoning output
        phase: Phase name used in error messages

    Returns:
        Decoded object

    Raises:
        MalformedResponse: No object found or it does not decode to a dict
    """
    match = _FENCE_RE.search(text)
    if match:
        json_str = match.group(1)
    else:
        start_idx = text.find('{')
        end_idx = text.rfind('}') + 1
        if start_idx == -1 or end_idx <= start_idx:
            raise MalformedResponse(phase, "no JSON object found", raw_text=text)
        json_str = text[start_idx:end_idx]

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse {phase} JSON: {json_str[:200]}...")
        raise MalformedResponse(phase, f"invalid JSON: {e}", raw_text=text)

    if not isinstance(data, dict):
        raise MalformedResponse(phase, "expected a JSON object", raw_text=text)
    return data


def parse_model(text: str, model: Type[ModelT], phase: str) -> ModelT:
    """Extract a JSON object from ``text`` and validate it as ``model``."""
    data = extract_json_object(text, phase)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(phase, f"{e.error_count()} validation errors: {e}", raw_text=text)


def parse_analysis(text: str) -> RequestAnalysis:
    return parse_model(text, RequestAnalysis, "analysis")


def parse_plan(text: str) -> TaskPlan:
    """
    Parse a task plan and check its internal references.

    Raises:
        MalformedResponse: Invalid structure, duplicate ids, a self-dependency
            or a dependency on an id not in the plan
    """
    plan = parse_model(text, TaskPlan, "planning")

    seen = set()
    for task in plan.tasks:
        if task.id in seen:
            raise MalformedResponse("planning", f"duplicate task id '{task.id}'", raw_text=text)
        seen.add(task.id)

    for task in plan.tasks:
        for dep in task.dependencies:
            if dep == task.id:
                raise MalformedResponse("planning", f"task '{task.id}' depends on itself", raw_text=text)
            if dep not in seen:
                raise MalformedResponse(
                    "planning",
                    f"task '{task.id}' depends on unknown task '{dep}'",
                    raw_text=text,
                )

    return plan


def parse_execution_report(text: str) -> ExecutionReport:
    return parse_model(text, ExecutionReport, "execution")
