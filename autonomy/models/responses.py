"""
Structured results parsed out of reasoning output.

Each model mirrors the JSON contract of its prompt template. Keys may arrive in
camelCase (as written in the templates) or snake_case.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _ResponseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Complexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


_COMPLEXITY_ALIASES = {
    "simple": Complexity.SIMPLE,
    "easy": Complexity.SIMPLE,
    "low": Complexity.SIMPLE,
    "medium": Complexity.MEDIUM,
    "moderate": Complexity.MEDIUM,
    "moyenne": Complexity.MEDIUM,
    "complex": Complexity.COMPLEX,
    "complexe": Complexity.COMPLEX,
    "high": Complexity.COMPLEX,
    "hard": Complexity.COMPLEX,
}


class ExecutionOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


_OUTCOME_ALIASES = {
    "success": ExecutionOutcome.SUCCESS,
    "succeeded": ExecutionOutcome.SUCCESS,
    "succès": ExecutionOutcome.SUCCESS,
    "partial": ExecutionOutcome.PARTIAL,
    "partiel": ExecutionOutcome.PARTIAL,
    "failure": ExecutionOutcome.FAILURE,
    "failed": ExecutionOutcome.FAILURE,
    "échec": ExecutionOutcome.FAILURE,
}


class RequestAnalysis(_ResponseModel):
    """Result of the analysis phase."""

    main_objective: str = Field(..., min_length=1)
    knowledge_domains: List[str] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)
    complexity: Complexity = Complexity.MEDIUM
    clarification_needed: bool = False
    clarification_questions: List[str] = Field(default_factory=list)

    @field_validator('complexity', mode='before')
    @classmethod
    def normalize_complexity(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _COMPLEXITY_ALIASES.get(v.strip().lower(), v)
        return v


class PlannedTask(_ResponseModel):
    """One entry of a task plan. ``id`` is local to the plan."""

    id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    dependencies: List[str] = Field(default_factory=list)
    estimated_time: Optional[str] = None
    tools: List[str] = Field(default_factory=list)
    expected_output: Optional[str] = None

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator('dependencies', mode='before')
    @classmethod
    def coerce_dependencies(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [str(d) if isinstance(d, int) else d for d in v]
        return v

    @field_validator('estimated_time', mode='before')
    @classmethod
    def coerce_estimate(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return str(v)
        return v


class TaskPlan(_ResponseModel):
    """Result of the planning phase."""

    tasks: List[PlannedTask] = Field(..., min_length=1)


class ExecutionStep(_ResponseModel):
    step_number: int
    description: str = ""
    tool_used: Optional[str] = None
    result: Optional[Any] = None


class RemoteAction(_ResponseModel):
    """An action the model wants performed through the capability service."""

    action_type: str = Field(..., min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    purpose: str = ""


class ExecutionReport(_ResponseModel):
    """Result of executing one task."""

    task_id: Optional[str] = None
    steps: List[ExecutionStep] = Field(default_factory=list)
    actions: List[RemoteAction] = Field(default_factory=list)
    outcome: ExecutionOutcome
    result: Any = None
    issues: List[str] = Field(default_factory=list)

    @field_validator('outcome', mode='before')
    @classmethod
    def normalize_outcome(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _OUTCOME_ALIASES.get(v.strip().lower(), v)
        return v

    @field_validator('task_id', mode='before')
    @classmethod
    def coerce_task_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    def tools_used(self) -> List[str]:
        return [s.tool_used for s in self.steps if s.tool_used]
