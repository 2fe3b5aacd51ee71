"""
Task and request models for the orchestration core.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field, field_validator


class TaskStatus(str, Enum):
    """Task lifecycle: PENDING -> RUNNING -> COMPLETED | FAILED."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class UserRequest(BaseModel):
    """A request submitted for autonomous execution."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Request content cannot be blank")
        return v.strip()


class Task(BaseModel):
    """A unit of work in a request's dependency graph."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    request_id: str
    session_id: Optional[str] = None
    description: str
    dependencies: Set[str] = Field(default_factory=set)
    status: TaskStatus = TaskStatus.PENDING

    result: Optional[Any] = None
    error: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class TaskSpec:
    """Input for batch task creation."""

    description: str
    dependencies: List[str]
    task_id: Optional[str] = None


@dataclass(frozen=True)
class Success:
    """Successful task outcome."""

    value: Any

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "success", "result": self.value}


@dataclass(frozen=True)
class Failure:
    """Failed task outcome."""

    error: str

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "failure", "error": self.error}


Outcome = Union[Success, Failure]
