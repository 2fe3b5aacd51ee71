"""
Experience network models: prompt/response nodes and user profiles.
"""

import math
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def clamp_score(value: float) -> float:
    """Clamp a running effectiveness score to [0, 100] without rounding."""
    return max(0.0, min(100.0, float(value)))


def clamp_effectiveness(value: float) -> int:
    """Clamp to [0, 100] and round halves up."""
    return int(math.floor(clamp_score(value) + 0.5))


class ExperienceMetadata(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.now)
    provider: str = "unknown"
    model: str = "unknown"
    context: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator('tags')
    @classmethod
    def dedupe_tags(cls, v: List[str]) -> List[str]:
        """Tags form a set; keep first-seen order."""
        seen = []
        for tag in v:
            if tag not in seen:
                seen.append(tag)
        return seen


class Connection(BaseModel):
    node_id: str
    strength: float = Field(..., ge=0.0, le=1.0)


class ExperienceNode(BaseModel):
    """A cached prompt/response pair with an effectiveness score."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    prompt: str
    response: str
    effectiveness: int = Field(default=50, ge=0, le=100)
    # Unrounded running score; effectiveness is its rounded value
    score: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    metadata: ExperienceMetadata = Field(default_factory=ExperienceMetadata)
    connections: List[Connection] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_score(self) -> "ExperienceNode":
        if self.score is None:
            self.score = float(self.effectiveness)
        return self

    def set_score(self, value: float):
        """Update the running score and its rounded effectiveness."""
        self.score = clamp_score(value)
        self.effectiveness = clamp_effectiveness(self.score)

    def connection_to(self, node_id: str) -> Optional[Connection]:
        for conn in self.connections:
            if conn.node_id == node_id:
                return conn
        return None


class Interaction(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.now)
    node_id: str
    feedback: Optional[float] = Field(default=None, ge=-1.0, le=1.0)


class PredictedNeed(BaseModel):
    need: str  # the tag
    confidence: float = Field(..., ge=0.0, le=1.0)
    suggested_node_ids: List[str] = Field(default_factory=list)


class UserProfile(BaseModel):
    id: str
    preferences: Dict[str, Any] = Field(default_factory=dict)
    interaction_history: List[Interaction] = Field(default_factory=list)
    predicted_needs: List[PredictedNeed] = Field(default_factory=list)


class PromptSuggestion(BaseModel):
    prompt: str
    confidence: float
    description: str
    node_id: str


class NetworkSnapshot(BaseModel):
    """Full export of nodes and profiles for handoff to an external store."""

    nodes: List[ExperienceNode] = Field(default_factory=list)
    user_profiles: List[UserProfile] = Field(default_factory=list)
    exported_at: datetime = Field(default_factory=datetime.now)
