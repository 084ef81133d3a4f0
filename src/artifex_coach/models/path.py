"""Learning path and step models."""

import uuid
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class StepStatus(StrEnum):
    """Step lifecycle states.

    Transitions only move forward: locked -> active -> completed.
    ``reviewing`` is a transient marker that resolves to active or completed.
    """

    LOCKED = "locked"
    ACTIVE = "active"
    COMPLETED = "completed"
    REVIEWING = "reviewing"


class Step(BaseModel):
    """One curriculum module with its success criteria."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    title: str
    description: str = ""
    criteria: list[str] = Field(default_factory=list)
    detailed_steps: list[str] = Field(default_factory=list, alias="detailedSteps")
    xp_reward: int | None = Field(default=None, ge=0, alias="xpReward")
    status: StepStatus = StepStatus.LOCKED


class LearningPath(BaseModel):
    """A generated curriculum: ordered steps toward the learner's goal."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    description: str = ""
    total_xp: int = Field(default=0, ge=0, alias="totalXp")
    steps: list[Step] = Field(default_factory=list)

    def find_step(self, step_id: str) -> tuple[int, Step] | None:
        """Return (index, step) for the given id, or None."""
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index, step
        return None

    @property
    def is_completed(self) -> bool:
        return bool(self.steps) and all(
            s.status == StepStatus.COMPLETED for s in self.steps
        )
