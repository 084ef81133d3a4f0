"""Challenge, judging result and timer models."""

import uuid
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Challenge(BaseModel):
    """A timed, image-judged exercise. Tier times are minutes."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    theme: str
    description: str
    reference_image_url: str | None = Field(default=None, alias="referenceImageUrl")
    gold_time: float = Field(gt=0, alias="goldTime")
    silver_time: float = Field(gt=0, alias="silverTime")
    bronze_time: float = Field(gt=0, alias="bronzeTime")

    @model_validator(mode="after")
    def _check_tier_order(self) -> "Challenge":
        if not self.gold_time <= self.silver_time <= self.bronze_time:
            raise ValueError("tier times must satisfy gold <= silver <= bronze")
        return self


class ChallengeDesign(BaseModel):
    """Output of the challenge brainstorming stage, before image rendering."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    theme: str
    description: str
    image_prompt: str = Field(alias="imagePrompt")
    gold_time: float = Field(gt=0, alias="goldTime")
    silver_time: float = Field(gt=0, alias="silverTime")
    bronze_time: float = Field(gt=0, alias="bronzeTime")

    @model_validator(mode="after")
    def _order_tier_times(self) -> "ChallengeDesign":
        self.gold_time, self.silver_time, self.bronze_time = sorted(
            (self.gold_time, self.silver_time, self.bronze_time)
        )
        return self


class ReviewResult(BaseModel):
    """Verdict on a step submission."""

    passed: bool
    feedback: str


class EvaluationResult(BaseModel):
    """Verdict on a challenge submission compared to its reference."""

    passed: bool
    score: int = Field(ge=0, le=100)
    feedback: str


class Tier(StrEnum):
    """Performance bracket derived from adjusted challenge time."""

    GOLD = "GOLD"
    SILVER = "SILVER"
    BRONZE = "BRONZE"
    FAIL = "FAIL"


class TimerSnapshot(BaseModel):
    """Display state of a running challenge timer (all values in seconds)."""

    elapsed: int
    penalty: int
    total: int
    tier: Tier
    next_tier: Tier | None
    time_to_next_tier: int
