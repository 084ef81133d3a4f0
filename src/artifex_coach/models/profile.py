"""Learner profile models."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Domain(StrEnum):
    """Creative/technical field the learner works in."""

    ENGINEERING = "Engineering"
    DIGITAL_ART = "Digital Art"
    ARCHITECTURE = "Architecture"


class SkillLevel(StrEnum):
    """Self-reported learner skill level."""

    BEGINNER = "Beginner"
    NOVICE = "Novice"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class UserProfile(BaseModel):
    """Single learner profile; xp only ever grows."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    domain: Domain
    tool: str
    skill_level: SkillLevel = Field(alias="skillLevel")
    xp: int = Field(default=0, ge=0)
    streak: int = Field(default=1, ge=1)

    @property
    def level(self) -> int:
        """Display level, one per 1000 xp."""
        return self.xp // 1000 + 1
