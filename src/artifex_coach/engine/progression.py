"""Step unlock / completion / XP state machine over a learning path."""

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import structlog
from pydantic import BaseModel

from artifex_coach.errors import UserInputInvalid
from artifex_coach.models.path import LearningPath, Step, StepStatus
from artifex_coach.models.profile import UserProfile

logger = structlog.get_logger()

DEFAULT_XP_REWARD = 50


class StepCompletion(BaseModel):
    """Outcome of a completion request, published to subscribers."""

    path_id: str
    step_id: str
    awarded_xp: int
    total_xp: int
    next_step_id: str | None = None
    path_completed: bool = False
    already_completed: bool = False


StepCompletedHandler = Callable[[StepCompletion], Coroutine[Any, Any, None]]


class PathProgressionEngine:
    """Advances steps and awards XP to the owning profile.

    Completion calls are serialized, so double-clicks from several UI paths
    cannot award XP twice or unlock two steps.

    Args:
        profile: Profile whose xp counter receives rewards.
        default_xp_reward: Reward used when a step has no xp_reward.
    """

    def __init__(self, profile: UserProfile, default_xp_reward: int = DEFAULT_XP_REWARD):
        self.profile = profile
        self.default_xp_reward = default_xp_reward
        self._lock = asyncio.Lock()
        self._completed_callbacks: list[StepCompletedHandler] = []

    def on_step_completed(self, callback: StepCompletedHandler) -> None:
        """Register an async callback fired after each new completion.

        Args:
            callback: Async callable(StepCompletion).
        """
        self._completed_callbacks.append(callback)

    @staticmethod
    def current_step(path: LearningPath) -> Step | None:
        """Step to display: first active one, else the last completed one.

        A step under review still counts as the active one.
        """
        for step in path.steps:
            if step.status in (StepStatus.ACTIVE, StepStatus.REVIEWING):
                return step
        completed = [s for s in path.steps if s.status == StepStatus.COMPLETED]
        return completed[-1] if completed else None

    @staticmethod
    def _find(path: LearningPath, step_id: str) -> tuple[int, Step]:
        found = path.find_step(step_id)
        if found is None:
            raise UserInputInvalid(f"Unknown step {step_id!r} in path {path.id}")
        return found

    async def complete_step(self, path: LearningPath, step_id: str) -> StepCompletion:
        """Mark a step completed, unlock its successor and award XP.

        Completing an already-completed step changes nothing and awards 0.

        Args:
            path: Path owning the step.
            step_id: Id of the active (or reviewing) step.

        Returns:
            StepCompletion describing the transition.

        Raises:
            UserInputInvalid: Unknown step, or step still locked.
        """
        async with self._lock:
            index, step = self._find(path, step_id)

            if step.status == StepStatus.COMPLETED:
                logger.info("step_already_completed", path_id=path.id, step_id=step_id)
                return StepCompletion(
                    path_id=path.id,
                    step_id=step_id,
                    awarded_xp=0,
                    total_xp=self.profile.xp,
                    path_completed=path.is_completed,
                    already_completed=True,
                )
            if step.status == StepStatus.LOCKED:
                raise UserInputInvalid(f"Step {step_id!r} is locked")

            step.status = StepStatus.COMPLETED
            next_step_id = None
            if index < len(path.steps) - 1:
                next_step = path.steps[index + 1]
                next_step.status = StepStatus.ACTIVE
                next_step_id = next_step.id

            reward = step.xp_reward if step.xp_reward is not None else self.default_xp_reward
            self.profile.xp += reward

            completion = StepCompletion(
                path_id=path.id,
                step_id=step_id,
                awarded_xp=reward,
                total_xp=self.profile.xp,
                next_step_id=next_step_id,
                path_completed=next_step_id is None,
            )
            logger.info(
                "step_completed",
                path_id=path.id,
                step_id=step_id,
                awarded_xp=reward,
                total_xp=self.profile.xp,
                next_step_id=next_step_id,
            )

        for callback in self._completed_callbacks:
            try:
                await callback(completion)
            except Exception:
                logger.exception("step_completed_handler_error", step_id=step_id)
        return completion

    async def mark_reviewing(self, path: LearningPath, step_id: str) -> Step:
        """Flag the active step as under external review."""
        async with self._lock:
            _, step = self._find(path, step_id)
            if step.status != StepStatus.ACTIVE:
                raise UserInputInvalid(f"Only the active step can be reviewed, not {step_id!r}")
            step.status = StepStatus.REVIEWING
            return step

    async def resolve_review(
        self, path: LearningPath, step_id: str, passed: bool
    ) -> StepCompletion | None:
        """Resolve a review: completed on pass, back to active for a retry otherwise."""
        if passed:
            return await self.complete_step(path, step_id)
        async with self._lock:
            _, step = self._find(path, step_id)
            if step.status == StepStatus.REVIEWING:
                step.status = StepStatus.ACTIVE
        return None
