"""Timed challenge runs: elapsed time, hint penalties and tier classification."""

import asyncio
from collections.abc import Callable, Coroutine
from enum import StrEnum
from typing import Any

import structlog
from pydantic import BaseModel

from artifex_coach.ai.images import ImagePayload
from artifex_coach.ai.orchestrator import AIOrchestrator
from artifex_coach.errors import UserInputInvalid
from artifex_coach.models.challenge import Challenge, EvaluationResult, Tier, TimerSnapshot

logger = structlog.get_logger()

HINT_PENALTY_SECONDS = 120
SILHOUETTE_HINT = "Focus on the main silhouette first."

TickHandler = Callable[[TimerSnapshot], Coroutine[Any, Any, None]]

_NEXT_TIER: dict[Tier, Tier | None] = {
    Tier.GOLD: Tier.SILVER,
    Tier.SILVER: Tier.BRONZE,
    Tier.BRONZE: Tier.FAIL,
    Tier.FAIL: None,
}


class ChallengeTimer:
    """Tick-driven challenge clock.

    ``total = elapsed + penalty``. The tier is derived from ``total`` on
    every read and never stored.

    Args:
        challenge: Challenge supplying the gold/silver/bronze minute budgets.
        hint_penalty_seconds: Seconds added per hint request.
        tick_interval: Wall-clock seconds between ticks.
    """

    def __init__(
        self,
        challenge: Challenge,
        hint_penalty_seconds: int = HINT_PENALTY_SECONDS,
        tick_interval: float = 1.0,
    ):
        self.challenge = challenge
        self.hint_penalty_seconds = hint_penalty_seconds
        self.tick_interval = tick_interval
        self.elapsed: int = 0
        self.penalty: int = 0
        self._task: asyncio.Task | None = None
        self._tick_callbacks: list[TickHandler] = []

    @property
    def total(self) -> int:
        return self.elapsed + self.penalty

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def tier(self) -> Tier:
        minutes = self.total / 60
        if minutes <= self.challenge.gold_time:
            return Tier.GOLD
        if minutes <= self.challenge.silver_time:
            return Tier.SILVER
        if minutes <= self.challenge.bronze_time:
            return Tier.BRONZE
        return Tier.FAIL

    @property
    def next_tier(self) -> Tier | None:
        return _NEXT_TIER[self.tier]

    @property
    def time_to_next_tier(self) -> int:
        """Seconds until the current tier's cutoff, never negative."""
        cutoffs = {
            Tier.GOLD: self.challenge.gold_time,
            Tier.SILVER: self.challenge.silver_time,
            Tier.BRONZE: self.challenge.bronze_time,
        }
        minutes = cutoffs.get(self.tier)
        if minutes is None:
            return 0
        return max(0, int(minutes * 60 - self.total))

    def snapshot(self) -> TimerSnapshot:
        return TimerSnapshot(
            elapsed=self.elapsed,
            penalty=self.penalty,
            total=self.total,
            tier=self.tier,
            next_tier=self.next_tier,
            time_to_next_tier=self.time_to_next_tier,
        )

    def tick(self) -> None:
        self.elapsed += 1

    def add_hint_penalty(self) -> None:
        self.penalty += self.hint_penalty_seconds

    def on_tick(self, callback: TickHandler) -> None:
        """Register an async callback receiving a snapshot after every tick.

        Args:
            callback: Async callable(TimerSnapshot).
        """
        self._tick_callbacks.append(callback)

    def remove_tick_callback(self, callback: TickHandler) -> None:
        if callback in self._tick_callbacks:
            self._tick_callbacks.remove(callback)

    def start(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._tick_loop())
        logger.info("challenge_timer_started", challenge_id=self.challenge.id)

    async def stop(self) -> None:
        """Cancel the tick task; safe to call more than once."""
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info(
            "challenge_timer_stopped",
            challenge_id=self.challenge.id,
            total=self.total,
            tier=self.tier.value,
        )

    async def _tick_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.tick_interval)
                self.tick()
                snapshot = self.snapshot()
                for callback in list(self._tick_callbacks):
                    try:
                        await callback(snapshot)
                    except Exception:
                        logger.exception("tick_handler_error", challenge_id=self.challenge.id)
        except asyncio.CancelledError:
            pass


class ChallengeStatus(StrEnum):
    RUNNING = "running"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"


class ChallengeOutcome(BaseModel):
    """Final result of a submitted challenge run."""

    challenge_id: str
    evaluation: EvaluationResult
    tier: Tier
    timer: TimerSnapshot


class ActiveChallenge:
    """One running challenge: its timer, hints and final submission.

    Args:
        challenge: Challenge being attempted.
        orchestrator: AI orchestrator used for hints and evaluation.
        tool: Learner's tool, used to tailor hints.
        hint_penalty_seconds: Penalty per hint.
        tick_interval: Seconds between timer ticks.
    """

    def __init__(
        self,
        challenge: Challenge,
        orchestrator: AIOrchestrator,
        tool: str,
        hint_penalty_seconds: int = HINT_PENALTY_SECONDS,
        tick_interval: float = 1.0,
    ):
        self.challenge = challenge
        self.orchestrator = orchestrator
        self.tool = tool
        self.timer = ChallengeTimer(
            challenge,
            hint_penalty_seconds=hint_penalty_seconds,
            tick_interval=tick_interval,
        )
        self.hints: list[str] = []
        self.status = ChallengeStatus.RUNNING
        self.outcome: ChallengeOutcome | None = None

    def start(self) -> None:
        self.timer.start()

    def _ensure_running(self) -> None:
        if self.status != ChallengeStatus.RUNNING:
            raise UserInputInvalid(f"Challenge {self.challenge.id} is {self.status.value}")

    async def request_hint(self) -> str:
        """Apply the hint penalty, then fetch a hint.

        The penalty is applied before the call, so it counts whether or not
        the hint request succeeds.
        """
        self._ensure_running()
        self.timer.add_hint_penalty()
        logger.info(
            "hint_requested",
            challenge_id=self.challenge.id,
            penalty=self.timer.penalty,
        )
        try:
            hint = await self.orchestrator.generate_hint(self.tool, self.challenge)
        except Exception:
            logger.exception("hint_request_failed", challenge_id=self.challenge.id)
            hint = SILHOUETTE_HINT
        self.hints.append(hint)
        return hint

    async def submit(self, user_image: ImagePayload) -> ChallengeOutcome:
        """Stop the clock and have the submission judged.

        The run leaves ``running`` before the first await, so a repeated
        submit is rejected instead of judged twice.
        """
        self._ensure_running()
        self.status = ChallengeStatus.SUBMITTED
        await self.timer.stop()
        tier = self.timer.tier
        evaluation = await self.orchestrator.evaluate_challenge_submission(
            self.challenge.reference_image_url, user_image, self.challenge
        )
        self.outcome = ChallengeOutcome(
            challenge_id=self.challenge.id,
            evaluation=evaluation,
            tier=tier if evaluation.passed else Tier.FAIL,
            timer=self.timer.snapshot(),
        )
        logger.info(
            "challenge_finished",
            challenge_id=self.challenge.id,
            passed=evaluation.passed,
            tier=self.outcome.tier.value,
        )
        return self.outcome

    async def cancel(self) -> None:
        await self.timer.stop()
        if self.status == ChallengeStatus.RUNNING:
            self.status = ChallengeStatus.CANCELLED
            logger.info("challenge_cancelled", challenge_id=self.challenge.id)
