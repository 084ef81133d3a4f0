"""Tests for the challenge timer and active challenge runs."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from artifex_coach.engine.timer import (
    SILHOUETTE_HINT,
    ActiveChallenge,
    ChallengeOutcome,
    ChallengeTimer,
)
from artifex_coach.errors import TransportFailure, UserInputInvalid
from artifex_coach.models.challenge import Challenge, EvaluationResult, Tier


def _challenge() -> Challenge:
    return Challenge(
        title="Speed Modeling",
        theme="Abstract",
        description="Create a simple abstract shape",
        reference_image_url="https://placehold.co/600x600/20BEFF/ffffff?text=Speed%20Modeling",
        gold_time=10,
        silver_time=20,
        bronze_time=30,
    )


def _orchestrator(passed: bool = True):
    orchestrator = MagicMock()
    orchestrator.generate_hint = AsyncMock(return_value="Start from a cube.")
    orchestrator.evaluate_challenge_submission = AsyncMock(
        return_value=EvaluationResult(passed=passed, score=90 if passed else 30, feedback="ok")
    )
    return orchestrator


class TestChallengeTimer:
    def test_starts_gold(self):
        timer = ChallengeTimer(_challenge())
        snap = timer.snapshot()
        assert snap.tier == Tier.GOLD
        assert snap.next_tier == Tier.SILVER
        assert snap.time_to_next_tier == 600

    def test_boundary_is_inclusive(self):
        timer = ChallengeTimer(_challenge())
        timer.elapsed = 600
        assert timer.tier == Tier.GOLD
        assert timer.time_to_next_tier == 0
        timer.tick()
        assert timer.tier == Tier.SILVER

    def test_penalties_count_toward_tier(self):
        timer = ChallengeTimer(_challenge())
        timer.elapsed = 660
        timer.add_hint_penalty()
        timer.add_hint_penalty()
        snap = timer.snapshot()
        assert snap.penalty == 240
        assert snap.total == 900
        assert snap.tier == Tier.SILVER
        assert snap.time_to_next_tier == 300

    def test_fail_has_no_next_tier(self):
        timer = ChallengeTimer(_challenge())
        timer.elapsed = 1801
        assert timer.tier == Tier.FAIL
        assert timer.next_tier is None
        assert timer.time_to_next_tier == 0

    def test_custom_penalty(self):
        timer = ChallengeTimer(_challenge(), hint_penalty_seconds=30)
        timer.add_hint_penalty()
        assert timer.total == 30

    async def test_ticks_and_stops(self):
        timer = ChallengeTimer(_challenge(), tick_interval=0.01)
        snapshots = []

        async def on_tick(snapshot):
            snapshots.append(snapshot)

        timer.on_tick(on_tick)
        timer.start()
        assert timer.is_running
        await asyncio.sleep(0.1)
        await timer.stop()

        assert not timer.is_running
        assert timer.elapsed > 0
        assert snapshots[-1].elapsed == timer.elapsed

        frozen = timer.elapsed
        await asyncio.sleep(0.05)
        assert timer.elapsed == frozen

    async def test_stop_is_idempotent(self):
        timer = ChallengeTimer(_challenge(), tick_interval=0.01)
        timer.start()
        await timer.stop()
        await timer.stop()
        assert not timer.is_running

    async def test_failing_tick_handler_keeps_clock_running(self):
        timer = ChallengeTimer(_challenge(), tick_interval=0.01)

        async def broken(snapshot):
            raise RuntimeError("socket gone")

        timer.on_tick(broken)
        timer.start()
        await asyncio.sleep(0.1)
        await timer.stop()
        assert timer.elapsed >= 2


class TestActiveChallenge:
    async def test_hint_applies_penalty(self):
        active = ActiveChallenge(_challenge(), _orchestrator(), "Blender")
        hint = await active.request_hint()
        assert hint == "Start from a cube."
        assert active.timer.penalty == 120
        assert active.hints == ["Start from a cube."]

    async def test_penalty_applied_even_when_hint_fails(self):
        orchestrator = _orchestrator()
        orchestrator.generate_hint = AsyncMock(side_effect=TransportFailure("offline"))
        active = ActiveChallenge(_challenge(), orchestrator, "Blender")
        assert await active.request_hint() == SILHOUETTE_HINT
        assert await active.request_hint() == SILHOUETTE_HINT
        assert active.timer.penalty == 240

    async def test_submit_stops_clock_and_keeps_tier(self):
        orchestrator = _orchestrator(passed=True)
        active = ActiveChallenge(_challenge(), orchestrator, "Blender", tick_interval=0.01)
        active.start()
        await asyncio.sleep(0.03)
        active.timer.elapsed = 700

        outcome = await active.submit(MagicMock())
        assert outcome.tier == Tier.SILVER
        assert outcome.evaluation.passed is True
        assert not active.timer.is_running
        orchestrator.evaluate_challenge_submission.assert_awaited_once()
        args = orchestrator.evaluate_challenge_submission.await_args.args
        assert args[0] == active.challenge.reference_image_url

    async def test_failed_evaluation_is_fail_tier(self):
        active = ActiveChallenge(_challenge(), _orchestrator(passed=False), "Blender")
        outcome = await active.submit(MagicMock())
        assert outcome.tier == Tier.FAIL

    async def test_concurrent_submits_judged_once(self):
        orchestrator = _orchestrator(passed=True)
        active = ActiveChallenge(_challenge(), orchestrator, "Blender", tick_interval=0.01)
        active.start()
        results = await asyncio.gather(
            active.submit(MagicMock()), active.submit(MagicMock()), return_exceptions=True
        )
        outcomes = [r for r in results if isinstance(r, ChallengeOutcome)]
        rejected = [r for r in results if isinstance(r, UserInputInvalid)]
        assert len(outcomes) == 1
        assert len(rejected) == 1
        assert active.outcome is outcomes[0]
        orchestrator.evaluate_challenge_submission.assert_awaited_once()

    async def test_no_hints_after_submit(self):
        active = ActiveChallenge(_challenge(), _orchestrator(), "Blender")
        await active.submit(MagicMock())
        with pytest.raises(UserInputInvalid):
            await active.request_hint()

    async def test_cancel_stops_timer(self):
        active = ActiveChallenge(_challenge(), _orchestrator(), "Blender", tick_interval=0.01)
        active.start()
        await active.cancel()
        assert not active.timer.is_running
        with pytest.raises(UserInputInvalid):
            await active.submit(MagicMock())
