"""Tests for the step unlock / completion / XP state machine."""

import asyncio

import pytest

from artifex_coach.engine.progression import PathProgressionEngine
from artifex_coach.errors import UserInputInvalid
from artifex_coach.models.path import LearningPath, Step, StepStatus
from artifex_coach.models.profile import Domain, SkillLevel, UserProfile


def _profile(xp: int = 0) -> UserProfile:
    return UserProfile(
        name="Ada",
        domain=Domain.DIGITAL_ART,
        tool="Blender",
        skill_level=SkillLevel.BEGINNER,
        xp=xp,
    )


def _path() -> LearningPath:
    return LearningPath(
        title="Blender Foundations",
        total_xp=250,
        steps=[
            Step(id="s1", title="Primitives", xp_reward=100, status=StepStatus.ACTIVE),
            Step(id="s2", title="Modifiers", xp_reward=150),
            Step(id="s3", title="Render"),
        ],
    )


@pytest.fixture
def profile():
    return _profile()


@pytest.fixture
def engine(profile):
    return PathProgressionEngine(profile)


class TestCompleteStep:
    async def test_awards_reward_and_unlocks_next(self, engine, profile):
        path = _path()
        result = await engine.complete_step(path, "s1")
        assert result.awarded_xp == 100
        assert profile.xp == 100
        assert result.next_step_id == "s2"
        assert [s.status for s in path.steps] == [
            StepStatus.COMPLETED,
            StepStatus.ACTIVE,
            StepStatus.LOCKED,
        ]

    async def test_default_reward_when_missing(self, engine, profile):
        path = _path()
        await engine.complete_step(path, "s1")
        await engine.complete_step(path, "s2")
        result = await engine.complete_step(path, "s3")
        assert result.awarded_xp == 50
        assert profile.xp == 300
        assert result.path_completed is True
        assert result.next_step_id is None
        assert path.is_completed

    async def test_custom_default_reward(self, profile):
        engine = PathProgressionEngine(profile, default_xp_reward=75)
        path = LearningPath(title="t", steps=[Step(id="a", title="A", status=StepStatus.ACTIVE)])
        result = await engine.complete_step(path, "a")
        assert result.awarded_xp == 75

    async def test_zero_reward_is_not_replaced_by_default(self, engine, profile):
        path = LearningPath(
            title="t", steps=[Step(id="a", title="A", xp_reward=0, status=StepStatus.ACTIVE)]
        )
        result = await engine.complete_step(path, "a")
        assert result.awarded_xp == 0
        assert profile.xp == 0
        assert result.path_completed is True

    async def test_completed_step_is_noop(self, engine, profile):
        path = _path()
        await engine.complete_step(path, "s1")
        result = await engine.complete_step(path, "s1")
        assert result.already_completed is True
        assert result.awarded_xp == 0
        assert profile.xp == 100
        assert path.steps[1].status == StepStatus.ACTIVE

    async def test_locked_step_rejected(self, engine, profile):
        path = _path()
        with pytest.raises(UserInputInvalid):
            await engine.complete_step(path, "s3")
        assert profile.xp == 0
        assert path.steps[2].status == StepStatus.LOCKED

    async def test_unknown_step_rejected(self, engine):
        with pytest.raises(UserInputInvalid):
            await engine.complete_step(_path(), "nope")

    async def test_concurrent_double_click_awards_once(self, engine, profile):
        path = _path()
        results = await asyncio.gather(
            engine.complete_step(path, "s1"),
            engine.complete_step(path, "s1"),
        )
        assert sorted(r.awarded_xp for r in results) == [0, 100]
        assert profile.xp == 100
        assert path.steps[2].status == StepStatus.LOCKED

    async def test_single_active_step_invariant(self, engine):
        path = _path()
        for step_id in ("s1", "s2"):
            await engine.complete_step(path, step_id)
            active = [s for s in path.steps if s.status == StepStatus.ACTIVE]
            assert len(active) == 1


class TestSubscribers:
    async def test_handler_receives_completion(self, engine):
        received = []

        async def handler(completion):
            received.append(completion)

        engine.on_step_completed(handler)
        await engine.complete_step(_path(), "s1")
        assert len(received) == 1
        assert received[0].step_id == "s1"
        assert received[0].total_xp == 100

    async def test_failing_handler_does_not_break_completion(self, engine, profile):
        async def broken(completion):
            raise RuntimeError("boom")

        engine.on_step_completed(broken)
        result = await engine.complete_step(_path(), "s1")
        assert result.awarded_xp == 100
        assert profile.xp == 100


class TestCurrentStep:
    def test_first_active(self):
        assert PathProgressionEngine.current_step(_path()).id == "s1"

    async def test_last_completed_when_finished(self, engine):
        path = _path()
        for step_id in ("s1", "s2", "s3"):
            await engine.complete_step(path, step_id)
        assert PathProgressionEngine.current_step(path).id == "s3"

    def test_none_when_everything_locked(self):
        path = LearningPath(title="t", steps=[Step(id="a", title="A")])
        assert PathProgressionEngine.current_step(path) is None


class TestReview:
    async def test_reviewing_then_pass(self, engine, profile):
        path = _path()
        step = await engine.mark_reviewing(path, "s1")
        assert step.status == StepStatus.REVIEWING
        assert PathProgressionEngine.current_step(path).id == "s1"

        result = await engine.resolve_review(path, "s1", passed=True)
        assert result.awarded_xp == 100
        assert path.steps[0].status == StepStatus.COMPLETED

    async def test_reviewing_then_fail_reverts(self, engine, profile):
        path = _path()
        await engine.mark_reviewing(path, "s1")
        assert await engine.resolve_review(path, "s1", passed=False) is None
        assert path.steps[0].status == StepStatus.ACTIVE
        assert profile.xp == 0

    async def test_only_active_step_reviewable(self, engine):
        with pytest.raises(UserInputInvalid):
            await engine.mark_reviewing(_path(), "s2")
