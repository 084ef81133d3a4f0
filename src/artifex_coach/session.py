"""Top-level single-user coach session tying the engine components together."""

import functools

import structlog

from artifex_coach.ai.images import ImagePayload
from artifex_coach.ai.orchestrator import AIOrchestrator
from artifex_coach.chat.session import ChatContext, ChatSessionController
from artifex_coach.config import Settings, get_settings
from artifex_coach.engine.progression import PathProgressionEngine, StepCompletion
from artifex_coach.engine.timer import ActiveChallenge, ChallengeOutcome
from artifex_coach.errors import UserInputInvalid
from artifex_coach.models.challenge import ReviewResult
from artifex_coach.models.path import LearningPath, Step, StepStatus
from artifex_coach.models.profile import Domain, SkillLevel, UserProfile

logger = structlog.get_logger()


class CoachSession:
    """In-process state of one learner: profile, paths and running challenges.

    Args:
        settings: Application settings.
        orchestrator: AI orchestrator; built from settings when omitted.
    """

    def __init__(self, settings: Settings, orchestrator: AIOrchestrator | None = None):
        self.settings = settings
        self.orchestrator = orchestrator or AIOrchestrator.from_settings(settings)
        self.profile: UserProfile | None = None
        self.progression: PathProgressionEngine | None = None
        self.paths: dict[str, LearningPath] = {}
        self.active_path_id: str | None = None
        self.challenges: dict[str, ActiveChallenge] = {}

    def require_profile(self) -> UserProfile:
        if self.profile is None:
            raise UserInputInvalid("Complete onboarding first")
        return self.profile

    def _require_progression(self) -> PathProgressionEngine:
        if self.progression is None:
            raise UserInputInvalid("Complete onboarding first")
        return self.progression

    async def onboard(
        self,
        name: str,
        domain: Domain,
        tool: str,
        skill_level: SkillLevel,
        goal: str,
    ) -> LearningPath:
        """Create the profile (first time only) and its first learning path.

        Path generation errors propagate so the caller can offer a retry;
        nothing is stored in that case.
        """
        path = await self.orchestrator.generate_learning_path(
            domain.value, tool, goal, skill_level.value
        )
        if self.profile is None:
            self.profile = UserProfile(
                name=name, domain=domain, tool=tool, skill_level=skill_level
            )
            self.progression = PathProgressionEngine(
                self.profile, default_xp_reward=self.settings.default_step_xp
            )
            logger.info("profile_created", domain=domain.value, tool=tool)
        self._store_path(path)
        return path

    async def add_path(self, goal: str) -> LearningPath:
        """Generate another path for the existing profile."""
        profile = self.require_profile()
        path = await self.orchestrator.generate_learning_path(
            profile.domain.value, profile.tool, goal, profile.skill_level.value
        )
        self._store_path(path)
        return path

    def _store_path(self, path: LearningPath) -> None:
        self.paths[path.id] = path
        self.active_path_id = path.id

    def get_path(self, path_id: str) -> LearningPath | None:
        return self.paths.get(path_id)

    def open_path(self, path_id: str) -> LearningPath | None:
        """Navigate to a path, making it the chat context's active path."""
        path = self.paths.get(path_id)
        if path is not None:
            self.active_path_id = path_id
        return path

    def current_step(self, path: LearningPath) -> Step | None:
        return PathProgressionEngine.current_step(path)

    async def review_step(
        self,
        path: LearningPath,
        step_id: str,
        image: ImagePayload,
        auto_complete: bool = False,
    ) -> ReviewResult:
        """Have a step submission judged.

        The active step is marked ``reviewing`` while the judge runs and is
        resolved afterwards: completed when it passed and ``auto_complete``
        is set, otherwise back to active so the learner can retry or advance.
        The marker is cleared even if the request is cancelled mid-review.
        """
        progression = self._require_progression()
        found = path.find_step(step_id)
        if found is None:
            raise UserInputInvalid(f"Unknown step {step_id!r}")
        _, step = found
        if step.status == StepStatus.LOCKED:
            raise UserInputInvalid(f"Step {step_id!r} is locked")

        tracked = step.status == StepStatus.ACTIVE
        if tracked:
            await progression.mark_reviewing(path, step_id)

        completed = False
        try:
            result = await self.orchestrator.review_submission(
                image, step.description, step.criteria
            )
            if tracked and result.passed and auto_complete:
                await progression.resolve_review(path, step_id, passed=True)
                completed = True
        finally:
            if tracked and not completed:
                await progression.resolve_review(path, step_id, passed=False)
        return result

    async def complete_step(self, path: LearningPath, step_id: str) -> StepCompletion:
        return await self._require_progression().complete_step(path, step_id)

    async def start_challenge(self) -> ActiveChallenge:
        """Generate today's challenge and start its clock.

        Only one challenge runs at a time: any earlier run is cancelled.
        """
        profile = self.require_profile()
        challenge = await self.orchestrator.generate_daily_challenge(
            profile.domain.value, profile.tool, profile.skill_level.value
        )
        for challenge_id in list(self.challenges):
            logger.info("challenge_replaced", challenge_id=challenge_id)
            await self.cancel_challenge(challenge_id)
        active = ActiveChallenge(
            challenge,
            self.orchestrator,
            profile.tool,
            hint_penalty_seconds=self.settings.hint_penalty_seconds,
            tick_interval=self.settings.timer_tick_seconds,
        )
        active.start()
        self.challenges[challenge.id] = active
        return active

    def get_challenge(self, challenge_id: str) -> ActiveChallenge | None:
        return self.challenges.get(challenge_id)

    async def submit_challenge(
        self, challenge_id: str, image: ImagePayload
    ) -> ChallengeOutcome | None:
        active = self.challenges.get(challenge_id)
        if active is None:
            return None
        try:
            return await active.submit(image)
        finally:
            self.challenges.pop(challenge_id, None)

    async def cancel_challenge(self, challenge_id: str) -> bool:
        active = self.challenges.pop(challenge_id, None)
        if active is None:
            return False
        await active.cancel()
        return True

    def chat_context(self) -> ChatContext:
        """Context for the mentor: the learner's tool and the module in view."""
        tool = self.profile.tool if self.profile else "General"
        path = self.paths.get(self.active_path_id) if self.active_path_id else None
        step = self.current_step(path) if path else None
        return ChatContext(
            tool=tool,
            step_title=step.title if step else None,
            step_description=step.description if step else None,
        )

    def create_chat(self) -> ChatSessionController:
        return ChatSessionController(self.orchestrator, self.chat_context)

    async def close(self) -> None:
        """Stop every running challenge clock."""
        for challenge_id in list(self.challenges):
            await self.cancel_challenge(challenge_id)


@functools.lru_cache
def get_coach_session() -> CoachSession:
    """Get the process-wide coach session singleton."""
    return CoachSession(get_settings())
