"""Sequencing of generative backend calls with per-stage fallback policy.

Curriculum generation propagates every failure: a malformed path is
unusable. Review, challenge design/rendering, evaluation and hints degrade
to local defaults instead, so one failed call never blocks the learner.
"""

import uuid
from collections.abc import AsyncIterator, Sequence
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from artifex_coach.ai.backend import (
    Content,
    ContentPart,
    GenerationRequest,
    GenerativeBackend,
    ModelProfile,
    OpenAIBackend,
)
from artifex_coach.ai.extractor import extract_json, require_fields
from artifex_coach.ai.images import ImagePayload, is_data_url
from artifex_coach.ai.prompts import (
    MENTOR_INSTRUCTION,
    REVIEWER_INSTRUCTION,
    build_challenge_design_prompt,
    build_evaluation_instructions,
    build_hint_prompt,
    build_learning_path_prompt,
    build_placeholder_image_url,
    build_review_prompt,
)
from artifex_coach.config import Settings
from artifex_coach.errors import (
    CoachError,
    MalformedResponse,
    MissingRequiredField,
    UserInputInvalid,
)
from artifex_coach.models.challenge import (
    Challenge,
    ChallengeDesign,
    EvaluationResult,
    ReviewResult,
)
from artifex_coach.models.path import LearningPath, StepStatus

logger = structlog.get_logger()

REVIEW_UNAVAILABLE = ReviewResult(
    passed=False,
    feedback="AI Review service unavailable. Please try again.",
)

EVALUATION_AUTO_PASS = EvaluationResult(
    passed=True,
    score=85,
    feedback="Good effort! (Auto-passed due to network)",
)

FALLBACK_CHALLENGE_DESIGN = ChallengeDesign(
    title="Speed Modeling",
    theme="Abstract",
    description="Create a simple abstract shape that demonstrates flow.",
    image_prompt="Abstract 3d shape floating in void, colorful",
    gold_time=10,
    silver_time=20,
    bronze_time=30,
)

EMPTY_HINT_FALLBACK = "Try breaking the shape down into primitive blocks first."
FAILED_HINT_FALLBACK = "Check your topology flow before adding details."
DEFAULT_EDIT_PROMPT = "Enhance this image"

CHALLENGE_DESIGN_FIELDS = (
    "title", "theme", "description", "imagePrompt", "goldTime", "silverTime", "bronzeTime",
)


def _validate(model_cls: type[BaseModel], data: Any, stage: str) -> Any:
    """Semantic validation of extracted data into a typed model."""
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors()]
        raise MissingRequiredField(stage, fields) from e


def _single_turn(*parts: ContentPart) -> list[Content]:
    return [Content(role="user", parts=list(parts))]


class ChatSession:
    """One persistent conversational context with the mentor persona.

    History is kept locally and replayed on every turn; a turn is only
    committed once its stream completes.

    Args:
        backend: Generative backend.
        model: Model identifier (fast profile).
        system_instruction: Persona instruction.
    """

    def __init__(self, backend: GenerativeBackend, model: str, system_instruction: str):
        self._backend = backend
        self.model = model
        self.system_instruction = system_instruction
        self.history: list[Content] = []

    async def send_message_stream(self, parts: Sequence[ContentPart]) -> AsyncIterator[str]:
        """Send one user turn and yield the reply's text fragments in order."""
        user_turn = Content(role="user", parts=list(parts))
        request = GenerationRequest(
            model=self.model,
            contents=[*self.history, user_turn],
            system_instruction=self.system_instruction,
        )
        fragments: list[str] = []
        async for fragment in self._backend.stream(request):
            fragments.append(fragment)
            yield fragment

        self.history.append(user_turn)
        self.history.append(
            Content(role="model", parts=[ContentPart.of_text("".join(fragments))])
        )


class AIOrchestrator:
    """Runs every AI-backed operation of the coach.

    Args:
        backend: Generative backend serving all requests.
        settings: Application settings (model profiles, defaults).
    """

    def __init__(self, backend: GenerativeBackend, settings: Settings):
        self.backend = backend
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "AIOrchestrator":
        return cls(OpenAIBackend(api_key=settings.openai_api_key), settings)

    def _model(self, profile: ModelProfile) -> str:
        if profile == ModelProfile.REASONING:
            return self.settings.reasoning_model
        if profile == ModelProfile.IMAGE:
            return self.settings.image_model
        return self.settings.fast_model

    async def generate_learning_path(
        self, domain: str, tool: str, goal: str, level: str
    ) -> LearningPath:
        """Generate a curriculum for the learner.

        Args:
            domain: Learner's field.
            tool: Software the learner uses.
            goal: Learner's stated goal.
            level: Skill level label.

        Returns:
            LearningPath with a fresh id, step 0 active and the rest locked.

        Raises:
            TransportFailure: Backend unreachable.
            MalformedResponse: Output was not JSON.
            MissingRequiredField: JSON lacked title/steps or step fields.
        """
        prompt = build_learning_path_prompt(domain, tool, goal, level)
        request = GenerationRequest(
            model=self._model(ModelProfile.REASONING),
            contents=_single_turn(ContentPart.of_text(prompt)),
            reasoning_effort=self.settings.reasoning_effort,
            json_output=True,
        )

        try:
            response = await self.backend.generate(request)
            data = extract_json(response.text)
            require_fields(data, ("title",), "learning_path", list_fields=("steps",))
            path = self._build_path(data)
        except CoachError:
            logger.exception("learning_path_generation_failed", domain=domain, tool=tool)
            raise

        logger.info(
            "learning_path_generated",
            path_id=path.id,
            steps=len(path.steps),
            total_xp=path.total_xp,
        )
        return path

    def _build_path(self, data: dict[str, Any]) -> LearningPath:
        raw_steps = data["steps"]
        if not raw_steps:
            raise MissingRequiredField("learning_path", ["steps"])

        steps = []
        for index, raw in enumerate(raw_steps):
            if not isinstance(raw, dict):
                raise MissingRequiredField("learning_path", [f"steps.{index}"])
            # Backend-provided status is never trusted
            step = {k: v for k, v in raw.items() if k != "status"}
            step["status"] = StepStatus.ACTIVE if index == 0 else StepStatus.LOCKED
            steps.append(step)

        payload = {**data, "id": uuid.uuid4().hex, "steps": steps}
        path: LearningPath = _validate(LearningPath, payload, "learning_path")

        ids = [s.id for s in path.steps]
        if len(set(ids)) != len(ids):
            raise MalformedResponse("Learning path contains duplicate step ids")

        if data.get("totalXp") is None:
            path.total_xp = sum(
                s.xp_reward if s.xp_reward is not None else self.settings.default_step_xp
                for s in path.steps
            )
        return path

    async def review_submission(
        self,
        image: ImagePayload,
        step_description: str,
        criteria: Sequence[str],
    ) -> ReviewResult:
        """Judge an uploaded image against a step's criteria.

        Never raises: any failure yields a not-passed "unavailable" verdict
        so the learner can simply retry.
        """
        request = GenerationRequest(
            model=self._model(ModelProfile.REASONING),
            contents=_single_turn(
                ContentPart.of_image(image),
                ContentPart.of_text(build_review_prompt(step_description, criteria)),
            ),
            system_instruction=REVIEWER_INSTRUCTION,
            reasoning_effort=self.settings.reasoning_effort,
            json_output=True,
        )

        try:
            response = await self.backend.generate(request)
            data = require_fields(
                extract_json(response.text), ("passed", "feedback"), "review"
            )
            result: ReviewResult = _validate(ReviewResult, data, "review")
        except Exception:
            logger.exception("submission_review_failed")
            return REVIEW_UNAVAILABLE.model_copy()

        logger.info("submission_reviewed", passed=result.passed)
        return result

    async def generate_daily_challenge(
        self, domain: str, tool: str, skill_level: str
    ) -> Challenge:
        """Design a challenge and render its reference image.

        Always returns a Challenge: a failed design stage falls back to a
        fixed design, and a failed image stage to a placeholder URL.
        """
        design = await self._design_challenge(domain, tool, skill_level)
        image_url = await self._render_reference_image(design)

        challenge = Challenge(
            title=design.title,
            theme=design.theme,
            description=design.description,
            reference_image_url=image_url,
            gold_time=design.gold_time,
            silver_time=design.silver_time,
            bronze_time=design.bronze_time,
        )
        logger.info(
            "daily_challenge_ready",
            challenge_id=challenge.id,
            title=challenge.title,
            embedded_reference=is_data_url(image_url),
        )
        return challenge

    async def _design_challenge(
        self, domain: str, tool: str, skill_level: str
    ) -> ChallengeDesign:
        request = GenerationRequest(
            model=self._model(ModelProfile.FAST),
            contents=_single_turn(
                ContentPart.of_text(build_challenge_design_prompt(domain, tool, skill_level))
            ),
            json_output=True,
        )
        try:
            response = await self.backend.generate(request)
            data = require_fields(
                extract_json(response.text), CHALLENGE_DESIGN_FIELDS, "challenge_design"
            )
            return _validate(ChallengeDesign, data, "challenge_design")
        except Exception:
            logger.exception("challenge_design_failed", domain=domain, tool=tool)
            return FALLBACK_CHALLENGE_DESIGN.model_copy()

    async def _render_reference_image(self, design: ChallengeDesign) -> str:
        request = GenerationRequest(
            model=self._model(ModelProfile.IMAGE),
            contents=_single_turn(ContentPart.of_text(design.image_prompt)),
            image_output=True,
            image_size=self.settings.image_size,
        )
        try:
            response = await self.backend.generate(request)
            if not response.images:
                raise MalformedResponse("No image data returned from model")
            return response.images[0].to_data_url()
        except Exception as e:
            logger.warning("reference_image_failed", title=design.title, error=str(e))
            return build_placeholder_image_url(design.title)

    async def evaluate_challenge_submission(
        self,
        reference_image_url: str | None,
        user_image: ImagePayload,
        challenge: Challenge | None = None,
    ) -> EvaluationResult:
        """Compare a submission to the challenge reference.

        The reference is sent inline only when it is an embedded data URL;
        a placeholder URL is omitted and the challenge text stands in for it.
        On failure the submission is auto-passed with a score of 85.
        """
        reference: ImagePayload | None = None
        if is_data_url(reference_image_url):
            try:
                reference = ImagePayload.from_data_url(reference_image_url)
            except UserInputInvalid:
                logger.warning("reference_image_unreadable")

        if reference is not None:
            texts = build_evaluation_instructions()
        else:
            texts = build_evaluation_instructions(challenge)

        parts = [ContentPart.of_text(t) for t in texts]
        if reference is not None:
            parts.append(ContentPart.of_image(reference))
        parts.append(ContentPart.of_image(user_image))
        parts.append(ContentPart.of_text("Judge the submission."))

        request = GenerationRequest(
            model=self._model(ModelProfile.REASONING),
            contents=_single_turn(*parts),
            reasoning_effort=self.settings.reasoning_effort,
            json_output=True,
        )

        try:
            response = await self.backend.generate(request)
            data = require_fields(
                extract_json(response.text), ("passed", "score", "feedback"), "evaluation"
            )
            data["score"] = max(0, min(100, round(float(data["score"]))))
            result: EvaluationResult = _validate(EvaluationResult, data, "evaluation")
        except Exception:
            logger.exception("challenge_evaluation_failed")
            return EVALUATION_AUTO_PASS.model_copy()

        logger.info(
            "challenge_evaluated",
            passed=result.passed,
            score=result.score,
            reference_inline=reference is not None,
        )
        return result

    async def generate_hint(self, tool: str, challenge: Challenge) -> str:
        """Short technical hint for the running challenge. Never raises."""
        request = GenerationRequest(
            model=self._model(ModelProfile.FAST),
            contents=_single_turn(ContentPart.of_text(build_hint_prompt(tool, challenge))),
        )
        try:
            response = await self.backend.generate(request)
        except Exception:
            logger.exception("hint_generation_failed", challenge_id=challenge.id)
            return FAILED_HINT_FALLBACK
        return response.text.strip() or EMPTY_HINT_FALLBACK

    async def edit_image(self, image: ImagePayload, prompt: str) -> str:
        """Edit an image with a text instruction.

        Returns:
            The edited image as a PNG data URL.

        Raises:
            TransportFailure: Backend unreachable.
            MalformedResponse: No image came back.
        """
        request = GenerationRequest(
            model=self._model(ModelProfile.IMAGE),
            contents=_single_turn(
                ContentPart.of_image(image),
                ContentPart.of_text(prompt or DEFAULT_EDIT_PROMPT),
            ),
            image_output=True,
            image_size=self.settings.image_size,
        )
        try:
            response = await self.backend.generate(request)
            if not response.images:
                raise MalformedResponse("No image generated")
        except CoachError:
            logger.exception("image_edit_failed")
            raise
        return response.images[0].to_data_url()

    def create_chat_session(self) -> ChatSession:
        return ChatSession(
            backend=self.backend,
            model=self._model(ModelProfile.FAST),
            system_instruction=MENTOR_INSTRUCTION,
        )
