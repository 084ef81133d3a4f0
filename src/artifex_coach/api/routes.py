"""REST API routes for onboarding, paths and challenges."""

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from artifex_coach.ai.images import ImagePayload
from artifex_coach.engine.timer import ActiveChallenge
from artifex_coach.errors import CoachError, UserInputInvalid
from artifex_coach.models.path import LearningPath
from artifex_coach.models.profile import Domain, SkillLevel
from artifex_coach.session import CoachSession, get_coach_session

logger = structlog.get_logger()
router = APIRouter(prefix="/api")

PATH_GENERATION_FAILED = "Failed to generate learning path. Please try again."


class OnboardingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    domain: Domain
    tool: str
    skill_level: SkillLevel = Field(alias="skillLevel")
    goal: str


class NewPathRequest(BaseModel):
    goal: str


class ImageSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image: str = Field(description="Image as a base64 data URL")
    auto_complete: bool = Field(default=False, alias="autoComplete")


def _path_view(coach: CoachSession, path: LearningPath) -> dict:
    current = coach.current_step(path)
    data = path.model_dump(mode="json", by_alias=True)
    data["currentStepId"] = current.id if current else None
    return data


def _challenge_view(active: ActiveChallenge) -> dict:
    return {
        "challenge": active.challenge.model_dump(mode="json", by_alias=True),
        "timer": active.timer.snapshot().model_dump(mode="json"),
        "hints": active.hints,
        "status": active.status.value,
    }


def _require_path(coach: CoachSession, path_id: str) -> LearningPath:
    path = coach.get_path(path_id)
    if path is None:
        raise HTTPException(status_code=404, detail="Path not found")
    return path


def _require_challenge(coach: CoachSession, challenge_id: str) -> ActiveChallenge:
    active = coach.get_challenge(challenge_id)
    if active is None:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return active


def _parse_image(image: str) -> ImagePayload:
    try:
        return ImagePayload.from_data_url(image)
    except UserInputInvalid as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.post("/onboarding")
async def onboarding(body: OnboardingRequest) -> dict:
    """Create the learner profile and generate the first learning path."""
    coach = get_coach_session()
    try:
        path = await coach.onboard(
            name=body.name,
            domain=body.domain,
            tool=body.tool,
            skill_level=body.skill_level,
            goal=body.goal,
        )
    except CoachError:
        raise HTTPException(status_code=502, detail=PATH_GENERATION_FAILED)
    return {
        "profile": coach.require_profile().model_dump(mode="json", by_alias=True),
        "path": _path_view(coach, path),
    }


@router.get("/profile")
async def get_profile() -> dict:
    coach = get_coach_session()
    if coach.profile is None:
        raise HTTPException(status_code=404, detail="No profile yet")
    data = coach.profile.model_dump(mode="json", by_alias=True)
    data["level"] = coach.profile.level
    return data


@router.get("/paths")
async def list_paths() -> list[dict]:
    coach = get_coach_session()
    return [_path_view(coach, p) for p in coach.paths.values()]


@router.post("/paths")
async def create_path(body: NewPathRequest) -> dict:
    """Generate an additional path for the current learner."""
    coach = get_coach_session()
    if coach.profile is None:
        raise HTTPException(status_code=400, detail="Complete onboarding first")
    try:
        path = await coach.add_path(body.goal)
    except CoachError:
        raise HTTPException(status_code=502, detail=PATH_GENERATION_FAILED)
    return _path_view(coach, path)


@router.get("/paths/{path_id}")
async def get_path(path_id: str) -> dict:
    """Open a path; it becomes the mentor's current context."""
    coach = get_coach_session()
    path = coach.open_path(path_id)
    if path is None:
        raise HTTPException(status_code=404, detail="Path not found")
    return _path_view(coach, path)


@router.post("/paths/{path_id}/steps/{step_id}/review")
async def review_step(path_id: str, step_id: str, body: ImageSubmission) -> dict:
    """Judge a submission for a step. Backend failures yield a retryable verdict."""
    coach = get_coach_session()
    path = _require_path(coach, path_id)
    image = _parse_image(body.image)
    try:
        result = await coach.review_step(
            path, step_id, image, auto_complete=body.auto_complete
        )
    except UserInputInvalid as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {**result.model_dump(mode="json"), "path": _path_view(coach, path)}


@router.post("/paths/{path_id}/steps/{step_id}/complete")
async def complete_step(path_id: str, step_id: str) -> dict:
    coach = get_coach_session()
    path = _require_path(coach, path_id)
    try:
        completion = await coach.complete_step(path, step_id)
    except UserInputInvalid as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        **completion.model_dump(mode="json"),
        "path": _path_view(coach, path),
    }


@router.post("/challenges")
async def start_challenge() -> dict:
    """Generate the daily challenge and start its timer."""
    coach = get_coach_session()
    try:
        active = await coach.start_challenge()
    except UserInputInvalid as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _challenge_view(active)


@router.get("/challenges/{challenge_id}")
async def get_challenge(challenge_id: str) -> dict:
    coach = get_coach_session()
    return _challenge_view(_require_challenge(coach, challenge_id))


@router.post("/challenges/{challenge_id}/hint")
async def request_hint(challenge_id: str) -> dict:
    """Fetch a hint; adds the time penalty whether or not the hint succeeds."""
    coach = get_coach_session()
    active = _require_challenge(coach, challenge_id)
    try:
        hint = await active.request_hint()
    except UserInputInvalid as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"hint": hint, **_challenge_view(active)}


@router.post("/challenges/{challenge_id}/submit")
async def submit_challenge(challenge_id: str, body: ImageSubmission) -> dict:
    coach = get_coach_session()
    _require_challenge(coach, challenge_id)
    image = _parse_image(body.image)
    try:
        outcome = await coach.submit_challenge(challenge_id, image)
    except UserInputInvalid as e:
        raise HTTPException(status_code=400, detail=str(e))
    if outcome is None:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return outcome.model_dump(mode="json")


@router.delete("/challenges/{challenge_id}")
async def cancel_challenge(challenge_id: str) -> dict:
    """Dismiss the challenge view; stops its timer."""
    coach = get_coach_session()
    if not await coach.cancel_challenge(challenge_id):
        raise HTTPException(status_code=404, detail="Challenge not found")
    return {"status": "cancelled"}
