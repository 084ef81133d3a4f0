"""Shared fixtures."""

import pytest
from fakes import FakeBackend

from artifex_coach.ai.images import ImagePayload
from artifex_coach.ai.orchestrator import AIOrchestrator
from artifex_coach.config import Settings


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="test-key",
        fast_model="fast-model",
        reasoning_model="reasoning-model",
        image_model="image-model",
        reasoning_effort="high",
        image_size="1024x1024",
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def orchestrator(backend, settings):
    return AIOrchestrator(backend, settings)


@pytest.fixture
def user_image():
    return ImagePayload(mime_type="image/jpeg", data="dXNlcg==")
