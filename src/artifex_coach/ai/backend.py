"""Generative backend call contract and its OpenAI implementation."""

from collections.abc import AsyncIterator
from enum import StrEnum
from typing import Any, Protocol

import openai
import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from artifex_coach.ai.images import ImagePayload
from artifex_coach.errors import TransportFailure

logger = structlog.get_logger()


class ModelProfile(StrEnum):
    """Logical backend configurations."""

    FAST = "fast"
    REASONING = "reasoning"
    IMAGE = "image"


class ContentPart(BaseModel):
    """One ordered request part: text or an inline image."""

    text: str | None = None
    image: ImagePayload | None = None

    @classmethod
    def of_text(cls, text: str) -> "ContentPart":
        return cls(text=text)

    @classmethod
    def of_image(cls, image: ImagePayload) -> "ContentPart":
        return cls(image=image)


class Content(BaseModel):
    """A conversation turn."""

    role: str = "user"  # "user" or "model"
    parts: list[ContentPart] = Field(default_factory=list)


class GenerationRequest(BaseModel):
    """Abstract request sent to the generative backend."""

    model: str
    contents: list[Content]
    system_instruction: str | None = None
    reasoning_effort: str | None = None
    json_output: bool = False
    image_output: bool = False
    image_size: str | None = None

    @property
    def inline_images(self) -> list[ImagePayload]:
        """All inline image parts, in request order."""
        return [
            part.image
            for content in self.contents
            for part in content.parts
            if part.image is not None
        ]

    @property
    def prompt_text(self) -> str:
        """Text parts of the latest turn joined into one prompt."""
        if not self.contents:
            return ""
        return "\n".join(p.text for p in self.contents[-1].parts if p.text)


class GenerationResponse(BaseModel):
    """Primary text output and/or generated inline images."""

    text: str = ""
    images: list[ImagePayload] = Field(default_factory=list)


class GenerativeBackend(Protocol):
    """Anything able to serve generation requests."""

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        ...

    def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        ...


def _to_openai_messages(request: GenerationRequest) -> list[dict[str, Any]]:
    """Convert abstract contents into chat-completions messages."""
    messages: list[dict[str, Any]] = []
    if request.system_instruction:
        messages.append({"role": "system", "content": request.system_instruction})
    for content in request.contents:
        if content.role == "model":
            text = "".join(p.text for p in content.parts if p.text)
            messages.append({"role": "assistant", "content": text})
            continue
        parts: list[dict[str, Any]] = []
        for part in content.parts:
            if part.image is not None:
                parts.append({
                    "type": "image_url",
                    "image_url": {"url": part.image.to_data_url()},
                })
            elif part.text:
                parts.append({"type": "text", "text": part.text})
        messages.append({"role": "user", "content": parts})
    return messages


class OpenAIBackend:
    """GenerativeBackend served by the OpenAI API.

    Text and multimodal calls go through chat completions; the image
    profile uses the images endpoints with base64 output. The client is
    created on first use, so a missing key surfaces as a TransportFailure
    on the call instead of breaking application startup.

    Args:
        api_key: OpenAI API key; empty falls back to ``OPENAI_API_KEY``.
    """

    def __init__(self, api_key: str):
        self.api_key = api_key
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key or None)
        return self._client

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        try:
            if request.image_output:
                return await self._generate_image(request)
            return await self._generate_text(request)
        except openai.OpenAIError as e:
            logger.warning("backend_call_failed", model=request.model, error=str(e))
            raise TransportFailure(str(e)) from e

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        """Yield text fragments in arrival order."""
        try:
            response = await self.client.chat.completions.create(
                model=request.model,
                messages=_to_openai_messages(request),
                stream=True,
            )
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.OpenAIError as e:
            logger.warning("backend_stream_failed", model=request.model, error=str(e))
            raise TransportFailure(str(e)) from e

    async def _generate_text(self, request: GenerationRequest) -> GenerationResponse:
        kwargs: dict[str, Any] = {}
        if request.json_output:
            kwargs["response_format"] = {"type": "json_object"}
        if request.reasoning_effort:
            kwargs["reasoning_effort"] = request.reasoning_effort

        response = await self.client.chat.completions.create(
            model=request.model,
            messages=_to_openai_messages(request),
            **kwargs,
        )
        text = response.choices[0].message.content or ""
        return GenerationResponse(text=text)

    async def _generate_image(self, request: GenerationRequest) -> GenerationResponse:
        prompt = request.prompt_text
        size = request.image_size or "1024x1024"
        sources = request.inline_images

        if sources:
            source = sources[0]
            extension = source.mime_type.split("/")[-1]
            result = await self.client.images.edit(
                model=request.model,
                image=(f"source.{extension}", source.to_bytes(), source.mime_type),
                prompt=prompt,
                size=size,
            )
        else:
            result = await self.client.images.generate(
                model=request.model,
                prompt=prompt,
                size=size,
            )

        images = [
            ImagePayload(mime_type="image/png", data=item.b64_json)
            for item in result.data or []
            if item.b64_json
        ]
        return GenerationResponse(images=images)
