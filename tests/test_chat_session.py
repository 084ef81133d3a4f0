"""Tests for the mentoring chat controller."""

import pytest
from fakes import FakeBackend, image_response

from artifex_coach.ai.images import ImagePayload
from artifex_coach.ai.orchestrator import AIOrchestrator
from artifex_coach.ai.prompts import MENTOR_GREETING
from artifex_coach.chat.session import (
    EDIT_FAILURE_TEXT,
    EDIT_SUCCESS_TEXT,
    STREAM_FAILURE_TEXT,
    ChatContext,
    ChatMode,
    ChatSessionController,
)
from artifex_coach.errors import ChatBusy, TransportFailure, UserInputInvalid
from artifex_coach.models.chat import ChatRole

IMAGE_URL = ImagePayload(mime_type="image/png", data="aW1n").to_data_url()


def _controller(backend, settings, context=None):
    orchestrator = AIOrchestrator(backend, settings)
    provider = (lambda: context) if context else ChatContext
    return ChatSessionController(orchestrator, provider)


async def _drain(controller, *args, **kwargs):
    return [m.text async for m in controller.send_message(*args, **kwargs)]


class TestChatSessionController:
    def test_seeded_with_greeting(self, backend, settings):
        controller = _controller(backend, settings)
        assert len(controller.messages) == 1
        assert controller.messages[0].id == "init"
        assert controller.messages[0].role == ChatRole.MODEL
        assert controller.messages[0].text == MENTOR_GREETING

    async def test_reply_grows_fragment_by_fragment(self, settings):
        backend = FakeBackend(fragments=["Use ", "a bevel ", "modifier."])
        controller = _controller(backend, settings)
        texts = await _drain(controller, "How do I round edges?")
        assert texts == ["Use ", "Use a bevel ", "Use a bevel modifier."]
        assert [m.role for m in controller.messages] == [
            ChatRole.MODEL,
            ChatRole.USER,
            ChatRole.MODEL,
        ]
        assert controller.messages[1].text == "How do I round edges?"
        assert not controller.is_pending

    async def test_context_block_sent_but_not_shown(self, settings):
        backend = FakeBackend(fragments=["ok"])
        context = ChatContext(
            tool="Blender", step_title="Modifiers", step_description="Bevel the edges"
        )
        controller = _controller(backend, settings, context)
        await _drain(controller, "Help?")

        sent = backend.stream_requests[0].prompt_text
        assert "[SYSTEM CONTEXT]" in sent
        assert "Current Module: Modifiers" in sent
        assert all("[SYSTEM CONTEXT]" not in m.text for m in controller.messages)

    async def test_image_sent_before_text(self, settings):
        backend = FakeBackend(fragments=["Nice render"])
        controller = _controller(backend, settings)
        await _drain(controller, "Thoughts?", image=IMAGE_URL)
        parts = backend.stream_requests[0].contents[-1].parts
        assert parts[0].image is not None
        assert parts[1].text
        assert controller.messages[1].image_url == IMAGE_URL

    async def test_busy_guard(self, settings):
        backend = FakeBackend(fragments=["one", "two"])
        controller = _controller(backend, settings)
        stream = controller.send_message("first")
        await stream.__anext__()
        assert controller.is_pending
        with pytest.raises(ChatBusy):
            await controller.send_message("second").__anext__()
        await stream.aclose()
        assert not controller.is_pending

    async def test_empty_message_rejected(self, backend, settings):
        controller = _controller(backend, settings)
        with pytest.raises(UserInputInvalid):
            await _drain(controller, "   ")
        assert len(controller.messages) == 1

    async def test_non_data_url_image_rejected(self, backend, settings):
        controller = _controller(backend, settings)
        with pytest.raises(UserInputInvalid):
            await _drain(controller, "look", image="https://example.com/a.png")

    async def test_stream_failure_appends_error_message(self, settings):
        backend = FakeBackend(stream_error=TransportFailure("offline"))
        controller = _controller(backend, settings)
        texts = await _drain(controller, "Hello?")
        assert texts == [STREAM_FAILURE_TEXT]
        assert [m.text for m in controller.messages[1:]] == ["Hello?", STREAM_FAILURE_TEXT]
        assert not controller.is_pending

    async def test_partial_reply_kept_on_failure(self, settings):
        backend = FakeBackend(fragments=["Half"], stream_error=TransportFailure("dropped"))
        controller = _controller(backend, settings)
        await _drain(controller, "Hello?")
        assert [m.text for m in controller.messages[2:]] == ["Half", STREAM_FAILURE_TEXT]

    async def test_edit_mode_success(self, settings):
        backend = FakeBackend(responses=[image_response()])
        controller = _controller(backend, settings)
        replies = [m async for m in controller.send_message(
            "Make it blue", image=IMAGE_URL, mode=ChatMode.EDIT
        )]
        assert len(replies) == 1
        assert replies[0].text == EDIT_SUCCESS_TEXT
        assert replies[0].image_url.startswith("data:image/png;base64,")
        assert backend.stream_requests == []
        assert backend.requests[0].prompt_text == "Make it blue"

    async def test_edit_mode_failure(self, settings):
        backend = FakeBackend(responses=[TransportFailure("offline")])
        controller = _controller(backend, settings)
        texts = await _drain(controller, "Make it blue", image=IMAGE_URL, mode=ChatMode.EDIT)
        assert texts == [EDIT_FAILURE_TEXT]
        assert controller.messages[-1].image_url is None

    async def test_edit_mode_without_image_chats(self, settings):
        backend = FakeBackend(fragments=["Attach an image first."])
        controller = _controller(backend, settings)
        await _drain(controller, "Make it blue", mode=ChatMode.EDIT)
        assert backend.requests == []
        assert len(backend.stream_requests) == 1

    async def test_new_controller_has_no_memory(self, settings):
        backend = FakeBackend(fragments=["ok"])
        first = _controller(backend, settings)
        await _drain(first, "Remember the number 7")
        second = _controller(backend, settings)
        await _drain(second, "What number?")
        assert len(backend.stream_requests[1].contents) == 1
