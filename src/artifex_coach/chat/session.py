"""Mentoring chat panel: one conversational context per controller."""

from collections.abc import AsyncIterator, Callable
from enum import StrEnum

import structlog
from pydantic import BaseModel

from artifex_coach.ai.backend import ContentPart
from artifex_coach.ai.images import ImagePayload
from artifex_coach.ai.orchestrator import DEFAULT_EDIT_PROMPT, AIOrchestrator
from artifex_coach.ai.prompts import MENTOR_GREETING, build_chat_context
from artifex_coach.errors import ChatBusy, UserInputInvalid
from artifex_coach.models.chat import ChatMessage, ChatRole

logger = structlog.get_logger()

EDIT_SUCCESS_TEXT = "Here is the edited version:"
EDIT_FAILURE_TEXT = "Sorry, I couldn't process the image edit request."
STREAM_FAILURE_TEXT = (
    "I encountered an error connecting to the neural network. Please try again."
)


class ChatMode(StrEnum):
    CHAT = "chat"
    EDIT = "edit"


class ChatContext(BaseModel):
    """Situational grounding sent (invisibly) with every chat turn."""

    tool: str = "General"
    step_title: str | None = None
    step_description: str | None = None


class ChatSessionController:
    """Owns the transcript and the backend chat context of one panel.

    A new controller means a new context with no memory of prior turns.

    Args:
        orchestrator: AI orchestrator providing the chat session and image edits.
        context_provider: Returns the current tool/module context at send time.
    """

    def __init__(
        self,
        orchestrator: AIOrchestrator,
        context_provider: Callable[[], ChatContext] = ChatContext,
    ):
        self.orchestrator = orchestrator
        self.context_provider = context_provider
        self._session = orchestrator.create_chat_session()
        self._pending = False
        self.messages: list[ChatMessage] = [
            ChatMessage(id="init", role=ChatRole.MODEL, text=MENTOR_GREETING)
        ]

    @property
    def is_pending(self) -> bool:
        return self._pending

    def _append(self, role: ChatRole, text: str, image_url: str | None = None) -> ChatMessage:
        message = ChatMessage(role=role, text=text, image_url=image_url)
        self.messages.append(message)
        return message

    async def send_message(
        self,
        text: str,
        image: str | None = None,
        mode: ChatMode = ChatMode.CHAT,
    ) -> AsyncIterator[ChatMessage]:
        """Send a message and yield the model reply as it grows.

        Args:
            text: Visible user text.
            image: Optional attached image as a data URL.
            mode: ``edit`` with an image runs an image edit instead of chat.

        Yields:
            The reply message after every appended fragment (the same object),
            or a single complete reply for image edits and errors.

        Raises:
            ChatBusy: A previous response is still pending.
            UserInputInvalid: Nothing to send, or the image is not a data URL.
        """
        if self._pending:
            raise ChatBusy("A response is still pending")
        if not text.strip() and not image:
            raise UserInputInvalid("Message is empty")
        payload = ImagePayload.from_data_url(image) if image else None

        self._pending = True
        self._append(ChatRole.USER, text, image_url=image)
        try:
            if mode == ChatMode.EDIT and payload is not None:
                yield await self._edit_image(payload, text)
                return

            context = self.context_provider()
            parts = [
                ContentPart.of_text(
                    build_chat_context(
                        context.tool, context.step_title, context.step_description, text
                    )
                )
            ]
            if payload is not None:
                parts.insert(0, ContentPart.of_image(payload))

            reply = self._append(ChatRole.MODEL, "")
            try:
                async for fragment in self._session.send_message_stream(parts):
                    reply.text += fragment
                    yield reply
            except Exception:
                logger.exception("chat_stream_failed", received=len(reply.text))
                if not reply.text:
                    self.messages.remove(reply)
                yield self._append(ChatRole.MODEL, STREAM_FAILURE_TEXT)
                return

            logger.info("chat_reply_complete", length=len(reply.text))
        finally:
            self._pending = False

    async def _edit_image(self, payload: ImagePayload, prompt: str) -> ChatMessage:
        try:
            edited = await self.orchestrator.edit_image(
                payload, prompt.strip() or DEFAULT_EDIT_PROMPT
            )
        except Exception:
            logger.exception("chat_image_edit_failed")
            return self._append(ChatRole.MODEL, EDIT_FAILURE_TEXT)
        return self._append(ChatRole.MODEL, EDIT_SUCCESS_TEXT, image_url=edited)
