"""Chat transcript models."""

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ChatRole(StrEnum):
    USER = "user"
    MODEL = "model"


class ChatMessage(BaseModel):
    """A single transcript entry; model replies grow while streaming."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: ChatRole
    text: str = ""
    image_url: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)
