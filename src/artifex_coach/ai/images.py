"""Base64 image payload helpers for multimodal backend calls."""

import base64

from pydantic import BaseModel

from artifex_coach.errors import UserInputInvalid

DATA_URL_PREFIX = "data:"


class ImagePayload(BaseModel):
    """Inline image: base64 data plus its MIME type."""

    mime_type: str
    data: str

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> "ImagePayload":
        """Encode raw image bytes (e.g. an uploaded file).

        Args:
            raw: Image file contents.
            mime_type: MIME type reported for the upload.

        Returns:
            ImagePayload with base64-encoded data.
        """
        if not raw:
            raise UserInputInvalid("No image data provided")
        if not mime_type.startswith("image/"):
            raise UserInputInvalid(f"Unsupported file type: {mime_type}")
        return cls(mime_type=mime_type, data=base64.b64encode(raw).decode("ascii"))

    @classmethod
    def from_data_url(cls, url: str) -> "ImagePayload":
        """Parse a ``data:<mime>;base64,<data>`` URL.

        Args:
            url: Data URL produced by a browser paste or by this app.

        Returns:
            ImagePayload carrying the same MIME type and data.
        """
        if not is_data_url(url) or "," not in url:
            raise UserInputInvalid("Image must be a base64 data URL")
        header, data = url.split(",", 1)
        mime_type = header[len(DATA_URL_PREFIX):].split(";", 1)[0] or "image/png"
        if not mime_type.startswith("image/"):
            raise UserInputInvalid(f"Unsupported file type: {mime_type}")
        if not data:
            raise UserInputInvalid("Image data URL is empty")
        return cls(mime_type=mime_type, data=data)

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    def to_data_url(self) -> str:
        return f"{DATA_URL_PREFIX}{self.mime_type};base64,{self.data}"


def is_data_url(url: str | None) -> bool:
    """True if the URL embeds its image (as opposed to a remote placeholder)."""
    return bool(url) and url.startswith(DATA_URL_PREFIX)
