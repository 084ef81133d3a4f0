"""Error taxonomy for backend calls and user actions."""


class CoachError(Exception):
    """Base class for all application errors."""


class TransportFailure(CoachError):
    """The generative backend could not be reached or rejected the call."""


class MalformedResponse(CoachError):
    """Backend text did not contain a parseable JSON object."""


class MissingRequiredField(CoachError):
    """Parsed JSON is missing fields the calling stage needs.

    Args:
        stage: Name of the orchestrator stage that validated the data.
        missing: Field names that were absent or had the wrong shape.
    """

    def __init__(self, stage: str, missing: list[str]):
        self.stage = stage
        self.missing = missing
        super().__init__(f"{stage}: missing required field(s) {', '.join(missing)}")


class UserInputInvalid(CoachError):
    """A user action referenced something invalid (no file, unknown step, ...)."""


class ChatBusy(CoachError):
    """A chat message was sent while the previous response is still streaming."""
