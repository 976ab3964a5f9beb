"""
Error kinds raised by the chat core.

Every error carries the single message shown to the user; the technical
detail stays in the exception text and the logs.
"""


class ChatError(Exception):
    """Base class for chat core failures"""

    user_message = "Sorry, something went wrong. Please try again."

    def __init__(self, message: str = "", user_message: str = None):
        super().__init__(message or self.user_message)
        if user_message:
            self.user_message = user_message


class TransportOpenFailure(ChatError):
    """Network or auth failure before any chunk arrived"""

    user_message = "Sorry, the model could not be reached. Please try again."


class TransportMidStreamFailure(ChatError):
    """The stream broke after it started; partial output is discarded"""

    user_message = "Sorry, the response was interrupted. Please try again."


class MalformedChunk(ChatError):
    """A single stream frame could not be decoded"""


class UnsupportedAttachment(ChatError):
    """A file was sent to a backend that cannot accept files"""

    user_message = "The selected model does not support file uploads."


class StorageMiss(ChatError):
    """No persisted payload exists for a conversation id"""


class SessionBusyError(ChatError):
    """A response is still streaming; it has to be stopped first"""

    user_message = "Please stop the current response first."
