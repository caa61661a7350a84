"""Exception hierarchy for Style Studio.

Every exception carries a message intended to be displayed directly to the
user.  The API layer maps each class to an HTTP status and wraps the message
in the ``{"success": false, "error": ...}`` envelope; nothing here is fatal to
the process.
"""

from __future__ import annotations


class StyleStudioError(Exception):
    """Base class for all user-facing Style Studio errors."""


class ValidationError(StyleStudioError):
    """Missing or invalid input.

    Raised before any network call is made.
    """


class NotFound(StyleStudioError):
    """A project or render job id does not exist in the store."""


class ActionInProgress(StyleStudioError):
    """The same action is already running for the same scope."""


class UpstreamError(StyleStudioError):
    """The external model call failed or returned unusable output.

    No automatic retry is attempted; the user may simply repeat the action.
    """


class ExtractionFailed(UpstreamError):
    """Style extraction failed or the model returned no text."""


class GenerationFailed(UpstreamError):
    """Image generation failed at the transport or API level."""


class ModelReturnedText(UpstreamError):
    """The image model answered with text only, so there is nothing to save."""

    def __init__(self, text: str):
        super().__init__(f"Model returned text: {text}")
        self.text = text


class StoreInconsistency(StyleStudioError):
    """A multi-key store operation stopped part way through.

    Attributes:
        orphaned_keys: Store keys that were left behind without a parent
            project.  They are inert and can be removed by hand.
    """

    def __init__(self, message: str, orphaned_keys: list[str]):
        super().__init__(message)
        self.orphaned_keys = orphaned_keys
