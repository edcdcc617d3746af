"""
Error taxonomy for the macro engine.

RecordingStateError and ValidationError are raised immediately.
ParameterResolutionError and CallExecutionError are captured per call during
playback unless stop_on_error is set. StorageError always propagates.
"""

from typing import Optional


class MacroError(Exception):
    """Base class for all macro engine errors."""


class RecordingStateError(MacroError):
    """Recorder operation not allowed in the current state."""


class ValidationError(MacroError):
    """A recording or generated plan is malformed."""


class StorageError(MacroError):
    """The macro store failed to save, load, list or delete."""


class MacroNotFoundError(StorageError):
    """No macro is stored under the requested id."""

    def __init__(self, macro_id: str):
        self.macro_id = macro_id
        super().__init__(f"Macro not found: {macro_id}")


class PlaybackError(MacroError):
    """A call failed during playback."""

    def __init__(self, message: str, call_index: Optional[int] = None):
        self.call_index = call_index
        self.reason = message
        if call_index is not None:
            message = f"call {call_index}: {message}"
        super().__init__(message)


class ParameterResolutionError(PlaybackError):
    """A {{token}} could not be resolved."""

    def __init__(self, token: str, call_index: Optional[int] = None, detail: str = ""):
        self.token = token
        message = f"could not substitute {{{{{token}}}}}"
        if detail:
            message += f" ({detail})"
        super().__init__(message, call_index)


class CallExecutionError(PlaybackError):
    """The call issuer failed or returned an error response."""

    def __init__(self, message: str, call_index: Optional[int] = None, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message, call_index)
