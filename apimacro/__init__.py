__version__ = "0.1.0"

from apimacro.core import Call, CallResponse, Parameter, Recording, ToolDefinition
from apimacro.errors import MacroError
from apimacro.record import MacroPlayer, PlaybackOptions, Recorder, SKIP_REMAINING
from apimacro.state import MacroStore
from apimacro.logging import get_logger, get_macro_logger, setup_logging

"""
Foundations of apimacro:
    Recording is a named, ordered sequence of captured API calls.
    Parameter is an input slot inferred from the values a recording carries.
    Recorder captures calls into recordings and stores them.
    MacroPlayer replays a recording with new arguments.
    ToolDefinition is the callable tool generated from a recording.
"""

__all__ = [
    "Call",
    "CallResponse",
    "Parameter",
    "Recording",
    "ToolDefinition",
    "MacroError",
    "MacroPlayer",
    "PlaybackOptions",
    "Recorder",
    "SKIP_REMAINING",
    "MacroStore",
    "get_logger",
    "get_macro_logger",
    "setup_logging",
]
