"""
Core apimacro data model.

Exports the recording types shared by recorder, analyzer, generator and player.
"""

from apimacro.core.models import (
    Analysis,
    Call,
    CallError,
    CallResponse,
    DependencyHint,
    HTTPMethod,
    Parameter,
    Recording,
    ToolDefinition,
    Validation,
)

__all__ = [
    "Analysis",
    "Call",
    "CallError",
    "CallResponse",
    "DependencyHint",
    "HTTPMethod",
    "Parameter",
    "Recording",
    "ToolDefinition",
    "Validation",
]
