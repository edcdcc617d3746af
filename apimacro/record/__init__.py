"""
Recording mode - capture API call sequences and replay them as tools.

Components:
- Recorder: Capture calls into a recording
- Analyzer: Classify calls and infer parameters
- ToolGenerator: Convert recordings to tool definitions
- MacroPlayer: Replay recordings with substituted arguments

Usage:
    recorder = Recorder(storage=MacroStore())
    recorder.start_recording("Add backend")
    # Make calls through a RecordingIssuer...
    recording = recorder.stop_recording()
    recorder.save_macro(recording)
"""

from apimacro.record.analyzer import Analyzer
from apimacro.record.generator import ToolGenerator, ToolPlan, PythonRenderer
from apimacro.record.player import (
    SKIP_REMAINING,
    MacroPlayer,
    PlaybackContext,
    PlaybackOptions,
    PlaybackResult,
    ResultStatus,
)
from apimacro.record.recorder import MacroDiff, Recorder, RecorderState
from apimacro.record.shapes import ShapeMatcher, ShapeRegistry

__all__ = [
    'Analyzer',
    'ToolGenerator',
    'ToolPlan',
    'PythonRenderer',
    'MacroPlayer',
    'PlaybackContext',
    'PlaybackOptions',
    'PlaybackResult',
    'ResultStatus',
    'SKIP_REMAINING',
    'Recorder',
    'RecorderState',
    'MacroDiff',
    'ShapeMatcher',
    'ShapeRegistry',
]
