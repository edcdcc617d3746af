"""
Macro recorder for capturing API call sequences.

Instrumented clients report every call to `record_api_call`; the recorder
appends them to the active recording and, on stop, infers parameters.
"""

import copy
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from apimacro.core.models import (
    Analysis,
    Call,
    CallError,
    CallResponse,
    HTTPMethod,
    Recording,
    ToolDefinition,
)
from apimacro.errors import RecordingStateError, StorageError
from apimacro.logging import get_macro_logger
from apimacro.record.analyzer import Analyzer
from apimacro.record.generator import ToolGenerator

logger = get_macro_logger(__name__)


@dataclass
class RecorderState:
    """In-progress recording state."""

    is_recording: bool = False
    current_recording: Optional[Recording] = None
    call_count: int = 0
    start_time: Optional[float] = None

    @property
    def is_active(self) -> bool:
        """A recording exists, paused or not."""
        return self.current_recording is not None


@dataclass
class MacroDiff:
    """Call-level differences between two macros."""

    added: List[Call] = field(default_factory=list)
    removed: List[Call] = field(default_factory=list)
    modified: List[Dict[str, Call]] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)


class Recorder:
    """
    Records API calls into macros.

    At most one recording is active per recorder. Starting a second one
    before stop or clear fails.

    Example:
        recorder = Recorder(storage=MacroStore())
        recorder.start_recording("Add backend", "Create an HAProxy backend")
        recorder.record_api_call("POST", "/api/haproxy/settings/addBackend", {...})
        recording = recorder.stop_recording()
        recorder.save_macro(recording)
    """

    def __init__(self, storage=None, analyzer: Optional[Analyzer] = None, generator: Optional[ToolGenerator] = None):
        """
        Initialize recorder.

        Args:
            storage: MacroStorage used by save/load/list/delete
            analyzer: Analyzer run on stop (default: Analyzer())
            generator: ToolGenerator used by generate_tool
        """
        self.storage = storage
        self.generator = generator or ToolGenerator()
        self.analyzer = analyzer or Analyzer(generator=self.generator)
        self.state = RecorderState()

    # Recording control

    def start_recording(self, name: str, description: str = "") -> Recording:
        """
        Begin a new recording.

        Raises:
            RecordingStateError: If a recording is already active
        """
        if self.state.is_active:
            raise RecordingStateError(
                f"Already recording '{self.state.current_recording.name}'. Stop current recording first."
            )

        recording = Recording.new(name, description)
        self.state = RecorderState(
            is_recording=True,
            current_recording=recording,
            call_count=0,
            start_time=time.time(),
        )
        logger.info(f"Recording started: {name}")
        return recording

    def stop_recording(self) -> Recording:
        """
        Finalize the active recording and infer its parameters.

        Returns:
            The finalized recording

        Raises:
            RecordingStateError: If nothing is being recorded
        """
        if not self.state.is_active:
            raise RecordingStateError("Not currently recording")

        recording = self.state.current_recording
        recording.updated = datetime.now()

        analysis = self.analyzer.analyze_macro(recording)
        recording.parameters = analysis.parameter_suggestions

        self.state = RecorderState()
        logger.info(
            f"Recording stopped: {recording.name} "
            f"({len(recording.calls)} calls, {len(recording.parameters)} parameters)"
        )
        return recording

    def pause_recording(self) -> None:
        if not self.state.is_active:
            raise RecordingStateError("Not currently recording")
        self.state.is_recording = False

    def resume_recording(self) -> None:
        if not self.state.is_active:
            raise RecordingStateError("No recording to resume")
        self.state.is_recording = True

    def clear_recording(self) -> None:
        """Discard any in-progress recording."""
        self.state = RecorderState()

    def is_recording(self) -> bool:
        return self.state.is_recording

    def get_current_recording(self) -> Optional[Recording]:
        return self.state.current_recording

    # API call recording

    def record_api_call(
        self,
        method,
        path: str,
        payload: Any = None,
        *,
        params: Optional[Dict[str, Any]] = None,
        response: Optional[CallResponse] = None,
        error: Optional[CallError] = None,
        duration: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Call]:
        """
        Append a call to the active recording.

        Silently ignored while not recording, so call sites need no checks.

        Returns:
            The recorded Call, or None if nothing is being captured
        """
        if not self.state.is_recording or self.state.current_recording is None:
            return None

        call = Call(
            id=str(uuid.uuid4()),
            timestamp=datetime.now().isoformat(),
            method=HTTPMethod.parse(method),
            path=path,
            params=copy.deepcopy(params),
            payload=copy.deepcopy(payload),
            response=response if error is None else None,
            error=error,
            duration=duration,
            metadata=dict(metadata or {}),
        )

        recording = self.state.current_recording
        recording.calls.append(call)
        recording.updated = datetime.now()
        self.state.call_count += 1
        logger.debug(f"Recorded {call.method.value} {call.path}")
        return call

    # Macro management

    def save_macro(self, recording: Recording) -> None:
        self._require_storage().save(recording)
        logger.success(f"Macro saved: {recording.name} ({recording.id})")

    def load_macro(self, macro_id: str) -> Optional[Recording]:
        return self._require_storage().load(macro_id)

    def list_macros(self) -> List[Recording]:
        return self._require_storage().list()

    def delete_macro(self, macro_id: str) -> None:
        self._require_storage().delete(macro_id)
        logger.info(f"Macro deleted: {macro_id}")

    def search_macros(
        self,
        name: Optional[str] = None,
        tags: Optional[List[str]] = None,
        category: Optional[str] = None,
    ) -> List[Recording]:
        return self._require_storage().search(name=name, tags=tags, category=category)

    def _require_storage(self):
        if self.storage is None:
            raise StorageError("No macro storage configured")
        return self.storage

    # Analysis and generation

    def analyze_macro(self, recording: Recording) -> Analysis:
        return self.analyzer.analyze_macro(recording)

    def generate_tool(self, recording: Recording) -> ToolDefinition:
        return self.generator.generate_tool(recording)

    def parameterize_macro(self, recording: Recording) -> Recording:
        """
        Rewrite detected payload values into {{name}} placeholders.

        The returned copy replays identically without arguments, since each
        payload-derived parameter defaults to its recorded value.
        """
        result = self.analyzer.templatize(recording)
        result.updated = datetime.now()
        return result

    # Advanced features

    def create_macro_from_tools(
        self,
        name: str,
        description: str,
        tool_calls: List[Dict[str, Any]],
    ) -> Recording:
        """
        Create and save a macro from a sequence of tool calls.

        Args:
            name: Macro name
            description: Macro description
            tool_calls: Items of the form {"tool": str, "args": dict}

        Returns:
            The saved recording
        """
        self.start_recording(name, description)

        for tool_call in tool_calls:
            tool = tool_call["tool"]
            self.record_api_call(
                HTTPMethod.POST,
                f"/tool/{tool}",
                tool_call.get("args") or {},
                metadata={"description": f"Tool call: {tool}", "category": "tool"},
            )

        recording = self.stop_recording()
        self.save_macro(recording)
        return recording

    def compare_macros(self, first: Recording, second: Recording) -> MacroDiff:
        """
        Compare two macros call by call, keyed by method and path.

        Returns:
            MacroDiff with calls added in `second`, removed from `first`, and
            pairs whose payload changed
        """
        first_calls = {call.key: call for call in first.calls}
        second_calls = {call.key: call for call in second.calls}

        diff = MacroDiff()
        for key, call in second_calls.items():
            previous = first_calls.get(key)
            if previous is None:
                diff.added.append(call)
            elif previous.payload != call.payload:
                diff.modified.append({"old": previous, "new": call})

        for key, call in first_calls.items():
            if key not in second_calls:
                diff.removed.append(call)

        return diff

    def merge_macros(self, name: str, description: str, recordings: List[Recording]) -> Recording:
        """
        Merge macros into one.

        Calls are concatenated in order. Parameters are de-duplicated by
        name: the first occurrence keeps its metadata and later occurrences
        only contribute their examples.
        """
        merged = Recording.new(name, description, tags=["merged"], version="1.0")

        parameters = {}
        for recording in recordings:
            merged.calls.extend(recording.calls)
            for param in recording.parameters:
                existing = parameters.get(param.name)
                if existing is None:
                    parameters[param.name] = copy.deepcopy(param)
                    continue
                for example in param.examples:
                    existing.add_example(example)

        merged.parameters = list(parameters.values())
        return merged
