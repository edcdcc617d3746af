"""
Macro analyzer.

Classifies recorded calls into create/read/update/delete patterns, spots
service side effects and issued identifiers, and infers the parameter list
of a recording from repeated values and known value shapes.
"""

import copy
import json
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from apimacro.core.models import (
    Analysis,
    Call,
    DependencyHint,
    HTTPMethod,
    Parameter,
    Recording,
)
from apimacro.record.expression import find_plain_tokens
from apimacro.record.shapes import ShapeMatch, ShapeRegistry, default_registry

# Boilerplate values that never become parameters
STOPLIST = frozenset(["0", "1", "true", "false", "enabled", "disabled", "on", "off", "yes", "no"])

# Bucket order matters: "delRule" must not be read as an update
KEYWORDS = [
    ("creates", ("add", "create")),
    ("deletes", ("del", "delete", "remove")),
    ("updates", ("set", "update", "edit", "toggle")),
    ("reads", ("search", "get", "list")),
]

IDENTIFIER_KEYS = ("uuid", "id")

_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?$")
_INDEX_RE = re.compile(r"\[\d+\]")


@dataclass
class ValueOccurrence:
    """One scalar leaf found while walking a payload."""
    value: Any
    text: str
    path: str  # JSON path inside the payload
    keys: tuple  # same path as a key sequence
    context: str
    call_index: int
    order: int  # traversal order across the whole recording


def split_path(path: str) -> List[str]:
    """Split a call path into segments, ignoring the query string."""
    return [segment for segment in path.split("?", 1)[0].split("/") if segment]


def resource_segments(path: str) -> List[str]:
    """Path segments after an optional ``api`` prefix, without template tokens."""
    segments = [s for s in split_path(path) if "{{" not in s]
    if segments and segments[0].lower() == "api":
        segments = segments[1:]
    return segments


def keyword_of(segment: str, keywords) -> bool:
    """
    True when the segment is a keyword or starts with one as a whole word.

    "addRule", "del_item" and "get" match; "settings" and "address" do not.
    """
    lowered = segment.lower()
    for keyword in keywords:
        if lowered == keyword:
            return True
        if lowered.startswith(keyword):
            boundary = segment[len(keyword)]
            if boundary.isupper() or boundary in "_-.":
                return True
    return False


def identifier_in(response_data: Any) -> Optional[Tuple[str, Any]]:
    """Return (key, value) of a freshly issued identifier, if any."""
    if not isinstance(response_data, dict):
        return None
    for key in IDENTIFIER_KEYS:
        value = response_data.get(key)
        if value not in (None, "") and not isinstance(value, (dict, list, bool)):
            return key, value
    return None


def infer_type(value: Any) -> str:
    """Infer a parameter type: boolean, then number, then JSON, then string."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"

    text = str(value)
    if text.lower() in ("true", "false"):
        return "boolean"
    if _NUMBER_RE.match(text):
        return "number"
    try:
        parsed = json.loads(text)
    except ValueError:
        return "string"
    if isinstance(parsed, list):
        return "array"
    if isinstance(parsed, dict):
        return "object"
    return "string"


def camel_case(segment: str) -> str:
    name = re.sub(r"[-_\s]+([A-Za-z0-9])", lambda m: m.group(1).upper(), segment)
    return re.sub(r"\W", "", name)


def name_words(name: str) -> List[str]:
    """Lowercase camel-case words: "sourceIPAddr" -> ["source", "ip", "addr"]."""
    return [w.lower() for w in re.findall(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+", name)]


def suggests(name: str, hints) -> bool:
    """
    True when a word of the name is a hint, or the last word ends with one.

    "destinationPort", "srcport" and "userId" suggest their hints;
    "description", "provider" and "video" do not.
    """
    words = name_words(name)
    if not words:
        return False
    return any(word in hints for word in words) or words[-1].endswith(tuple(hints))


def context_of(path: str) -> str:
    """Last non-numeric segment of a JSON path."""
    parts = [p for p in re.split(r"\.|\[\d+\]", path) if p and not p.isdigit()]
    return parts[-1] if parts else ""


class Analyzer:
    """
    Infer patterns and parameters from a recording.

    Example:
        analysis = Analyzer().analyze_macro(recording)
        for param in analysis.parameter_suggestions:
            print(param.name, param.type)
    """

    def __init__(self, shapes: Optional[ShapeRegistry] = None, generator=None):
        self.shapes = shapes or default_registry
        self._generator = generator

    @property
    def generator(self):
        if self._generator is None:
            from apimacro.record.generator import ToolGenerator

            self._generator = ToolGenerator()
        return self._generator

    def analyze_macro(self, recording: Recording) -> Analysis:
        """
        Analyze a recording.

        Args:
            recording: Recording to analyze

        Returns:
            Analysis with patterns, dependencies, side effects, parameter
            suggestions and a draft tool definition
        """
        analysis = Analysis()

        for index, call in enumerate(recording.calls):
            self._analyze_call(index, call, analysis)

        analysis.parameter_suggestions = self.detect_parameters(recording.calls)
        analysis.tool_suggestion = self.generator.suggest_tool(recording, analysis.parameter_suggestions)
        return analysis

    def _analyze_call(self, index: int, call: Call, analysis: Analysis) -> None:
        segments = resource_segments(call.path)

        if segments:
            resource = segments[0]
            bucket = self._classify(call.method, segments[1:])
            if bucket and resource not in analysis.patterns[bucket]:
                analysis.patterns[bucket].append(resource)

            if call.method == HTTPMethod.POST and "service" in [s.lower() for s in segments]:
                action = split_path(call.path)[-1]
                analysis.side_effects.append(f"{resource} service {action}")

        if call.response is not None:
            issued = identifier_in(call.response.data)
            if issued:
                key, value = issued
                analysis.dependencies.append(
                    DependencyHint(call_index=index, call_id=call.id, path=call.path, key=key, value=value)
                )

    def _classify(self, method: HTTPMethod, commands: List[str]) -> Optional[str]:
        if method == HTTPMethod.GET:
            return "reads"
        if method == HTTPMethod.PUT:
            return "updates"
        if method == HTTPMethod.DELETE:
            return "deletes"

        # POST: the command segment closest to the end decides
        for segment in reversed(commands):
            for bucket, keywords in KEYWORDS:
                if keyword_of(segment, keywords):
                    return bucket
        return None

    # Parameter detection

    def detect_parameters(self, calls: List[Call]) -> List[Parameter]:
        """
        Infer parameters from template tokens, reused values and value shapes.

        Name collisions are a policy choice kept for compatibility with
        previously recorded macros: the candidate from the earliest call
        (then payload traversal order) owns the name and its metadata, and
        later candidates only add their values to `examples`. Folded
        examples are not checked against the winner's validation, so a
        reused plain value can sit next to an IPv4 pattern.

        Args:
            calls: Ordered calls of a recording

        Returns:
            Parameters with unique names, path tokens first
        """
        parameters, _ = self._detect(calls)
        return parameters

    def _detect(self, calls: List[Call]) -> Tuple[List[Parameter], Dict[str, List[ValueOccurrence]]]:
        parameters: Dict[str, Parameter] = {}
        sites: Dict[str, List[ValueOccurrence]] = {}

        for index, call in enumerate(calls):
            for token in find_plain_tokens(call.path):
                if token not in parameters:
                    parameters[token] = Parameter(
                        name=token,
                        type="string",
                        required=True,
                        path=f"calls[{index}].path",
                        description="Parameter used in API path",
                    )
            for token, json_path in self._payload_tokens(call.payload, ""):
                if token not in parameters:
                    parameters[token] = Parameter(
                        name=token,
                        type="string",
                        required=True,
                        path=f"calls[{index}].payload.{json_path}",
                        description="Parameter used in request payload",
                    )

        occurrences: List[ValueOccurrence] = []
        for index, call in enumerate(calls):
            self._collect_values(call.payload, "", (), index, occurrences)

        by_value: Dict[str, List[ValueOccurrence]] = {}
        for occurrence in occurrences:
            by_value.setdefault(occurrence.text, []).append(occurrence)

        candidates = []
        for group in by_value.values():
            distinct_sites = {(o.call_index, o.path) for o in group}
            shape = self._shape_of(group)
            if len(distinct_sites) > 1 or shape is not None:
                candidates.append((group, shape))

        # Tie-break: earliest call, then payload traversal order
        candidates.sort(key=lambda c: (c[0][0].call_index, c[0][0].order))

        for group, shape in candidates:
            name = self._parameter_name(group[0].path, shape)
            if not name:
                continue

            if name in parameters:
                for occurrence in group:
                    parameters[name].add_example(occurrence.value)
                continue

            parameters[name] = self._create_parameter(name, group, shape)
            sites[name] = group

        return list(parameters.values()), sites

    def _payload_tokens(self, obj: Any, path: str):
        if isinstance(obj, str):
            for token in find_plain_tokens(obj):
                yield token, path
        elif isinstance(obj, list):
            for i, item in enumerate(obj):
                yield from self._payload_tokens(item, f"{path}[{i}]")
        elif isinstance(obj, dict):
            for key, value in obj.items():
                yield from self._payload_tokens(value, f"{path}.{key}" if path else str(key))

    def _collect_values(
        self,
        obj: Any,
        path: str,
        keys: tuple,
        call_index: int,
        occurrences: List[ValueOccurrence],
    ) -> None:
        if obj is None or isinstance(obj, bool):
            return

        if isinstance(obj, (str, int, float)):
            text = str(obj)
            if not text or text.lower() in STOPLIST or "{{" in text:
                return
            occurrences.append(ValueOccurrence(
                value=obj,
                text=text,
                path=path,
                keys=keys,
                context=context_of(path),
                call_index=call_index,
                order=len(occurrences),
            ))
        elif isinstance(obj, list):
            for i, item in enumerate(obj):
                self._collect_values(item, f"{path}[{i}]", keys + (i,), call_index, occurrences)
        elif isinstance(obj, dict):
            for key, value in obj.items():
                child = f"{path}.{key}" if path else str(key)
                self._collect_values(value, child, keys + (key,), call_index, occurrences)

    def _shape_of(self, group: List[ValueOccurrence]) -> Optional[ShapeMatch]:
        for occurrence in group:
            shape = self.shapes.match(occurrence.value, occurrence.context)
            if shape:
                return shape
        return None

    def _parameter_name(self, path: str, shape: Optional[ShapeMatch]) -> Optional[str]:
        context = context_of(path)
        if not context:
            return None

        name = camel_case(context)
        if not name:
            return None

        if shape and shape.suffix and not suggests(name, shape.hints):
            name += shape.suffix
        return name

    def _create_parameter(
        self,
        name: str,
        group: List[ValueOccurrence],
        shape: Optional[ShapeMatch],
    ) -> Parameter:
        primary = group[0]
        param_type = infer_type(primary.value)

        param = Parameter(
            name=name,
            type=param_type,
            required=True,
            path=f"calls[{primary.call_index}].payload.{primary.path}",
            description=f"Parameter for {primary.context}",
        )
        for occurrence in group:
            param.add_example(occurrence.value)

        if shape:
            pattern_shape = shape.validation.pattern is not None
            if (pattern_shape and param_type == "string") or (not pattern_shape and param_type == "number"):
                param.validation = copy.deepcopy(shape.validation)
                param.description = shape.description

        return param

    # Explicit edit: rewrite detected values into placeholders

    def templatize(self, recording: Recording) -> Recording:
        """
        Return a copy with payload-derived parameters turned into placeholders.

        Every site holding a parameter's primary value becomes ``{{name}}``,
        and the parameter defaults to the recorded value, so replaying without
        arguments reproduces the original calls.

        Args:
            recording: Finalized recording

        Returns:
            New Recording (same id) with templated calls and parameters
        """
        parameters, sites = self._detect(recording.calls)
        calls = list(recording.calls)

        for name, group in sites.items():
            param = next(p for p in parameters if p.name == name)
            primary = group[0]
            param.default_value = primary.value
            param.required = False

            for occurrence in group:
                call = calls[occurrence.call_index]
                payload = copy.deepcopy(call.payload)
                payload = _set_in(payload, occurrence.keys, "{{" + name + "}}")
                calls[occurrence.call_index] = replace(call, payload=payload)

            for index, call in enumerate(calls):
                segments = call.path.split("/")
                if primary.text in segments:
                    path = "/".join("{{" + name + "}}" if s == primary.text else s for s in segments)
                    calls[index] = replace(call, path=path)

        existing = {p.name: p for p in recording.parameters}
        merged = []
        for param in parameters:
            previous = existing.get(param.name)
            if previous is not None and param.name not in sites:
                merged.append(copy.deepcopy(previous))
            else:
                merged.append(param)

        result = copy.deepcopy(recording)
        result.calls = calls
        result.parameters = merged
        return result


def _set_in(obj: Any, keys: tuple, value: Any) -> Any:
    if not keys:
        return value
    obj[keys[0]] = _set_in(obj[keys[0]], keys[1:], value)
    return obj
