"""
Data model for API macros.

A Recording is an ordered sequence of Calls plus the Parameters inferred
from them. Order is load-bearing: later calls may use values produced by
earlier ones.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from apimacro.errors import ValidationError


class HTTPMethod(Enum):
    """Verbs a recorded call may use."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value) -> "HTTPMethod":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValidationError(f"Unsupported method: {value}") from None


PARAMETER_TYPES = ("string", "number", "boolean", "object", "array")


@dataclass(frozen=True)
class CallResponse:
    """Status and body of a successful call."""
    status: int
    data: Any = None
    headers: Optional[Dict[str, str]] = None

    @property
    def ok(self) -> bool:
        return self.status < 400

    def to_dict(self) -> Dict[str, Any]:
        result = {"status": self.status, "data": self.data}
        if self.headers:
            result["headers"] = dict(self.headers)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallResponse":
        return cls(status=int(data.get("status", 200)), data=data.get("data"), headers=data.get("headers"))


@dataclass(frozen=True)
class CallError:
    """Failure captured in place of a response."""
    code: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallError":
        return cls(code=str(data.get("code", "ERROR")), message=str(data.get("message", "")))


@dataclass(frozen=True)
class Call:
    """
    One attempted API invocation.

    Failed calls keep `error` instead of `response` so analysis still sees them.
    """
    id: str
    timestamp: str
    method: HTTPMethod
    path: str
    params: Optional[Dict[str, Any]] = None
    payload: Any = None
    response: Optional[CallResponse] = None
    error: Optional[CallError] = None
    duration: Optional[float] = None  # milliseconds
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Identity used when comparing macros."""
        return f"{self.method.value}:{self.path}"

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "method": self.method.value,
            "path": self.path,
            "params": self.params,
            "payload": self.payload,
            "response": self.response.to_dict() if self.response else None,
            "error": self.error.to_dict() if self.error else None,
            "duration": self.duration,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Call":
        for name in ("method", "path"):
            if not data.get(name):
                raise ValidationError(f"Call is missing required field: {name}")

        response = data.get("response")
        error = data.get("error")
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            timestamp=str(data.get("timestamp") or datetime.now().isoformat()),
            method=HTTPMethod.parse(data["method"]),
            path=str(data["path"]),
            params=data.get("params"),
            payload=data.get("payload"),
            response=CallResponse.from_dict(response) if response else None,
            error=CallError.from_dict(error) if error else None,
            duration=data.get("duration"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Validation:
    """Schema constraints attached to a Parameter."""
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    enum: Optional[List[Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Validation":
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__})


@dataclass
class Parameter:
    """
    A named, typed placeholder for a value that varies across replays.

    `path` points back into the recording: ``calls[2].path`` for a path token,
    ``calls[0].payload.rule.destination_port`` for a payload value.
    """
    name: str
    type: str = "string"
    required: bool = True
    description: str = ""
    default_value: Any = None
    examples: List[Any] = field(default_factory=list)
    path: str = ""
    validation: Optional[Validation] = None
    expression: Optional[str] = None

    def add_example(self, value: Any) -> None:
        if value not in self.examples:
            self.examples.append(value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "required": self.required,
            "description": self.description,
            "default_value": self.default_value,
            "examples": list(self.examples),
            "path": self.path,
            "validation": self.validation.to_dict() if self.validation else None,
            "expression": self.expression,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Parameter":
        if not data.get("name"):
            raise ValidationError("Parameter is missing required field: name")
        param_type = data.get("type", "string")
        if param_type not in PARAMETER_TYPES:
            raise ValidationError(f"Parameter {data['name']} has unknown type: {param_type}")

        validation = data.get("validation")
        return cls(
            name=data["name"],
            type=param_type,
            required=bool(data.get("required", True)),
            description=data.get("description") or "",
            default_value=data.get("default_value"),
            examples=list(data.get("examples") or []),
            path=data.get("path") or "",
            validation=Validation.from_dict(validation) if validation else None,
            expression=data.get("expression"),
        )


@dataclass
class Recording:
    """A macro: an ordered sequence of calls plus inferred parameters."""
    id: str
    name: str
    description: str = ""
    created: datetime = field(default_factory=datetime.now)
    updated: datetime = field(default_factory=datetime.now)
    calls: List[Call] = field(default_factory=list)
    parameters: List[Parameter] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, name: str, description: str = "", **metadata) -> "Recording":
        return cls(id=str(uuid.uuid4()), name=name, description=description, metadata=metadata)

    def get_parameter(self, name: str) -> Optional[Parameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def validate(self) -> None:
        """
        Check required fields and parameter name uniqueness.

        Raises:
            ValidationError: If the recording is malformed
        """
        if not self.id:
            raise ValidationError("Recording is missing required field: id")
        if not self.name:
            raise ValidationError(f"Recording {self.id} is missing required field: name")

        seen = set()
        for param in self.parameters:
            if param.name in seen:
                raise ValidationError(f"Recording {self.id} has duplicate parameter: {param.name}")
            seen.add(param.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created": self.created.isoformat(),
            "updated": self.updated.isoformat(),
            "calls": [call.to_dict() for call in self.calls],
            "parameters": [param.to_dict() for param in self.parameters],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recording":
        """
        Build a recording from its serialized form.

        Raises:
            ValidationError: If required fields are missing or parameters collide
        """
        if not isinstance(data, dict):
            raise ValidationError("Recording must be a mapping")
        for name in ("id", "name", "calls"):
            if name not in data or data[name] in (None, ""):
                raise ValidationError(f"Recording is missing required field: {name}")

        try:
            created = datetime.fromisoformat(data["created"]) if data.get("created") else datetime.now()
            updated = datetime.fromisoformat(data["updated"]) if data.get("updated") else created
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Recording {data['id']} has an invalid timestamp: {e}") from e

        recording = cls(
            id=str(data["id"]),
            name=str(data["name"]),
            description=data.get("description") or "",
            created=created,
            updated=updated,
            calls=[Call.from_dict(c) for c in data["calls"]],
            parameters=[Parameter.from_dict(p) for p in data.get("parameters") or []],
            metadata=dict(data.get("metadata") or {}),
        )
        recording.validate()
        return recording


@dataclass(frozen=True)
class DependencyHint:
    """A call whose response issued an identifier later calls may need."""
    call_index: int
    call_id: str
    path: str
    key: str
    value: Any

    def __str__(self):
        return f"{self.path} -> {self.key}:{self.value}"


@dataclass
class ToolDefinition:
    """A schema-described callable synthesized from a macro."""
    name: str
    description: str
    input_schema: Dict[str, Any]
    implementation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.implementation is not None:
            result["implementation"] = self.implementation
        return result


@dataclass
class Analysis:
    """Derived view of a recording. Never persisted."""
    patterns: Dict[str, List[str]] = field(default_factory=lambda: {
        "creates": [], "reads": [], "updates": [], "deletes": [],
    })
    dependencies: List[DependencyHint] = field(default_factory=list)
    side_effects: List[str] = field(default_factory=list)
    parameter_suggestions: List[Parameter] = field(default_factory=list)
    tool_suggestion: Optional[ToolDefinition] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patterns": {k: list(v) for k, v in self.patterns.items()},
            "dependencies": [str(d) for d in self.dependencies],
            "side_effects": list(self.side_effects),
            "parameter_suggestions": [p.to_dict() for p in self.parameter_suggestions],
            "tool_suggestion": self.tool_suggestion.to_dict() if self.tool_suggestion else None,
        }
