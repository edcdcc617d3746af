"""
Tool generator.

Turns a recording into a ToolDefinition: an input schema built from the
parameter list and an implementation rendered from a small intermediate
representation (ToolPlan). The plan is validated before rendering, and the
renderer is pluggable so other target syntaxes can reuse the same plan.

Output is deterministic: the same recording always yields the same name,
schema and implementation text.
"""

import json
import keyword
import pprint
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from apimacro.core.models import Analysis, Call, HTTPMethod, Parameter, Recording, ToolDefinition
from apimacro.errors import ValidationError
from apimacro.record.analyzer import identifier_in
from apimacro.record.expression import TOKEN_RE, is_expression, whole_token


def derive_tool_name(name: str) -> str:
    """
    Derive a tool name from a macro name.

    Lowercases, collapses runs of non-alphanumeric characters to "_" and
    strips leading/trailing separators. "Add HAProxy Backend!" becomes
    "add_haproxy_backend".
    """
    tool_name = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    return tool_name or "macro"


def python_identifier(name: str) -> str:
    identifier = re.sub(r"\W", "_", name)
    if not identifier or identifier[0].isdigit():
        identifier = f"arg_{identifier}"
    if keyword.iskeyword(identifier):
        identifier += "_"
    return identifier


def build_input_schema(parameters: List[Parameter]) -> Dict[str, Any]:
    """
    Build a JSON Schema object with one property per parameter.

    Args:
        parameters: Parameters in declaration order

    Returns:
        Schema dict with "type", "properties" and "required"
    """
    properties: Dict[str, Any] = {}
    required: List[str] = []

    for param in parameters:
        prop: Dict[str, Any] = {"type": param.type}
        if param.description:
            prop["description"] = param.description

        if param.validation:
            v = param.validation
            if v.pattern is not None:
                prop["pattern"] = v.pattern
            if v.min_length is not None:
                prop["minLength"] = v.min_length
            if v.max_length is not None:
                prop["maxLength"] = v.max_length
            if v.minimum is not None:
                prop["minimum"] = v.minimum
            if v.maximum is not None:
                prop["maximum"] = v.maximum
            if v.enum:
                prop["enum"] = list(v.enum)

        if param.default_value is not None:
            prop["default"] = param.default_value

        properties[param.name] = prop
        if param.required:
            required.append(param.name)

    return {"type": "object", "properties": properties, "required": required}


# Intermediate representation

class ReturnStrategy(Enum):
    """What the generated tool returns, decided by the last call."""
    IDENTIFIER = "identifier"
    DATA = "data"
    ACKNOWLEDGE = "acknowledge"


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class ArgumentRef:
    name: str


@dataclass(frozen=True)
class ExpressionRef:
    expression: str


Part = Union[Literal, ArgumentRef, ExpressionRef]


@dataclass(frozen=True)
class TemplateString:
    """A string with embedded substitution sites."""
    parts: tuple


@dataclass
class Argument:
    name: str
    identifier: str
    type: str
    required: bool
    description: str = ""
    default: Any = None
    validation: Any = None


@dataclass
class CallStep:
    index: int
    method: HTTPMethod
    path: TemplateString
    payload: Any  # JSON tree with TemplateString / ArgumentRef / ExpressionRef leaves
    description: str = ""

    def references(self) -> List[Union[ArgumentRef, ExpressionRef]]:
        refs = [p for p in self.path.parts if not isinstance(p, Literal)]
        refs.extend(_payload_refs(self.payload))
        return refs


@dataclass
class ToolPlan:
    """Language-neutral description of a generated tool."""
    name: str
    title: str
    description: str
    arguments: List[Argument] = field(default_factory=list)
    steps: List[CallStep] = field(default_factory=list)
    return_strategy: ReturnStrategy = ReturnStrategy.ACKNOWLEDGE
    identifier_key: Optional[str] = None

    def argument(self, name: str) -> Optional[Argument]:
        for arg in self.arguments:
            if arg.name == name:
                return arg
        return None

    @property
    def uses_expressions(self) -> bool:
        return any(isinstance(r, ExpressionRef) for s in self.steps for r in s.references())

    def validate(self) -> None:
        """
        Check the plan before rendering.

        Raises:
            ValidationError: On duplicate arguments or undeclared references
        """
        names = set()
        identifiers = set()
        for arg in self.arguments:
            if arg.name in names:
                raise ValidationError(f"Duplicate argument: {arg.name}")
            if arg.identifier in identifiers:
                raise ValidationError(f"Argument {arg.name} collides with another argument as {arg.identifier}")
            names.add(arg.name)
            identifiers.add(arg.identifier)

        for step in self.steps:
            for ref in step.references():
                if isinstance(ref, ArgumentRef) and ref.name not in names:
                    raise ValidationError(f"Call {step.index} references undeclared argument: {ref.name}")

        if self.return_strategy == ReturnStrategy.IDENTIFIER and not self.identifier_key:
            raise ValidationError("Identifier return strategy needs an identifier key")


def _payload_refs(node: Any) -> List[Union[ArgumentRef, ExpressionRef]]:
    if isinstance(node, (ArgumentRef, ExpressionRef)):
        return [node]
    if isinstance(node, TemplateString):
        return [p for p in node.parts if not isinstance(p, Literal)]
    if isinstance(node, list):
        return [r for item in node for r in _payload_refs(item)]
    if isinstance(node, dict):
        return [r for value in node.values() for r in _payload_refs(value)]
    return []


def _ref(token: str) -> Union[ArgumentRef, ExpressionRef]:
    return ExpressionRef(token) if is_expression(token) else ArgumentRef(token)


def parse_template(text: str) -> TemplateString:
    """Split a string into literal parts and substitution sites."""
    parts: List[Part] = []
    pos = 0
    for match in TOKEN_RE.finditer(text):
        if match.start() > pos:
            parts.append(Literal(text[pos:match.start()]))
        parts.append(_ref(match.group(1)))
        pos = match.end()
    if pos < len(text):
        parts.append(Literal(text[pos:]))
    return TemplateString(tuple(parts))


def _template_payload(node: Any) -> Any:
    if isinstance(node, str):
        token = whole_token(node)
        if token is not None:
            return _ref(token)
        if "{{" in node:
            return parse_template(node)
        return node
    if isinstance(node, list):
        return [_template_payload(item) for item in node]
    if isinstance(node, dict):
        return {key: _template_payload(value) for key, value in node.items()}
    return node


# Rendering

class PythonRenderer:
    """
    Render a ToolPlan as an async Python function.

    The generated function takes a `client` whose `request(method, path,
    payload)` coroutine returns the response data.
    """

    indent = "    "

    def render(self, plan: ToolPlan) -> str:
        plan.validate()

        lines: List[str] = []
        imports = self._imports(plan)
        if imports:
            lines.extend(imports)
            lines.extend(["", ""])

        lines.append(self._signature(plan))
        lines.extend(self._docstring(plan))
        lines.extend(self._validation(plan))

        if plan.uses_expressions:
            mapping = ", ".join(f"{json.dumps(a.name)}: {a.identifier}" for a in plan.arguments)
            lines.append(f"{self.indent}args = {{{mapping}}}")
        lines.append(f"{self.indent}results = []")
        lines.append("")

        for step in plan.steps:
            lines.extend(self._step(plan, step))

        lines.extend(self._return(plan))
        return "\n".join(lines) + "\n"

    def _imports(self, plan: ToolPlan) -> List[str]:
        imports = []
        if any(a.validation is not None and a.validation.pattern for a in plan.arguments):
            imports.append("import re")
        if plan.uses_expressions:
            if imports:
                imports.append("")
            imports.append("from apimacro.record.expression import evaluate")
        return imports

    def _signature(self, plan: ToolPlan) -> str:
        function_name = python_identifier(plan.name)
        params = ["client"]
        ordered = [a for a in plan.arguments if a.required] + [a for a in plan.arguments if not a.required]
        if ordered:
            params.append("*")
        for arg in ordered:
            annotation = _PY_TYPES.get(arg.type, "object")
            if arg.required:
                params.append(f"{arg.identifier}: {annotation}")
            else:
                params.append(f"{arg.identifier}: {annotation} = {_py_literal(arg.default)}")
        return f"async def {function_name}({', '.join(params)}):"

    def _docstring(self, plan: ToolPlan) -> List[str]:
        summary = _doc_text(plan.description or f"Replay macro {plan.title}.")
        lines = [
            f'{self.indent}"""{summary}',
            "",
            f"{self.indent}Generated from macro: {_doc_text(plan.title)}",
        ]
        if plan.arguments:
            lines.extend(["", f"{self.indent}Args:"])
            for arg in plan.arguments:
                lines.append(f"{self.indent * 2}{arg.identifier}: {_doc_text(arg.description or arg.type)}")
        lines.append(f'{self.indent}"""')
        return lines

    def _validation(self, plan: ToolPlan) -> List[str]:
        lines = []
        for arg in plan.arguments:
            v = arg.validation
            if v is None:
                continue
            guard = "" if arg.required else f"{arg.identifier} is not None and "
            if v.pattern:
                lines.append(f"{self.indent}if {guard}not re.match({_py_literal(v.pattern)}, str({arg.identifier})):")
                lines.append(f"{self.indent * 2}raise ValueError({_py_literal(f'{arg.name} must match pattern: {v.pattern}')})")
            if v.minimum is not None and v.maximum is not None:
                lines.append(f"{self.indent}if {guard}not {_py_literal(v.minimum)} <= {arg.identifier} <= {_py_literal(v.maximum)}:")
                lines.append(f"{self.indent * 2}raise ValueError({_py_literal(f'{arg.name} must be between {v.minimum} and {v.maximum}')})")
            if v.enum:
                lines.append(f"{self.indent}if {guard}{arg.identifier} not in {_py_literal(list(v.enum))}:")
                lines.append(f"{self.indent * 2}raise ValueError({_py_literal(f'{arg.name} must be one of: ' + ', '.join(map(str, v.enum)))})")
        if lines:
            lines.append("")
        return lines

    def _step(self, plan: ToolPlan, step: CallStep) -> List[str]:
        lines = []
        if step.description:
            lines.append(f"{self.indent}# {_doc_text(step.description)}")

        names: Dict[str, str] = {}
        for ref in step.references():
            if isinstance(ref, ExpressionRef) and ref.expression not in names:
                var = f"ref{step.index + 1}_{len(names) + 1}"
                names[ref.expression] = var
                lines.append(
                    f"{self.indent}{var} = evaluate({_py_literal(ref.expression)}, "
                    f"{{**args, \"params\": args, \"results\": results, "
                    f"\"last\": results[-1] if results else None}})"
                )

        path = self._expr(plan, step.path, names)
        payload = self._expr(plan, step.payload, names)
        var = f"result{step.index + 1}"
        lines.append(f"{self.indent}{var} = await client.request({json.dumps(step.method.value)}, {path}, {payload})")
        lines.append(f"{self.indent}results.append({var})")
        lines.append("")
        return lines

    def _expr(self, plan: ToolPlan, node: Any, names: Dict[str, str]) -> str:
        if isinstance(node, ArgumentRef):
            return plan.argument(node.name).identifier
        if isinstance(node, ExpressionRef):
            return names[node.expression]
        if isinstance(node, TemplateString):
            if not any(not isinstance(p, Literal) for p in node.parts):
                return _py_literal("".join(p.text for p in node.parts))
            chunks = []
            for part in node.parts:
                if isinstance(part, Literal):
                    chunks.append(json.dumps(part.text)[1:-1].replace("{", "{{").replace("}", "}}"))
                else:
                    chunks.append("{" + self._expr(plan, part, names) + "}")
            return 'f"' + "".join(chunks) + '"'
        if isinstance(node, list):
            return "[" + ", ".join(self._expr(plan, item, names) for item in node) + "]"
        if isinstance(node, dict):
            items = ", ".join(f"{json.dumps(str(k))}: {self._expr(plan, v, names)}" for k, v in node.items())
            return "{" + items + "}"
        return _py_literal(node)

    def _return(self, plan: ToolPlan) -> List[str]:
        message = _py_literal(f"Successfully completed {plan.title}")
        if not plan.steps:
            return [f"{self.indent}return {{\"success\": True, \"message\": {message}}}"]

        last = f"result{plan.steps[-1].index + 1}"
        if plan.return_strategy == ReturnStrategy.IDENTIFIER:
            key = json.dumps(plan.identifier_key)
            return [
                f"{self.indent}return {{",
                f"{self.indent * 2}\"success\": True,",
                f"{self.indent * 2}\"message\": {message},",
                f"{self.indent * 2}{key}: {last}[{key}],",
                f"{self.indent}}}",
            ]
        if plan.return_strategy == ReturnStrategy.DATA:
            return [f"{self.indent}return {last}"]
        return [f"{self.indent}return {{\"success\": True, \"message\": {message}}}"]


_PY_TYPES = {
    "string": "str",
    "number": "float",
    "boolean": "bool",
    "object": "dict",
    "array": "list",
}


def _doc_text(text: str) -> str:
    """Single-line text that is safe inside a triple-quoted docstring."""
    return " ".join(str(text).replace("\\", "/").replace('"""', "'''").split())


def _py_literal(value: Any) -> str:
    if isinstance(value, str):
        return json.dumps(value)
    return repr(value)


class ToolGenerator:
    """
    Generate tool definitions from recordings.

    Example:
        generator = ToolGenerator()
        tool = generator.generate_tool(recording)
        print(tool.name, tool.input_schema)
        print(tool.implementation)
    """

    def __init__(self, renderer=None):
        self.renderer = renderer or PythonRenderer()

    def suggest_tool(self, recording: Recording, parameters: List[Parameter]) -> ToolDefinition:
        """Draft definition (schema only) used by the analyzer."""
        return ToolDefinition(
            name=derive_tool_name(recording.name),
            description=recording.description or f"Generated from macro: {recording.name}",
            input_schema=build_input_schema(parameters),
        )

    def build_plan(self, recording: Recording, analysis: Optional[Analysis] = None) -> ToolPlan:
        """
        Build the intermediate representation for a recording.

        Args:
            recording: Finalized recording
            analysis: Optional analysis whose suggestions stand in for missing parameters

        Returns:
            Unvalidated ToolPlan
        """
        parameters = self._parameters(recording, analysis)
        plan = ToolPlan(
            name=derive_tool_name(recording.name),
            title=recording.name,
            description=recording.description,
            arguments=[
                Argument(
                    name=p.name,
                    identifier=python_identifier(p.name),
                    type=p.type,
                    required=p.required,
                    description=p.description,
                    default=p.default_value,
                    validation=p.validation,
                )
                for p in parameters
            ],
            steps=[self._step(index, call) for index, call in enumerate(recording.calls)],
        )
        plan.return_strategy, plan.identifier_key = self._return_strategy(recording.calls)
        return plan

    def generate_tool(self, recording: Recording, analysis: Optional[Analysis] = None) -> ToolDefinition:
        """
        Generate a complete tool definition from a recording.

        Raises:
            ValidationError: If the recording references undeclared parameters
        """
        parameters = self._parameters(recording, analysis)
        plan = self.build_plan(recording, analysis)
        return ToolDefinition(
            name=plan.name,
            description=recording.description or f"Generated from macro: {recording.name}",
            input_schema=build_input_schema(parameters),
            implementation=self.renderer.render(plan),
        )

    def generate_tool_module(self, recording: Recording, analysis: Optional[Analysis] = None) -> str:
        """Render a standalone module embedding the definition and implementation."""
        tool = self.generate_tool(recording, analysis)
        definition = {k: v for k, v in tool.to_dict().items() if k != "implementation"}

        body = tool.implementation
        imports = []
        while body.startswith(("import ", "from ", "\n")):
            line, _, body = body.partition("\n")
            if line:
                imports.append(line)

        sections = [
            f'"""\nGenerated tool from macro: {_doc_text(recording.name)}\n\nMacro id: {recording.id}\n"""'
        ]
        if imports:
            sections.append("\n".join(imports))
        sections.append(f"TOOL_DEFINITION = {pprint.pformat(definition, sort_dicts=False)}")
        sections.append(body.rstrip("\n"))
        return "\n\n\n".join(sections) + "\n"

    def _parameters(self, recording: Recording, analysis: Optional[Analysis]) -> List[Parameter]:
        if not recording.parameters and analysis is not None:
            return analysis.parameter_suggestions
        return recording.parameters

    def _step(self, index: int, call: Call) -> CallStep:
        return CallStep(
            index=index,
            method=call.method,
            path=parse_template(call.path),
            payload=_template_payload(call.payload),
            description=(call.metadata or {}).get("description", ""),
        )

    def _return_strategy(self, calls: List[Call]):
        if not calls:
            return ReturnStrategy.ACKNOWLEDGE, None

        last = calls[-1]
        if last.response is not None:
            issued = identifier_in(last.response.data)
            if issued:
                return ReturnStrategy.IDENTIFIER, issued[0]
        if last.method == HTTPMethod.GET:
            return ReturnStrategy.DATA, None
        return ReturnStrategy.ACKNOWLEDGE, None
