"""
Macro player - replay a stored recording with substituted arguments.

Calls are replayed strictly in order. Each call is substituted against a
PlaybackContext that accumulates the results of earlier calls, so call N+1
is never substituted or issued before call N's outcome is recorded.
"""

import copy
import inspect
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from apimacro.core.models import Call, CallResponse, Parameter, Recording
from apimacro.errors import (
    CallExecutionError,
    MacroError,
    MacroNotFoundError,
    ParameterResolutionError,
)
from apimacro.logging import get_macro_logger
from apimacro.record.expression import (
    TOKEN_RE,
    ExpressionError,
    ExpressionNotFound,
    evaluate,
    is_expression,
    whole_token,
)

logger = get_macro_logger(__name__)


class _SkipRemaining:
    def __repr__(self):
        return "SKIP_REMAINING"


# Returned from a before_call hook to end the run early
SKIP_REMAINING = _SkipRemaining()


class ResultStatus(Enum):
    """Outcome of one replayed call."""
    SUCCESS = "success"
    ERROR = "error"
    SUBSTITUTION_FAILED = "substitution_failed"
    DRY_RUN = "dry_run"
    SKIPPED = "skipped"


@dataclass
class PlaybackResult:
    """One entry per attempted call."""
    index: int
    call: Call
    status: ResultStatus
    response: Optional[CallResponse] = None
    error: Optional[str] = None
    duration: Optional[float] = None  # milliseconds, None for dry runs

    @property
    def success(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    @property
    def dry_run(self) -> bool:
        return self.status == ResultStatus.DRY_RUN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "status": self.status.value,
            "call": self.call.to_dict(),
            "response": self.response.to_dict() if self.response else None,
            "error": self.error,
            "duration": self.duration,
        }


@dataclass
class PlaybackOptions:
    """
    Playback settings.

    before_call may return a replacement Call, None to skip that call, or
    SKIP_REMAINING to stop the run. Hooks may be plain functions or coroutines.
    context_key maps (index, call) to an extra name under which the call's
    result is stored in the context.
    """
    parameters: Dict[str, Any] = field(default_factory=dict)
    dry_run: bool = False
    stop_on_error: bool = False
    before_call: Optional[Callable] = None
    after_call: Optional[Callable] = None
    context_key: Optional[Callable[[int, Call], Optional[str]]] = None


class PlaybackContext:
    """
    Accumulator threaded through one playback run.

    The document seen by path expressions holds the supplied parameters at
    the top level and under "params", every prior result under "results"
    (aligned with call indexes, None for calls that produced nothing), the
    most recent result under "last", and any host-keyed results.
    """

    def __init__(self, parameters: Dict[str, Any], context_key=None):
        self.parameters = dict(parameters)
        self.results: List[Any] = []
        self.named: Dict[str, Any] = {}
        self.context_key = context_key

    def record(self, index: int, call: Call, data: Any) -> None:
        while len(self.results) < index:
            self.results.append(None)
        self.results.append(data)

        if self.context_key is not None and data is not None:
            key = self.context_key(index, call)
            if key:
                self.named[key] = data

    @property
    def last(self) -> Any:
        for data in reversed(self.results):
            if data is not None:
                return data
        return None

    def document(self) -> Dict[str, Any]:
        doc = dict(self.parameters)
        doc.update(self.named)
        doc["params"] = self.parameters
        doc["results"] = self.results
        doc["last"] = self.last
        return doc


class Substituter:
    """
    Replace {{token}} placeholders in one call.

    A token starting with "$" is a path expression against the context.
    Any other token is a parameter name: the supplied value wins, then the
    parameter's expression, then its default.
    """

    def __init__(
        self,
        parameters: List[Parameter],
        context: PlaybackContext,
        call_index: int,
        strict_expressions: bool = True,
    ):
        self.parameters = {p.name: p for p in parameters}
        self.context = context
        self.call_index = call_index
        self.strict_expressions = strict_expressions

    def substitute(self, call: Call) -> Call:
        """
        Return a substituted copy of the call.

        Raises:
            ParameterResolutionError: If a token cannot be resolved
        """
        return replace(
            call,
            path=self._text(call.path),
            params=self._value(copy.deepcopy(call.params)),
            payload=self._value(copy.deepcopy(call.payload)),
        )

    def _value(self, node: Any) -> Any:
        if isinstance(node, str):
            token = whole_token(node)
            if token is not None:
                return self.resolve(token, keep=node)
            return self._text(node)
        if isinstance(node, list):
            return [self._value(item) for item in node]
        if isinstance(node, dict):
            return {key: self._value(value) for key, value in node.items()}
        return node

    def _text(self, text: str) -> str:
        def interpolate(match):
            value = self.resolve(match.group(1), keep=match.group(0))
            return value if isinstance(value, str) else _stringify(value)

        return TOKEN_RE.sub(interpolate, text)

    def resolve(self, token: str, keep: str) -> Any:
        """
        Resolve one token.

        Args:
            token: Token text without braces
            keep: Original placeholder, returned for unresolved expressions in dry runs
        """
        if is_expression(token):
            return self._evaluate(token, keep)

        if token in self.context.parameters:
            return self.context.parameters[token]

        param = self.parameters.get(token)
        if param is not None and param.expression:
            return self._evaluate(param.expression, keep, token=token)
        if param is not None and param.default_value is not None:
            return param.default_value

        raise ParameterResolutionError(token, self.call_index, "no value supplied and no default")

    def _evaluate(self, expression: str, keep: str, token: Optional[str] = None) -> Any:
        try:
            return evaluate(expression, self.context.document())
        except (ExpressionError, ExpressionNotFound) as e:
            if not self.strict_expressions:
                return keep
            raise ParameterResolutionError(token or expression, self.call_index, str(e)) from e


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


def _as_response(raw: Any) -> CallResponse:
    if isinstance(raw, CallResponse):
        return raw
    return CallResponse(status=200, data=raw)


class MacroPlayer:
    """
    Replay recordings through an injected call issuer.

    Example:
        player = MacroPlayer(storage, issuer)
        results = await player.play_macro(macro_id, PlaybackOptions(
            parameters={"hostname": "web01.example.com"},
            stop_on_error=True,
        ))
    """

    def __init__(self, storage=None, issuer=None):
        """
        Initialize player.

        Args:
            storage: Store providing load(id); needed for play_macro
            issuer: CallIssuer or callable (method, path, payload) -> response;
                    may return an awaitable
        """
        self.storage = storage
        self.issuer = issuer

    async def play_macro(self, macro_id: str, options: Optional[PlaybackOptions] = None) -> List[PlaybackResult]:
        """
        Load a stored macro and replay it.

        Raises:
            MacroNotFoundError: If no macro is stored under macro_id
            ValidationError: If the stored macro is malformed
        """
        if self.storage is None:
            raise MacroError("No macro storage configured")

        recording = self.storage.load(macro_id)
        if recording is None:
            raise MacroNotFoundError(macro_id)

        return await self.play_recording(recording, options)

    async def play_recording(
        self,
        recording: Recording,
        options: Optional[PlaybackOptions] = None,
    ) -> List[PlaybackResult]:
        """
        Replay a recording call by call.

        Args:
            recording: Recording to replay
            options: Playback options

        Returns:
            One PlaybackResult per attempted call, in recorded order

        Raises:
            ParameterResolutionError: Unresolvable token with stop_on_error set
            CallExecutionError: Issuer failure with stop_on_error set
        """
        options = options or PlaybackOptions()
        recording.validate()

        if not options.dry_run and self.issuer is None:
            raise MacroError("No call issuer configured")

        context = PlaybackContext(options.parameters, options.context_key)
        results: List[PlaybackResult] = []

        mode = "dry run" if options.dry_run else "playback"
        logger.info(f"Starting {mode} of {recording.name} ({len(recording.calls)} calls)")

        for index, recorded in enumerate(recording.calls):
            substituter = Substituter(
                recording.parameters,
                context,
                index,
                strict_expressions=not options.dry_run,
            )
            try:
                call = substituter.substitute(recorded)
            except ParameterResolutionError as e:
                logger.call(index, recorded.method.value, recorded.path, ResultStatus.SUBSTITUTION_FAILED.value)
                if options.stop_on_error:
                    raise
                results.append(PlaybackResult(
                    index=index,
                    call=recorded,
                    status=ResultStatus.SUBSTITUTION_FAILED,
                    error=e.reason,
                ))
                context.record(index, recorded, None)
                continue

            if options.before_call is not None:
                hooked = await _maybe_await(options.before_call(call))
                if hooked is SKIP_REMAINING:
                    logger.info(f"Run stopped by before_call hook at call {index}")
                    break
                if hooked is None:
                    results.append(PlaybackResult(index=index, call=call, status=ResultStatus.SKIPPED))
                    context.record(index, call, None)
                    continue
                call = hooked

            if options.dry_run:
                logger.dry_run(f"[{index}] {call.method.value} {call.path}")
                results.append(PlaybackResult(index=index, call=call, status=ResultStatus.DRY_RUN))
                context.record(index, call, None)
                continue

            result = await self._issue(index, call, options.stop_on_error)
            results.append(result)
            context.record(index, call, result.response.data if result.success else None)

            if result.success and options.after_call is not None:
                await _maybe_await(options.after_call(call, result.response))

        failed = sum(1 for r in results if r.status in (ResultStatus.ERROR, ResultStatus.SUBSTITUTION_FAILED))
        if failed:
            logger.warning(f"{recording.name}: {failed} of {len(results)} calls failed")
        else:
            logger.info(f"{recording.name}: {len(results)} calls replayed")
        return results

    async def _issue(self, index: int, call: Call, stop_on_error: bool) -> PlaybackResult:
        issue = self.issuer.issue if hasattr(self.issuer, "issue") else self.issuer

        error: Optional[CallExecutionError] = None
        response: Optional[CallResponse] = None
        start_time = time.perf_counter()
        try:
            response = _as_response(await _maybe_await(issue(call.method.value, call.path, call.payload)))
            if not response.ok:
                error = CallExecutionError(f"HTTP {response.status}", index)
        except CallExecutionError as e:
            error = e if e.call_index is not None else CallExecutionError(e.reason, index, cause=e.cause)
        except Exception as e:
            # Continue with the next call unless stop_on_error is set
            error = CallExecutionError(str(e) or type(e).__name__, index, cause=e)
        duration = (time.perf_counter() - start_time) * 1000

        if error is not None:
            logger.call(index, call.method.value, call.path, ResultStatus.ERROR.value, duration)
            if stop_on_error:
                raise error
            return PlaybackResult(
                index=index,
                call=call,
                status=ResultStatus.ERROR,
                response=response,
                error=error.reason,
                duration=duration,
            )

        logger.call(index, call.method.value, call.path, ResultStatus.SUCCESS.value, duration)
        return PlaybackResult(
            index=index,
            call=call,
            status=ResultStatus.SUCCESS,
            response=response,
            duration=duration,
        )
