"""
Recording issuer - capture calls made through another issuer.

Every call is timed and reported to the recorder with its response or
error. The recorder ignores reports while it is not recording.
"""

import inspect
import time
from typing import Any

from apimacro.core.models import CallError, CallResponse
from apimacro.errors import CallExecutionError
from apimacro.transport.base import CallIssuer


class RecordingIssuer(CallIssuer):
    """
    Wrap an issuer and report each call to a Recorder.

    Example:
        recorder.start_recording("Add backend")
        issuer = RecordingIssuer(HTTPCallIssuer(base_url), recorder)
        await issuer.issue("POST", "/api/haproxy/settings/addBackend", {...})
        recording = recorder.stop_recording()
    """

    def __init__(self, issuer, recorder):
        self.issuer = issuer
        self.recorder = recorder

    async def issue(self, method: str, path: str, payload: Any = None) -> Any:
        issue = self.issuer.issue if hasattr(self.issuer, "issue") else self.issuer

        start_time = time.perf_counter()
        try:
            raw = issue(method, path, payload)
            if inspect.isawaitable(raw):
                raw = await raw
        except Exception as e:
            duration = (time.perf_counter() - start_time) * 1000
            code = "call_failed" if isinstance(e, CallExecutionError) else type(e).__name__
            self.recorder.record_api_call(
                method,
                path,
                payload,
                error=CallError(code=code, message=str(e)),
                duration=duration,
            )
            raise

        duration = (time.perf_counter() - start_time) * 1000
        response = raw if isinstance(raw, CallResponse) else CallResponse(status=200, data=raw)
        error = None
        if not response.ok:
            error = CallError(code=str(response.status), message=f"HTTP {response.status}")

        self.recorder.record_api_call(
            method,
            path,
            payload,
            response=response,
            error=error,
            duration=duration,
        )
        return raw
