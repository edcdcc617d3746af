"""
Unit tests for call issuers.
"""

import json

import httpx
import pytest

from apimacro.core.models import CallResponse
from apimacro.errors import CallExecutionError
from apimacro.record.recorder import Recorder
from apimacro.transport import HTTPCallIssuer, RecordingIssuer


def mock_issuer(handler):
    client = httpx.AsyncClient(base_url="https://api.test", transport=httpx.MockTransport(handler))
    return HTTPCallIssuer("https://api.test", client=client)


class TestHTTPCallIssuer:
    """Tests for the httpx issuer."""

    def test_bearer_prefix(self):
        assert HTTPCallIssuer._headers("abc")["Authorization"] == "Bearer abc"
        assert HTTPCallIssuer._headers("Bearer abc")["Authorization"] == "Bearer abc"
        assert "Authorization" not in HTTPCallIssuer._headers(None)

    @pytest.mark.asyncio
    async def test_post_sends_json(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"uuid": "u-1"})

        async with mock_issuer(handler) as issuer:
            response = await issuer.issue("POST", "/api/items/add", {"item": {"name": "web"}})

        assert response == CallResponse(status=200, data={"uuid": "u-1"}, headers=response.headers)
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/items/add"
        assert json.loads(seen[0].content) == {"item": {"name": "web"}}

    @pytest.mark.asyncio
    async def test_get_sends_query(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        async with mock_issuer(handler) as issuer:
            await issuer.issue("get", "/api/items/search", {"phrase": "web"})

        assert seen[0].method == "GET"
        assert seen[0].url.params["phrase"] == "web"

    @pytest.mark.asyncio
    async def test_error_status_returned(self):
        async with mock_issuer(lambda request: httpx.Response(404, text="not found")) as issuer:
            response = await issuer.issue("GET", "/api/missing")

        assert response.status == 404
        assert not response.ok
        assert response.data == "not found"

    @pytest.mark.asyncio
    async def test_empty_body(self):
        async with mock_issuer(lambda request: httpx.Response(204)) as issuer:
            response = await issuer.issue("DELETE", "/api/items/1")

        assert response.data is None

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_issuer(handler) as issuer:
            with pytest.raises(CallExecutionError) as exc_info:
                await issuer.issue("GET", "/api/items")

        assert isinstance(exc_info.value.cause, httpx.ConnectError)


class TestRecordingIssuer:
    """Tests for recording calls made through an issuer."""

    def setup_method(self):
        self.recorder = Recorder()
        self.recorder.start_recording("Captured")

    @pytest.mark.asyncio
    async def test_records_success(self):
        issuer = RecordingIssuer(lambda method, path, payload: {"uuid": "u-1"}, self.recorder)

        result = await issuer.issue("POST", "/api/items/add", {"item": {"name": "web"}})

        assert result == {"uuid": "u-1"}
        call = self.recorder.get_current_recording().calls[0]
        assert call.path == "/api/items/add"
        assert call.response.data == {"uuid": "u-1"}
        assert call.duration is not None
        assert not call.failed

    @pytest.mark.asyncio
    async def test_records_error_response(self):
        async def issue(method, path, payload):
            return CallResponse(status=500, data={"message": "boom"})

        await RecordingIssuer(issue, self.recorder).issue("POST", "/api/items/add")

        call = self.recorder.get_current_recording().calls[0]
        assert call.failed
        assert call.error.code == "500"
        assert call.error.message == "HTTP 500"
        assert call.response is None

    @pytest.mark.asyncio
    async def test_records_and_reraises_exception(self):
        def issue(method, path, payload):
            raise RuntimeError("connection reset")

        with pytest.raises(RuntimeError):
            await RecordingIssuer(issue, self.recorder).issue("GET", "/api/items")

        call = self.recorder.get_current_recording().calls[0]
        assert call.error.code == "RuntimeError"
        assert call.error.message == "connection reset"
