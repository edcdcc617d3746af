"""
Integration tests for macro workflows.

Tests the full record/save/analyze/generate/replay cycle against an
in-process API.
"""

import pytest

from apimacro.core.models import CallResponse, Parameter
from apimacro.errors import ParameterResolutionError
from apimacro.record import MacroPlayer, PlaybackOptions, Recorder, ResultStatus
from apimacro.state import MacroStore
from apimacro.transport import RecordingIssuer


class FakeItemsAPI:
    """Tiny in-memory REST API."""

    def __init__(self):
        self.items = {}
        self.requests = []

    async def issue(self, method, path, payload=None):
        self.requests.append((method, path, payload))

        if method == "POST" and path == "/items":
            item_id = str(len(self.items) + 1)
            self.items[item_id] = dict(payload or {}, id=item_id)
            return CallResponse(status=201, data={"id": item_id})

        if method == "GET" and path.startswith("/items/"):
            item = self.items.get(path.rsplit("/", 1)[-1])
            if item is None:
                return CallResponse(status=404, data={"message": "not found"})
            return CallResponse(status=200, data=item)

        return CallResponse(status=404, data={"message": f"no route for {method} {path}"})


class TestRecordAndReplay:
    """Test capturing calls and replaying them with new arguments."""

    def setup_method(self):
        self.api = FakeItemsAPI()
        self.store = MacroStore(":memory:")
        self.recorder = Recorder(storage=self.store)

    def teardown_method(self):
        self.store.close()

    @pytest.mark.asyncio
    async def test_capture_then_replay(self):
        """Test calls made through a RecordingIssuer replay identically."""
        self.recorder.start_recording("Create item", "Create an item")
        issuer = RecordingIssuer(self.api, self.recorder)
        await issuer.issue("POST", "/items", {"name": "web01", "address": "10.0.0.1"})
        recording = self.recorder.stop_recording()
        self.recorder.save_macro(recording)

        assert [p.name for p in recording.parameters] == ["address"]

        results = await MacroPlayer(self.store, self.api).play_macro(recording.id)

        assert results[0].success
        assert len(self.api.items) == 2

    @pytest.mark.asyncio
    async def test_path_expression_links_calls(self):
        """Test the second call reads the id the first call produced."""
        self.recorder.start_recording("Create and fetch")
        self.recorder.record_api_call("POST", "/items", {"name": "{{name}}"})
        self.recorder.record_api_call("GET", "/items/{{$.results[0].id}}")
        recording = self.recorder.stop_recording()
        self.recorder.save_macro(recording)

        assert [p.name for p in recording.parameters] == ["name"]

        results = await MacroPlayer(self.store, self.api).play_macro(
            recording.id, PlaybackOptions(parameters={"name": "web02"})
        )

        assert [r.status for r in results] == [ResultStatus.SUCCESS, ResultStatus.SUCCESS]
        assert self.api.requests[1] == ("GET", "/items/1", None)
        assert results[1].response.data == {"name": "web02", "id": "1"}

    @pytest.mark.asyncio
    async def test_parameter_expression_links_calls(self):
        """Test a parameter bound to an expression needs no supplied value."""
        self.recorder.start_recording("Create and fetch")
        self.recorder.record_api_call("POST", "/items", {"name": "{{name}}"})
        self.recorder.record_api_call("GET", "/items/{{item_id}}")
        recording = self.recorder.stop_recording()
        item_id = recording.get_parameter("item_id")
        item_id.expression = "$.results[0].id"
        item_id.required = False
        self.recorder.save_macro(recording)

        results = await MacroPlayer(self.store, self.api).play_macro(
            recording.id, PlaybackOptions(parameters={"name": "web03"})
        )

        assert all(r.success for r in results)
        assert self.api.requests[1] == ("GET", "/items/1", None)

    @pytest.mark.asyncio
    async def test_missing_parameter(self):
        self.recorder.start_recording("Regional")
        self.recorder.record_api_call("POST", "/items", {"region": "{{region}}"})
        self.recorder.record_api_call("GET", "/items/1")
        recording = self.recorder.stop_recording()
        self.recorder.save_macro(recording)
        player = MacroPlayer(self.store, self.api)

        results = await player.play_macro(recording.id)

        assert results[0].status == ResultStatus.SUBSTITUTION_FAILED
        assert "could not substitute {{region}}" in results[0].error
        assert self.api.requests == [("GET", "/items/1", None)]

        with pytest.raises(ParameterResolutionError) as exc_info:
            await player.play_macro(recording.id, PlaybackOptions(stop_on_error=True))
        assert exc_info.value.call_index == 0

    @pytest.mark.asyncio
    async def test_parameterized_macro_replays_with_defaults(self):
        """Test a templated macro reproduces the original without arguments."""
        self.recorder.start_recording("Create item")
        self.recorder.record_api_call("POST", "/items", {"name": "web01", "address": "10.0.0.1"})
        recording = self.recorder.parameterize_macro(self.recorder.stop_recording())

        assert recording.calls[0].payload == {"name": "web01", "address": "{{address}}"}

        player = MacroPlayer(issuer=self.api)
        await player.play_recording(recording)
        await player.play_recording(recording, PlaybackOptions(parameters={"address": "10.0.0.2"}))

        assert self.api.items["1"]["address"] == "10.0.0.1"
        assert self.api.items["2"]["address"] == "10.0.0.2"


class TestAnalyzeAndGenerate:
    """Test analysis and tool generation on stored macros."""

    def test_generated_tool_matches_parameters(self):
        with MacroStore(":memory:") as store:
            recorder = Recorder(storage=store)
            recorder.start_recording("Add backend", "Add an HAProxy backend")
            recorder.record_api_call(
                "POST",
                "/api/haproxy/settings/addBackend",
                {"backend": {"name": "web", "host": "web01.example.com", "port": 8080}},
                response=CallResponse(status=200, data={"uuid": "3f2b8c1e-9a4d-4e2b-8f1a-0c5d6e7f8a9b"}),
            )
            recorder.record_api_call("POST", "/api/haproxy/service/reconfigure", {})
            recording = recorder.stop_recording()
            recorder.save_macro(recording)

            loaded = recorder.load_macro(recording.id)
            analysis = recorder.analyze_macro(loaded)
            tool = recorder.generate_tool(loaded)

        assert analysis.patterns["creates"] == ["haproxy"]
        assert analysis.side_effects == ["haproxy service reconfigure"]
        assert len(analysis.dependencies) == 1
        assert tool.name == "add_backend"
        assert set(tool.input_schema["properties"]) == {"host", "port"}
        assert tool.input_schema["properties"]["port"]["maximum"] == 65535
        assert tool.to_dict() == recorder.generate_tool(loaded).to_dict()

    def test_merge_then_save(self):
        with MacroStore(":memory:") as store:
            recorder = Recorder(storage=store)
            recorder.start_recording("one")
            first = recorder.stop_recording()
            first.parameters = [Parameter(name="hostname", examples=["a"])]
            recorder.start_recording("two")
            second = recorder.stop_recording()
            second.parameters = [Parameter(name="hostname", examples=["b"])]

            merged = recorder.merge_macros("both", "Merged", [first, second])
            recorder.save_macro(merged)

            loaded = recorder.load_macro(merged.id)

        assert loaded.get_parameter("hostname").examples == ["a", "b"]
        assert loaded.metadata["tags"] == ["merged"]
