"""
Integration tests for the apimacro CLI.
"""

import json

import pytest
from click.testing import CliRunner

from apimacro import __version__
from apimacro.cli.main import cli
from apimacro.core.models import CallResponse
from apimacro.state import MacroStore

CALLS = [
    {
        "method": "POST",
        "path": "/api/haproxy/settings/addBackend",
        "payload": {"backend": {"name": "web", "address": "10.0.0.7", "port": 8080}},
        "response": {"status": 200, "data": {"uuid": "3f2b8c1e-9a4d-4e2b-8f1a-0c5d6e7f8a9b"}},
    },
    {
        "method": "POST",
        "path": "/api/haproxy/service/reconfigure",
        "payload": {},
    },
]


class FakeIssuer:
    """Stands in for HTTPCallIssuer."""

    requests = []

    def __init__(self, base_url, token=None, timeout=30.0):
        self.base_url = base_url

    async def issue(self, method, path, payload=None):
        FakeIssuer.requests.append((self.base_url, method, path))
        return CallResponse(status=200, data={"status": "ok"})

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


class TestCLI:
    """Test CLI commands against a temporary store."""

    @pytest.fixture(autouse=True)
    def workspace(self, tmp_path, monkeypatch):
        monkeypatch.delenv("APIMACRO_BASE_URL", raising=False)
        monkeypatch.delenv("APIMACRO_LOG_LEVEL", raising=False)
        self.tmp_path = tmp_path
        self.db = str(tmp_path / "macros.db")
        self.runner = CliRunner()

    def invoke(self, *args):
        return self.runner.invoke(cli, ["--db", self.db, *args])

    def record(self, calls=None, name="Add backend"):
        calls_file = self.tmp_path / "calls.json"
        calls_file.write_text(json.dumps(calls or CALLS))
        result = self.invoke("record", str(calls_file), "--name", name)
        assert result.exit_code == 0, result.output
        with MacroStore(self.db) as store:
            return next(m for m in store.list() if m.name == name)

    def test_version(self):
        result = self.invoke("version")

        assert result.exit_code == 0
        assert f"apimacro version {__version__}" in result.output

    def test_record(self):
        recording = self.record()

        assert len(recording.calls) == 2
        assert recording.calls[0].response.data["uuid"].startswith("3f2b")
        assert [p.name for p in recording.parameters] == ["address", "port"]

    def test_record_rejects_non_list(self):
        calls_file = self.tmp_path / "calls.json"
        calls_file.write_text(json.dumps({"method": "GET"}))

        result = self.invoke("record", str(calls_file), "--name", "Bad")

        assert result.exit_code == 1
        assert "expected a list of calls" in result.output

    def test_record_rejects_bad_method(self):
        result_calls = [{"method": "PATCH", "path": "/api/x"}]
        calls_file = self.tmp_path / "calls.json"
        calls_file.write_text(json.dumps(result_calls))

        result = self.invoke("record", str(calls_file), "--name", "Bad")

        assert result.exit_code == 1
        assert "Unsupported method: PATCH" in result.output

    def test_list_and_show(self):
        recording = self.record()

        listed = self.invoke("list")
        shown = self.invoke("show", recording.id)

        assert listed.exit_code == 0
        assert recording.id in listed.output
        assert "Add backend" in listed.output
        assert shown.exit_code == 0
        assert "Calls (2):" in shown.output
        assert "/api/haproxy/settings/addBackend" in shown.output
        assert "address (string, required)" in shown.output

    def test_list_empty(self):
        result = self.invoke("list")

        assert result.exit_code == 0
        assert "No macros found." in result.output

    def test_show_missing(self):
        result = self.invoke("show", "missing")

        assert result.exit_code == 1
        assert "Macro not found: missing" in result.output

    def test_analyze(self):
        recording = self.record()

        result = self.invoke("analyze", recording.id)

        assert result.exit_code == 0
        assert "creates: haproxy" in result.output
        assert "haproxy service reconfigure" in result.output
        assert "address" in result.output

    def test_generate(self):
        recording = self.record()

        result = self.invoke("generate", recording.id)

        assert result.exit_code == 0
        assert "async def add_backend(client, *, address: str, port: float):" in result.output

    def test_generate_schema(self):
        recording = self.record()

        result = self.invoke("generate", recording.id, "--schema")

        definition = json.loads(result.output)
        assert definition["name"] == "add_backend"
        assert definition["inputSchema"]["required"] == ["address", "port"]

    def test_generate_module(self):
        recording = self.record()
        output = self.tmp_path / "add_backend.py"

        result = self.invoke("generate", recording.id, "-o", str(output))

        assert result.exit_code == 0
        assert "TOOL_DEFINITION = " in output.read_text()

    def test_play_dry_run(self):
        recording = self.record()

        result = self.invoke("play", recording.id, "--dry-run")

        assert result.exit_code == 0
        assert "2 calls checked" in result.output

    def test_play_requires_base_url(self):
        recording = self.record()

        result = self.invoke("play", recording.id)

        assert result.exit_code == 1
        assert "No base URL" in result.output

    def test_play_over_http(self, monkeypatch):
        monkeypatch.setattr("apimacro.transport.HTTPCallIssuer", FakeIssuer)
        FakeIssuer.requests = []
        recording = self.record()

        result = self.invoke("play", recording.id, "--base-url", "https://fw.example.com")

        assert result.exit_code == 0, result.output
        assert "2 calls replayed" in result.output
        assert FakeIssuer.requests == [
            ("https://fw.example.com", "POST", "/api/haproxy/settings/addBackend"),
            ("https://fw.example.com", "POST", "/api/haproxy/service/reconfigure"),
        ]

    def test_play_reports_missing_parameter(self):
        recording = self.record(calls=[{"method": "POST", "path": "/api/x", "payload": {"region": "{{region}}"}}])

        failed = self.invoke("play", recording.id, "--dry-run")
        supplied = self.invoke("play", recording.id, "--dry-run", "-p", "region=eu-west")

        assert failed.exit_code == 1
        assert "could not substitute {{region}}" in failed.output
        assert supplied.exit_code == 0

    def test_play_rejects_bad_param(self):
        recording = self.record()

        result = self.invoke("play", recording.id, "--dry-run", "-p", "novalue")

        assert result.exit_code == 1
        assert "expected name=value" in result.output

    def test_play_missing_macro(self):
        result = self.invoke("play", "missing", "--dry-run")

        assert result.exit_code == 1
        assert "Macro not found: missing" in result.output

    def test_delete(self):
        recording = self.record()

        deleted = self.invoke("delete", recording.id, "--yes")
        again = self.invoke("delete", recording.id, "--yes")

        assert deleted.exit_code == 0
        assert again.exit_code == 1
        assert "Macro not found" in again.output

    def test_export_and_import(self):
        self.record()
        export_file = str(self.tmp_path / "export.json")
        other_db = str(self.tmp_path / "other.db")

        exported = self.invoke("export", export_file)
        imported = self.runner.invoke(cli, ["--db", other_db, "import", export_file])

        assert exported.exit_code == 0
        assert "Exported 1 macros" in exported.output
        assert imported.exit_code == 0
        assert "Imported 1 macros" in imported.output
        with MacroStore(other_db) as store:
            assert [m.name for m in store.list()] == ["Add backend"]
