from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from tweakengine import cli
from tweakengine.adapters import AdapterError, FakeSystemAdapter
from tweakengine.config import get_settings
from tweakengine.engine.loader import TemplateLoader
from tweakengine.models import Action, Entry, Group, History, Mode

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.delenv("TWEAKENGINE_SYSTEM_STATE_PATH", raising=False)
    shutil.copy(EXAMPLES / "privacy.yaml", tmp_path / "privacy.yaml")
    shutil.copy(EXAMPLES / "system_state.json", tmp_path / "state.json")
    return tmp_path


def system(state_path):
    adapter = FakeSystemAdapter(state_path=str(state_path))
    adapter.connect()
    return adapter


def test_analyze_writes_template_with_history(workspace, capsys):
    code = cli.main([
        str(workspace / "privacy.yaml"),
        "--state-file", str(workspace / "state.json"),
    ])

    assert code == 0
    out = capsys.readouterr().out
    assert "title: Privacy baseline" in out
    assert "mode: analyze" in out
    assert "[telemetry] Disable WAP push service skipped - not marked for execution" in out

    template = TemplateLoader().parse_file(workspace / "privacy.analyze.yaml")
    telemetry, advertising, cleanup = template.groups
    assert all(e.history is not None for e in telemetry.entries)
    assert all(e.history is None for e in cleanup.entries)
    assert advertising.entries[0].history.result is False
    assert system(workspace / "state.json").get_service_startup("DiagTrack") == "automatic"


def test_execute_then_rollback_restores_system(workspace):
    state = workspace / "state.json"

    assert cli.main([
        str(workspace / "privacy.yaml"), "--mode", "execute", "--state-file", str(state),
    ]) == 0

    changed = system(state)
    assert changed.get_service_startup("DiagTrack") == "disabled"
    assert changed.get_registry_value(
        "HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows\\DataCollection", "AllowTelemetry"
    ).value == 0
    assert changed.get_service_startup("dmwappushservice") == "manual"

    output = workspace / "restored.yaml"
    assert cli.main([
        str(workspace / "privacy.execute.yaml"),
        "--mode", "Rollback",
        "--state-file", str(state),
        "--output", str(output),
    ]) == 0

    restored = system(state)
    assert restored.get_service_startup("DiagTrack") == "automatic"
    assert restored.get_registry_value(
        "HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows\\DataCollection", "AllowTelemetry"
    ).value == 3
    assert restored.get_registry_value(
        "HKCU\\Software\\Microsoft\\Windows\\CurrentVersion\\AdvertisingInfo", "Enabled"
    ) is None
    assert output.exists()


def test_group_filter(workspace):
    state = workspace / "state.json"

    assert cli.main([
        str(workspace / "privacy.yaml"),
        "--mode", "execute",
        "--group", "advertising",
        "--state-file", str(state),
    ]) == 0

    assert system(state).get_service_startup("DiagTrack") == "automatic"


def test_invalid_template_exits_with_error(tmp_path, capsys):
    path = tmp_path / "broken.yaml"
    path.write_text("groups: [{entries: []}]", encoding="utf-8")

    assert cli.main([str(path)]) == 1
    assert "Template validation failed" in capsys.readouterr().err


def test_rollback_without_instructions_exits_with_error(workspace, capsys):
    assert cli.main([str(workspace / "privacy.yaml"), "--mode", "rollback"]) == 1
    assert "no rollback instructions" in capsys.readouterr().err


def test_execution_error_exits_with_error(tmp_path, capsys):
    path = tmp_path / "unknown.yaml"
    path.write_text(
        "groups:\n  - id: g\n    entries:\n      - name: e\n        action: {plugin: nothing}\n",
        encoding="utf-8",
    )

    assert cli.main([str(path), "--log-level", "INFO"]) == 1
    assert "Plugin not found" in capsys.readouterr().err
    assert not (tmp_path / "unknown.analyze.yaml").exists()


def test_format_entry(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")
    group = Group(id="g", name="G")
    entry = Entry(name="e", action=Action(plugin="p"))
    history = History(
        started_at="2026-01-01T00:00:00Z",
        completed_at="2026-01-01T00:00:00Z",
        system_changed=True,
        result=True,
        detail="applied",
    )

    assert cli.format_entry(group, entry, history) == "[g] e changed - applied"


def test_default_output_path():
    assert cli.default_output_path(Path("/t/base.yaml"), Mode.ROLLBACK) == Path("/t/base.rollback.yaml")


def test_state_file_round_trip(tmp_path):
    state = tmp_path / "state.json"
    adapter = FakeSystemAdapter(initial_state={"services": {"Svc": "manual"}}, state_path=str(state))
    adapter.connect()
    adapter.set_service_startup("svc", "disabled")
    adapter.disconnect()

    data = json.loads(state.read_text(encoding="utf-8"))
    assert data["services"] == {"Svc": "disabled"}
    assert system(state).get_service_startup("SVC") == "disabled"


def test_unknown_adapter_lists_available_types(workspace, monkeypatch, capsys):
    monkeypatch.setenv("TWEAKENGINE_ADAPTER_TYPE", "nope")
    get_settings.cache_clear()
    try:
        code = cli.main([str(workspace / "privacy.yaml")])
    finally:
        get_settings.cache_clear()

    assert code == 1
    assert "Unknown adapter type: nope. Available: fake" in capsys.readouterr().err
    assert not (workspace / "privacy.analyze.yaml").exists()


def test_export_without_state_file_is_refused(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    adapter = FakeSystemAdapter(host="nowhere")

    with pytest.raises(AdapterError, match="No state file"):
        adapter.export_state()

    assert list(tmp_path.iterdir()) == []
    assert adapter.export_state(str(tmp_path / "out.json")) == str(tmp_path / "out.json")
