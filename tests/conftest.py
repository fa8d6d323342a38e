from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tweakengine.adapters import FakeSystemAdapter
from tweakengine.engine.executor import TemplateExecutor
from tweakengine.engine.history import HistoryRecorder
from tweakengine.plugins import RegistryValuePlugin
from tweakengine.plugins.base import Plugin, PluginOutcome, PluginRegistry

FIXED_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class RecordingPlugin(Plugin):
    """Records every call; execute reports a change unless params say noop."""

    PLUGIN_NAME = "recording"
    calls: list = []

    def _record(self, context, params):
        self.calls.append((context.mode, context.group_id, context.entry_name, dict(params)))

    def analyze(self, context, params):
        self._record(context, params)
        return PluginOutcome(result=True, detail="analyzed")

    def execute(self, context, params):
        self._record(context, params)
        if params.get("noop"):
            return PluginOutcome(result=True, detail="already set")
        return PluginOutcome(
            result=True,
            detail="applied",
            changed=True,
            rollback={"undo": params.get("x")},
        )

    def rollback(self, context, params):
        self._record(context, params)
        if params.get("fail"):
            return PluginOutcome(result=False, detail="could not restore")
        return PluginOutcome(result=True, detail="restored", changed=True)


class MisbehavingPlugin(Plugin):
    """Returns whatever ``params['returns']`` selects."""

    PLUGIN_NAME = "misbehaving"

    RETURNS = {
        "string_result": lambda: PluginOutcome(result="yes", detail="looks fine"),
        "none": lambda: None,
        "int_result": lambda: PluginOutcome(result=1, detail="one"),
        "list_rollback": lambda: PluginOutcome(result=True, changed=True, rollback=["undo"]),
        "truthy_changed": lambda: PluginOutcome(result=True, changed="yes", rollback={"a": 1}),
    }

    def _outcome(self, params):
        return self.RETURNS[params["returns"]]()

    def analyze(self, context, params):
        return self._outcome(params)

    def execute(self, context, params):
        return self._outcome(params)

    def rollback(self, context, params):
        return self._outcome(params)


class ExplodingPlugin(Plugin):
    PLUGIN_NAME = "exploding"

    def analyze(self, context, params):
        raise RuntimeError("boom")

    execute = analyze
    rollback = analyze


@pytest.fixture
def registry():
    class IsolatedRegistry(PluginRegistry):
        _plugins = {}

    for plugin_class in (RecordingPlugin, MisbehavingPlugin, ExplodingPlugin, RegistryValuePlugin):
        IsolatedRegistry.register(plugin_class)
    RecordingPlugin.calls = []
    return IsolatedRegistry


@pytest.fixture
def calls(registry):
    return RecordingPlugin.calls


@pytest.fixture
def adapter():
    return FakeSystemAdapter(
        host="test",
        initial_state={
            "registry": [
                {"path": "HKLM\\Software\\Test", "name": "Level", "value": 3, "kind": "dword"},
            ],
            "services": {"DiagTrack": "automatic"},
            "files": {"C:\\promo.lnk": "[InternetShortcut]"},
        },
    )


@pytest.fixture
def executor(adapter, registry):
    return TemplateExecutor(
        adapter,
        registry=registry,
        recorder=HistoryRecorder(clock=lambda: FIXED_TIME),
    )
