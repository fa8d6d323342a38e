from __future__ import annotations

import dataclasses
import logging

import pytest

from conftest import FIXED_TIME
from tweakengine.engine.emitter import dump_template
from tweakengine.engine.executor import ExecutionError, SKIP_DISABLED, SKIP_NOT_MARKED
from tweakengine.engine.loader import TemplateLoader
from tweakengine.engine.resolver import NO_PRIOR_CHANGE, ROLLBACK_UNAVAILABLE
from tweakengine.models import Mode, RunStatus
from tweakengine.plugins.base import Plugin, PluginContext, PluginOutcome


def load(text, mode=None):
    return TemplateLoader().parse(text, mode=mode)


SINGLE = """
groups:
  - id: G1
    entries:
      - name: E1
        action:
          plugin: recording
          params: {x: 1}
"""


def test_analyze_invokes_plugin_once_and_attaches_history(executor, calls):
    template = load(SINGLE)

    executor.run(template, Mode.ANALYZE)

    assert calls == [(Mode.ANALYZE, "G1", "E1", {"x": 1})]
    history = template.groups[0].entries[0].history
    assert history.result is True
    assert history.detail == "analyzed"
    assert history.system_changed is False
    assert history.started_at == FIXED_TIME
    assert history.completed_at == FIXED_TIME


def test_disabled_group_is_not_processed(executor, calls):
    template = load("""
groups:
  - id: "off"
    enabled: false
    entries:
      - name: E1
        action: {plugin: recording, params: {x: 1}}
  - id: "on"
    entries:
      - name: E2
        action: {plugin: recording, params: {x: 2}}
""")

    executor.run(template, Mode.EXECUTE)

    assert [c[1] for c in calls] == ["on"]
    assert template.groups[0].entries[0].history is None
    assert template.groups[1].entries[0].history is not None


def test_group_filter_restricts_processing(executor, calls):
    template = load("""
groups:
  - id: a
    entries:
      - name: E1
        action: {plugin: recording, params: {x: 1}}
  - id: b
    entries:
      - name: E2
        action: {plugin: recording, params: {x: 2}}
""")

    executor.run(template, Mode.ANALYZE, groups=["b"])

    assert [c[2] for c in calls] == ["E2"]
    assert template.groups[0].entries[0].history is None
    assert executor.summary.processed_groups == 1


def test_disabled_and_unmarked_entries_get_synthetic_history(executor, calls):
    template = load("""
groups:
  - id: G1
    entries:
      - name: "off"
        enabled: false
        action: {plugin: recording, params: {x: 1}}
      - name: unmarked
        execute: false
        action: {plugin: recording, params: {x: 2}}
""")

    executor.run(template, Mode.EXECUTE)

    assert calls == []
    off, unmarked = template.groups[0].entries
    assert (off.history.result, off.history.system_changed, off.history.detail) == (False, False, SKIP_DISABLED)
    assert (unmarked.history.result, unmarked.history.detail) == (False, SKIP_NOT_MARKED)


def test_mode_override_block_takes_precedence(executor, calls):
    template = load("""
groups:
  - id: G1
    entries:
      - name: E1
        action:
          plugin: recording
          params: {x: 1}
          ExecuteParams: {x: 2}
""")

    executor.run(template, Mode.ANALYZE)
    executor.run(template, Mode.EXECUTE)

    assert [(c[0], c[3]) for c in calls] == [
        (Mode.ANALYZE, {"x": 1}),
        (Mode.EXECUTE, {"x": 2}),
    ]


def test_rollback_without_history_is_a_noop(executor, calls):
    template = load("""
groups:
  - id: G1
    entries:
      - name: E1
        action:
          plugin: recording
          params: {x: 1}
          rollbackparams: {x: 0}
""", mode=Mode.ROLLBACK)

    executor.run(template, Mode.ROLLBACK)

    assert calls == []
    history = template.groups[0].entries[0].history
    assert history.detail == NO_PRIOR_CHANGE
    assert history.system_changed is False


def test_rollback_uses_rollback_block_never_default(executor, calls):
    template = load("""
groups:
  - id: G1
    entries:
      - name: changed
        action:
          plugin: recording
          params: {x: 1}
          rollbackparams: {x: 0}
        history:
          started_at: "2026-01-01T00:00:00Z"
          completed_at: "2026-01-01T00:00:01Z"
          system_changed: true
          result: true
      - name: no-instructions
        action:
          plugin: recording
          params: {x: 5}
        history:
          started_at: "2026-01-01T00:00:00Z"
          completed_at: "2026-01-01T00:00:01Z"
          system_changed: true
          result: true
""", mode=Mode.ROLLBACK)

    executor.run(template, Mode.ROLLBACK)

    assert calls == [(Mode.ROLLBACK, "G1", "changed", {"x": 0})]
    changed, missing = template.groups[0].entries
    assert changed.history.result is True
    assert changed.history.system_changed is False
    assert missing.history.detail == ROLLBACK_UNAVAILABLE
    assert missing.history.system_changed is True


def test_failed_rollback_leaves_entry_changed(executor, calls):
    template = load("""
groups:
  - id: G1
    entries:
      - name: E1
        action:
          plugin: recording
          rollbackparams: {fail: true}
        history:
          started_at: "2026-01-01T00:00:00Z"
          completed_at: "2026-01-01T00:00:01Z"
          system_changed: true
          result: true
""", mode=Mode.ROLLBACK)

    executor.run(template, Mode.ROLLBACK)

    history = template.groups[0].entries[0].history
    assert history.result is False
    assert history.system_changed is True


def test_execute_output_round_trips_into_rollback(executor, calls):
    template = load("""
metadata:
  title: demo
groups:
  - id: G1
    entries:
      - name: changes
        action: {plugin: recording, params: {x: 7}}
      - name: unchanged
        action: {plugin: recording, params: {noop: true}}
""")

    executor.run(template, Mode.EXECUTE)
    document = dump_template(template)

    reloaded = load(document, mode=Mode.ROLLBACK)
    assert reloaded == template
    assert reloaded.groups[0].entries[0].action.block("rollbackparams") == {"undo": 7}
    assert not reloaded.groups[0].entries[1].action.has_block("rollbackparams")

    calls.clear()
    executor.run(reloaded, Mode.ROLLBACK)

    assert calls == [(Mode.ROLLBACK, "G1", "changes", {"undo": 7})]
    assert reloaded.groups[0].entries[1].history.detail == NO_PRIOR_CHANGE

    # A second rollback finds nothing left to undo.
    calls.clear()
    again = load(dump_template(reloaded), mode=Mode.ROLLBACK)
    executor.run(again, Mode.ROLLBACK)

    assert calls == []
    assert executor.summary.invoked_entries == 0


def test_history_is_replaced_on_every_run(executor):
    template = load(SINGLE)

    executor.run(template, Mode.EXECUTE)
    first = template.groups[0].entries[0].history
    executor.run(template, Mode.ANALYZE)

    second = template.groups[0].entries[0].history
    assert second is not first
    assert second.detail == "analyzed"
    assert second.rollback is None


@pytest.mark.parametrize("returns, type_name", [
    ("string_result", "str"),
    ("int_result", "int"),
    ("none", "NoneType"),
])
def test_malformed_results_are_coerced_to_failure(executor, caplog, returns, type_name):
    template = load(f"""
groups:
  - id: G1
    entries:
      - name: E1
        action: {{plugin: misbehaving, params: {{returns: {returns}}}}}
""")

    with caplog.at_level(logging.WARNING):
        executor.run(template, Mode.ANALYZE)

    history = template.groups[0].entries[0].history
    assert history.result is False
    for fragment in ("misbehaving", "E1", "G1", type_name):
        assert fragment in history.detail
    assert any("misbehaving" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)


def test_non_mapping_rollback_payload_is_dropped(executor):
    template = load("""
groups:
  - id: G1
    entries:
      - name: E1
        action: {plugin: misbehaving, params: {returns: list_rollback}}
""")

    executor.run(template, Mode.EXECUTE)

    entry = template.groups[0].entries[0]
    assert entry.history.result is True
    assert entry.history.rollback is None
    assert not entry.action.has_block("rollbackparams")


def test_changed_flag_must_be_true(executor):
    template = load("""
groups:
  - id: G1
    entries:
      - name: E1
        action: {plugin: misbehaving, params: {returns: truthy_changed}}
""")

    executor.run(template, Mode.EXECUTE)

    entry = template.groups[0].entries[0]
    assert entry.history.system_changed is False
    assert not entry.action.has_block("rollbackparams")


def test_invalid_params_fail_the_entry_without_invoking(executor, adapter):
    template = load("""
groups:
  - id: G1
    entries:
      - name: E1
        action: {plugin: registry, params: {name: Level, value: 1}}
""")

    executor.run(template, Mode.EXECUTE)

    history = template.groups[0].entries[0].history
    assert history.result is False
    assert history.detail.startswith("Validation failed:")
    assert "'path' is required" in history.detail
    assert executor.summary.invoked_entries == 0
    assert executor.summary.failed_entries == 1


def test_plugin_exception_aborts_run(executor, adapter, calls):
    template = load("""
groups:
  - id: G1
    entries:
      - name: first
        action: {plugin: recording, params: {x: 1}}
      - name: second
        action: {plugin: exploding, params: {}}
      - name: third
        action: {plugin: recording, params: {x: 3}}
""")

    with pytest.raises(ExecutionError) as exc_info:
        executor.run(template, Mode.EXECUTE)

    error = exc_info.value
    assert error.group_id == "G1"
    assert error.entry_name == "second"
    assert isinstance(error.__cause__, RuntimeError)
    assert error.original_error is error.__cause__

    first, second, third = template.groups[0].entries
    assert first.history is not None
    assert second.history is None
    assert third.history is None
    assert [c[2] for c in calls] == ["first"]
    assert executor.summary.status == RunStatus.FAILED
    assert adapter.get_state()["connected"] is False


def test_unknown_plugin_fails_before_processing(executor, calls):
    template = load("""
groups:
  - id: G1
    entries:
      - name: first
        action: {plugin: recording, params: {x: 1}}
      - name: second
        action: {plugin: missing, params: {}}
""")

    with pytest.raises(ExecutionError, match="missing"):
        executor.run(template, Mode.ANALYZE)

    assert calls == []
    assert template.groups[0].entries[0].history is None


def test_unknown_plugin_in_skipped_entry_is_ignored(executor):
    template = load("""
groups:
  - id: G1
    entries:
      - name: unmarked
        execute: false
        action: {plugin: missing, params: {}}
""")

    executor.run(template, Mode.EXECUTE)

    assert template.groups[0].entries[0].history.detail == SKIP_NOT_MARKED


def test_progress_callback_and_summary(executor):
    template = load("""
groups:
  - id: G1
    entries:
      - name: a
        action: {plugin: recording, params: {x: 1}}
      - name: b
        action: {plugin: recording, params: {noop: true}}
      - name: c
        enabled: false
        action: {plugin: recording, params: {x: 3}}
""")
    seen = []
    executor.set_progress_callback(lambda group, entry, history: seen.append((group.id, entry.name)))

    executor.run(template, Mode.EXECUTE)

    assert seen == [("G1", "a"), ("G1", "b"), ("G1", "c")]
    summary = executor.summary
    assert summary.status == RunStatus.COMPLETED
    assert summary.mode == Mode.EXECUTE
    assert (summary.total_entries, summary.recorded_entries, summary.invoked_entries) == (3, 3, 2)
    assert (summary.succeeded_entries, summary.failed_entries, summary.skipped_entries) == (2, 0, 1)
    assert summary.changed_entries == 1


def test_unknown_plugin_marks_summary_failed(executor, adapter):
    template = load("""
groups:
  - id: G1
    entries:
      - name: first
        action: {plugin: missing, params: {}}
""")

    with pytest.raises(ExecutionError):
        executor.run(template, Mode.EXECUTE)

    summary = executor.summary
    assert summary.status == RunStatus.FAILED
    assert "missing" in summary.error_message
    assert summary.completed_at is not None
    assert summary.duration_seconds is not None
    assert adapter.get_state()["connected"] is False


def test_connection_failure_marks_summary_failed(executor, adapter, calls, monkeypatch):
    monkeypatch.setattr(adapter, "connect", lambda: False)

    with pytest.raises(ExecutionError, match="Cannot connect"):
        executor.run(load(SINGLE), Mode.ANALYZE)

    assert calls == []
    assert executor.summary.status == RunStatus.FAILED
    assert executor.summary.completed_at is not None


def test_each_entry_gets_its_own_context(executor, registry):
    contexts = []

    class ContextPlugin(Plugin):
        PLUGIN_NAME = "context"

        def analyze(self, context, params):
            contexts.append(context)
            leaked = getattr(context, "note", None)
            context.note = context.entry_name
            return PluginOutcome(result=leaked is None, detail=str(leaked))

        execute = analyze
        rollback = analyze

    registry.register(ContextPlugin)
    template = load("""
groups:
  - id: G1
    entries:
      - name: first
        action: {plugin: context}
  - id: G2
    entries:
      - name: second
        action: {plugin: context}
""")

    executor.run(template, Mode.ANALYZE)

    first, second = contexts
    assert first is not second
    assert [(c.group_id, c.entry_name) for c in contexts] == [("G1", "first"), ("G2", "second")]
    assert {f.name for f in dataclasses.fields(PluginContext)} == {"adapter", "mode", "group_id", "entry_name"}
    assert all(g.entries[0].history.result is True for g in template.groups)
