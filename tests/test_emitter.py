from __future__ import annotations

import yaml

from tweakengine.engine.emitter import dump_template, summarize, template_to_dict
from tweakengine.engine.loader import TemplateLoader
from tweakengine.models import Mode

LEGACY = """
metadata:
  - name: title
    value: Legacy
categories:
  - name: Privacy
    groups:
      - id: g1
        name: Telemetry
        description: Diagnostic data
        entries:
          - name: e1
            description: Turn it off
            action:
              plugin: recording
              Params: {x: 1}
"""


def test_legacy_document_is_written_flat():
    data = template_to_dict(TemplateLoader().parse(LEGACY))

    assert list(data) == ["metadata", "groups"]
    assert data["metadata"] == {"title": "Legacy"}
    group = data["groups"][0]
    assert list(group) == ["id", "name", "enabled", "description", "entries"]
    assert group["entries"][0]["action"] == {"plugin": "recording", "params": {"x": 1}}
    assert "history" not in group["entries"][0]


def test_dump_reloads_to_equal_template(executor):
    template = TemplateLoader().parse(LEGACY)
    executor.run(template, Mode.EXECUTE)

    document = dump_template(template)

    assert TemplateLoader().parse(document) == template
    entry = yaml.safe_load(document)["groups"][0]["entries"][0]
    assert list(entry["history"]) == [
        "started_at", "completed_at", "system_changed", "result", "detail", "rollback",
    ]
    assert entry["history"]["started_at"].startswith("2026-01-01T12:00:00")


def test_summarize_counts_histories(executor):
    template = TemplateLoader().parse("""
groups:
  - id: g1
    entries:
      - name: a
        action: {plugin: recording, params: {x: 1}}
      - name: b
        execute: false
        action: {plugin: recording, params: {x: 2}}
  - id: g2
    enabled: false
    entries:
      - name: c
        action: {plugin: recording, params: {x: 3}}
""")
    executor.run(template, Mode.EXECUTE)

    summary = summarize(TemplateLoader().parse(dump_template(template)), Mode.EXECUTE)

    assert (summary.total_groups, summary.processed_groups) == (2, 1)
    assert (summary.total_entries, summary.recorded_entries) == (3, 2)
    assert (summary.invoked_entries, summary.succeeded_entries, summary.skipped_entries) == (1, 1, 1)
    assert summary.changed_entries == 1
