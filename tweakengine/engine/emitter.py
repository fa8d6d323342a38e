"""
Tweak Engine - Report Emitter

Serializes a (mutated) template back to the YAML document shape.
The output always uses the flat group layout and re-loads with the
TemplateLoader, so an execute run's output is valid rollback input.
"""

from __future__ import annotations
from typing import Any, Dict
import yaml

from tweakengine.models import Entry, Group, Mode, RunSummary, Template
from tweakengine.engine.executor import SKIP_DISABLED, SKIP_NOT_MARKED
from tweakengine.engine.resolver import NO_PRIOR_CHANGE, ROLLBACK_UNAVAILABLE

SKIP_DETAILS = (SKIP_DISABLED, SKIP_NOT_MARKED, NO_PRIOR_CHANGE, ROLLBACK_UNAVAILABLE)


def template_to_dict(template: Template) -> Dict[str, Any]:
    """Convert a Template to the plain document structure."""
    return {
        "metadata": dict(template.metadata),
        "groups": [_group_to_dict(group) for group in template.groups],
    }


def _group_to_dict(group: Group) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": group.id,
        "name": group.name,
        "enabled": group.enabled,
    }
    if group.description is not None:
        data["description"] = group.description
    data["entries"] = [_entry_to_dict(entry) for entry in group.entries]
    return data


def _entry_to_dict(entry: Entry) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "name": entry.name,
        "enabled": entry.enabled,
        "execute": entry.execute,
    }
    if entry.description is not None:
        data["description"] = entry.description
    data["action"] = {"plugin": entry.action.plugin, **entry.action.blocks}
    if entry.history is not None:
        data["history"] = entry.history.model_dump(mode="json")
    return data


def dump_template(template: Template) -> str:
    """Render a Template as a YAML document."""
    return yaml.safe_dump(
        template_to_dict(template),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


def summarize(template: Template, mode: Mode) -> RunSummary:
    """
    Compute a run summary from the histories attached to ``template``.

    Used for documents loaded from disk, where the executor's own counters
    are not available. Entries without History count towards the totals only.
    """
    summary = RunSummary(
        mode=Mode(mode),
        total_groups=len(template.groups),
        total_entries=sum(len(g.entries) for g in template.groups),
    )
    processed_groups = set()
    for group, entry in template.iter_entries():
        history = entry.history
        if history is None:
            continue
        processed_groups.add(group.id)
        summary.recorded_entries += 1
        if history.detail in SKIP_DETAILS:
            summary.skipped_entries += 1
            continue
        summary.invoked_entries += 1
        if history.result:
            summary.succeeded_entries += 1
        else:
            summary.failed_entries += 1
        if history.system_changed:
            summary.changed_entries += 1
    summary.processed_groups = len(processed_groups)
    return summary
