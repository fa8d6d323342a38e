"""
Tweak Engine - Template Executor

Walks a template's groups and entries in document order, resolves the
parameter block for the active mode, dispatches to action plugins and
attaches a History record to every processed entry.
"""

from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Type
import logging

from tweakengine.models import Entry, Group, History, Mode, RunStatus, RunSummary, Template
from tweakengine.plugins.base import PluginContext, PluginOutcome, PluginRegistry
from tweakengine.adapters.base import AdapterFactory, SystemAdapter
from tweakengine.engine.history import HistoryRecorder
from tweakengine.engine.resolver import ROLLBACK_BLOCK, resolve_block

logger = logging.getLogger(__name__)

SKIP_DISABLED = "disabled"
SKIP_NOT_MARKED = "not marked for execution"


class EntryStatus(str, Enum):
    """Outcome class of one processed entry."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionError(Exception):
    """Exception raised when a run has to be aborted."""

    def __init__(
        self,
        message: str,
        group_id: Optional[str] = None,
        entry_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.group_id = group_id
        self.entry_name = entry_name
        self.original_error = original_error
        super().__init__(self.message)


class TemplateExecutor:
    """
    Executes a template in one mode.

    Responsibilities:
    - Apply the group filter and the group/entry flags
    - Resolve the parameter block per entry and mode
    - Route entries to their plugins
    - Normalize plugin outcomes
    - Record History on every processed entry

    Error Handling:
    - Skips and plugin contract violations are recorded per entry
    - An exception raised by a plugin aborts the whole run
    - Unknown plugins are detected before any entry is processed
    """

    def __init__(
        self,
        adapter: SystemAdapter,
        registry: Type[PluginRegistry] = PluginRegistry,
        recorder: Optional[HistoryRecorder] = None,
    ):
        """
        Initialize executor.

        Args:
            adapter: Adapter for the target system
            registry: Plugin registry to resolve plugin names
            recorder: History recorder (default: UTC wall clock)
        """
        self.adapter = adapter
        self.registry = registry
        self.recorder = recorder or HistoryRecorder()
        self.logger = logging.getLogger(__name__)

        # Execution state
        self.summary: Optional[RunSummary] = None
        self._progress_callback: Optional[Callable[[Group, Entry, History], None]] = None

    def set_progress_callback(self, callback: Callable[[Group, Entry, History], None]) -> None:
        """
        Set callback for per-entry progress updates.

        Args:
            callback: Function(group, entry, history)
        """
        self._progress_callback = callback

    def _report_progress(self, group: Group, entry: Entry, history: History) -> None:
        """Report progress via callback if set."""
        if self._progress_callback:
            self._progress_callback(group, entry, history)

    def run(
        self,
        template: Template,
        mode: Mode,
        groups: Optional[Iterable[str]] = None,
    ) -> Template:
        """
        Process ``template`` in ``mode``.

        Args:
            template: Loaded template; mutated in place
            mode: Analyze, execute or rollback
            groups: Optional group IDs to restrict processing to

        Returns:
            The same template with History attached to processed entries

        Raises:
            ExecutionError: On unknown plugins or a failing plugin call
        """
        mode = Mode(mode)
        group_filter = set(groups or [])
        started_at = datetime.now(timezone.utc)

        summary = RunSummary(
            mode=mode,
            status=RunStatus.RUNNING,
            started_at=started_at,
            total_groups=len(template.groups),
            total_entries=sum(len(g.entries) for g in template.groups),
        )
        self.summary = summary

        self.logger.info(
            f"Starting {mode.value} run over {summary.total_groups} groups"
            + (f" (filter: {', '.join(sorted(group_filter))})" if group_filter else "")
        )

        connected = False
        try:
            self._check_plugins(template, mode, group_filter)

            if not self.adapter.connect():
                raise ExecutionError(f"Cannot connect to target system: {self.adapter.host}")
            connected = True

            for group in template.groups:
                if not self._group_selected(group, group_filter):
                    continue
                summary.processed_groups += 1

                for entry in group.entries:
                    history, status, invoked = self._process_entry(group, entry, mode)
                    self._count(summary, history, status, invoked)
                    self._log_entry(group, entry, history, status)
                    self._report_progress(group, entry, history)
        except ExecutionError as e:
            summary.status = RunStatus.FAILED
            summary.error_message = e.message
            raise
        finally:
            if connected:
                self.adapter.disconnect()
            summary.completed_at = datetime.now(timezone.utc)
            summary.duration_seconds = (summary.completed_at - started_at).total_seconds()

        summary.status = RunStatus.COMPLETED
        self.logger.info(
            f"Run completed: {summary.invoked_entries} invoked, "
            f"{summary.succeeded_entries} succeeded, {summary.failed_entries} failed, "
            f"{summary.skipped_entries} skipped"
        )
        return template

    def _group_selected(self, group: Group, group_filter: Set[str]) -> bool:
        if group_filter and group.id not in group_filter:
            self.logger.debug(f"Group {group.id} not in filter, skipping")
            return False
        if not group.enabled:
            self.logger.info(f"Group {group.id} is disabled, skipping")
            return False
        return True

    def _check_plugins(self, template: Template, mode: Mode, group_filter: Set[str]) -> None:
        """Verify every plugin this run will call is registered."""
        missing: List[str] = []
        for group in template.groups:
            if (group_filter and group.id not in group_filter) or not group.enabled:
                continue
            for entry in group.entries:
                if not (entry.enabled and entry.execute):
                    continue
                if resolve_block(mode, entry.action, entry.history).skipped:
                    continue
                if self.registry.get(entry.action.plugin) is None:
                    missing.append(f"{group.id}/{entry.name}: {entry.action.plugin}")

        if missing:
            raise ExecutionError(
                f"Plugin not found for entries: {'; '.join(missing)}. "
                f"Available: {self.registry.available()}"
            )
        self.logger.debug("Plugins verified")

    def _process_entry(self, group: Group, entry: Entry, mode: Mode) -> Tuple[History, EntryStatus, bool]:
        """
        Process a single entry.

        Returns:
            Tuple of (attached history, status, whether the plugin was invoked)
        """
        if not entry.enabled:
            return self.recorder.skip(entry, SKIP_DISABLED), EntryStatus.SKIPPED, False
        if not entry.execute:
            return self.recorder.skip(entry, SKIP_NOT_MARKED), EntryStatus.SKIPPED, False

        resolution = resolve_block(mode, entry.action, entry.history)
        if resolution.skipped:
            history = self.recorder.skip(
                entry,
                resolution.skip_reason,
                system_changed=resolution.system_changed,
            )
            return history, EntryStatus.SKIPPED, False

        params = entry.action.block(resolution.block)
        if params is None:
            params = {}
        plugin_name = entry.action.plugin
        plugin = self.registry.get(plugin_name)
        if plugin is None:
            raise ExecutionError(
                f"Plugin not found: {plugin_name}",
                group_id=group.id,
                entry_name=entry.name,
            )

        started_at = self.recorder.now()

        # Validate parameters
        validation_errors = plugin.validate(params)
        if validation_errors:
            history = self.recorder.record(
                entry,
                started_at,
                result=False,
                detail=f"Validation failed: {'; '.join(validation_errors)}",
                system_changed=mode is Mode.ROLLBACK,
            )
            return history, EntryStatus.FAILED, False

        context = PluginContext(
            adapter=self.adapter,
            mode=mode,
            group_id=group.id,
            entry_name=entry.name,
        )

        # Invoke plugin
        try:
            outcome = plugin.invoke(mode, context, params)
        except Exception as e:
            self.logger.exception(f"Plugin {plugin_name} failed on {group.id}/{entry.name}")
            raise ExecutionError(
                f"Plugin '{plugin_name}' failed on entry '{entry.name}' "
                f"in group '{group.id}': {e}",
                group_id=group.id,
                entry_name=entry.name,
                original_error=e,
            ) from e

        result, detail, changed, rollback = self._normalize(outcome, plugin_name, group, entry)

        if mode is Mode.EXECUTE and changed and rollback is not None:
            # Captured instructions become the entry's rollback block.
            entry.action.blocks[ROLLBACK_BLOCK] = rollback
        if mode is Mode.ROLLBACK:
            changed = not result

        history = self.recorder.record(
            entry,
            started_at,
            result=result,
            detail=detail,
            system_changed=changed,
            rollback=rollback,
        )
        status = EntryStatus.SUCCEEDED if result else EntryStatus.FAILED
        return history, status, True

    def _normalize(
        self,
        outcome: Any,
        plugin_name: str,
        group: Group,
        entry: Entry,
    ) -> Tuple[bool, str, bool, Optional[Dict[str, Any]]]:
        """
        Normalize a plugin outcome.

        A missing outcome or a non-boolean result is coerced to a failure
        and the detail replaced by a diagnostic.

        Returns:
            Tuple of (result, detail, changed, rollback)
        """
        if not isinstance(outcome, PluginOutcome):
            diagnostic = (
                f"Plugin '{plugin_name}' returned no outcome for entry '{entry.name}' "
                f"in group '{group.id}': got {type(outcome).__name__} {outcome!r}"
            )
            self.logger.warning(diagnostic)
            return False, diagnostic, False, None

        changed = outcome.changed is True
        rollback = outcome.rollback
        if rollback is not None and not isinstance(rollback, dict):
            self.logger.warning(
                f"Plugin '{plugin_name}' returned a non-mapping rollback payload for "
                f"entry '{entry.name}' in group '{group.id}'; dropping it"
            )
            rollback = None

        if not isinstance(outcome.result, bool):
            diagnostic = (
                f"Plugin '{plugin_name}' returned a non-boolean result for entry "
                f"'{entry.name}' in group '{group.id}': "
                f"{type(outcome.result).__name__} {outcome.result!r}"
            )
            self.logger.warning(diagnostic)
            return False, diagnostic, changed, rollback

        return outcome.result, str(outcome.detail or ""), changed, rollback

    @staticmethod
    def _count(summary: RunSummary, history: History, status: EntryStatus, invoked: bool) -> None:
        summary.recorded_entries += 1
        if invoked:
            summary.invoked_entries += 1
            if history.system_changed:
                summary.changed_entries += 1
        if status is EntryStatus.SUCCEEDED:
            summary.succeeded_entries += 1
        elif status is EntryStatus.FAILED:
            summary.failed_entries += 1
        else:
            summary.skipped_entries += 1

    def _log_entry(self, group: Group, entry: Entry, history: History, status: EntryStatus) -> None:
        line = f"[{group.id}] {entry.name}: {status.value} - {history.detail}"
        if status is EntryStatus.FAILED:
            self.logger.warning(line)
        else:
            self.logger.info(line)


# Factory function
def create_executor(
    adapter_type: str = "fake",
    host: str = "localhost",
    registry: Type[PluginRegistry] = PluginRegistry,
    **adapter_kwargs: Any,
) -> TemplateExecutor:
    """
    Create a template executor with a new adapter.

    Args:
        adapter_type: Type of adapter to use ("fake" for simulation)
        host: Target host name
        registry: Plugin registry
        **adapter_kwargs: Adapter-specific arguments (e.g. state_path)

    Returns:
        Configured TemplateExecutor
    """
    adapter = AdapterFactory.create(adapter_type, host=host, **adapter_kwargs)
    return TemplateExecutor(adapter=adapter, registry=registry)
