"""
Tweak Engine - Engine Package

Core engine that processes an optimization template:
- Loader: Validates and parses YAML templates
- Resolver: Chooses the parameter block per entry and mode
- Executor: Runs entries using plugins and adapters
- History: Records the per-entry outcome
- Emitter: Writes the mutated template back out
"""

from tweakengine.engine.loader import TemplateLoader, TemplateError
from tweakengine.engine.resolver import resolve_block
from tweakengine.engine.history import HistoryRecorder
from tweakengine.engine.executor import TemplateExecutor, ExecutionError
from tweakengine.engine.emitter import dump_template, summarize

__all__ = [
    "TemplateLoader",
    "TemplateError",
    "resolve_block",
    "HistoryRecorder",
    "TemplateExecutor",
    "ExecutionError",
    "dump_template",
    "summarize",
]
