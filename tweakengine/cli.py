from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence

from tweakengine.config import get_settings
from tweakengine.engine.emitter import SKIP_DETAILS, dump_template
from tweakengine.engine.executor import ExecutionError, create_executor
from tweakengine.engine.loader import TemplateError, TemplateLoader
from tweakengine.models import Entry, Group, History, Mode, RunSummary


class Ansi:
    GREEN = "\033[92m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"


def colorize(text: str, color: Optional[str]) -> str:
    if not color:
        return text
    if not sys.stdout.isatty() or os.environ.get("NO_COLOR"):
        return text
    return f"{color}{text}{Ansi.RESET}"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Template-driven system optimization")
    parser.add_argument("template", type=Path, help="Path to a YAML template")
    parser.add_argument(
        "--mode",
        type=str.lower,
        choices=[m.value for m in Mode],
        default=Mode.ANALYZE.value,
        help="Processing mode (default: analyze)",
    )
    parser.add_argument(
        "--group",
        dest="groups",
        action="append",
        default=[],
        metavar="ID",
        help="Only process this group (repeatable)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Where to write the resulting template (default: <template>.<mode>.yaml)",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        help="System state file for the fake adapter (default from TWEAKENGINE_SYSTEM_STATE_PATH)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Python logging level (default from TWEAKENGINE_LOG_LEVEL or INFO)",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(name)s - %(message)s",
    )


def default_output_path(template_path: Path, mode: Mode) -> Path:
    return template_path.with_name(f"{template_path.stem}.{mode.value}.yaml")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    mode = Mode(args.mode)
    try:
        template = TemplateLoader().parse_file(args.template, mode=mode)
    except TemplateError as exc:
        print(colorize(f"Template validation failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    print(format_header(template.metadata, mode))

    state_path = args.state_file or settings.system_state_path
    try:
        executor = create_executor(
            adapter_type=settings.adapter_type,
            host=settings.host,
            state_path=str(state_path) if state_path else None,
        )
    except ValueError as exc:
        print(colorize(str(exc), Ansi.RED), file=sys.stderr)
        return 1
    executor.set_progress_callback(print_entry)

    try:
        executor.run(template, mode, groups=args.groups or None)
    except ExecutionError as exc:
        if logging.getLogger().isEnabledFor(logging.DEBUG):
            raise
        print(colorize(f"Execution failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    output = args.output or default_output_path(args.template, mode)
    output.write_text(dump_template(template), encoding="utf-8")

    print(render_summary(executor.summary))
    print(f"Template written to {output}")
    return 0


def format_header(metadata: Dict[str, str], mode: Mode) -> str:
    lines = [f"{name}: {value}" for name, value in metadata.items()]
    lines.append(f"mode: {mode.value}")
    return "\n".join(lines)


def format_entry(group: Group, entry: Entry, history: History) -> str:
    if history.detail in SKIP_DETAILS:
        status, color = "skipped", Ansi.BLUE
    elif history.result:
        status = "changed" if history.system_changed else "ok"
        color = Ansi.GREEN if history.system_changed else None
    else:
        status, color = "failed", Ansi.RED
    line = f"[{group.id}] {entry.name} {status} - {history.detail}"
    return colorize(line, color)


def print_entry(group: Group, entry: Entry, history: History) -> None:
    print(format_entry(group, entry, history), flush=True)


def render_summary(summary: Optional[RunSummary]) -> str:
    if summary is None:
        return "No summary"
    text = (
        f"Summary: {summary.invoked_entries} invoked, "
        f"{summary.succeeded_entries} succeeded, "
        f"{summary.failed_entries} failed, "
        f"{summary.skipped_entries} skipped, "
        f"{summary.changed_entries} changed"
    )
    return colorize(text, Ansi.RED if summary.failed_entries else Ansi.GREEN)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
