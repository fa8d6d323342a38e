"""
Tweak Engine - Mode/Parameter Resolver

Chooses which parameter block of an action is used for the active mode.

Precedence:
1. The mode-qualified block ("analyzeparams", "executeparams", "rollbackparams")
2. The default block ("params"), never in rollback mode

Rollback additionally requires that the entry's previous run changed the
system. An entry without history is treated as unchanged.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from tweakengine.models import Action, History, Mode

BASE_BLOCK = "params"
ROLLBACK_BLOCK = f"{Mode.ROLLBACK.value}{BASE_BLOCK}"

NO_PRIOR_CHANGE = "no prior change"
ROLLBACK_UNAVAILABLE = "rollback instructions unavailable"


@dataclass(frozen=True)
class BlockResolution:
    """Outcome of resolving an action for one mode."""
    block: Optional[str] = None
    skip_reason: Optional[str] = None
    system_changed: bool = False

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None


def override_block_name(mode: Mode) -> str:
    """Name of the mode-qualified parameter block, e.g. ``executeparams``."""
    return f"{Mode(mode).value}{BASE_BLOCK}"


def prior_system_changed(history: Optional[History]) -> bool:
    """Whether the last recorded run changed the system (absent history: no)."""
    return history is not None and history.system_changed


def resolve_block(
    mode: Mode,
    action: Action,
    history: Optional[History] = None,
) -> BlockResolution:
    """
    Resolve the parameter block for ``action`` in ``mode``.

    Args:
        mode: Active run mode
        action: Action carrying the named parameter blocks
        history: History recorded for the entry by a previous run

    Returns:
        BlockResolution naming the block, or a skip reason in rollback mode
    """
    mode = Mode(mode)
    override = override_block_name(mode)

    if mode is not Mode.ROLLBACK:
        if action.has_block(override):
            return BlockResolution(block=override)
        return BlockResolution(block=BASE_BLOCK)

    if not prior_system_changed(history):
        return BlockResolution(skip_reason=NO_PRIOR_CHANGE)
    if not action.has_block(override):
        # The system still carries the change; nothing safe to apply.
        return BlockResolution(skip_reason=ROLLBACK_UNAVAILABLE, system_changed=True)
    return BlockResolution(block=override)
