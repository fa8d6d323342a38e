"""
Tweak Engine - History Recorder

Builds the immutable History record of one entry and attaches it to the
entry, replacing whatever a previous run left there.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from tweakengine.models import Entry, History


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryRecorder:
    """
    Records per-entry outcomes.

    The clock is injectable so tests can pin timestamps.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utcnow

    def now(self) -> datetime:
        """Current time from the recorder clock (use as start timestamp)."""
        return self.clock()

    def record(
        self,
        entry: Entry,
        started_at: datetime,
        result: bool,
        detail: str,
        system_changed: bool,
        rollback: Optional[Dict[str, Any]] = None,
    ) -> History:
        """
        Create a History and attach it to ``entry``.

        Args:
            entry: Entry that was processed
            started_at: Timestamp taken before processing started
            result: Normalized boolean result
            detail: Free-text detail
            system_changed: Whether the system now carries the entry's change
            rollback: Optional plugin-defined rollback payload

        Returns:
            The attached History
        """
        history = History(
            started_at=started_at,
            completed_at=self.clock(),
            system_changed=system_changed,
            result=result,
            detail=detail,
            rollback=rollback,
        )
        entry.history = history
        return history

    def skip(self, entry: Entry, detail: str, system_changed: bool = False) -> History:
        """Record a synthetic outcome for an entry whose plugin is not invoked."""
        return self.record(
            entry,
            started_at=self.clock(),
            result=False,
            detail=detail,
            system_changed=system_changed,
        )
