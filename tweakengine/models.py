"""
Tweak Engine - Domain Models

Defines the pydantic models for the definition tree (template, groups,
entries, actions), the per-entry history record and the run/API payloads.
These models form the core data structures that flow through the loader,
the executor and the report emitter.
"""

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================

class Mode(str, Enum):
    """Processing mode of a run. Global for the whole run."""
    ANALYZE = "analyze"
    EXECUTE = "execute"
    ROLLBACK = "rollback"

    @classmethod
    def _missing_(cls, value):
        # Accept "Execute", "ROLLBACK", ...
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return None


class RunStatus(str, Enum):
    """Overall status of a run submitted through the API."""
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# DEFINITION TREE (YAML -> Domain Model)
# =============================================================================

class History(BaseModel):
    """
    Outcome of processing one entry in one run.

    Immutable once created; a later run replaces it rather than merging.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    started_at: datetime
    completed_at: datetime
    system_changed: bool = False
    result: bool = False
    detail: str = ""
    rollback: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Plugin-defined rollback instructions, stored as-is",
    )


class Action(BaseModel):
    """Plugin reference plus its named parameter blocks."""
    plugin: str = Field(..., min_length=1, description="Registered plugin name")
    blocks: Dict[str, Any] = Field(
        default_factory=dict,
        description="Parameter blocks keyed by lower-case name (params, executeparams, ...)",
    )

    def has_block(self, name: str) -> bool:
        return name.lower() in self.blocks

    def block(self, name: str) -> Any:
        return self.blocks.get(name.lower())


class Entry(BaseModel):
    """One optimization instruction bound to exactly one action."""
    name: str = Field(..., description="Display name")
    enabled: bool = True
    execute: bool = True
    description: Optional[str] = None
    action: Action
    history: Optional[History] = None


class Group(BaseModel):
    """Independently enable-able collection of entries."""
    id: str = Field(..., description="Stable group identifier")
    name: str = Field(default="", description="Display name")
    enabled: bool = True
    description: Optional[str] = None
    entries: List[Entry] = Field(default_factory=list)


class Template(BaseModel):
    """
    Complete definition document for one optimization run.

    Always holds a flat group sequence, whichever on-disk layout it was
    loaded from.
    """
    metadata: Dict[str, str] = Field(default_factory=dict)
    groups: List[Group] = Field(default_factory=list)

    def iter_entries(self):
        for group in self.groups:
            for entry in group.entries:
                yield group, entry


# =============================================================================
# RUN MODELS
# =============================================================================

class RunSummary(BaseModel):
    """Summary of one engine run over a template."""
    run_id: Optional[str] = None
    mode: Mode
    status: RunStatus = RunStatus.COMPLETED
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    # Group statistics
    total_groups: int = 0
    processed_groups: int = 0

    # Entry statistics
    total_entries: int = 0
    recorded_entries: int = 0
    invoked_entries: int = 0
    succeeded_entries: int = 0
    failed_entries: int = 0
    skipped_entries: int = 0
    changed_entries: int = 0

    error_message: Optional[str] = None
    artifacts: List[str] = Field(default_factory=list)


# =============================================================================
# API MODELS
# =============================================================================

class RunCreateRequest(BaseModel):
    """Request to create a new run."""
    template_yaml: str = Field(..., description="YAML template document")
    mode: Mode = Field(default=Mode.ANALYZE, description="Processing mode")
    groups: List[str] = Field(
        default_factory=list,
        description="Restrict processing to these group IDs (empty = all)",
    )


class RunCreateResponse(BaseModel):
    """Response after creating a run."""
    run_id: str
    status: RunStatus
    message: str


class RunStatusResponse(BaseModel):
    """Response for run status query."""
    run_id: str
    status: RunStatus
    message: Optional[str] = None
    current_entry: Optional[str] = None
    summary: Optional[RunSummary] = None


class ArtifactInfo(BaseModel):
    """Information about a generated artifact."""
    name: str
    path: str
    type: str
    size_bytes: int
    created_at: datetime


class ArtifactsResponse(BaseModel):
    """Response containing list of artifacts."""
    run_id: str
    artifacts: List[ArtifactInfo] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    run_id: Optional[str] = None
