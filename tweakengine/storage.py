"""
Tweak Engine - Storage Layer

Handles persistence of runs and their artifacts.
Every run gets its own directory holding the submitted template, the
resulting template with History attached and the run summary.
"""

from __future__ import annotations
import json
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional
import logging

from tweakengine.config import get_settings
from tweakengine.models import ArtifactInfo, RunStatus, RunSummary

logger = logging.getLogger(__name__)


class StorageManager:
    """
    Manages storage of runs and artifacts.

    Directory structure:
    <base_path>/
        <run_id>/
            input.yaml          - Template as submitted
            template.yaml       - Template after the run (History attached)
            summary.json        - Run summary
    """

    INPUT_FILE = "input.yaml"
    TEMPLATE_FILE = "template.yaml"
    SUMMARY_FILE = "summary.json"

    def __init__(self, base_path: str = "./artifacts"):
        """Initialize storage manager with base path."""
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Storage initialized at: {self.base_path.absolute()}")

    def is_valid_run_id(self, run_id: str) -> bool:
        """A run ID must name a direct child of the base path."""
        if not run_id:
            return False
        return (self.base_path / run_id).resolve().parent == self.base_path.resolve()

    def _run_path(self, run_id: str) -> Path:
        """Get path for a specific run."""
        if not self.is_valid_run_id(run_id):
            raise ValueError(f"Invalid run ID: {run_id!r}")
        return self.base_path / run_id

    def _ensure_run_dir(self, run_id: str) -> Path:
        run_path = self._run_path(run_id)
        run_path.mkdir(parents=True, exist_ok=True)
        return run_path

    # =========================================================================
    # RUN MANAGEMENT
    # =========================================================================

    def create_run(self, run_id: str, summary: RunSummary, template_yaml: str) -> RunSummary:
        """Create a run directory holding the submitted template and initial summary."""
        run_path = self._ensure_run_dir(run_id)
        (run_path / self.INPUT_FILE).write_text(template_yaml, encoding="utf-8")

        summary.run_id = run_id
        summary.status = RunStatus.CREATED
        self.save_summary(run_id, summary)
        logger.info(f"Created run: {run_id}")
        return summary

    def run_exists(self, run_id: str) -> bool:
        """Check if a run exists."""
        return self.is_valid_run_id(run_id) and self._run_path(run_id).is_dir()

    def get_all_runs(self) -> List[str]:
        """Get all run IDs."""
        if not self.base_path.exists():
            return []
        return sorted(
            d.name for d in self.base_path.iterdir()
            if d.is_dir() and not d.name.startswith(".")
        )

    def delete_run(self, run_id: str) -> bool:
        """Delete a run and all its artifacts."""
        if not self.is_valid_run_id(run_id):
            logger.warning(f"Refusing to delete invalid run ID: {run_id!r}")
            return False
        run_path = self._run_path(run_id)
        if run_path.exists():
            shutil.rmtree(run_path)
            logger.info(f"Deleted run: {run_id}")
            return True
        return False

    # =========================================================================
    # SUMMARY MANAGEMENT
    # =========================================================================

    def save_summary(self, run_id: str, summary: RunSummary) -> None:
        """Save run summary."""
        run_path = self._ensure_run_dir(run_id)
        with open(run_path / self.SUMMARY_FILE, "w", encoding="utf-8") as f:
            json.dump(summary.model_dump(mode="json"), f, indent=2, default=str)
        logger.debug(f"Saved summary for run: {run_id}")

    def load_summary(self, run_id: str) -> Optional[RunSummary]:
        """Load run summary."""
        if not self.is_valid_run_id(run_id):
            return None
        summary_path = self._run_path(run_id) / self.SUMMARY_FILE
        if not summary_path.exists():
            return None
        with open(summary_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return RunSummary(**data)

    # =========================================================================
    # TEMPLATES
    # =========================================================================

    def save_template(self, run_id: str, template_yaml: str) -> str:
        """Save the resulting template document and return its path."""
        return self.save_artifact(run_id, self.TEMPLATE_FILE, template_yaml)

    def load_template_yaml(self, run_id: str) -> Optional[str]:
        """Load the resulting template document, if the run produced one."""
        if not self.is_valid_run_id(run_id):
            return None
        template_path = self._run_path(run_id) / self.TEMPLATE_FILE
        if not template_path.exists():
            return None
        return template_path.read_text(encoding="utf-8")

    # =========================================================================
    # ARTIFACTS
    # =========================================================================

    def save_artifact(self, run_id: str, filename: str, content: Any) -> str:
        """
        Save artifact content.

        Args:
            run_id: Run identifier
            filename: Filename relative to the run directory
            content: Content to save (dict/list -> JSON, str -> text)

        Returns:
            Path to saved artifact
        """
        run_path = self._ensure_run_dir(run_id)
        artifact_path = run_path / filename
        artifact_path.parent.mkdir(parents=True, exist_ok=True)

        with open(artifact_path, "w", encoding="utf-8") as f:
            if isinstance(content, (dict, list)):
                json.dump(content, f, indent=2, default=str)
            else:
                f.write(str(content))

        logger.debug(f"Saved artifact: {artifact_path}")
        return str(artifact_path)

    def list_artifacts(self, run_id: str) -> List[ArtifactInfo]:
        """List all artifacts for a run."""
        if not self.is_valid_run_id(run_id):
            return []
        run_path = self._run_path(run_id)
        if not run_path.exists():
            return []

        artifacts = []
        for item in run_path.rglob("*"):
            if not item.is_file():
                continue
            stat = item.stat()
            artifacts.append(
                ArtifactInfo(
                    name=item.name,
                    path=item.relative_to(run_path).as_posix(),
                    type=self._get_artifact_type(item),
                    size_bytes=stat.st_size,
                    created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return sorted(artifacts, key=lambda a: a.path)

    def _get_artifact_type(self, path: Path) -> str:
        """Determine artifact type from file name."""
        type_map = {
            self.INPUT_FILE: "input",
            self.TEMPLATE_FILE: "template",
            self.SUMMARY_FILE: "summary",
        }
        return type_map.get(path.name, "other")

    def get_artifact_content(self, run_id: str, artifact_path: str) -> Optional[Any]:
        """Get content of a specific artifact by path."""
        if not self.is_valid_run_id(run_id):
            return None
        run_path = self._run_path(run_id).resolve()
        full_path = (run_path / artifact_path).resolve()
        if run_path not in full_path.parents or not full_path.is_file():
            return None

        with open(full_path, "r", encoding="utf-8") as f:
            if full_path.suffix == ".json":
                return json.load(f)
            return f.read()


_storage: Optional[StorageManager] = None


def get_storage() -> StorageManager:
    """Get the storage manager instance, created on first use from settings."""
    global _storage
    if _storage is None:
        _storage = StorageManager(get_settings().artifacts_path)
    return _storage
