"""
Tweak Engine - Fake System Adapter

Simulates a Windows-like host for prototyping and testing.
Stores registry values, service startup types and files in memory,
with optional JSON persistence so separate runs share one system.
"""

from __future__ import annotations
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from tweakengine.adapters.base import (
    AdapterError,
    AdapterFactory,
    RegistryValue,
    SystemAdapter,
)

logger = logging.getLogger(__name__)


class FakeSystemAdapter(SystemAdapter):
    """
    Fake system adapter for simulation and prototyping.

    Features:
    - In-memory registry (case-insensitive key paths and value names)
    - Service catalogue with startup types
    - Flat file store
    - Operation log for auditing
    - State persistence to JSON (loaded on connect, written on disconnect)

    State layout (also accepted as ``initial_state``):
        {
            "registry": [{"path": ..., "name": ..., "value": ..., "kind": ...}],
            "services": {"DiagTrack": "automatic"},
            "files": {"C:\\\\path": "content"}
        }
    """

    def __init__(
        self,
        host: str = "localhost",
        initial_state: Optional[Dict[str, Any]] = None,
        state_path: Optional[str] = None,
    ):
        """
        Initialize Fake System Adapter.

        Args:
            host: Simulated host name
            initial_state: Optional seed state
            state_path: Optional path to persist state between runs
        """
        super().__init__(host)
        self.state_path = Path(state_path) if state_path else None

        # In-memory storage
        self._registry: Dict[str, Dict[str, Any]] = {}
        self._services: Dict[str, Dict[str, str]] = {}
        self._files: Dict[str, str] = {}
        self._operations: List[Dict[str, Any]] = []
        self._connected = False

        if initial_state:
            self._load_state(initial_state)

        logger.info(f"FakeSystemAdapter initialized: host={host}")

    @staticmethod
    def _registry_key(path: str, name: str) -> str:
        """Create case-insensitive lookup key for a registry value."""
        return f"{path.lower()}\\{name.lower()}"

    def _log_operation(self, operation: str, target: str, **details: Any) -> None:
        self._operations.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "operation": operation,
            "target": target,
            **details,
        })

    def connect(self) -> bool:
        """Simulate connection; loads persisted state if present."""
        if self.state_path and self.state_path.exists():
            self.import_state(str(self.state_path))
        self._connected = True
        logger.info(f"Connected to fake system: {self.host}")
        return True

    def disconnect(self) -> None:
        """Simulate disconnection; persists state if a state path is set."""
        if self.state_path:
            self.export_state()
        self._connected = False
        logger.info(f"Disconnected from fake system: {self.host}")

    # Registry ---------------------------------------------------------------

    def get_registry_value(self, path: str, name: str) -> Optional[RegistryValue]:
        """Read a registry value."""
        entry = self._registry.get(self._registry_key(path, name))
        if entry is None:
            return None
        return RegistryValue(
            path=entry["path"],
            name=entry["name"],
            value=entry["value"],
            kind=entry.get("kind", "dword"),
        )

    def set_registry_value(self, path: str, name: str, value: Any, kind: str = "dword") -> None:
        """Create or overwrite a registry value."""
        self._registry[self._registry_key(path, name)] = {
            "path": path,
            "name": name,
            "value": value,
            "kind": kind,
        }
        self._log_operation("set_registry_value", f"{path}\\{name}", value=value, kind=kind)
        logger.debug(f"Registry set: {path}\\{name}={value!r} ({kind})")

    def delete_registry_value(self, path: str, name: str) -> bool:
        """Delete a registry value."""
        removed = self._registry.pop(self._registry_key(path, name), None)
        if removed is None:
            return False
        self._log_operation("delete_registry_value", f"{path}\\{name}")
        logger.debug(f"Registry delete: {path}\\{name}")
        return True

    # Services ---------------------------------------------------------------

    def get_service_startup(self, name: str) -> Optional[str]:
        """Read the startup type of a service."""
        service = self._services.get(name.lower())
        return service["startup"] if service else None

    def set_service_startup(self, name: str, startup: str) -> None:
        """Change the startup type of an installed service."""
        service = self._services.get(name.lower())
        if service is None:
            raise AdapterError(f"Service not installed: {name}", target=name)
        service["startup"] = startup
        self._log_operation("set_service_startup", name, startup=startup)
        logger.debug(f"Service {name} startup -> {startup}")

    def install_service(self, name: str, startup: str = "automatic") -> None:
        """Add a service to the simulated catalogue (test/seed helper)."""
        self._services[name.lower()] = {"name": name, "startup": startup}

    # Files ------------------------------------------------------------------

    def read_file(self, path: str) -> Optional[str]:
        """Return file content or None."""
        return self._files.get(path)

    def write_file(self, path: str, content: str) -> None:
        """Create or overwrite a file."""
        self._files[path] = content
        self._log_operation("write_file", path, size=len(content))

    def remove_file(self, path: str) -> bool:
        """Remove a file."""
        if path not in self._files:
            return False
        del self._files[path]
        self._log_operation("remove_file", path)
        return True

    # State ------------------------------------------------------------------

    def get_state(self) -> Dict[str, Any]:
        """Get current adapter state."""
        return {
            "host": self.host,
            "connected": self._connected,
            "operation_count": len(self._operations),
            "registry_values": len(self._registry),
            "services": len(self._services),
            "files": len(self._files),
        }

    def reset(self) -> None:
        """Reset adapter state."""
        self._registry = {}
        self._services = {}
        self._files = {}
        self._operations = []
        logger.info(f"Fake system adapter reset: {self.host}")

    def snapshot(self) -> Dict[str, Any]:
        """Return the full simulated system in the persisted layout."""
        return {
            "registry": [dict(entry) for entry in self._registry.values()],
            "services": {s["name"]: s["startup"] for s in self._services.values()},
            "files": dict(self._files),
        }

    def _load_state(self, state: Dict[str, Any]) -> None:
        self.reset()
        for entry in state.get("registry", []):
            self._registry[self._registry_key(entry["path"], entry["name"])] = {
                "path": entry["path"],
                "name": entry["name"],
                "value": entry.get("value"),
                "kind": entry.get("kind", "dword"),
            }
        for name, startup in state.get("services", {}).items():
            self.install_service(name, startup)
        self._files = dict(state.get("files", {}))

    def export_state(self, path: Optional[str] = None) -> str:
        """Export current state to JSON file (``path`` or the configured state file)."""
        export_path = Path(path) if path else self.state_path
        if not export_path:
            raise AdapterError("No state file configured for export", target=self.host)

        state = {
            "metadata": {
                "host": self.host,
                "exported_at": datetime.now(timezone.utc).isoformat(),
                "operation_count": len(self._operations),
            },
            **self.snapshot(),
            "operations": self._operations[-100:],  # Last 100 operations
        }

        export_path.parent.mkdir(parents=True, exist_ok=True)
        with open(export_path, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2, default=str)

        logger.info(f"State exported to: {export_path}")
        return str(export_path)

    def import_state(self, path: str) -> None:
        """Import state from JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            state = json.load(f)

        self._load_state(state)
        self._operations = state.get("operations", [])
        logger.info(f"State imported from: {path}")


# Register adapter with factory
AdapterFactory.register("fake", FakeSystemAdapter)
