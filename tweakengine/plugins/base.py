"""
Tweak Engine - Base Plugin Interface

Defines the plugin interface and registry for extensibility.
All action plugins must inherit from the Plugin base class and implement
one method per processing mode.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type
import logging

from tweakengine.adapters.base import AdapterError, SystemAdapter
from tweakengine.models import Mode

logger = logging.getLogger(__name__)


@dataclass
class PluginContext:
    """
    Execution context passed to plugins.

    Contains everything a plugin needs to act on one entry:
    - System adapter for target access
    - Active mode
    - Location of the entry in the template

    A fresh context is built for every entry; nothing carries over
    between calls.
    """
    adapter: SystemAdapter
    mode: Mode
    group_id: str
    entry_name: str


@dataclass
class PluginOutcome:
    """
    Value returned by every plugin call.

    ``result`` must be a genuine bool; the executor coerces anything else
    to a failure. ``rollback`` is only meaningful when ``changed`` is true
    in execute mode and is later used as the entry's rollback parameters.
    """
    result: Any
    detail: str = ""
    changed: bool = False
    rollback: Optional[Dict[str, Any]] = None


class Plugin(ABC):
    """
    Abstract base class for all action plugins.

    Each plugin:
    - Knows one kind of system change
    - Analyzes, executes or rolls back that change through the adapter
    - Returns a PluginOutcome and never keeps per-entry state
    """

    # Plugin metadata (override in subclasses)
    PLUGIN_NAME: str = "base"

    def __init__(self):
        """Initialize plugin."""
        self.logger = logging.getLogger(f"plugin.{self.PLUGIN_NAME}")

    @abstractmethod
    def analyze(self, context: PluginContext, params: Dict[str, Any]) -> PluginOutcome:
        """
        Report whether the system already matches ``params``.

        Must not change the system.
        """
        pass

    @abstractmethod
    def execute(self, context: PluginContext, params: Dict[str, Any]) -> PluginOutcome:
        """
        Apply the change described by ``params``.

        Returns:
            PluginOutcome with rollback instructions when the system changed
        """
        pass

    @abstractmethod
    def rollback(self, context: PluginContext, params: Dict[str, Any]) -> PluginOutcome:
        """Apply previously captured rollback instructions."""
        pass

    def validate(self, params: Dict[str, Any]) -> List[str]:
        """
        Validate a parameter block.

        Args:
            params: Block selected for the current mode

        Returns:
            List of validation errors (empty if valid)
        """
        if not isinstance(params, dict):
            return [f"parameters must be a mapping, got {type(params).__name__}"]
        return []

    def invoke(self, mode: Mode, context: PluginContext, params: Dict[str, Any]) -> PluginOutcome:
        """Dispatch to the method matching ``mode``."""
        handlers = {
            Mode.ANALYZE: self.analyze,
            Mode.EXECUTE: self.execute,
            Mode.ROLLBACK: self.rollback,
        }
        return handlers[Mode(mode)](context, params)

    @staticmethod
    def require(params: Dict[str, Any], *keys: str) -> List[str]:
        """Return errors for missing required keys."""
        return [f"'{key}' is required" for key in keys if params.get(key) in (None, "")]


class DesiredStatePlugin(Plugin):
    """
    Plugin for changes that can be expressed as a desired state.

    Subclasses describe how to inspect, capture and apply the state; the
    three modes are derived from that:
    - analyze: compare only
    - execute: capture previous state, then apply
    - rollback: apply the captured state
    Adapter errors become a failed outcome for the entry.
    """

    @abstractmethod
    def describe(self, params: Dict[str, Any]) -> str:
        """Human-readable label of the target (used in details)."""
        pass

    @abstractmethod
    def inspect(self, context: PluginContext, params: Dict[str, Any]) -> tuple[bool, str]:
        """
        Compare the system with ``params``.

        Returns:
            Tuple of (matches, description of the current state)
        """
        pass

    @abstractmethod
    def capture(self, context: PluginContext, params: Dict[str, Any]) -> Dict[str, Any]:
        """Return a parameter block that restores the current state."""
        pass

    @abstractmethod
    def apply(self, context: PluginContext, params: Dict[str, Any]) -> None:
        """Bring the system to the state described by ``params``."""
        pass

    def analyze(self, context: PluginContext, params: Dict[str, Any]) -> PluginOutcome:
        target = self.describe(params)
        matches, current = self.inspect(context, params)
        state = "compliant" if matches else "not compliant"
        return PluginOutcome(result=matches, detail=f"{target}: {state} ({current})")

    def execute(self, context: PluginContext, params: Dict[str, Any]) -> PluginOutcome:
        target = self.describe(params)
        try:
            matches, current = self.inspect(context, params)
            if matches:
                return PluginOutcome(result=True, detail=f"{target}: already compliant ({current})")
            previous = self.capture(context, params)
            self.apply(context, params)
        except AdapterError as e:
            self.logger.error(f"{target}: {e.message}")
            return PluginOutcome(result=False, detail=f"{target}: {e.message}")
        self.logger.debug(f"{target}: applied, was {current}")
        return PluginOutcome(
            result=True,
            detail=f"{target}: applied (was {current})",
            changed=True,
            rollback=previous,
        )

    def rollback(self, context: PluginContext, params: Dict[str, Any]) -> PluginOutcome:
        target = self.describe(params)
        try:
            matches, current = self.inspect(context, params)
            if matches:
                return PluginOutcome(result=True, detail=f"{target}: already restored ({current})")
            self.apply(context, params)
        except AdapterError as e:
            self.logger.error(f"{target}: {e.message}")
            return PluginOutcome(result=False, detail=f"{target}: {e.message}")
        return PluginOutcome(result=True, detail=f"{target}: restored (was {current})", changed=True)


class PluginRegistry:
    """
    Registry for managing available plugins.

    Usage:
        PluginRegistry.register(ServicePlugin)
        plugin = PluginRegistry.get("service")
    """

    _plugins: Dict[str, Type[Plugin]] = {}

    @classmethod
    def register(cls, plugin_class: Type[Plugin]) -> None:
        """Register a plugin class."""
        name = plugin_class.PLUGIN_NAME.lower()
        cls._plugins[name] = plugin_class
        logger.info(f"Registered plugin: {name}")

    @classmethod
    def get(cls, name: str) -> Optional[Plugin]:
        """Get plugin instance by name."""
        plugin_class = cls._plugins.get(name.lower())
        if plugin_class:
            return plugin_class()
        return None

    @classmethod
    def available(cls) -> List[str]:
        """Get list of available plugin names."""
        return list(cls._plugins.keys())
