"""
Tweak Engine - Registry Value Plugin

Sets or removes registry values (policies, telemetry switches, UI tweaks).
"""

from __future__ import annotations
from typing import Any, Dict, List
import logging

from tweakengine.plugins.base import DesiredStatePlugin, PluginContext, PluginRegistry

logger = logging.getLogger(__name__)


class RegistryValuePlugin(DesiredStatePlugin):
    """
    Plugin for registry values.

    Parameters:
        path: Registry key path
        name: Value name
        value: Desired data (required when ensure=present)
        kind: Value type, default dword
        ensure: present (default) or absent

    The rollback block has the same shape, so restoring a value is just
    applying the captured block.
    """

    PLUGIN_NAME = "registry"

    SUPPORTED_KINDS = ["dword", "qword", "string", "expand_string", "multi_string", "binary"]
    SUPPORTED_ENSURE = ["present", "absent"]

    def validate(self, params: Dict[str, Any]) -> List[str]:
        """Validate registry parameters."""
        errors = super().validate(params)
        if errors:
            return errors

        errors.extend(self.require(params, "path", "name"))

        ensure = params.get("ensure", "present")
        if ensure not in self.SUPPORTED_ENSURE:
            errors.append(
                f"Unknown ensure '{ensure}'. Supported: {self.SUPPORTED_ENSURE}"
            )
        elif ensure == "present" and "value" not in params:
            errors.append("'value' is required when ensure is present")

        kind = params.get("kind", "dword")
        if kind not in self.SUPPORTED_KINDS:
            errors.append(f"Unknown kind '{kind}'. Supported: {self.SUPPORTED_KINDS}")

        return errors

    def describe(self, params: Dict[str, Any]) -> str:
        return f"{params.get('path')}\\{params.get('name')}"

    def inspect(self, context: PluginContext, params: Dict[str, Any]) -> tuple[bool, str]:
        current = context.adapter.get_registry_value(params["path"], params["name"])
        if current is None:
            return params.get("ensure", "present") == "absent", "absent"

        description = f"{current.value!r} ({current.kind})"
        if params.get("ensure", "present") == "absent":
            return False, description
        matches = current.value == params["value"] and current.kind == params.get("kind", "dword")
        return matches, description

    def capture(self, context: PluginContext, params: Dict[str, Any]) -> Dict[str, Any]:
        current = context.adapter.get_registry_value(params["path"], params["name"])
        if current is None:
            return {"path": params["path"], "name": params["name"], "ensure": "absent"}
        return {
            "path": current.path,
            "name": current.name,
            "ensure": "present",
            "value": current.value,
            "kind": current.kind,
        }

    def apply(self, context: PluginContext, params: Dict[str, Any]) -> None:
        if params.get("ensure", "present") == "absent":
            context.adapter.delete_registry_value(params["path"], params["name"])
            return
        context.adapter.set_registry_value(
            params["path"],
            params["name"],
            params["value"],
            params.get("kind", "dword"),
        )


# Register plugin
PluginRegistry.register(RegistryValuePlugin)
