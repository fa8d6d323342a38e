"""
Tweak Engine - File Plugin

Removes (or restores) files such as scheduled telemetry tasks or
bundled shortcuts. The removed content is kept in the rollback block.
"""

from __future__ import annotations
from typing import Any, Dict, List

from tweakengine.plugins.base import DesiredStatePlugin, PluginContext, PluginRegistry


class FilePlugin(DesiredStatePlugin):
    """
    Plugin for file presence.

    Parameters:
        path: File path
        ensure: absent (default) or present
        content: File content (required when ensure=present)
    """

    PLUGIN_NAME = "file"

    SUPPORTED_ENSURE = ["absent", "present"]

    def validate(self, params: Dict[str, Any]) -> List[str]:
        """Validate file parameters."""
        errors = super().validate(params)
        if errors:
            return errors

        errors.extend(self.require(params, "path"))
        ensure = params.get("ensure", "absent")
        if ensure not in self.SUPPORTED_ENSURE:
            errors.append(f"Unknown ensure '{ensure}'. Supported: {self.SUPPORTED_ENSURE}")
        elif ensure == "present" and not isinstance(params.get("content"), str):
            errors.append("'content' is required when ensure is present")
        return errors

    def describe(self, params: Dict[str, Any]) -> str:
        return f"file {params.get('path')}"

    def inspect(self, context: PluginContext, params: Dict[str, Any]) -> tuple[bool, str]:
        content = context.adapter.read_file(params["path"])
        if params.get("ensure", "absent") == "absent":
            return content is None, "absent" if content is None else "present"
        if content is None:
            return False, "absent"
        return content == params["content"], "present"

    def capture(self, context: PluginContext, params: Dict[str, Any]) -> Dict[str, Any]:
        content = context.adapter.read_file(params["path"])
        if content is None:
            return {"path": params["path"], "ensure": "absent"}
        return {"path": params["path"], "ensure": "present", "content": content}

    def apply(self, context: PluginContext, params: Dict[str, Any]) -> None:
        if params.get("ensure", "absent") == "absent":
            context.adapter.remove_file(params["path"])
        else:
            context.adapter.write_file(params["path"], params["content"])


# Register plugin
PluginRegistry.register(FilePlugin)
