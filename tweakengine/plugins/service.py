"""
Tweak Engine - Service Startup Plugin

Changes the startup type of system services.
"""

from __future__ import annotations
from typing import Any, Dict, List
import logging

from tweakengine.adapters.base import AdapterError
from tweakengine.plugins.base import (
    DesiredStatePlugin,
    PluginContext,
    PluginOutcome,
    PluginRegistry,
)

logger = logging.getLogger(__name__)


class ServiceStartupPlugin(DesiredStatePlugin):
    """
    Plugin for service startup types.

    Parameters:
        name: Service name
        startup: automatic, manual or disabled

    A service that is not installed is reported as a failure for the
    entry, not as an error of the run.
    """

    PLUGIN_NAME = "service"

    SUPPORTED_STARTUP = ["automatic", "manual", "disabled"]

    def validate(self, params: Dict[str, Any]) -> List[str]:
        """Validate service parameters."""
        errors = super().validate(params)
        if errors:
            return errors

        errors.extend(self.require(params, "name", "startup"))
        startup = params.get("startup")
        if startup and startup not in self.SUPPORTED_STARTUP:
            errors.append(
                f"Unknown startup '{startup}'. Supported: {self.SUPPORTED_STARTUP}"
            )
        return errors

    def describe(self, params: Dict[str, Any]) -> str:
        return f"service {params.get('name')}"

    def inspect(self, context: PluginContext, params: Dict[str, Any]) -> tuple[bool, str]:
        current = context.adapter.get_service_startup(params["name"])
        if current is None:
            raise AdapterError(f"Service not installed: {params['name']}", target=params["name"])
        return current == params["startup"], current

    def analyze(self, context: PluginContext, params: Dict[str, Any]) -> PluginOutcome:
        try:
            return super().analyze(context, params)
        except AdapterError as e:
            return PluginOutcome(result=False, detail=e.message)

    def capture(self, context: PluginContext, params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "name": params["name"],
            "startup": context.adapter.get_service_startup(params["name"]),
        }

    def apply(self, context: PluginContext, params: Dict[str, Any]) -> None:
        context.adapter.set_service_startup(params["name"], params["startup"])


# Register plugin
PluginRegistry.register(ServiceStartupPlugin)
