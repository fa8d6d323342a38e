"""
Tweak Engine - Plugins Package

Plugin-based action system. Each plugin handles one kind of system change
and implements analyze, execute and rollback for it.
"""

from tweakengine.plugins.base import (
    DesiredStatePlugin,
    Plugin,
    PluginContext,
    PluginOutcome,
    PluginRegistry,
)
from tweakengine.plugins.file_removal import FilePlugin
from tweakengine.plugins.registry_value import RegistryValuePlugin
from tweakengine.plugins.service import ServiceStartupPlugin

__all__ = [
    "DesiredStatePlugin",
    "Plugin",
    "PluginContext",
    "PluginOutcome",
    "PluginRegistry",
    "FilePlugin",
    "RegistryValuePlugin",
    "ServiceStartupPlugin",
]
