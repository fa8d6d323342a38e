"""
Tweak Engine - Adapters Package

Provides adapter interfaces and implementations for target system access.
The adapter pattern allows swapping between the fake (simulation) system
and a real host.
"""

from tweakengine.adapters.base import AdapterError, AdapterFactory, RegistryValue, SystemAdapter
from tweakengine.adapters.fake_system import FakeSystemAdapter

__all__ = [
    "AdapterError",
    "AdapterFactory",
    "RegistryValue",
    "SystemAdapter",
    "FakeSystemAdapter",
]
