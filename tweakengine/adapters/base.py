"""
Tweak Engine - Base Adapter Interface

Defines the abstract interface that all system adapters must implement.
Plugins never touch the operating system directly; they go through an
adapter so that the simulated system and a real host are interchangeable.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from dataclasses import dataclass


@dataclass
class RegistryValue:
    """A single registry value."""
    path: str
    name: str
    value: Any
    kind: str = "dword"


class AdapterError(Exception):
    """Exception raised when the target system rejects an operation."""

    def __init__(self, message: str, target: Optional[str] = None):
        self.message = message
        self.target = target
        super().__init__(self.message)


class SystemAdapter(ABC):
    """
    Abstract base class for system adapters.

    All adapters (fake or real) must implement this interface.
    This ensures consistent behavior across simulation and production.
    """

    def __init__(self, host: str = "localhost"):
        """
        Initialize adapter for a specific host.

        Args:
            host: Name of the target host
        """
        self.host = host

    @abstractmethod
    def connect(self) -> bool:
        """
        Open the connection to the target system.

        Returns:
            True if connection successful, False otherwise
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection to the target system."""
        pass

    # Registry ---------------------------------------------------------------

    @abstractmethod
    def get_registry_value(self, path: str, name: str) -> Optional[RegistryValue]:
        """
        Read a registry value.

        Args:
            path: Registry key path (e.g., HKLM\\SOFTWARE\\Policies\\...)
            name: Value name

        Returns:
            RegistryValue or None if the value does not exist
        """
        pass

    @abstractmethod
    def set_registry_value(self, path: str, name: str, value: Any, kind: str = "dword") -> None:
        """Create or overwrite a registry value."""
        pass

    @abstractmethod
    def delete_registry_value(self, path: str, name: str) -> bool:
        """
        Delete a registry value.

        Returns:
            True if a value was removed
        """
        pass

    # Services ---------------------------------------------------------------

    @abstractmethod
    def get_service_startup(self, name: str) -> Optional[str]:
        """
        Read the startup type of a service.

        Returns:
            Startup type (automatic, manual, disabled) or None if the
            service is not installed
        """
        pass

    @abstractmethod
    def set_service_startup(self, name: str, startup: str) -> None:
        """
        Change the startup type of a service.

        Raises:
            AdapterError: If the service is not installed
        """
        pass

    # Files ------------------------------------------------------------------

    @abstractmethod
    def read_file(self, path: str) -> Optional[str]:
        """Return file content or None if the file does not exist."""
        pass

    @abstractmethod
    def write_file(self, path: str, content: str) -> None:
        """Create or overwrite a file."""
        pass

    @abstractmethod
    def remove_file(self, path: str) -> bool:
        """
        Remove a file.

        Returns:
            True if a file was removed
        """
        pass

    @abstractmethod
    def get_state(self) -> Dict[str, Any]:
        """
        Get current adapter state (for debugging/auditing).

        Returns:
            Dictionary with current state information
        """
        pass

    @abstractmethod
    def reset(self) -> None:
        """Reset adapter state (for testing)."""
        pass


class AdapterFactory:
    """
    Factory for creating system adapters.

    Usage:
        adapter = AdapterFactory.create("fake", "localhost")
    """

    _adapters: Dict[str, type] = {}

    @classmethod
    def register(cls, adapter_type: str, adapter_class: type) -> None:
        """Register an adapter type."""
        cls._adapters[adapter_type] = adapter_class

    @classmethod
    def create(
        cls,
        adapter_type: str,
        host: str = "localhost",
        **kwargs,
    ) -> SystemAdapter:
        """
        Create an adapter instance.

        Args:
            adapter_type: Type of adapter ("fake", ...)
            host: Target host name
            **kwargs: Additional adapter-specific arguments

        Returns:
            Configured SystemAdapter instance

        Raises:
            ValueError: If adapter type is not registered
        """
        if adapter_type not in cls._adapters:
            raise ValueError(
                f"Unknown adapter type: {adapter_type}. "
                f"Available: {', '.join(cls.available_adapters())}"
            )
        return cls._adapters[adapter_type](host, **kwargs)

    @classmethod
    def available_adapters(cls) -> List[str]:
        """Get list of available adapter types."""
        return list(cls._adapters.keys())
