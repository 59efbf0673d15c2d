"""
Repository Registry - runtime resolution of durable backends

Maps DURABLE_BACKEND values to repository implementations so the commit
path never imports a concrete backend.
"""

from typing import Dict, Type

from config import Settings
from .ports import DurableRepositoryPort


class RepositoryRegistry:
    """
    Registry for durable repository implementations.

    Usage:
        RepositoryRegistry.register("SQL", SqlRecordRepository)
        repository = RepositoryRegistry.get("SQL", settings)

    Registration should happen only at import time in the main thread.
    """

    _repositories: Dict[str, Type[DurableRepositoryPort]] = {}

    @classmethod
    def register(cls, backend: str, implementation: Type[DurableRepositoryPort]) -> None:
        """
        Register a repository implementation.

        Raises:
            ValueError: If backend is empty or implementation doesn't inherit from DurableRepositoryPort
            RuntimeError: If backend is already registered
        """
        if not backend or not backend.strip():
            raise ValueError("backend cannot be empty")

        if not issubclass(implementation, DurableRepositoryPort):
            raise ValueError(
                f"Implementation must inherit from DurableRepositoryPort, "
                f"got {implementation.__name__}"
            )

        if cls.is_registered(backend):
            raise RuntimeError(
                f"Backend '{backend}' is already registered. "
                f"Use unregister() first if you need to replace it."
            )

        cls._repositories[backend] = implementation

    @classmethod
    def get(cls, backend: str, settings: Settings) -> DurableRepositoryPort:
        """
        Build a repository for ``backend`` from application settings.

        Raises:
            ValueError: If backend is not registered
        """
        if not cls.is_registered(backend):
            available = ', '.join(cls.list_available()) or 'none'
            raise ValueError(
                f"Unknown durable backend: '{backend}'. "
                f"Available backends: {available}"
            )

        return cls._repositories[backend].from_settings(settings)

    @classmethod
    def list_available(cls) -> list[str]:
        return sorted(cls._repositories.keys())

    @classmethod
    def is_registered(cls, backend: str) -> bool:
        return backend in cls._repositories

    @classmethod
    def unregister(cls, backend: str) -> None:
        """
        Remove a backend from the registry. Primarily used for testing.

        Raises:
            ValueError: If backend is not registered
        """
        if not cls.is_registered(backend):
            raise ValueError(f"Backend '{backend}' is not registered")

        del cls._repositories[backend]
