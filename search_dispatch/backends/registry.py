"""
Search Backend Registry

Holds the configured backend clients, keyed by id, in registration order,
and builds them from settings at startup.

Architectural Decision: Centralized backend registration
- Single location mapping a configured ``kind`` to a client class
- Registry is read-only once the dispatcher starts
- Disabled backends stay registered (visible in status) but are never selected

Author: System Architect
Date: 2025-12-16
"""

from search_dispatch.backends.base import BackendConfig, SearchBackend
from search_dispatch.backends.fake_backend import FakeBackend
from search_dispatch.backends.http_backend import HttpJsonBackend
from search_dispatch.core.config.settings import Settings
from search_dispatch.core.exceptions import ConfigurationError
from search_dispatch.core.logging.logger import get_logger

logger = get_logger(__name__)

BACKEND_KINDS: dict[str, type[SearchBackend]] = {
    "http": HttpJsonBackend,
    "fake": FakeBackend,
}


class BackendRegistry:
    """
    Registry of search backends.

    STAGE-0.2: Backend registry

    Usage:
        registry = BackendRegistry()
        registry.register(FakeBackend(BackendConfig(id="wiki", priority=10)))

        backend = registry.get("wiki")
    """

    def __init__(self):
        self._backends: dict[str, SearchBackend] = {}
        self._frozen = False

    def register(self, backend: SearchBackend) -> None:
        if self._frozen:
            raise ConfigurationError(
                "Backend registry is read-only after startup",
                details={"backend_id": backend.id},
            )
        if backend.id in self._backends:
            raise ConfigurationError(
                f"Backend already registered: {backend.id}",
                details={"backend_id": backend.id},
            )
        self._backends[backend.id] = backend
        logger.info(
            f"Registered backend: {backend.id}",
            stage="0.2",
            priority=backend.priority,
            enabled=backend.config.enabled,
        )

    def freeze(self) -> None:
        self._frozen = True

    def get(self, backend_id: str) -> SearchBackend | None:
        return self._backends.get(backend_id)

    def all(self) -> list[SearchBackend]:
        return list(self._backends.values())

    def enabled(self) -> list[SearchBackend]:
        return [b for b in self._backends.values() if b.config.enabled]

    def ids(self) -> list[str]:
        return list(self._backends.keys())

    def __contains__(self, backend_id: str) -> bool:
        return backend_id in self._backends

    def __len__(self) -> int:
        return len(self._backends)

    def __iter__(self):
        return iter(list(self._backends.values()))

    async def close_all(self) -> None:
        """Close every client; failures are logged so one bad client cannot block shutdown."""
        for backend in self._backends.values():
            try:
                await backend.close()
            except Exception as e:
                logger.warning(
                    "Backend close failed", stage="6.2", backend_id=backend.id, error=str(e)
                )


def register_backends(registry: BackendRegistry, settings: Settings) -> BackendRegistry:
    """
    Build a client for every entry of ``settings.BACKENDS``.

    Raises:
        ConfigurationError: Unknown ``kind`` or invalid client options
    """
    for backend_id, backend_settings in settings.BACKENDS.items():
        backend_class = BACKEND_KINDS.get(backend_settings.kind)
        if backend_class is None:
            raise ConfigurationError(
                f"Unknown backend kind '{backend_settings.kind}' for '{backend_id}'",
                details={"backend_id": backend_id, "known_kinds": sorted(BACKEND_KINDS)},
            )
        config = BackendConfig.from_settings(backend_id, backend_settings)
        try:
            backend = backend_class(config)
        except ValueError as e:
            raise ConfigurationError.from_exception(e, backend_id=backend_id) from e
        registry.register(backend)

    if not registry.enabled():
        logger.warning("No enabled backends configured", stage="0.2")
    return registry
