"""Mini README: Backend registry mapping names to store/auth factories.

Structure:
    * Backend - pair of record store and auth provider sharing one source.
    * BackendRegistry - manages registration and instantiation of backends.

Settings select a backend by name (``memory`` or ``supabase``). Modules that
implement a backend call ``REGISTRY.register`` at import time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Iterable

from .base import AuthProvider, RecordStore
from ..logging_utils import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from ..configuration import HoaPortalSettings

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class Backend:
    """Record store and auth provider bound to the same hosted project."""

    store: RecordStore
    auth: AuthProvider


BackendFactory = Callable[["HoaPortalSettings"], Backend]


class BackendRegistry:
    """Simple registry for mapping backend identifiers to factories."""

    def __init__(self) -> None:
        self._factories: Dict[str, BackendFactory] = {}

    def register(self, name: str, factory: BackendFactory) -> None:
        """Register a factory under ``name``."""

        identifier = name.lower()
        LOGGER.debug("Registering backend '%s'", identifier)
        self._factories[identifier] = factory

    def available_backends(self) -> Iterable[str]:
        """Return iterable of backend identifiers for display."""

        return sorted(self._factories.keys())

    def create(self, identifier: str, settings: "HoaPortalSettings") -> Backend:
        """Instantiate the backend matching the identifier."""

        factory = self._factories.get(identifier.lower())
        if not factory:
            raise KeyError(f"Unknown backend '{identifier}'")
        LOGGER.info("Creating backend '%s'", identifier)
        return factory(settings)


REGISTRY = BackendRegistry()
