"""Mini README: Storage and authentication backends for the portal.

Re-exports the abstract collaborators and the registry. Importing this
package registers the built-in ``memory`` and ``supabase`` backends so
``REGISTRY.create(settings.backend, settings)`` works without further
imports.
"""

from .base import ADMINS, MEMBERS, PAYMENTS, AuthProvider, AuthSession, AuthUser, RecordStore
from .registry import REGISTRY, Backend, BackendRegistry
from . import memory, supabase_rest  # noqa: F401  # ensure built-in backends register on import

__all__ = [
    "ADMINS",
    "AuthProvider",
    "AuthSession",
    "AuthUser",
    "Backend",
    "BackendRegistry",
    "MEMBERS",
    "PAYMENTS",
    "REGISTRY",
    "RecordStore",
]
