from .identity import UserIdentity, resolve_identity
from .local_store import LocalPreferencesStore
from .storage import LocalBackend, S3Backend, StorageBackend, create_storage_backend

__all__ = [
    "LocalBackend",
    "LocalPreferencesStore",
    "S3Backend",
    "StorageBackend",
    "UserIdentity",
    "create_storage_backend",
    "resolve_identity",
]
