from scholardash.database.durable import DurableStore, HydrationState
from scholardash.database.errors import StorageError, StorageUnreadableError, StorageUnwritableError
from scholardash.database.factory import build_backend, build_scheduler, detect_backend_kind
from scholardash.database.interfaces import StorageBackend, SyncStorageBackend
from scholardash.database.models import COLLECTION_SPECS, CollectionSpec, DashboardDocument
from scholardash.database.scheduler import DebouncedWriteScheduler, ImmediateWriteScheduler

__all__ = [
    "COLLECTION_SPECS",
    "CollectionSpec",
    "DashboardDocument",
    "DebouncedWriteScheduler",
    "DurableStore",
    "HydrationState",
    "ImmediateWriteScheduler",
    "StorageBackend",
    "StorageError",
    "StorageUnreadableError",
    "StorageUnwritableError",
    "SyncStorageBackend",
    "build_backend",
    "build_scheduler",
    "detect_backend_kind",
]
