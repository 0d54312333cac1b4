from scholardash.app.crud import Collection, CollectionStore
from scholardash.app.service import DashboardService
from scholardash.app.settings import (
    KVStoreConfig,
    StorageConfig,
    load_storage_config,
    resolve_config_path,
    resolve_data_dir,
)

__all__ = [
    "Collection",
    "CollectionStore",
    "DashboardService",
    "KVStoreConfig",
    "StorageConfig",
    "load_storage_config",
    "resolve_config_path",
    "resolve_data_dir",
]
