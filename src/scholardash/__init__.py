from scholardash.app import Collection, CollectionStore, DashboardService, StorageConfig

__version__ = "0.1.0"

__all__ = ["Collection", "CollectionStore", "DashboardService", "StorageConfig", "__version__"]
