from scholardash.database.file.adapter import BridgedFileBackend, StorageBridge
from scholardash.database.file.host import FileStorageHost

__all__ = ["BridgedFileBackend", "FileStorageHost", "StorageBridge"]
