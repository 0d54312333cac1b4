"""Privileged host side of the file storage bridge.

Maps a storage key to one of two well-known JSON files inside a private data
directory and commits every write through a temporary file plus rename, so a
crash mid-write leaves the previously committed file intact.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SETTINGS_FILE_KEY = "settings"
SETTINGS_FILE_NAME = "settings.json"
DATA_FILE_NAME = "data.json"


class FileStorageHost:
    def __init__(self, data_dir: str | os.PathLike[str]) -> None:
        self.data_dir = Path(data_dir).expanduser()

    def storage_path(self, file_key: str) -> Path:
        file_name = SETTINGS_FILE_NAME if file_key == SETTINGS_FILE_KEY else DATA_FILE_NAME
        return self.data_dir / file_name

    def ensure_data_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def read_json(self, path: Path) -> Any | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return json.loads(raw)

    def write_json(self, path: Path, data: Any) -> None:
        payload = json.dumps(data, ensure_ascii=False, indent=2)
        temp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}")
        try:
            with temp_path.open("w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(temp_path, path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise
        logger.debug("Committed %s (%d characters)", path, len(payload))

    def read_sync(self, file_key: str) -> Any | None:
        return self.read_json(self.storage_path(file_key))

    def write_sync(self, file_key: str, document: Any) -> dict[str, bool]:
        self.ensure_data_dir()
        self.write_json(self.storage_path(file_key), document)
        return {"success": True}

    async def storage_read(self, file_key: str) -> Any | None:
        return await asyncio.to_thread(self.read_sync, file_key)

    async def storage_write(self, file_key: str, document: Any) -> dict[str, bool]:
        return await asyncio.to_thread(self.write_sync, file_key, document)


__all__ = ["DATA_FILE_NAME", "FileStorageHost", "SETTINGS_FILE_KEY", "SETTINGS_FILE_NAME"]
