import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)


def normalize_value(v: str) -> str:
    if isinstance(v, str):
        return v.strip().lower()
    return v


Normalize = BeforeValidator(normalize_value)


SCHOLARDASH_CONFIG_ENV = "SCHOLARDASH_CONFIG"
SCHOLARDASH_CONFIG_DEFAULT = Path("config") / "scholardash.json"
SCHOLARDASH_DATA_DIR_ENV = "SCHOLARDASH_DATA_DIR"
SCHOLARDASH_DATA_DIR_DEFAULT = Path("~") / ".scholardash"
SCHOLARDASH_STORAGE_PROVIDER_ENV = "SCHOLARDASH_STORAGE_PROVIDER"
SCHOLARDASH_DEBOUNCE_MS_ENV = "SCHOLARDASH_DEBOUNCE_MS"

DEFAULT_DATA_KEY = "academic-dashboard"
DEFAULT_SETTINGS_KEY = "settings"


def resolve_config_path() -> Path:
    override = os.getenv(SCHOLARDASH_CONFIG_ENV)
    if override:
        return Path(override).expanduser()
    return Path(SCHOLARDASH_CONFIG_DEFAULT).expanduser()


def resolve_data_dir() -> Path:
    """
    Resolve the private data directory.

    Holds data.json and settings.json for the file backend and the SQLite
    key-value file for the browser backend.
    """
    override = os.getenv(SCHOLARDASH_DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path(SCHOLARDASH_DATA_DIR_DEFAULT).expanduser()


def _load_json_file(path: Path) -> Any:
    if not path.exists():
        return None
    try:
        raw = path.read_text(encoding="utf-8")
        return json.loads(raw)
    except Exception as exc:
        logger.warning("Failed to load JSON config from %s: %s", path, exc)
        return None


def _parse_env_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, value)
        return None


class KVStoreConfig(BaseModel):
    provider: Annotated[Literal["memory", "sqlite"], Normalize] = "memory"
    dsn: str | None = Field(default=None, description="SQLite connection string (defaults into data_dir).")


class StorageConfig(BaseModel):
    """Configure where and how the dashboard documents are persisted.

    Attributes:
        provider: "browser" for key-value storage, "file" for JSON files behind the
            storage bridge, "auto" to pick "file" when a bridge is available.
        debounce_ms: Quiet period before a file write; bursts inside it coalesce.
    """

    provider: Annotated[Literal["auto", "browser", "file"], Normalize] = "auto"
    data_dir: str = Field(default_factory=lambda: str(resolve_data_dir()))
    data_key: str = Field(default=DEFAULT_DATA_KEY, min_length=1)
    settings_key: str = Field(default=DEFAULT_SETTINGS_KEY, min_length=1)
    debounce_ms: int = Field(default=100, ge=0, description="Debounce delay for expensive backends.")
    max_write_retries: int = Field(default=2, ge=0, description="Retries for a failed debounced write.")
    retry_backoff_ms: int = Field(default=250, ge=0, description="Base backoff; doubles per retry.")
    kv_store: KVStoreConfig = Field(default_factory=KVStoreConfig)

    @model_validator(mode="after")
    def check_keys(self) -> "StorageConfig":
        if self.data_key == self.settings_key:
            msg = "data_key and settings_key must differ"
            raise ValueError(msg)
        return self

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def retry_backoff_seconds(self) -> float:
        return self.retry_backoff_ms / 1000.0

    def resolve_kv_dsn(self) -> str:
        if self.kv_store.dsn:
            return self.kv_store.dsn
        return f"sqlite:///{Path(self.data_dir).expanduser() / 'local_storage.sqlite'}"


def load_storage_overrides() -> dict[str, Any]:
    """
    Collect storage settings from the JSON config file and the environment.

    Supported:
    - config/scholardash.json (default), "storage" object
    - SCHOLARDASH_CONFIG override for the file path
    - SCHOLARDASH_DATA_DIR, SCHOLARDASH_STORAGE_PROVIDER, SCHOLARDASH_DEBOUNCE_MS

    Environment values win over the file.
    """
    overrides: dict[str, Any] = {}
    data = _load_json_file(resolve_config_path())
    if isinstance(data, dict):
        storage = data.get("storage")
        if isinstance(storage, dict):
            overrides.update(storage)
        elif storage is not None:
            logger.warning("scholardash config 'storage' must be an object")
    elif data is not None:
        logger.warning("scholardash config must be a JSON object")

    data_dir = os.getenv(SCHOLARDASH_DATA_DIR_ENV)
    if data_dir:
        overrides["data_dir"] = str(Path(data_dir).expanduser())
    provider = os.getenv(SCHOLARDASH_STORAGE_PROVIDER_ENV)
    if provider:
        overrides["provider"] = provider
    debounce = _parse_env_int(SCHOLARDASH_DEBOUNCE_MS_ENV)
    if debounce is not None:
        overrides["debounce_ms"] = debounce
    return overrides


def load_storage_config(config: StorageConfig | Mapping[str, Any] | None = None) -> StorageConfig:
    """Build the effective StorageConfig.

    An explicit StorageConfig instance is used as-is. A mapping is layered over
    the file and environment overrides. Invalid overrides are logged and dropped.
    """
    if isinstance(config, StorageConfig):
        return config
    overrides = load_storage_overrides()
    explicit = dict(config) if config else {}
    try:
        return StorageConfig.model_validate({**overrides, **explicit})
    except ValidationError as exc:
        if not overrides:
            raise
        logger.warning("Ignoring invalid storage overrides %s: %s", sorted(overrides), exc)
    return StorageConfig.model_validate(explicit)


__all__ = [
    "DEFAULT_DATA_KEY",
    "DEFAULT_SETTINGS_KEY",
    "KVStoreConfig",
    "StorageConfig",
    "load_storage_config",
    "load_storage_overrides",
    "resolve_config_path",
    "resolve_data_dir",
]
