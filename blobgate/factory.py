"""Build a storage backend from configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from blobgate.backend import Backend, StorageError
from blobgate.filesystem import FileSystemBackend
from blobgate.multi_simple import MultiBackendSimple


@dataclass
class FileSystemConfig:
    """Settings of the filesystem backend."""

    base_dir: str = ""


@dataclass
class StorageConfig:
    """Which provider to use and its settings."""

    provider: str = ""
    filesystem: Optional[FileSystemConfig] = None


def _multi_backend(cfg: StorageConfig) -> Backend:
    backends: dict[str, Backend] = {}
    if cfg.filesystem is not None:
        try:
            backends["filesystem"] = FileSystemBackend(cfg.filesystem.base_dir)
        except StorageError as exc:
            raise StorageError(f"failed to create filesystem backend: {exc}") from exc
    return MultiBackendSimple(backends, {})


def new_backend(cfg: StorageConfig) -> Backend:
    """Return the backend the configuration names; raise StorageError otherwise."""
    if cfg.provider == "filesystem":
        if cfg.filesystem is None:
            raise StorageError("filesystem configuration required")
        return FileSystemBackend(cfg.filesystem.base_dir)
    if cfg.provider == "multi":
        return _multi_backend(cfg)
    raise StorageError(f"unsupported storage provider: {cfg.provider}")