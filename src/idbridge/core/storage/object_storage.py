"""Object storage for files imported during provisioning."""

from abc import ABC, abstractmethod
from pathlib import Path

from loguru import logger
from starlette.concurrency import run_in_threadpool

from src.idbridge.runtime.config.config_data import StorageConfig


class ObjectStorage(ABC):
    """Where imported user files end up."""

    @abstractmethod
    async def save(self, file_name: str, user_id: str, data: bytes) -> str:
        """Persist ``data`` for ``user_id`` and return its public path."""


def _safe_segment(value: str, what: str) -> str:
    segment = Path(value).name
    if not segment or segment != value or segment in (".", ".."):
        raise ValueError(f"Invalid {what}: {value!r}")
    return segment


class LocalObjectStorage(ObjectStorage):
    """Store files below a local directory, one folder per user."""

    def __init__(self, base_dir: Path | str, public_path: str = "/images"):
        self.base_dir = Path(base_dir)
        self.public_path = public_path.rstrip("/")

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        # Write beside the target first so readers never see a partial file
        tmp = target.with_suffix(target.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(target)

    async def save(self, file_name: str, user_id: str, data: bytes) -> str:
        user_dir = _safe_segment(user_id, "user id")
        name = _safe_segment(file_name, "file name")
        target = self.base_dir / user_dir / name

        await run_in_threadpool(self._write, target, data)
        logger.debug("Stored {} bytes at {}", len(data), target)
        return f"{self.public_path}/{user_dir}/{name}"


def get_object_storage(config: StorageConfig) -> ObjectStorage:
    """Return the storage backend selected by ``config.provider``."""
    if config.provider == "local":
        return LocalObjectStorage(config.base_dir, config.public_path)
    raise ValueError(f"Unsupported storage provider: {config.provider}")
