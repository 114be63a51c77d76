"""
Key-value blob storage backends.

Each backend stores opaque text blobs under a name. The license store and the
client-local state (device id, session key, pool mirror) are built on top of
this interface, so tests can swap in ``MemoryKeyValueStore`` with no real I/O.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.orm import sessionmaker

from .exceptions import handle_store_error
from .logging import get_logger, log_store_operation
from .repositories import BlobRepo
from .uow import UnitOfWork

logger = get_logger(__name__)


class KeyValueStore:
    """Named text blobs. ``get`` returns None for a missing name."""

    def get(self, name: str) -> str | None:
        raise NotImplementedError

    def put(self, name: str, content: str) -> str:
        """Store ``content`` and return where it landed (a path, URI or name)."""
        raise NotImplementedError

    def delete(self, name: str) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None):
        self.blobs: dict[str, str] = dict(initial or {})

    def get(self, name: str) -> str | None:
        return self.blobs.get(name)

    def put(self, name: str, content: str) -> str:
        self.blobs[name] = content
        return name

    def delete(self, name: str) -> None:
        self.blobs.pop(name, None)


def safe_blob_name(name: str) -> str:
    """Reduce a caller-supplied name to a bare file name inside the store."""
    base = Path(name.replace("\\", "/")).name
    if not base or base in {".", ".."}:
        raise ValueError(f"Invalid blob name: {name!r}")
    return base


class FileKeyValueStore(KeyValueStore):
    """One file per blob inside ``data_dir``."""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    def path_for(self, name: str) -> Path:
        return self.data_dir / safe_blob_name(name)

    @log_store_operation("file.get")
    def get(self, name: str) -> str | None:
        path = self.path_for(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise handle_store_error(e, f"read {path.name}") from e

    @log_store_operation("file.put")
    def put(self, name: str, content: str) -> str:
        path = self.path_for(name)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise handle_store_error(e, f"write {path.name}") from e
        return str(path.resolve())

    @log_store_operation("file.delete")
    def delete(self, name: str) -> None:
        try:
            self.path_for(name).unlink(missing_ok=True)
        except OSError as e:
            raise handle_store_error(e, f"delete {name}") from e


class SqlKeyValueStore(KeyValueStore):
    """Blobs in the ``kv_blobs`` table, one transaction per call."""

    def __init__(self, SessionLocal: sessionmaker):
        self.uow = UnitOfWork(SessionLocal)

    def get(self, name: str) -> str | None:
        with self.uow.begin(f"read {name}", readonly=True) as s:
            return BlobRepo(s).read(name)

    def put(self, name: str, content: str) -> str:
        with self.uow.begin(f"write {name}") as s:
            BlobRepo(s).write(name, content)
        return f"kv_blobs/{name}"

    def delete(self, name: str) -> None:
        with self.uow.begin(f"delete {name}") as s:
            BlobRepo(s).remove(name)
