from __future__ import annotations

import builtins
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Session

from .logging import log_store_operation
from .models import KeyValueBlobORM

T = TypeVar("T")  # ORM model type


class BaseRepository(Generic[T]):
    """
    Lightweight generic repository with the CRUD helpers the blob store needs.
    """

    model: type[T]  # must be set by subclasses

    def __init__(self, session: Session):
        if not hasattr(self, "model") or self.model is None:
            raise ValueError(f"{self.__class__.__name__}.model must be set to an ORM class.")
        self.s = session

    def get(self, id_: Any) -> T | None:
        return self.s.get(self.model, id_)

    def list(self, *filters: Any) -> builtins.list[T]:
        q = self.s.query(self.model)
        for f in filters:
            q = q.filter(f)
        return list(q.all())

    def create(self, **fields: Any) -> T:
        obj = self.model(**fields)
        self.s.add(obj)
        self.s.flush()
        return obj

    def update(self, obj: T, **fields: Any) -> T:
        for k, v in fields.items():
            setattr(obj, k, v)
        self.s.flush()
        return obj

    def delete(self, obj: T) -> None:
        self.s.delete(obj)
        self.s.flush()


class BlobRepo(BaseRepository[KeyValueBlobORM]):
    model = KeyValueBlobORM

    @log_store_operation("blob.read")
    def read(self, name: str) -> str | None:
        blob = self.get(name)
        return blob.content if blob is not None else None

    @log_store_operation("blob.write")
    def write(self, name: str, content: str) -> KeyValueBlobORM:
        blob = self.get(name)
        if blob is None:
            return self.create(name=name, content=content)
        return self.update(blob, content=content, updated_at=datetime.now(timezone.utc))

    @log_store_operation("blob.remove")
    def remove(self, name: str) -> bool:
        blob = self.get(name)
        if blob is None:
            return False
        self.delete(blob)
        return True

    def names(self) -> builtins.list[str]:
        return sorted(b.name for b in self.list())
