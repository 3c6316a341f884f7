"""Persistence collaborator interface and the bundled in-memory store.

Every call is scoped to a realm id (``None`` for realm records themselves) and
is atomic on its own. Entities are copied on the way in and out.
"""
from __future__ import annotations
import copy
import threading
from typing import Any, Callable, Iterable, Optional, Protocol

from . import models
from .exceptions import ModelDuplicateError, PersistenceError


class Store(Protocol):
    """Transactional create/read/update/delete by id, scoped to a realm."""

    def get(self, realm_id: Optional[str], kind: str, entity_id: str) -> Optional[Any]: ...

    def create(self, realm_id: Optional[str], kind: str, entity: Any) -> Any: ...

    def update(self, realm_id: Optional[str], kind: str, entity: Any) -> Any: ...

    def delete(self, realm_id: Optional[str], kind: str, entity_id: str) -> bool: ...

    def list_children(
        self, realm_id: Optional[str], kind: str, parent_id: Optional[str] = None
    ) -> list[Any]: ...


# Unique key within (realm, kind)
_UNIQUE_KEYS: dict[str, Callable[[Any], tuple]] = {
    models.REALM: lambda e: (e.name,),
    models.CLIENT: lambda e: (e.client_id,),
    models.ROLE: lambda e: (e.client_id, e.name),
    models.CLIENT_SCOPE: lambda e: (e.name,),
    models.AUTH_FLOW: lambda e: (e.alias,),
    models.REQUIRED_ACTION: lambda e: (e.alias,),
    models.IDENTITY_PROVIDER: lambda e: (e.alias,),
    models.IDP_MAPPER: lambda e: (e.identity_provider_alias, e.name),
    models.FEDERATION: lambda e: (e.alias,),
}

# Attribute naming the parent for list_children(parent_id=...)
_PARENT_ATTRS: dict[str, str] = {
    models.ROLE: "client_id",
    models.IDP_MAPPER: "identity_provider_alias",
}


class InMemoryStore:
    """Thread-safe dictionary-backed store.

    Deleting a realm cascades to every entity scoped to it.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._data: dict[tuple[Optional[str], str], dict[str, Any]] = {}

    def _bucket(self, realm_id: Optional[str], kind: str) -> dict[str, Any]:
        if kind not in _UNIQUE_KEYS:
            raise PersistenceError(f"Unknown entity kind '{kind}'")
        if kind == models.REALM:
            realm_id = None
        return self._data.setdefault((realm_id, kind), {})

    def _check_unique(self, bucket: dict[str, Any], kind: str, entity: Any) -> None:
        key = _UNIQUE_KEYS[kind](entity)
        for existing in bucket.values():
            if existing.id != entity.id and _UNIQUE_KEYS[kind](existing) == key:
                raise ModelDuplicateError(f"{kind} {key!r} already exists")

    def get(self, realm_id: Optional[str], kind: str, entity_id: str) -> Optional[Any]:
        with self._lock:
            entity = self._bucket(realm_id, kind).get(entity_id)
            return copy.deepcopy(entity) if entity is not None else None

    def create(self, realm_id: Optional[str], kind: str, entity: Any) -> Any:
        with self._lock:
            bucket = self._bucket(realm_id, kind)
            if entity.id in bucket:
                raise ModelDuplicateError(f"{kind} with id '{entity.id}' already exists")
            self._check_unique(bucket, kind, entity)
            bucket[entity.id] = copy.deepcopy(entity)
            return copy.deepcopy(entity)

    def update(self, realm_id: Optional[str], kind: str, entity: Any) -> Any:
        with self._lock:
            bucket = self._bucket(realm_id, kind)
            if entity.id not in bucket:
                raise PersistenceError(f"{kind} with id '{entity.id}' does not exist")
            self._check_unique(bucket, kind, entity)
            bucket[entity.id] = copy.deepcopy(entity)
            return copy.deepcopy(entity)

    def delete(self, realm_id: Optional[str], kind: str, entity_id: str) -> bool:
        with self._lock:
            removed = self._bucket(realm_id, kind).pop(entity_id, None)
            if removed is None:
                return False
            if kind == models.REALM:
                for key in [k for k in self._data if k[0] == entity_id]:
                    del self._data[key]
            return True

    def list_children(
        self, realm_id: Optional[str], kind: str, parent_id: Optional[str] = None
    ) -> list[Any]:
        with self._lock:
            entities: Iterable[Any] = self._bucket(realm_id, kind).values()
            if parent_id is not None:
                attr = _PARENT_ATTRS.get(kind)
                if attr is None:
                    raise PersistenceError(f"{kind} has no parent relation")
                entities = [e for e in entities if getattr(e, attr) == parent_id]
            return [copy.deepcopy(e) for e in entities]
