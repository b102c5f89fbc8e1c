"""Observable entity collection owned by one list controller.

Replaces a process-wide module store: each controller constructs its own
``EntityStore`` and disposes it on close, so pages and tests never share
hidden state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)

Entity = dict[str, Any]
Listener = Callable[[], None]


class StoreError(RuntimeError):
    """Base error for store misuse."""


class DuplicateIdError(StoreError):
    """Raised when a write would leave two entities with the same id."""


class StoreDisposedError(StoreError):
    """Raised when writing to a store after :meth:`EntityStore.dispose`."""


class EntityStore:
    """Ordered, id-unique list of entities with change notification."""

    def __init__(self, id_field: str = "id", items: Iterable[Entity] = ()) -> None:
        self.id_field = id_field
        self._listeners: list[Listener] = []
        self._disposed = False
        self._items: list[Entity] = self._checked(items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: object) -> bool:
        return self.index_of(entity_id) is not None

    @property
    def disposed(self) -> bool:
        return self._disposed

    # -- subscription ---------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Store listener failed")

    # -- reads ----------------------------------------------------------

    def snapshot(self) -> list[Entity]:
        return list(self._items)

    def index_of(self, entity_id: object) -> int | None:
        for index, entity in enumerate(self._items):
            if entity.get(self.id_field) == entity_id:
                return index
        return None

    def get(self, entity_id: object) -> Entity | None:
        index = self.index_of(entity_id)
        return self._items[index] if index is not None else None

    # -- writes ---------------------------------------------------------

    def replace(self, items: Iterable[Entity]) -> None:
        """Swap the whole collection."""
        self._ensure_live()
        self._items = self._checked(items)
        self._emit()

    def insert(self, entity: Entity, index: int | None = None) -> None:
        """Insert a new entity at *index* (appended when None)."""
        self._ensure_live()
        entity_id = entity.get(self.id_field)
        if entity_id is None:
            raise StoreError(f"Entity is missing its {self.id_field!r} field")
        if self.index_of(entity_id) is not None:
            raise DuplicateIdError(f"Duplicate id {entity_id!r}")
        if index is None:
            self._items.append(entity)
        else:
            self._items.insert(max(0, min(index, len(self._items))), entity)
        self._emit()

    def put(self, entity_id: object, entity: Entity) -> None:
        """Replace the entity currently stored under *entity_id* in place.

        The replacement may carry a different id (a provisional id swapped for
        the server one); any other entity already holding that id is dropped.
        """
        self._ensure_live()
        index = self.index_of(entity_id)
        if index is None:
            raise KeyError(entity_id)
        new_id = entity.get(self.id_field)
        if new_id is None:
            raise StoreError(f"Entity is missing its {self.id_field!r} field")
        self._items[index] = entity
        if new_id != entity_id:
            self._items = [
                e
                for i, e in enumerate(self._items)
                if i == index or e.get(self.id_field) != new_id
            ]
        self._emit()

    def remove(self, entity_id: object) -> tuple[int, Entity] | None:
        """Remove one entity; returns ``(index, entity)`` for later restore."""
        self._ensure_live()
        index = self.index_of(entity_id)
        if index is None:
            return None
        entity = self._items.pop(index)
        self._emit()
        return index, entity

    def dispose(self) -> None:
        self._listeners.clear()
        self._disposed = True

    # -- helpers --------------------------------------------------------

    def _ensure_live(self) -> None:
        if self._disposed:
            raise StoreDisposedError("Store has been disposed")

    def _checked(self, items: Iterable[Entity]) -> list[Entity]:
        result: list[Entity] = []
        seen: set[Any] = set()
        for entity in items:
            entity_id = entity.get(self.id_field)
            if entity_id is None:
                logger.warning("Dropping entity without %r: %r", self.id_field, entity)
                continue
            if entity_id in seen:
                logger.warning("Dropping duplicate id %r", entity_id)
                continue
            seen.add(entity_id)
            result.append(entity)
        return result
