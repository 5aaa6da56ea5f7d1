# =============================================================================
# chatgate -- Entity Cache
# =============================================================================
#
# Keyed, insertion-ordered collection of entities.  Every cache the session
# owns (users, servers, channels, direct channels, per-channel messages,
# per-server roles and members) is one of these.
# =============================================================================

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class Cache(Generic[T]):
    """Ordered mapping of entities keyed by a discriminator attribute.

    ``add`` is idempotent, ``update`` keeps the replaced entity's position,
    and lookups never raise.  The cache emits nothing; callers notify
    after a successful mutation.

    Args:
        discriminator: Attribute used as the primary key (default ``"id"``).
        limit: Max entries kept; the oldest is evicted when exceeded.
            ``None`` for unbounded.
    """

    def __init__(self, discriminator: str = "id", limit: int | None = None) -> None:
        self._discriminator = discriminator
        self._limit = limit
        self._items: dict[Any, T] = {}

    @property
    def discriminator(self) -> str:
        return self._discriminator

    def _key(self, entity: T) -> Any:
        return getattr(entity, self._discriminator)

    # -- Mutation ---------------------------------------------------------------

    def add(self, entity: T) -> T:
        """Insert *entity* unless its key is present; return the stored value."""
        key = self._key(entity)
        existing = self._items.get(key)
        if existing is not None:
            return existing

        self._items[key] = entity
        if self._limit is not None and len(self._items) > self._limit:
            oldest = next(iter(self._items))
            del self._items[oldest]
        return entity

    def remove(self, entity: T) -> None:
        """Remove the entry sharing *entity*'s key.  No-op if absent."""
        self._items.pop(self._key(entity), None)

    def update(self, old: T, new: T) -> T | None:
        """Replace *old* with *new* at the same position.

        Returns *new*, or ``None`` when nothing changes: *old* is no longer
        cached, or *new* carries a different key already held by another
        entry.
        """
        old_key = self._key(old)
        if old_key not in self._items:
            return None

        new_key = self._key(new)
        if new_key == old_key:
            self._items[old_key] = new
            return new
        if new_key in self._items:
            return None

        self._items = {
            (new_key if k == old_key else k): (new if k == old_key else v)
            for k, v in self._items.items()
        }
        return new

    def clear(self) -> None:
        self._items.clear()

    # -- Lookup -------------------------------------------------------------------

    def get(self, discriminator: str, value: Any) -> T | None:
        """Return the first entity whose *discriminator* equals *value*."""
        if discriminator == self._discriminator:
            return self._items.get(value)
        for entity in self._items.values():
            if getattr(entity, discriminator, None) == value:
                return entity
        return None

    def find(self, predicate: Callable[[T], bool]) -> T | None:
        for entity in self._items.values():
            if predicate(entity):
                return entity
        return None

    def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        return [entity for entity in self._items.values() if predicate(entity)]

    def index(self, entity: T) -> int:
        """Position of *entity*'s key in insertion order (``ValueError`` if absent)."""
        return list(self._items).index(self._key(entity))

    # -- Sequence protocol ----------------------------------------------------------

    def __contains__(self, entity: object) -> bool:
        key = getattr(entity, self._discriminator, None)
        return key is not None and key in self._items

    def __iter__(self) -> Iterator[T]:
        # Snapshot so listeners may mutate the cache while iterating.
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> T:
        return list(self._items.values())[index]

    def __repr__(self) -> str:
        return f"<Cache by={self._discriminator!r} size={len(self._items)}>"
