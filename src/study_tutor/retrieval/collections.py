"""Resolution of a user's search collection."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol


class CollectionResolver(Protocol):
    async def resolve(self, user_id: str) -> str:
        """Return the collection id holding the user's course materials."""


class MappingCollectionResolver:
    """Looks up per-user collection overrides, defaulting to the user id."""

    def __init__(self, overrides: Mapping[str, str] | None = None) -> None:
        self._overrides = dict(overrides or {})

    async def resolve(self, user_id: str) -> str:
        return self._overrides.get(user_id) or user_id
