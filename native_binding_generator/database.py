#!/usr/bin/env python3
"""
Append-only declaration database.

The database holds every type and function declaration discovered for one
library, each wrapped in a DatabaseItem that records its provenance:

- `source_id`: opaque identifier of the input item that produced it (a parse
  location, a header, an instantiation request). Type instantiations carry
  None, marking them as instantiation products rather than parse products.
- `origin_id`: id of the generic item a declaration was instantiated from.

Items are never mutated or removed. Passes read a stable snapshot of the
database and return a ChangeSet; the driver applies the change-set between
passes. Adding a declaration that is structurally equal to an existing one is
a no-op, which is what makes repeated passes converge to a fixpoint.

A database may reference read-only dependency databases (libraries this one
builds on). `items()` yields own items only, `all_items()` includes the
dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
import logging

from .models import CppFunction, CppPath, CppTypeDeclaration, Declaration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseItem:
    id: int
    item: Declaration
    source_id: Optional[str] = None
    origin_id: Optional[int] = None

    def as_type_ref(self) -> Optional[CppTypeDeclaration]:
        return self.item if isinstance(self.item, CppTypeDeclaration) else None

    def as_function_ref(self) -> Optional[CppFunction]:
        return self.item if isinstance(self.item, CppFunction) else None


@dataclass(frozen=True)
class PendingItem:
    item: Declaration
    source_id: Optional[str] = None
    origin_id: Optional[int] = None


@dataclass
class ChangeSet:
    """
    Declarations produced by a pass, waiting to be merged into the database.
    Duplicates within the change-set are dropped in first-seen order.
    """
    entries: List[PendingItem] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._seen = {e.item for e in self.entries}

    def add(self, item: Declaration, source_id: Optional[str] = None, origin_id: Optional[int] = None) -> bool:
        if item in self._seen:
            return False
        self._seen.add(item)
        self.entries.append(PendingItem(item=item, source_id=source_id, origin_id=origin_id))
        return True

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[PendingItem]:
        return iter(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries


class DeclarationDatabase:
    """
    Store of declarations for one library, created empty per processing run.
    """

    def __init__(self, name: str = "", dependencies: Sequence["DeclarationDatabase"] = ()) -> None:
        self.name = name
        self.dependencies: Tuple[DeclarationDatabase, ...] = tuple(dependencies)
        self._items: List[DatabaseItem] = []
        self._index: Dict[Declaration, DatabaseItem] = {}
        self._types_by_path: Dict[CppPath, CppTypeDeclaration] = {}

    # ---- Writing ----

    def add_item(
        self,
        item: Declaration,
        source_id: Optional[str] = None,
        origin_id: Optional[int] = None,
    ) -> Optional[DatabaseItem]:
        """
        Append a declaration. Returns the new DatabaseItem, or None if an equal
        declaration is already known here or in a dependency.
        """
        if self.contains(item):
            return None
        db_item = DatabaseItem(id=len(self._items), item=item, source_id=source_id, origin_id=origin_id)
        self._items.append(db_item)
        self._index[item] = db_item
        if isinstance(item, CppTypeDeclaration):
            self._types_by_path.setdefault(item.path, item)
        return db_item

    def apply(self, changes: ChangeSet) -> int:
        """
        Merge a change-set produced by a pass. Returns the number of new items.
        """
        added = 0
        for pending in changes:
            if self.add_item(pending.item, source_id=pending.source_id, origin_id=pending.origin_id) is not None:
                added += 1
        if added:
            logger.debug("Database %s: merged %d new item(s) (%d total)", self.name or "<unnamed>", added, len(self._items))
        return added

    # ---- Reading ----

    def __len__(self) -> int:
        return len(self._items)

    def contains(self, item: Declaration) -> bool:
        if item in self._index:
            return True
        return any(dep.contains(item) for dep in self.dependencies)

    def get(self, item_id: int) -> DatabaseItem:
        return self._items[item_id]

    def owns(self, item: DatabaseItem) -> bool:
        """True for items of this database, False for items of a dependency."""
        return item.id < len(self._items) and self._items[item.id] is item

    def items(self) -> Iterator[DatabaseItem]:
        """Own items, in insertion order."""
        return iter(self._items)

    def all_items(self) -> Iterator[DatabaseItem]:
        """Own items followed by items of every dependency."""
        yield from self._items
        for dep in self.dependencies:
            yield from dep.all_items()

    def snapshot(self) -> Tuple[DatabaseItem, ...]:
        """Stable view of own items for a pass's read phase."""
        return tuple(self._items)

    def type_declarations(self, include_dependencies: bool = True) -> List[CppTypeDeclaration]:
        source = self.all_items() if include_dependencies else self.items()
        return [t for t in (i.as_type_ref() for i in source) if t is not None]

    def functions(self, include_dependencies: bool = False) -> List[CppFunction]:
        source = self.all_items() if include_dependencies else self.items()
        return [f for f in (i.as_function_ref() for i in source) if f is not None]

    def find_type(self, path: CppPath) -> Optional[CppTypeDeclaration]:
        found = self._types_by_path.get(path)
        if found is not None:
            return found
        for dep in self.dependencies:
            found = dep.find_type(path)
            if found is not None:
                return found
        return None

    def has_type(self, path: CppPath) -> bool:
        return self.find_type(path) is not None


__all__ = [
    "DatabaseItem",
    "PendingItem",
    "ChangeSet",
    "DeclarationDatabase",
]
