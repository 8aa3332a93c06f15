"""Tests for database.py: append-only store, change-sets and dependencies."""

from __future__ import annotations

from conftest import CONTAINER_INT, INT, POINT
from native_binding_generator.database import ChangeSet, DeclarationDatabase
from native_binding_generator.models import (
    CppClassKind,
    CppFunction,
    CppPath,
    CppTypeDeclaration,
)


def _point() -> CppTypeDeclaration:
    return CppTypeDeclaration(POINT, CppClassKind(size=8), "qpoint.h")


class TestAddItem:
    """Tests for DeclarationDatabase.add_item."""

    def test_assigns_sequential_ids(self) -> None:
        db = DeclarationDatabase("lib")
        first = db.add_item(_point(), source_id="a")
        second = db.add_item(CppFunction(path=CppPath.from_str("f")), source_id="b")
        assert (first.id, second.id) == (0, 1)
        assert db.get(1).source_id == "b"

    def test_duplicate_is_ignored(self) -> None:
        """Structurally equal declarations are stored once."""
        db = DeclarationDatabase("lib")
        assert db.add_item(_point()) is not None
        assert db.add_item(_point(), source_id="other") is None
        assert len(db) == 1

    def test_duplicate_of_dependency_is_ignored(self) -> None:
        dep = DeclarationDatabase("base")
        dep.add_item(_point())
        db = DeclarationDatabase("lib", dependencies=[dep])
        assert db.add_item(_point()) is None
        assert len(db) == 0

    def test_find_type_looks_into_dependencies(self) -> None:
        dep = DeclarationDatabase("base")
        dep.add_item(_point())
        db = DeclarationDatabase("lib", dependencies=[dep])
        assert db.has_type(POINT)
        assert db.find_type(CONTAINER_INT) is None


class TestItemViews:
    """Tests for items(), all_items() and the typed accessors."""

    def test_items_exclude_dependencies(self) -> None:
        dep = DeclarationDatabase("base")
        dep.add_item(_point())
        db = DeclarationDatabase("lib", dependencies=[dep])
        db.add_item(CppFunction(path=CppPath.from_str("f"), return_type=INT))
        assert len(list(db.items())) == 1
        assert len(list(db.all_items())) == 2
        assert db.type_declarations(include_dependencies=False) == []
        assert db.type_declarations() == [_point()]
        assert [f.name for f in db.functions()] == ["f"]

    def test_owns_only_own_items(self) -> None:
        dep = DeclarationDatabase("base")
        dep_item = dep.add_item(_point())
        db = DeclarationDatabase("lib", dependencies=[dep])
        own_item = db.add_item(CppFunction(path=CppPath.from_str("f")))
        assert db.owns(own_item)
        assert not db.owns(dep_item)
        assert dep_item.id == own_item.id == 0

    def test_snapshot_is_stable(self) -> None:
        db = DeclarationDatabase("lib")
        db.add_item(_point())
        snapshot = db.snapshot()
        db.add_item(CppFunction(path=CppPath.from_str("f")))
        assert len(snapshot) == 1
        assert len(db) == 2


class TestChangeSet:
    """Tests for ChangeSet and DeclarationDatabase.apply."""

    def test_deduplicates_in_first_seen_order(self) -> None:
        changes = ChangeSet()
        assert changes.add(_point(), source_id="first")
        assert not changes.add(_point(), source_id="second")
        assert len(changes) == 1
        assert next(iter(changes)).source_id == "first"

    def test_apply_counts_new_items(self) -> None:
        db = DeclarationDatabase("lib")
        db.add_item(_point())
        changes = ChangeSet()
        changes.add(_point())
        changes.add(CppFunction(path=CppPath.from_str("f")), origin_id=0)
        assert db.apply(changes) == 1
        assert db.get(1).origin_id == 0

    def test_empty_change_set(self) -> None:
        changes = ChangeSet()
        assert changes.is_empty
        assert DeclarationDatabase("lib").apply(changes) == 0
