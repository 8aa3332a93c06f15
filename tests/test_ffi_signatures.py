"""Tests for ffi_signatures.py: shim signatures, allocation variants and shim names."""

from __future__ import annotations

import logging
from typing import Dict

import pytest

from conftest import FLAGS_ALIGNMENT, FLOAT, INT, POINT
from native_binding_generator.database import DeclarationDatabase
from native_binding_generator.ffi_signatures import (
    ArgumentMeaning,
    ReturnValueAllocationPlace,
    allocation_places,
    build_signature,
    generate_ffi_methods,
    shim_table,
)
from native_binding_generator.models import (
    ArgRole,
    CppClassType,
    CppEnumType,
    CppFunction,
    CppFunctionArgument,
    CppPath,
    CppPathItem,
    CppVoidType,
    IndirectionChange,
    pointer_to,
)
from native_binding_generator.naming import build_name_map
from native_binding_generator.type_mapping import MappingConfig, TypeTranslator


@pytest.fixture
def translator(point_db: DeclarationDatabase, config: MappingConfig) -> TypeTranslator:
    return TypeTranslator(build_name_map(point_db, config), config=config)


def _by_name(db: DeclarationDatabase) -> Dict[str, CppFunction]:
    return {f.name: f for f in db.functions()}


class TestAllocationPlaces:
    def test_class_by_value_gets_both(self, point_db: DeclarationDatabase, translator: TypeTranslator) -> None:
        ctor = _by_name(point_db)["QPoint"]
        assert allocation_places(ctor, translator) == [
            ReturnValueAllocationPlace.STACK,
            ReturnValueAllocationPlace.HEAP,
        ]

    def test_scalar_and_flags_returns(self, point_db: DeclarationDatabase, translator: TypeTranslator) -> None:
        assert allocation_places(_by_name(point_db)["x"], translator) == [ReturnValueAllocationPlace.NOT_APPLICABLE]
        flags = CppFunction(path=CppPath.from_str("alignment"), return_type=CppClassType(FLAGS_ALIGNMENT))
        assert allocation_places(flags, translator) == [ReturnValueAllocationPlace.NOT_APPLICABLE]


class TestBuildSignature:
    """Tests for build_signature."""

    def test_const_receiver_comes_first(self, point_db: DeclarationDatabase, translator: TypeTranslator) -> None:
        sig = build_signature(_by_name(point_db)["x"], ReturnValueAllocationPlace.NOT_APPLICABLE, translator)
        assert [a.meaning for a in sig.arguments] == [ArgumentMeaning.THIS]
        assert sig.arguments[0].argument_type.ffi_type == pointer_to(CppClassType(POINT), is_const=True)
        assert sig.arguments[0].role == ArgRole.RECEIVER
        assert sig.return_type.ffi_type == INT

    def test_stack_variant_appends_output(self, point_db: DeclarationDatabase, translator: TypeTranslator) -> None:
        sig = build_signature(_by_name(point_db)["QPoint"], ReturnValueAllocationPlace.STACK, translator)
        assert [a.name for a in sig.arguments] == ["xpos", "ypos", "output"]
        assert [a.native_index for a in sig.arguments] == [0, 1, None]
        assert sig.return_slot_index() == 2
        output = sig.arguments[2].argument_type
        assert output.ffi_type == pointer_to(CppClassType(POINT))
        assert output.conversion == IndirectionChange.VALUE_TO_POINTER
        assert sig.return_type.ffi_type == CppVoidType()

    def test_heap_variant_returns_pointer(self, point_db: DeclarationDatabase, translator: TypeTranslator) -> None:
        sig = build_signature(_by_name(point_db)["QPoint"], ReturnValueAllocationPlace.HEAP, translator)
        assert sig.return_slot_index() is None
        assert sig.return_type.ffi_type == pointer_to(CppClassType(POINT))

    def test_unnamed_arguments(self, translator: TypeTranslator) -> None:
        f = CppFunction(path=CppPath.from_str("add"), arguments=(CppFunctionArgument("", INT), CppFunctionArgument("", INT)))
        sig = build_signature(f, ReturnValueAllocationPlace.NOT_APPLICABLE, translator)
        assert [a.name for a in sig.arguments] == ["arg1", "arg2"]


class TestGenerateFfiMethods:
    """Tests for generate_ffi_methods and shim naming."""

    def test_point_db(self, point_db: DeclarationDatabase, translator: TypeTranslator) -> None:
        methods = generate_ffi_methods(point_db, translator)
        assert [m.shim_name for m in methods] == [
            "qt_core_QPoint_QPoint",
            "qt_core_QPoint_QPoint_as_ptr",
            "qt_core_QPoint_x",
            "qt_core_QPoint_setX",
        ]

    def test_overloads_get_captions(self, translator: TypeTranslator) -> None:
        db = DeclarationDatabase("qt_core")
        db.add_item(CppFunction(path=CppPath.from_str("foo"), arguments=(CppFunctionArgument("a", INT),)))
        db.add_item(CppFunction(path=CppPath.from_str("foo"), arguments=(CppFunctionArgument("a", FLOAT),)))
        names = [m.shim_name for m in generate_ffi_methods(db, translator)]
        assert names == ["qt_core_foo_args_int", "qt_core_foo_args_float"]

    def test_collision_gets_numeric_suffix(
        self, translator: TypeTranslator, caplog: pytest.LogCaptureFixture
    ) -> None:
        """'a::b' and 'a_b' flatten to the same shim name."""
        db = DeclarationDatabase("qt_core")
        db.add_item(CppFunction(path=CppPath.from_str("a::b")))
        db.add_item(CppFunction(path=CppPath.from_str("a_b")))
        with caplog.at_level(logging.WARNING):
            names = [m.shim_name for m in generate_ffi_methods(db, translator)]
        assert names == ["qt_core_a_b_args_no_args", "qt_core_a_b_args_no_args2"]
        assert "Shim name conflict" in caplog.text

    def test_untranslatable_function_is_dropped(
        self, translator: TypeTranslator, caplog: pytest.LogCaptureFixture
    ) -> None:
        db = DeclarationDatabase("qt_core")
        db.add_item(CppFunction(path=CppPath.from_str("area"), arguments=(CppFunctionArgument("r", CppClassType(CppPath.from_str("QRect"))),)))
        db.add_item(CppFunction(path=CppPath.from_str("origin"), return_type=CppClassType(POINT)))
        with caplog.at_level(logging.WARNING):
            methods = generate_ffi_methods(db, translator)
        assert {m.function.name for m in methods} == {"origin"}
        assert "Skipping function" in caplog.text
        assert "QRect" in caplog.text

    def test_flags_of_unknown_enum_are_dropped(self, translator: TypeTranslator) -> None:
        """QFlags<E> is an integer in the shim, but E must still have a target name."""
        unknown = CppPath.from_items([CppPathItem("QFlags", (CppEnumType(CppPath.from_str("Qt::Orientation")),))])
        db = DeclarationDatabase("qt_core")
        db.add_item(CppFunction(path=CppPath.from_str("setOrientations"), arguments=(CppFunctionArgument("o", CppClassType(unknown)),)))
        db.add_item(CppFunction(path=CppPath.from_str("setAlignment"), arguments=(CppFunctionArgument("a", CppClassType(FLAGS_ALIGNMENT)),)))
        assert [m.shim_name for m in generate_ffi_methods(db, translator)] == ["qt_core_setAlignment"]

    def test_static_method_of_class_without_target_type(self, translator: TypeTranslator) -> None:
        db = DeclarationDatabase("qt_core")
        db.add_item(CppFunction(path=CppPath.from_str("QRect::count"), return_type=INT, is_member=True))
        assert generate_ffi_methods(db, translator) == []

    def test_generic_functions_are_ignored(self, container_db: DeclarationDatabase, config: MappingConfig) -> None:
        translator = TypeTranslator(build_name_map(container_db, config), config=config)
        assert generate_ffi_methods(container_db, translator) == []


def test_shim_table(point_db: DeclarationDatabase, translator: TypeTranslator) -> None:
    table = {f.shim_name: f for f in shim_table(generate_ffi_methods(point_db, translator), translator)}
    x = table["qt_core_QPoint_x"]
    assert x.native_name == "QPoint::x"
    assert x.to_dict() == {
        "shim_name": "qt_core_QPoint_x",
        "native_name": "QPoint::x",
        "arguments": [
            {"name": "self", "cpp_type": "const ::QPoint*", "shim_type": "ctypes.POINTER(qt_core.qpoint.QPoint)"},
        ],
        "return_type": "ctypes.c_int",
        "cpp_return_type": "int",
    }
    stack = table["qt_core_QPoint_QPoint"]
    assert stack.return_type.to_code() == "None"
    assert stack.argument_types[-1].to_code() == "ctypes.POINTER(qt_core.qpoint.QPoint)"
