"""Shared fixtures: small declaration databases modelled on a Qt-like library."""

from __future__ import annotations

import pytest

from native_binding_generator.database import DeclarationDatabase
from native_binding_generator.models import (
    BuiltInNumericKind,
    CppBuiltInNumericType,
    CppClassKind,
    CppClassType,
    CppEnumKind,
    CppEnumType,
    CppFunction,
    CppFunctionArgument,
    CppPath,
    CppPathItem,
    CppTemplateParameterType,
    CppTypeDeclaration,
    EnumValue,
    FunctionKind,
    ReceiverKind,
    reference_to,
)
from native_binding_generator.type_mapping import MappingConfig

INT = CppBuiltInNumericType(BuiltInNumericKind.INT)
FLOAT = CppBuiltInNumericType(BuiltInNumericKind.FLOAT)
T0 = CppTemplateParameterType(nested_level=0, index=0, name="T")

POINT = CppPath.from_str("QPoint")
ALIGNMENT = CppPath.from_str("Qt::AlignmentFlag")
CONTAINER_T = CppPath.from_items([CppPathItem("Container", (T0,))])
CONTAINER_INT = CppPath.from_items([CppPathItem("Container", (INT,))])
FLAGS_ALIGNMENT = CppPath.from_items([CppPathItem("QFlags", (CppEnumType(ALIGNMENT),))])


@pytest.fixture
def config() -> MappingConfig:
    return MappingConfig(library_name="qt_core")


@pytest.fixture
def point_db() -> DeclarationDatabase:
    """QPoint with a constructor, const and mutable methods, and an enum."""
    db = DeclarationDatabase(name="qt_core")
    db.add_item(CppTypeDeclaration(POINT, CppClassKind(size=8), "qpoint.h"), source_id="qpoint.h:1")
    db.add_item(
        CppTypeDeclaration(
            ALIGNMENT,
            CppEnumKind((EnumValue("AlignLeft", 1), EnumValue("AlignRight", 2))),
            "qnamespace.h",
        ),
        source_id="qnamespace.h:1",
    )
    db.add_item(CppFunction(
        path=POINT.join(CppPathItem("QPoint")),
        arguments=(CppFunctionArgument("xpos", INT), CppFunctionArgument("ypos", INT)),
        is_member=True,
        kind=FunctionKind.CONSTRUCTOR,
        include_file="qpoint.h",
    ), source_id="qpoint.h:2")
    db.add_item(CppFunction(
        path=POINT.join(CppPathItem("x")),
        return_type=INT,
        is_member=True,
        receiver=ReceiverKind.CONST,
        include_file="qpoint.h",
    ), source_id="qpoint.h:3")
    db.add_item(CppFunction(
        path=POINT.join(CppPathItem("setX")),
        arguments=(CppFunctionArgument("x", INT),),
        is_member=True,
        receiver=ReceiverKind.MUTABLE,
        include_file="qpoint.h",
    ), source_id="qpoint.h:4")
    return db


@pytest.fixture
def container_db() -> DeclarationDatabase:
    """Generic Container<T> with a generic free function get(Container<T>&) -> T."""
    db = DeclarationDatabase(name="containers")
    db.add_item(CppTypeDeclaration(CONTAINER_T, CppClassKind(size=16), "container.h"), source_id="container.h:1")
    db.add_item(CppFunction(
        path=CppPath.from_str("get"),
        return_type=T0,
        arguments=(CppFunctionArgument("c", reference_to(CppClassType(CONTAINER_T))),),
        include_file="container.h",
    ), source_id="container.h:2")
    return db
