"""Tests for type_mapping.py: native -> shim -> API translation."""

from __future__ import annotations

import pytest

from conftest import ALIGNMENT, CONTAINER_INT, CONTAINER_T, FLAGS_ALIGNMENT, INT, POINT
from native_binding_generator.errors import (
    InvariantViolation,
    UnknownType,
    UnsupportedIndirection,
    UnsupportedNumeric,
    UnsupportedTemplate,
)
from native_binding_generator.models import (
    ArgRole,
    BuiltInNumericKind,
    CppBoolType,
    CppBuiltInNumericType,
    CppClassType,
    CppEnumType,
    CppFunctionPointerType,
    CppPath,
    CppPathItem,
    CppPointerSizedIntegerType,
    CppSpecificNumericType,
    CppVoidType,
    IndirectionChange,
    SpecificNumericKind,
    pointer_to,
    reference_to,
)
from native_binding_generator.type_mapping import (
    ApiToShimConversion,
    MappingConfig,
    TargetIndirection,
    TargetName,
    TargetType,
    TargetVoidType,
    TypeTranslator,
)

POINT_NAME = TargetName.of("qt_core", "qpoint", "QPoint")
ALIGNMENT_NAME = TargetName.of("qt_core", "qnamespace", "qt", "AlignmentFlag")


@pytest.fixture
def translator() -> TypeTranslator:
    name_map = {POINT: POINT_NAME, ALIGNMENT: ALIGNMENT_NAME}
    return TypeTranslator(name_map, config=MappingConfig(library_name="qt_core"))


class TestScalars:
    """Scalar types map to ctypes names without conversion."""

    def test_bool_argument(self, translator: TypeTranslator) -> None:
        """A bool argument is a native boolean with no change."""
        t = translator.translate(CppBoolType(), ArgRole.ARGUMENT)
        assert t.shim_type == TargetType(base=TargetName.of("ctypes", "c_bool"))
        assert t.native_to_ffi_conversion == IndirectionChange.NO_CHANGE
        assert t.api_to_shim_conversion == ApiToShimConversion.NONE
        assert t.api_type == t.shim_type

    def test_built_in_numeric(self, translator: TypeTranslator) -> None:
        t = translator.translate(CppBuiltInNumericType(BuiltInNumericKind.ULONG_LONG), ArgRole.RETURN_VALUE)
        assert t.shim_type.to_code() == "ctypes.c_ulonglong"

    def test_unsupported_built_in(self, translator: TypeTranslator) -> None:
        with pytest.raises(UnsupportedNumeric):
            translator.translate(CppBuiltInNumericType(BuiltInNumericKind.INT128), ArgRole.ARGUMENT)

    def test_specific_numeric(self, translator: TypeTranslator) -> None:
        qint32 = CppSpecificNumericType("qint32", 32, SpecificNumericKind.SIGNED_INTEGER)
        quint8 = CppSpecificNumericType("quint8", 8, SpecificNumericKind.UNSIGNED_INTEGER)
        qreal = CppSpecificNumericType("qreal", 64, SpecificNumericKind.FLOATING_POINT)
        assert translator.translate(qint32, ArgRole.ARGUMENT).shim_type.to_code() == "ctypes.c_int32"
        assert translator.translate(quint8, ArgRole.ARGUMENT).shim_type.to_code() == "ctypes.c_uint8"
        assert translator.translate(qreal, ArgRole.ARGUMENT).shim_type.to_code() == "ctypes.c_double"

    def test_odd_width_is_unsupported(self, translator: TypeTranslator) -> None:
        with pytest.raises(UnsupportedNumeric):
            translator.translate(CppSpecificNumericType("int24", 24, SpecificNumericKind.SIGNED_INTEGER), ArgRole.ARGUMENT)

    def test_pointer_sized(self, translator: TypeTranslator) -> None:
        t = translator.translate(CppPointerSizedIntegerType("qsizetype", is_signed=True), ArgRole.ARGUMENT)
        assert t.shim_type.to_code() == "ctypes.c_ssize_t"

    def test_void(self, translator: TypeTranslator) -> None:
        t = translator.translate(CppVoidType(), ArgRole.RETURN_VALUE)
        assert t.shim_type == TargetVoidType()
        assert t.api_type.to_code() == "None"

    def test_void_pointer(self, translator: TypeTranslator) -> None:
        t = translator.translate(pointer_to(CppVoidType()), ArgRole.ARGUMENT)
        assert t.shim_type.to_code() == "ctypes.c_void_p"


class TestNamedTypes:
    """Enums and classes go through the name map."""

    def test_enum(self, translator: TypeTranslator) -> None:
        t = translator.translate(CppEnumType(ALIGNMENT), ArgRole.ARGUMENT)
        assert t.shim_type == TargetType(base=ALIGNMENT_NAME)

    def test_unknown_class(self, translator: TypeTranslator) -> None:
        with pytest.raises(UnknownType) as exc_info:
            translator.translate(CppClassType(CppPath.from_str("QRect")), ArgRole.ARGUMENT)
        assert exc_info.value.path == CppPath.from_str("QRect")

    def test_unresolved_template_class(self, translator: TypeTranslator) -> None:
        with pytest.raises(UnsupportedTemplate):
            translator.translate(reference_to(CppClassType(CONTAINER_T)), ArgRole.ARGUMENT)

    def test_bare_template_parameter_is_an_invariant_violation(self, translator: TypeTranslator) -> None:
        with pytest.raises(InvariantViolation):
            translator.translate(CONTAINER_T.last().template_arguments[0], ArgRole.ARGUMENT)

    def test_instantiated_class_needs_a_name(self, translator: TypeTranslator) -> None:
        with pytest.raises(UnknownType):
            translator.translate(CppClassType(CONTAINER_INT), ArgRole.ARGUMENT)


class TestIndirection:
    """Receiver, by-value and reference handling."""

    def test_receiver(self, translator: TypeTranslator) -> None:
        """The receiver is a pointer in the shim and a reference in the API."""
        t = translator.translate(CppClassType(POINT), ArgRole.RECEIVER)
        assert t.shim_type.indirection == TargetIndirection.PTR
        assert t.api_type.indirection == TargetIndirection.REF
        assert t.api_to_shim_conversion == ApiToShimConversion.REF_TO_PTR
        assert t.native_to_ffi_conversion == IndirectionChange.NO_CHANGE

    def test_class_by_value_argument(self, translator: TypeTranslator) -> None:
        t = translator.translate(CppClassType(POINT), ArgRole.ARGUMENT)
        assert t.ffi_type == pointer_to(CppClassType(POINT), is_const=True)
        assert t.native_to_ffi_conversion == IndirectionChange.VALUE_TO_POINTER
        assert t.shim_type.indirection == TargetIndirection.PTR
        assert t.api_type == TargetType(base=POINT_NAME)
        assert t.api_to_shim_conversion == ApiToShimConversion.VALUE_TO_PTR

    def test_class_by_value_return_is_mutable(self, translator: TypeTranslator) -> None:
        t = translator.translate(CppClassType(POINT), ArgRole.RETURN_VALUE)
        assert t.ffi_type == pointer_to(CppClassType(POINT))

    def test_reference(self, translator: TypeTranslator) -> None:
        t = translator.translate(reference_to(CppClassType(POINT), is_const=True), ArgRole.ARGUMENT)
        assert t.ffi_type == pointer_to(CppClassType(POINT), is_const=True)
        assert t.native_to_ffi_conversion == IndirectionChange.REFERENCE_TO_POINTER
        assert t.api_type.indirection == TargetIndirection.REF
        assert t.api_to_shim_conversion == ApiToShimConversion.REF_TO_PTR

    def test_pointer_is_unchanged(self, translator: TypeTranslator) -> None:
        t = translator.translate(pointer_to(INT), ArgRole.ARGUMENT)
        assert t.native_to_ffi_conversion == IndirectionChange.NO_CHANGE
        assert t.shim_type.to_code() == "ctypes.POINTER(ctypes.c_int)"
        assert t.api_to_shim_conversion == ApiToShimConversion.NONE

    def test_double_pointer(self, translator: TypeTranslator) -> None:
        with pytest.raises(UnsupportedIndirection):
            translator.translate(pointer_to(pointer_to(INT)), ArgRole.ARGUMENT)

    def test_function_pointer(self, translator: TypeTranslator) -> None:
        with pytest.raises(UnsupportedIndirection):
            translator.translate(CppFunctionPointerType(return_type=CppVoidType()), ArgRole.ARGUMENT)


class TestFlags:
    """QFlags<E> becomes an unsigned int in the shim and Flags[E] in the API."""

    def test_flags_by_value(self, translator: TypeTranslator) -> None:
        t = translator.translate(CppClassType(FLAGS_ALIGNMENT), ArgRole.ARGUMENT)
        assert t.shim_type.to_code() == "ctypes.c_uint"
        assert t.native_to_ffi_conversion == IndirectionChange.FLAGS_TO_INTEGER
        assert t.api_to_shim_conversion == ApiToShimConversion.FLAGS_TO_INT
        assert t.api_type == TargetType(
            base=TargetName.of("qt_core", "flags", "Flags"),
            generic_arguments=(TargetType(base=ALIGNMENT_NAME),),
        )
        assert t.api_type.to_code() == "qt_core.flags.Flags[qt_core.qnamespace.qt.AlignmentFlag]"

    def test_flags_by_const_reference(self, translator: TypeTranslator) -> None:
        t = translator.translate(reference_to(CppClassType(FLAGS_ALIGNMENT), is_const=True), ArgRole.ARGUMENT)
        assert t.api_to_shim_conversion == ApiToShimConversion.FLAGS_TO_INT

    def test_flags_of_unknown_enum(self, translator: TypeTranslator) -> None:
        unknown = CppPath.from_items([CppPathItem("QFlags", (CppEnumType(CppPath.from_str("Qt::Other")),))])
        with pytest.raises(UnknownType):
            translator.translate(CppClassType(unknown), ArgRole.ARGUMENT)

    def test_flags_of_non_enum(self, translator: TypeTranslator) -> None:
        bad = CppPath.from_items([CppPathItem("QFlags", (INT,))])
        with pytest.raises(UnsupportedTemplate, match="not an enum"):
            translator.translate(CppClassType(bad), ArgRole.ARGUMENT)


class TestCompleteTypeToDict:
    def test_to_dict(self, translator: TypeTranslator) -> None:
        d = translator.translate(CppClassType(POINT), ArgRole.ARGUMENT).to_dict()
        assert d["native_type"] == "::QPoint"
        assert d["ffi_type"] == "const ::QPoint*"
        assert d["api_to_shim_conversion"] == "VALUE_TO_PTR"
        assert d["shim_type"] == "ctypes.POINTER(qt_core.qpoint.QPoint)"
