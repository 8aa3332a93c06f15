#!/usr/bin/env python3
"""
Type mapping between native declarations, the C-ABI shim layer and the Python API.

This module analyzes native types (from `models.py`) and computes how to expose
them through the shim layer and the generated Python API. It provides:

- A small target-side type model (TargetName, TargetType) describing ctypes
  shim types and API types
- The TypeTranslator, which turns a native type plus an argument role into a
  CompleteType: the shim representation, the API representation and the
  conversion the generated code must apply between the two
- MappingConfig, holding the library-wide knobs (root name, flags wrapper)

Typical usage (high level):

    from .naming import build_name_map
    from .type_mapping import TypeTranslator, MappingConfig

    config = MappingConfig(library_name="qt_core")
    translator = TypeTranslator(build_name_map(db, config), config=config)
    complete = translator.translate(cpp_type, ArgRole.ARGUMENT)

Translation happens in two steps, mirroring the two layers:

1. Native -> FFI (`to_ffi_type`): classes by value become pointers to a copy,
   references become pointers, flags wrappers become unsigned integers. The
   result never holds a class by value or a reference.
2. FFI -> target (`complete_type`): the shim type is expressed with ctypes names;
   the API type restores the natural shape (value, reference, typed flags).

Translation is purely functional given the name-mapping table. Every failure is
a TranslationError subclass; callers drop the declaration and log.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Dict, List, Mapping, Optional, Tuple, Union

from .errors import (
    InvariantViolation,
    UnknownType,
    UnsupportedIndirection,
    UnsupportedNumeric,
    UnsupportedTemplate,
)
from .models import (
    ArgRole,
    BuiltInNumericKind,
    CppBoolType,
    CppBuiltInNumericType,
    CppClassType,
    CppEnumType,
    CppFfiType,
    CppFunctionPointerType,
    CppPath,
    CppPointerLikeType,
    CppPointerSizedIntegerType,
    CppSpecificNumericType,
    CppTemplateParameterType,
    CppType,
    CppVoidType,
    IndirectionChange,
    PointerLikeKind,
    SpecificNumericKind,
    is_or_contains_template_parameter,
    pointer_to,
    type_to_cpp_code,
)


# --------------------------
# Target model
# --------------------------

@dataclass(frozen=True)
class TargetName:
    """
    Fully qualified target-language name, e.g. ('qt_core', 'point', 'QPoint').
    """
    parts: Tuple[str, ...]

    @staticmethod
    def of(*parts: str) -> "TargetName":
        return TargetName(parts=tuple(parts))

    @property
    def last_name(self) -> str:
        return self.parts[-1]

    def parent(self) -> "TargetName":
        return TargetName(parts=self.parts[:-1])

    def join(self, name: str) -> "TargetName":
        return TargetName(parts=self.parts + (name,))

    def with_last(self, name: str) -> "TargetName":
        return TargetName(parts=self.parts[:-1] + (name,))

    def starts_with(self, prefix: "TargetName") -> bool:
        return self.parts[: len(prefix.parts)] == prefix.parts

    def full_name(self, current_module: Optional["TargetName"] = None) -> str:
        """
        Dotted name; relative to `current_module` if this name lives inside it.
        """
        if current_module is not None and len(self.parts) > len(current_module.parts) and self.starts_with(current_module):
            return ".".join(self.parts[len(current_module.parts):])
        return ".".join(self.parts)

    def __str__(self) -> str:
        return self.full_name()


class TargetIndirection(Enum):
    NONE = auto()
    PTR = auto()
    REF = auto()


@dataclass(frozen=True)
class TargetVoidType:
    def to_code(self, current_module: Optional[TargetName] = None) -> str:
        return "None"


@dataclass(frozen=True)
class TargetType:
    base: TargetName
    generic_arguments: Optional[Tuple["TargetType", ...]] = None
    indirection: TargetIndirection = TargetIndirection.NONE
    is_const: bool = False

    def to_code(self, current_module: Optional[TargetName] = None) -> str:
        """
        Readable Python spelling: ctypes pointers become `ctypes.POINTER(...)`,
        void pointers `ctypes.c_void_p`, generics `Base[Arg]`.
        """
        if self.base == VOID_POINTEE:
            return "ctypes.c_void_p"
        code = self.base.full_name(current_module)
        if self.generic_arguments:
            code += "[" + ", ".join(a.to_code(current_module) for a in self.generic_arguments) + "]"
        if self.indirection == TargetIndirection.PTR:
            return f"ctypes.POINTER({code})"
        return code


TargetTypeLike = Union[TargetVoidType, TargetType]


class ApiToShimConversion(Enum):
    NONE = auto()
    REF_TO_PTR = auto()
    VALUE_TO_PTR = auto()
    FLAGS_TO_INT = auto()


@dataclass(frozen=True)
class CompleteType:
    """
    Everything needed to emit one argument or return slot.
    """
    native_type: CppType
    ffi_type: CppType
    native_to_ffi_conversion: IndirectionChange
    shim_type: TargetTypeLike
    api_type: TargetTypeLike
    api_to_shim_conversion: ApiToShimConversion = ApiToShimConversion.NONE

    def to_dict(self) -> Dict:
        return {
            "native_type": type_to_cpp_code(self.native_type),
            "ffi_type": type_to_cpp_code(self.ffi_type),
            "native_to_ffi_conversion": self.native_to_ffi_conversion.name,
            "shim_type": self.shim_type.to_code(),
            "api_type": self.api_type.to_code(),
            "api_to_shim_conversion": self.api_to_shim_conversion.name,
        }


# --------------------------
# ctypes catalog
# --------------------------

def _ctypes(name: str) -> TargetName:
    return TargetName.of("ctypes", name)


VOID_POINTEE = _ctypes("c_void")

_BUILT_IN_CTYPES: Dict[BuiltInNumericKind, str] = {
    BuiltInNumericKind.CHAR_S: "c_char",
    BuiltInNumericKind.CHAR_U: "c_char",
    BuiltInNumericKind.SCHAR: "c_byte",
    BuiltInNumericKind.UCHAR: "c_ubyte",
    BuiltInNumericKind.WCHAR: "c_wchar",
    BuiltInNumericKind.SHORT: "c_short",
    BuiltInNumericKind.USHORT: "c_ushort",
    BuiltInNumericKind.INT: "c_int",
    BuiltInNumericKind.UINT: "c_uint",
    BuiltInNumericKind.LONG: "c_long",
    BuiltInNumericKind.ULONG: "c_ulong",
    BuiltInNumericKind.LONG_LONG: "c_longlong",
    BuiltInNumericKind.ULONG_LONG: "c_ulonglong",
    BuiltInNumericKind.FLOAT: "c_float",
    BuiltInNumericKind.DOUBLE: "c_double",
}

_FIXED_WIDTH_BITS = (8, 16, 32, 64)
_FLOAT_CTYPES = {32: "c_float", 64: "c_double"}


# --------------------------
# Configuration
# --------------------------

@dataclass
class MappingConfig:
    """
    Settings for the translator and the name organizer.
    """
    # Root segment of every target path (the generated package name)
    library_name: str = "native"
    # Native path of the generic bit-flag container, parameterized by one enum
    flags_class: str = "QFlags"
    # Target name of the typed flags wrapper; defaults to <library>.flags.Flags
    flags_target: Optional[TargetName] = None
    # Header whose module would hold the flags wrapper itself; skipped on emission
    flags_header: str = "qflags.h"
    # Leaf-name suffix of functions returning a heap-allocated object
    heap_suffix: str = "_as_ptr"
    # Variant injected into single-variant enums
    placeholder_variant: str = "_Invalid"

    flags_path: CppPath = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.flags_path = CppPath.from_str(self.flags_class)
        if self.flags_target is None:
            self.flags_target = TargetName.of(self.library_name, "flags", "Flags")


# --------------------------
# Translator
# --------------------------

class TypeTranslator:
    """
    Converts native types to CompleteType records using the name-mapping table.

    Build with:
      - TypeTranslator(name_map, config): name_map maps a native path to the
        target name of every sized class, every enum and every free function.
    """

    def __init__(self, name_map: Mapping[CppPath, TargetName], config: Optional[MappingConfig] = None) -> None:
        self.name_map = name_map
        self.config = config or MappingConfig()

    # ---- Public API ----

    def translate(self, cpp_type: CppType, role: ArgRole) -> CompleteType:
        """
        Translate a native type in the given role. Raises TranslationError.
        """
        return self.complete_type(self.to_ffi_type(cpp_type, role), role)

    def is_flags_type(self, cpp_type: CppType) -> bool:
        if not isinstance(cpp_type, CppClassType):
            return False
        path = cpp_type.path
        flags = self.config.flags_path
        return path.last().template_arguments is not None and path.same_template_head(flags)

    def to_ffi_type(self, cpp_type: CppType, role: ArgRole) -> CppFfiType:
        """
        Compute the ABI-safe shim representation of a native type.
        """
        if is_or_contains_template_parameter(cpp_type):
            pointee = cpp_type.target if isinstance(cpp_type, CppPointerLikeType) else cpp_type
            if isinstance(pointee, CppClassType):
                raise UnsupportedTemplate(cpp_type)
            raise InvariantViolation(f"template parameter in a concrete declaration: {type_to_cpp_code(cpp_type)}")

        if role != ArgRole.RECEIVER:
            flags = self._flags_candidate(cpp_type)
            if flags is not None:
                self._check_flags_arguments(flags)
                return CppFfiType(
                    original_type=cpp_type,
                    ffi_type=CppBuiltInNumericType(BuiltInNumericKind.UINT),
                    conversion=IndirectionChange.FLAGS_TO_INTEGER,
                )

        if isinstance(cpp_type, CppFunctionPointerType):
            raise UnsupportedIndirection(cpp_type)

        if isinstance(cpp_type, CppPointerLikeType):
            if isinstance(cpp_type.target, (CppPointerLikeType, CppFunctionPointerType)):
                raise UnsupportedIndirection(cpp_type)
            if cpp_type.kind == PointerLikeKind.REFERENCE:
                return CppFfiType(
                    original_type=cpp_type,
                    ffi_type=pointer_to(cpp_type.target, is_const=cpp_type.is_const),
                    conversion=IndirectionChange.REFERENCE_TO_POINTER,
                )
            return CppFfiType(original_type=cpp_type, ffi_type=cpp_type)

        if isinstance(cpp_type, CppClassType):
            if role == ArgRole.RECEIVER:
                # The receiver is always passed by address
                return CppFfiType(original_type=cpp_type, ffi_type=pointer_to(cpp_type))
            return CppFfiType(
                original_type=cpp_type,
                ffi_type=pointer_to(cpp_type, is_const=role == ArgRole.ARGUMENT),
                conversion=IndirectionChange.VALUE_TO_POINTER,
            )

        return CppFfiType(original_type=cpp_type, ffi_type=cpp_type)

    def shim_type(self, ffi: CppFfiType) -> TargetTypeLike:
        """
        Express an FFI-level type with ctypes names (or generated type names).
        """
        t = ffi.ffi_type
        indirection = TargetIndirection.NONE
        is_const = False
        if isinstance(t, CppPointerLikeType):
            if t.kind != PointerLikeKind.POINTER:
                raise InvariantViolation(f"reference left in shim type: {type_to_cpp_code(t)}")
            indirection = TargetIndirection.PTR
            is_const = t.is_const
            t = t.target
            if isinstance(t, (CppPointerLikeType, CppFunctionPointerType)):
                raise UnsupportedIndirection(ffi.ffi_type)

        if isinstance(t, CppVoidType):
            if indirection == TargetIndirection.NONE:
                return TargetVoidType()
            base = VOID_POINTEE
        else:
            base = self._base_name(t)
        return TargetType(base=base, indirection=indirection, is_const=is_const)

    def complete_type(self, ffi: CppFfiType, role: ArgRole) -> CompleteType:
        """
        Derive the API representation and the API-to-shim conversion tag.
        """
        shim = self.shim_type(ffi)
        api: TargetTypeLike = shim
        conversion = ApiToShimConversion.NONE

        if isinstance(api, TargetType):
            change = ffi.conversion
            if change == IndirectionChange.NO_CHANGE:
                if role == ArgRole.RECEIVER:
                    self._expect_pointer(api, ffi)
                    api = replace(api, indirection=TargetIndirection.REF)
                    conversion = ApiToShimConversion.REF_TO_PTR
            elif change == IndirectionChange.VALUE_TO_POINTER:
                self._expect_pointer(api, ffi)
                api = replace(api, indirection=TargetIndirection.NONE, is_const=False)
                conversion = ApiToShimConversion.VALUE_TO_PTR
            elif change == IndirectionChange.REFERENCE_TO_POINTER:
                self._expect_pointer(api, ffi)
                api = replace(api, indirection=TargetIndirection.REF)
                conversion = ApiToShimConversion.REF_TO_PTR

        if ffi.conversion == IndirectionChange.FLAGS_TO_INTEGER:
            enum_name = self._flags_enum_name(ffi.original_type)
            api = TargetType(
                base=self.config.flags_target,
                generic_arguments=(TargetType(base=enum_name),),
            )
            conversion = ApiToShimConversion.FLAGS_TO_INT

        return CompleteType(
            native_type=ffi.original_type,
            ffi_type=ffi.ffi_type,
            native_to_ffi_conversion=ffi.conversion,
            shim_type=shim,
            api_type=api,
            api_to_shim_conversion=conversion,
        )

    # ---- Helpers ----

    def _base_name(self, t: CppType) -> TargetName:
        if isinstance(t, CppBoolType):
            return _ctypes("c_bool")
        if isinstance(t, CppBuiltInNumericType):
            name = _BUILT_IN_CTYPES.get(t.kind)
            if name is None:
                raise UnsupportedNumeric(t.kind.spelling)
            return _ctypes(name)
        if isinstance(t, CppSpecificNumericType):
            return _ctypes(self._specific_numeric_name(t))
        if isinstance(t, CppPointerSizedIntegerType):
            return _ctypes("c_ssize_t" if t.is_signed else "c_size_t")
        if isinstance(t, CppEnumType):
            return self._lookup(t.path)
        if isinstance(t, CppClassType):
            if t.path.contains_template_parameter():
                raise UnsupportedTemplate(t)
            return self._lookup(t.path)
        if isinstance(t, CppTemplateParameterType):
            raise InvariantViolation(f"template parameter in a concrete declaration: {type_to_cpp_code(t)}")
        raise InvariantViolation(f"unexpected type in shim position: {type_to_cpp_code(t)}")

    @staticmethod
    def _specific_numeric_name(t: CppSpecificNumericType) -> str:
        if t.kind == SpecificNumericKind.FLOATING_POINT:
            name = _FLOAT_CTYPES.get(t.bits)
            if name is None:
                raise UnsupportedNumeric(f"{t.name} ({t.bits}-bit float)")
            return name
        if t.bits not in _FIXED_WIDTH_BITS:
            raise UnsupportedNumeric(f"{t.name} ({t.bits}-bit integer)")
        letter = "int" if t.kind == SpecificNumericKind.SIGNED_INTEGER else "uint"
        return f"c_{letter}{t.bits}"

    def _lookup(self, path: CppPath) -> TargetName:
        name = self.name_map.get(path)
        if name is None:
            raise UnknownType(path)
        return name

    def _flags_candidate(self, t: CppType) -> Optional[CppClassType]:
        """
        The flags class for `QFlags<E>` by value or by const reference.
        """
        if self.is_flags_type(t):
            return t
        if (
            isinstance(t, CppPointerLikeType)
            and t.kind == PointerLikeKind.REFERENCE
            and t.is_const
            and self.is_flags_type(t.target)
        ):
            return t.target
        return None

    def _check_flags_arguments(self, flags: CppClassType) -> CppEnumType:
        args = flags.template_arguments or ()
        if len(args) != 1:
            raise UnsupportedTemplate(flags, reason="flags wrapper expects exactly one template argument")
        if not isinstance(args[0], CppEnumType):
            raise UnsupportedTemplate(flags, reason="flags wrapper argument is not an enum")
        return args[0]

    def _flags_enum_name(self, original: CppType) -> TargetName:
        flags = self._flags_candidate(original)
        if flags is None:
            raise InvariantViolation(f"invalid original type for flags conversion: {type_to_cpp_code(original)}")
        enum_type = self._check_flags_arguments(flags)
        return self._lookup(enum_type.path)

    @staticmethod
    def _expect_pointer(t: TargetType, ffi: CppFfiType) -> None:
        if t.indirection != TargetIndirection.PTR:
            raise InvariantViolation(f"expected a pointer shim type for {type_to_cpp_code(ffi.original_type)}")


def void_complete_type() -> CompleteType:
    return CompleteType(
        native_type=CppVoidType(),
        ffi_type=CppVoidType(),
        native_to_ffi_conversion=IndirectionChange.NO_CHANGE,
        shim_type=TargetVoidType(),
        api_type=TargetVoidType(),
    )


__all__ = [
    "TargetName",
    "TargetIndirection",
    "TargetVoidType",
    "TargetType",
    "TargetTypeLike",
    "ApiToShimConversion",
    "CompleteType",
    "VOID_POINTEE",
    "MappingConfig",
    "TypeTranslator",
    "void_complete_type",
]
