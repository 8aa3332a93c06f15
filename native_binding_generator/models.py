#!/usr/bin/env python3
"""
Data models for the native binding generator.

This module provides immutable, hashable data structures to describe:
- Native types (a closed tagged union: void, bool, numerics, enums, classes,
  function pointers, template parameters, pointers and references)
- Paths (namespace/class segments, each optionally carrying template arguments)
- Declarations (types and functions) as stored in the declaration database
- The FFI-level view of a type (shim type + indirection change)
- Generation context (paths, library name, pass limits)

All native models are frozen dataclasses built from tuples, so structural
equality and hashing come for free. Passes rely on that to deduplicate
declarations and instantiation candidates.

The structural queries needed by the passes live next to the models:
- is_template_parameter / is_or_contains_template_parameter
- instantiate_type (substitute one nesting level of template parameters)
- type_to_cpp_code (readable C++ spelling, used for diagnostics, operator names
  and the emitted shim header)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import InvariantViolation, TemplateArgumentMismatch

# --------------------------
# Native type model
# --------------------------

class BuiltInNumericKind(Enum):
    CHAR_S = auto()
    CHAR_U = auto()
    SCHAR = auto()
    UCHAR = auto()
    WCHAR = auto()
    CHAR16 = auto()
    CHAR32 = auto()
    SHORT = auto()
    USHORT = auto()
    INT = auto()
    UINT = auto()
    LONG = auto()
    ULONG = auto()
    LONG_LONG = auto()
    ULONG_LONG = auto()
    INT128 = auto()
    UINT128 = auto()
    FLOAT = auto()
    DOUBLE = auto()
    LONG_DOUBLE = auto()

    @property
    def spelling(self) -> str:
        return _BUILT_IN_SPELLINGS[self]


# CHAR_S and CHAR_U are both plain `char`, signedness is platform-defined.
_BUILT_IN_SPELLINGS: Dict[BuiltInNumericKind, str] = {
    BuiltInNumericKind.CHAR_S: "char",
    BuiltInNumericKind.CHAR_U: "char",
    BuiltInNumericKind.SCHAR: "signed char",
    BuiltInNumericKind.UCHAR: "unsigned char",
    BuiltInNumericKind.WCHAR: "wchar_t",
    BuiltInNumericKind.CHAR16: "char16_t",
    BuiltInNumericKind.CHAR32: "char32_t",
    BuiltInNumericKind.SHORT: "short",
    BuiltInNumericKind.USHORT: "unsigned short",
    BuiltInNumericKind.INT: "int",
    BuiltInNumericKind.UINT: "unsigned int",
    BuiltInNumericKind.LONG: "long",
    BuiltInNumericKind.ULONG: "unsigned long",
    BuiltInNumericKind.LONG_LONG: "long long",
    BuiltInNumericKind.ULONG_LONG: "unsigned long long",
    BuiltInNumericKind.INT128: "__int128",
    BuiltInNumericKind.UINT128: "unsigned __int128",
    BuiltInNumericKind.FLOAT: "float",
    BuiltInNumericKind.DOUBLE: "double",
    BuiltInNumericKind.LONG_DOUBLE: "long double",
}


class SpecificNumericKind(Enum):
    SIGNED_INTEGER = auto()
    UNSIGNED_INTEGER = auto()
    FLOATING_POINT = auto()


class PointerLikeKind(Enum):
    POINTER = auto()
    REFERENCE = auto()


@dataclass(frozen=True)
class CppVoidType:
    pass


@dataclass(frozen=True)
class CppBoolType:
    pass


@dataclass(frozen=True)
class CppBuiltInNumericType:
    kind: BuiltInNumericKind


@dataclass(frozen=True)
class CppSpecificNumericType:
    """
    A fixed-width numeric typedef such as `int32_t` or `qreal`.
    `name` is the native spelling; `bits` and `kind` carry the layout.
    """
    name: str
    bits: int
    kind: SpecificNumericKind


@dataclass(frozen=True)
class CppPointerSizedIntegerType:
    name: str
    is_signed: bool


@dataclass(frozen=True)
class CppEnumType:
    path: "CppPath"


@dataclass(frozen=True)
class CppClassType:
    """
    A class or struct. Template arguments, if any, live on the last path item.
    """
    path: "CppPath"

    @property
    def template_arguments(self) -> Optional[Tuple["CppType", ...]]:
        return self.path.last().template_arguments


@dataclass(frozen=True)
class CppFunctionPointerType:
    return_type: "CppType"
    arguments: Tuple["CppType", ...] = ()
    allows_variadic_arguments: bool = False


@dataclass(frozen=True)
class CppTemplateParameterType:
    """
    Template parameter identified by its nesting level (0 for the outermost
    template) and its index within that level. The declared name is kept for
    display only and does not participate in equality.
    """
    nested_level: int
    index: int
    name: str = field(default="", compare=False)


@dataclass(frozen=True)
class CppPointerLikeType:
    kind: PointerLikeKind
    target: "CppType"
    is_const: bool = False


CppType = Union[
    CppVoidType,
    CppBoolType,
    CppBuiltInNumericType,
    CppSpecificNumericType,
    CppPointerSizedIntegerType,
    CppEnumType,
    CppClassType,
    CppFunctionPointerType,
    CppTemplateParameterType,
    CppPointerLikeType,
]


def pointer_to(target: CppType, is_const: bool = False) -> CppPointerLikeType:
    return CppPointerLikeType(kind=PointerLikeKind.POINTER, target=target, is_const=is_const)


def reference_to(target: CppType, is_const: bool = False) -> CppPointerLikeType:
    return CppPointerLikeType(kind=PointerLikeKind.REFERENCE, target=target, is_const=is_const)


def is_template_parameter(t: CppType) -> bool:
    return isinstance(t, CppTemplateParameterType)


def is_or_contains_template_parameter(t: CppType) -> bool:
    """
    True if the type is a template parameter or refers to one anywhere inside
    (template arguments, pointer targets, function pointer signatures).
    """
    if isinstance(t, CppTemplateParameterType):
        return True
    if isinstance(t, (CppClassType, CppEnumType)):
        return t.path.contains_template_parameter()
    if isinstance(t, CppPointerLikeType):
        return is_or_contains_template_parameter(t.target)
    if isinstance(t, CppFunctionPointerType):
        return is_or_contains_template_parameter(t.return_type) or any(
            is_or_contains_template_parameter(a) for a in t.arguments
        )
    return False


def instantiate_type(t: CppType, nested_level: int, arguments: Sequence[CppType]) -> CppType:
    """
    Replace template parameters of `nested_level` with `arguments[index]`.
    Parameters of other levels are left untouched.
    """
    if isinstance(t, CppTemplateParameterType):
        if t.nested_level != nested_level:
            return t
        if t.index >= len(arguments):
            raise TemplateArgumentMismatch(
                f"not enough template arguments: parameter #{t.index} requested, {len(arguments)} given"
            )
        return arguments[t.index]
    if isinstance(t, CppClassType):
        return CppClassType(path=t.path.instantiate(nested_level, arguments))
    if isinstance(t, CppEnumType):
        return CppEnumType(path=t.path.instantiate(nested_level, arguments))
    if isinstance(t, CppPointerLikeType):
        return replace(t, target=instantiate_type(t.target, nested_level, arguments))
    if isinstance(t, CppFunctionPointerType):
        return replace(
            t,
            return_type=instantiate_type(t.return_type, nested_level, arguments),
            arguments=tuple(instantiate_type(a, nested_level, arguments) for a in t.arguments),
        )
    return t


def type_to_cpp_code(t: CppType) -> str:
    """
    Render a readable C++ spelling of a native type.
    """
    if isinstance(t, CppVoidType):
        return "void"
    if isinstance(t, CppBoolType):
        return "bool"
    if isinstance(t, CppBuiltInNumericType):
        return t.kind.spelling
    if isinstance(t, (CppSpecificNumericType, CppPointerSizedIntegerType)):
        return t.name
    if isinstance(t, (CppEnumType, CppClassType)):
        return "::" + t.path.to_cpp_code()
    if isinstance(t, CppTemplateParameterType):
        return t.name or f"T{t.nested_level}_{t.index}"
    if isinstance(t, CppPointerLikeType):
        const_prefix = "const " if t.is_const else ""
        if isinstance(t.target, CppFunctionPointerType):
            return f"{type_to_cpp_code(t.target)}{'*' if t.kind == PointerLikeKind.POINTER else '&'}"
        marker = "*" if t.kind == PointerLikeKind.POINTER else "&"
        return f"{const_prefix}{type_to_cpp_code(t.target)}{marker}"
    if isinstance(t, CppFunctionPointerType):
        args = [type_to_cpp_code(a) for a in t.arguments]
        if t.allows_variadic_arguments:
            args.append("...")
        return f"{type_to_cpp_code(t.return_type)} (*)({', '.join(args)})"
    raise InvariantViolation(f"unknown native type variant: {t!r}")


def class_path_of(t: CppType) -> Optional["CppPath"]:
    """
    Path of a class type, looking through a single pointer/reference level.
    """
    if isinstance(t, CppClassType):
        return t.path
    if isinstance(t, CppPointerLikeType) and isinstance(t.target, CppClassType):
        return t.target.path
    return None


# --------------------------
# Paths
# --------------------------

@dataclass(frozen=True)
class CppPathItem:
    name: str
    template_arguments: Optional[Tuple[CppType, ...]] = None

    def to_cpp_code(self) -> str:
        if self.template_arguments is None:
            return self.name
        args = ", ".join(type_to_cpp_code(a) for a in self.template_arguments)
        return f"{self.name}<{args}>"

    def contains_template_parameter(self) -> bool:
        return any(is_or_contains_template_parameter(a) for a in self.template_arguments or ())


@dataclass(frozen=True)
class CppPath:
    """
    Ordered namespace/class/function segments, e.g. `ns::Container<T>::get`.
    """
    items: Tuple[CppPathItem, ...]

    def __post_init__(self) -> None:
        if not self.items:
            raise InvariantViolation("a path must have at least one item")

    @staticmethod
    def from_str(text: str) -> "CppPath":
        """
        Build a path from plain `::`-separated names (no template arguments).
        """
        return CppPath(items=tuple(CppPathItem(name=part) for part in text.split("::") if part))

    @staticmethod
    def from_items(items: Iterable[CppPathItem]) -> "CppPath":
        return CppPath(items=tuple(items))

    def last(self) -> CppPathItem:
        return self.items[-1]

    def parent(self) -> Optional["CppPath"]:
        if len(self.items) < 2:
            return None
        return CppPath(items=self.items[:-1])

    def join(self, item: CppPathItem) -> "CppPath":
        return CppPath(items=self.items + (item,))

    def with_last(self, item: CppPathItem) -> "CppPath":
        return CppPath(items=self.items[:-1] + (item,))

    def names(self) -> List[str]:
        return [i.name for i in self.items]

    def same_template_head(self, other: "CppPath") -> bool:
        """
        True if both paths name the same template: same parent, same last name.
        Template arguments of the last item are ignored.
        """
        return self.parent() == other.parent() and self.last().name == other.last().name

    def contains_template_parameter(self) -> bool:
        return any(i.contains_template_parameter() for i in self.items)

    def instantiate(self, nested_level: int, arguments: Sequence[CppType]) -> "CppPath":
        new_items = []
        for item in self.items:
            if item.template_arguments is None:
                new_items.append(item)
                continue
            new_items.append(CppPathItem(
                name=item.name,
                template_arguments=tuple(instantiate_type(a, nested_level, arguments) for a in item.template_arguments),
            ))
        return CppPath(items=tuple(new_items))

    def to_cpp_code(self) -> str:
        return "::".join(i.to_cpp_code() for i in self.items)

    def to_cpp_pseudo_code(self) -> str:
        return self.to_cpp_code()

    def __str__(self) -> str:
        return self.to_cpp_code()


# --------------------------
# Declarations
# --------------------------

@dataclass(frozen=True)
class EnumValue:
    name: str
    value: int


@dataclass(frozen=True)
class CppEnumKind:
    values: Tuple[EnumValue, ...] = ()


@dataclass(frozen=True)
class CppClassKind:
    """
    A class declaration. `size` is the representation size in bytes, or None
    when the parser could not determine it (such types cannot be held by value).
    """
    size: Optional[int] = None

    @property
    def size_known(self) -> bool:
        return self.size is not None


@dataclass(frozen=True)
class CppTypeDeclaration:
    path: CppPath
    kind: Union[CppEnumKind, CppClassKind]
    include_file: str = ""

    @property
    def is_enum(self) -> bool:
        return isinstance(self.kind, CppEnumKind)

    @property
    def is_class(self) -> bool:
        return isinstance(self.kind, CppClassKind)

    @property
    def is_generic(self) -> bool:
        return self.path.contains_template_parameter()

    def as_type(self) -> CppType:
        if self.is_enum:
            return CppEnumType(path=self.path)
        return CppClassType(path=self.path)

    def all_involved_types(self) -> List[CppType]:
        return [self.as_type()]

    def short_text(self) -> str:
        word = "enum" if self.is_enum else "class"
        return f"{word} {self.path.to_cpp_code()}"


class ReceiverKind(Enum):
    NONE = auto()
    MUTABLE = auto()
    CONST = auto()


class FunctionKind(Enum):
    REGULAR = auto()
    CONSTRUCTOR = auto()
    DESTRUCTOR = auto()


@dataclass(frozen=True)
class CppOperator:
    """
    Operator metadata. `name` is a symbolic kind such as "addition" or
    "conversion"; conversion operators carry their target type.
    """
    name: str
    conversion_type: Optional[CppType] = None

    CONVERSION = "conversion"

    @property
    def is_conversion(self) -> bool:
        return self.name == self.CONVERSION


@dataclass(frozen=True)
class CppFunctionArgument:
    name: str
    argument_type: CppType
    has_default_value: bool = False


@dataclass(frozen=True)
class CppFunction:
    """
    A free function or a class member. For members, the class is the path's parent.
    `receiver` describes the implicit `this` argument (NONE for static members,
    constructors and free functions).
    """
    path: CppPath
    return_type: CppType = field(default_factory=CppVoidType)
    arguments: Tuple[CppFunctionArgument, ...] = ()
    is_member: bool = False
    receiver: ReceiverKind = ReceiverKind.NONE
    kind: FunctionKind = FunctionKind.REGULAR
    operator: Optional[CppOperator] = None
    include_file: str = ""

    @property
    def name(self) -> str:
        return self.path.last().name

    @property
    def class_type(self) -> Optional[CppClassType]:
        if not self.is_member:
            return None
        parent = self.path.parent()
        if parent is None:
            raise InvariantViolation(f"member function without a class: {self.path}")
        return CppClassType(path=parent)

    @property
    def has_receiver(self) -> bool:
        return self.is_member and self.receiver != ReceiverKind.NONE and self.kind != FunctionKind.CONSTRUCTOR

    @property
    def is_constructor(self) -> bool:
        return self.kind == FunctionKind.CONSTRUCTOR

    @property
    def is_destructor(self) -> bool:
        return self.kind == FunctionKind.DESTRUCTOR

    @property
    def is_operator(self) -> bool:
        return self.operator is not None

    @property
    def is_generic(self) -> bool:
        return any(is_or_contains_template_parameter(t) for t in self.all_involved_types())

    def effective_return_type(self) -> CppType:
        """
        Constructors are modelled as returning their class by value.
        """
        if self.is_constructor:
            ct = self.class_type
            if ct is None:
                raise InvariantViolation(f"constructor outside of a class: {self.path}")
            return ct
        return self.return_type

    def all_involved_types(self) -> List[CppType]:
        out: List[CppType] = [a.argument_type for a in self.arguments]
        out.append(self.return_type)
        ct = self.class_type
        if ct is not None:
            out.append(ct)
        out.extend(self.path.last().template_arguments or ())
        if self.operator is not None and self.operator.conversion_type is not None:
            out.append(self.operator.conversion_type)
        return out

    def short_text(self) -> str:
        args = ", ".join(type_to_cpp_code(a.argument_type) for a in self.arguments)
        const_q = " const" if self.receiver == ReceiverKind.CONST else ""
        static_q = "static " if self.is_member and self.receiver == ReceiverKind.NONE and self.kind == FunctionKind.REGULAR else ""
        return f"{static_q}{type_to_cpp_code(self.return_type)} {self.path.to_cpp_code()}({args}){const_q}"


Declaration = Union[CppTypeDeclaration, CppFunction]


# --------------------------
# FFI-level type view
# --------------------------

class IndirectionChange(Enum):
    NO_CHANGE = auto()
    VALUE_TO_POINTER = auto()
    REFERENCE_TO_POINTER = auto()
    FLAGS_TO_INTEGER = auto()


class ArgRole(Enum):
    ARGUMENT = auto()
    RETURN_VALUE = auto()
    RECEIVER = auto()


@dataclass(frozen=True)
class CppFfiType:
    """
    A native type together with its ABI-safe shim representation.
    `ffi_type` never holds a class by value or a reference.
    """
    original_type: CppType
    ffi_type: CppType
    conversion: IndirectionChange = IndirectionChange.NO_CHANGE

    @staticmethod
    def void() -> "CppFfiType":
        return CppFfiType(original_type=CppVoidType(), ffi_type=CppVoidType())


# --------------------------
# Generation context
# --------------------------

@dataclass
class GenerationContext:
    """
    Parameters for a single generation run.

    Paths are absolute. Emitters should rely on these rather than guessing.
    """
    output_dir: Path
    templates_dir: Optional[Path]
    library_name: str
    max_instantiation_passes: int = 16
    dry_run: bool = False

    def to_dict(self) -> Dict:
        return {
            "output_dir": str(self.output_dir),
            "templates_dir": str(self.templates_dir) if self.templates_dir else None,
            "library_name": self.library_name,
            "max_instantiation_passes": self.max_instantiation_passes,
            "dry_run": self.dry_run,
        }


__all__ = [
    "BuiltInNumericKind",
    "SpecificNumericKind",
    "PointerLikeKind",
    "CppVoidType",
    "CppBoolType",
    "CppBuiltInNumericType",
    "CppSpecificNumericType",
    "CppPointerSizedIntegerType",
    "CppEnumType",
    "CppClassType",
    "CppFunctionPointerType",
    "CppTemplateParameterType",
    "CppPointerLikeType",
    "CppType",
    "pointer_to",
    "reference_to",
    "is_template_parameter",
    "is_or_contains_template_parameter",
    "instantiate_type",
    "type_to_cpp_code",
    "class_path_of",
    "CppPathItem",
    "CppPath",
    "EnumValue",
    "CppEnumKind",
    "CppClassKind",
    "CppTypeDeclaration",
    "ReceiverKind",
    "FunctionKind",
    "CppOperator",
    "CppFunctionArgument",
    "CppFunction",
    "Declaration",
    "IndirectionChange",
    "ArgRole",
    "CppFfiType",
    "GenerationContext",
]
