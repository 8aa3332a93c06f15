#!/usr/bin/env python3
"""
Clang-based parsing of C++ headers into a declaration database.

This module traverses C/C++ headers using libclang and records every
declaration the generator understands:

- namespaces (as path segments)
- classes and structs with their sizes
- class templates, whose path carries their template parameters
- enums with their values
- free functions and methods (static, const, constructors, destructors,
  operators including conversion operators)

Anything that cannot be represented (function templates, anonymous types,
exotic type kinds) is skipped with a warning. This is a best-effort frontend;
JSON databases (see json_loader) are the primary input.

Requirements:
- libclang Python bindings (pip install libclang)
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple
import logging

from clang import cindex

from ..database import DeclarationDatabase
from ..models import (
    BuiltInNumericKind,
    CppBoolType,
    CppBuiltInNumericType,
    CppClassKind,
    CppClassType,
    CppEnumKind,
    CppEnumType,
    CppFunction,
    CppFunctionArgument,
    CppFunctionPointerType,
    CppOperator,
    CppPath,
    CppPathItem,
    CppPointerLikeType,
    CppPointerSizedIntegerType,
    CppSpecificNumericType,
    CppTemplateParameterType,
    CppType,
    CppTypeDeclaration,
    CppVoidType,
    EnumValue,
    FunctionKind,
    PointerLikeKind,
    ReceiverKind,
    SpecificNumericKind,
)

logger = logging.getLogger(__name__)


class UnsupportedClangType(Exception):
    """A clang type with no counterpart in the native type model."""


# --------------------------
# libclang setup
# --------------------------

def parse_translation_unit(header: Path, clang_args: List[str]):
    """
    Parse a single header into a TranslationUnit with conservative options suitable
    for faster traversal and minimal preprocessing effects.
    """
    idx = cindex.Index.create()
    args = list(clang_args)
    if not any(a.startswith("-x") for a in args):
        args.extend(["-x", "c++"])
    # Silence warnings from system headers
    if not any(a.startswith("-W") for a in args):
        args.append("-Wno-everything")
    return idx.parse(
        str(header),
        args=args,
        options=(
            cindex.TranslationUnit.PARSE_SKIP_FUNCTION_BODIES
            | cindex.TranslationUnit.PARSE_INCOMPLETE
        ),
    )


# --------------------------
# Type conversion
# --------------------------

_BUILT_IN_KINDS = {
    "CHAR_S": BuiltInNumericKind.CHAR_S,
    "CHAR_U": BuiltInNumericKind.CHAR_U,
    "SCHAR": BuiltInNumericKind.SCHAR,
    "UCHAR": BuiltInNumericKind.UCHAR,
    "WCHAR": BuiltInNumericKind.WCHAR,
    "CHAR16": BuiltInNumericKind.CHAR16,
    "CHAR32": BuiltInNumericKind.CHAR32,
    "SHORT": BuiltInNumericKind.SHORT,
    "USHORT": BuiltInNumericKind.USHORT,
    "INT": BuiltInNumericKind.INT,
    "UINT": BuiltInNumericKind.UINT,
    "LONG": BuiltInNumericKind.LONG,
    "ULONG": BuiltInNumericKind.ULONG,
    "LONGLONG": BuiltInNumericKind.LONG_LONG,
    "ULONGLONG": BuiltInNumericKind.ULONG_LONG,
    "INT128": BuiltInNumericKind.INT128,
    "UINT128": BuiltInNumericKind.UINT128,
    "FLOAT": BuiltInNumericKind.FLOAT,
    "DOUBLE": BuiltInNumericKind.DOUBLE,
    "LONGDOUBLE": BuiltInNumericKind.LONG_DOUBLE,
}

# Typedefs kept as fixed-width types instead of their platform-dependent canonical type
_SPECIFIC_TYPEDEFS = {
    "int8_t": (8, SpecificNumericKind.SIGNED_INTEGER),
    "int16_t": (16, SpecificNumericKind.SIGNED_INTEGER),
    "int32_t": (32, SpecificNumericKind.SIGNED_INTEGER),
    "int64_t": (64, SpecificNumericKind.SIGNED_INTEGER),
    "uint8_t": (8, SpecificNumericKind.UNSIGNED_INTEGER),
    "uint16_t": (16, SpecificNumericKind.UNSIGNED_INTEGER),
    "uint32_t": (32, SpecificNumericKind.UNSIGNED_INTEGER),
    "uint64_t": (64, SpecificNumericKind.UNSIGNED_INTEGER),
    "qint8": (8, SpecificNumericKind.SIGNED_INTEGER),
    "qint16": (16, SpecificNumericKind.SIGNED_INTEGER),
    "qint32": (32, SpecificNumericKind.SIGNED_INTEGER),
    "qint64": (64, SpecificNumericKind.SIGNED_INTEGER),
    "quint8": (8, SpecificNumericKind.UNSIGNED_INTEGER),
    "quint16": (16, SpecificNumericKind.UNSIGNED_INTEGER),
    "quint32": (32, SpecificNumericKind.UNSIGNED_INTEGER),
    "quint64": (64, SpecificNumericKind.UNSIGNED_INTEGER),
    "qreal": (64, SpecificNumericKind.FLOATING_POINT),
}

_POINTER_SIZED_TYPEDEFS = {
    "size_t": False,
    "uintptr_t": False,
    "quintptr": False,
    "ssize_t": True,
    "ptrdiff_t": True,
    "intptr_t": True,
    "qintptr": True,
    "qptrdiff": True,
    "qsizetype": True,
}

_TEMPLATE_PARAMETER_SPELLING = re.compile(r"type-parameter-(\d+)-(\d+)")

_SCOPE_KINDS = ("NAMESPACE", "CLASS_DECL", "STRUCT_DECL", "CLASS_TEMPLATE")


def _template_parameters(cursor: Any, nested_level: int) -> Tuple[CppType, ...]:
    params = []
    for child in cursor.get_children():
        if child.kind.name == "TEMPLATE_TYPE_PARAMETER":
            params.append(CppTemplateParameterType(nested_level=nested_level, index=len(params), name=child.spelling))
    return tuple(params)


def cursor_path(cursor: Any) -> CppPath:
    """
    Native path of a declaration cursor, with the template parameters of
    enclosing class templates attached to their segments.
    """
    chain = []
    cur = cursor
    while cur is not None and cur.kind.name != "TRANSLATION_UNIT":
        chain.append(cur)
        cur = cur.semantic_parent
    chain.reverse()

    items: List[CppPathItem] = []
    nested_level = 0
    for node in chain:
        if node.kind.name not in _SCOPE_KINDS and node is not cursor:
            continue
        if node.kind.name == "NAMESPACE" and not node.spelling:
            continue
        if node.kind.name == "CLASS_TEMPLATE":
            items.append(CppPathItem(name=node.spelling, template_arguments=_template_parameters(node, nested_level)))
            nested_level += 1
        else:
            items.append(CppPathItem(name=node.spelling))
    return CppPath.from_items(items)


def _declaration_path(clang_type: Any) -> CppPath:
    decl = clang_type.get_declaration()
    path = cursor_path(decl)
    num_args = clang_type.get_num_template_arguments()
    if num_args > 0:
        args = tuple(cpp_type_from_clang(clang_type.get_template_argument_type(i)) for i in range(num_args))
        path = path.with_last(CppPathItem(name=path.last().name, template_arguments=args))
    return path


def cpp_type_from_clang(clang_type: Any) -> CppType:
    """
    Convert a clang Type into the native type model. Raises UnsupportedClangType.
    """
    kind = clang_type.kind.name

    if kind == "ELABORATED":
        return cpp_type_from_clang(clang_type.get_named_type())
    if kind == "TYPEDEF":
        name = clang_type.get_declaration().spelling
        if name in _SPECIFIC_TYPEDEFS:
            bits, numeric = _SPECIFIC_TYPEDEFS[name]
            return CppSpecificNumericType(name=name, bits=bits, kind=numeric)
        if name in _POINTER_SIZED_TYPEDEFS:
            return CppPointerSizedIntegerType(name=name, is_signed=_POINTER_SIZED_TYPEDEFS[name])
        return cpp_type_from_clang(clang_type.get_canonical())

    if kind == "VOID":
        return CppVoidType()
    if kind == "BOOL":
        return CppBoolType()
    if kind in _BUILT_IN_KINDS:
        return CppBuiltInNumericType(kind=_BUILT_IN_KINDS[kind])

    if kind in ("POINTER", "LVALUEREFERENCE", "RVALUEREFERENCE"):
        pointee = clang_type.get_pointee()
        if pointee.kind.name == "FUNCTIONPROTO":
            return cpp_type_from_clang(pointee)
        return CppPointerLikeType(
            kind=PointerLikeKind.POINTER if kind == "POINTER" else PointerLikeKind.REFERENCE,
            target=cpp_type_from_clang(pointee),
            is_const=pointee.is_const_qualified(),
        )

    if kind == "FUNCTIONPROTO":
        return CppFunctionPointerType(
            return_type=cpp_type_from_clang(clang_type.get_result()),
            arguments=tuple(cpp_type_from_clang(a) for a in clang_type.argument_types()),
            allows_variadic_arguments=clang_type.is_function_variadic(),
        )

    if kind == "ENUM":
        return CppEnumType(path=cursor_path(clang_type.get_declaration()))
    if kind == "RECORD":
        return CppClassType(path=_declaration_path(clang_type))

    if kind in ("UNEXPOSED", "TEMPLATETYPEPARM"):
        match = _TEMPLATE_PARAMETER_SPELLING.fullmatch(clang_type.get_canonical().spelling)
        if match:
            return CppTemplateParameterType(
                nested_level=int(match.group(1)),
                index=int(match.group(2)),
                name=clang_type.spelling,
            )
        # Template specializations such as Box<int> are records once canonical
        canonical = clang_type.get_canonical()
        if canonical.kind.name == "RECORD":
            return CppClassType(path=_declaration_path(canonical))
        decl = clang_type.get_declaration()
        if decl.kind.name in ("CLASS_DECL", "STRUCT_DECL", "CLASS_TEMPLATE"):
            return CppClassType(path=_declaration_path(clang_type))

    raise UnsupportedClangType(f"{clang_type.spelling} ({kind})")


# --------------------------
# Declarations
# --------------------------

_SYSTEM_DIR_PREFIXES: Tuple[str, ...] = ("/usr/include", "/usr/local/include")


def _location_file(node: Any) -> Optional[str]:
    loc = node.location
    if loc is None or loc.file is None:
        return None
    return str(Path(str(loc.file.name)).resolve())


def _should_consider_location(node: Any, include_filters: Optional[List[str]]) -> bool:
    """
    If filters are provided, only accept nodes whose file path starts with any filter.
    Otherwise, exclude system header locations by default.
    """
    fpath = _location_file(node)
    if fpath is None:
        return node.kind.name in ("NAMESPACE", "TRANSLATION_UNIT")
    if include_filters:
        return any(fpath.startswith(f) for f in include_filters)
    return not any(fpath.startswith(sd) for sd in _SYSTEM_DIR_PREFIXES)


def _source_id(node: Any) -> str:
    return f"{_location_file(node)}:{node.location.line}"


def _include_file(node: Any) -> str:
    fpath = _location_file(node)
    return Path(fpath).name if fpath else ""


def _is_public_member(node: Any) -> bool:
    return node.access_specifier.name in ("PUBLIC", "INVALID", "NONE")


def _operator_of(node: Any) -> Optional[CppOperator]:
    if node.kind.name == "CONVERSION_FUNCTION":
        return CppOperator(name=CppOperator.CONVERSION, conversion_type=cpp_type_from_clang(node.result_type))
    if node.spelling.startswith("operator") and not node.spelling[len("operator"):][:1].isalnum():
        return CppOperator(name=node.spelling[len("operator"):].strip())
    return None


def _function_from_cursor(node: Any) -> CppFunction:
    kind_name = node.kind.name
    is_member = kind_name in ("CXX_METHOD", "CONSTRUCTOR", "DESTRUCTOR", "CONVERSION_FUNCTION")

    receiver = ReceiverKind.NONE
    if is_member and kind_name != "CONSTRUCTOR" and not node.is_static_method():
        receiver = ReceiverKind.CONST if node.is_const_method() else ReceiverKind.MUTABLE

    if kind_name == "CONSTRUCTOR":
        function_kind = FunctionKind.CONSTRUCTOR
    elif kind_name == "DESTRUCTOR":
        function_kind = FunctionKind.DESTRUCTOR
    else:
        function_kind = FunctionKind.REGULAR

    if function_kind == FunctionKind.REGULAR:
        return_type = cpp_type_from_clang(node.result_type)
    else:
        return_type = CppVoidType()

    arguments = tuple(
        CppFunctionArgument(
            name=arg.spelling or f"arg{i}",
            argument_type=cpp_type_from_clang(arg.type),
            has_default_value=any(c.kind.is_expression() for c in arg.get_children()),
        )
        for i, arg in enumerate(node.get_arguments(), start=1)
    )

    return CppFunction(
        path=cursor_path(node),
        return_type=return_type,
        arguments=arguments,
        is_member=is_member,
        receiver=receiver,
        kind=function_kind,
        operator=_operator_of(node),
        include_file=_include_file(node),
    )


def _type_from_cursor(node: Any) -> Optional[CppTypeDeclaration]:
    kind_name = node.kind.name
    if kind_name == "ENUM_DECL":
        values = tuple(
            EnumValue(name=c.spelling, value=c.enum_value)
            for c in node.get_children()
            if c.kind.name == "ENUM_CONSTANT_DECL"
        )
        return CppTypeDeclaration(path=cursor_path(node), kind=CppEnumKind(values=values), include_file=_include_file(node))
    size = None
    if kind_name != "CLASS_TEMPLATE":
        raw_size = node.type.get_size()
        size = raw_size if raw_size >= 0 else None
    return CppTypeDeclaration(path=cursor_path(node), kind=CppClassKind(size=size), include_file=_include_file(node))


class _DeclarationCollector:
    def __init__(self, db: DeclarationDatabase, include_filters: Optional[List[str]]) -> None:
        self.db = db
        self.include_filters = include_filters
        self.skipped = 0

    def visit(self, node: Any) -> None:
        if not _should_consider_location(node, self.include_filters):
            return

        kind_name = node.kind.name
        if kind_name in ("TRANSLATION_UNIT", "NAMESPACE", "LINKAGE_SPEC"):
            for child in node.get_children():
                self.visit(child)
            return

        if kind_name in ("CLASS_DECL", "STRUCT_DECL", "CLASS_TEMPLATE", "ENUM_DECL"):
            if not node.is_definition():
                return
            if not node.spelling:
                logger.warning("Skipping anonymous %s at %s", kind_name.lower(), _source_id(node))
                return
            if not _is_public_member(node):
                logger.info("Skipping non-public nested %s '%s'", kind_name.lower(), node.spelling)
                return
            self._add(_type_from_cursor, node)
            if kind_name != "ENUM_DECL":
                for child in node.get_children():
                    self.visit(child)
            return

        if kind_name in ("FUNCTION_DECL", "CXX_METHOD", "CONSTRUCTOR", "DESTRUCTOR", "CONVERSION_FUNCTION"):
            if not _is_public_member(node):
                return
            self._add(_function_from_cursor, node)
            return

        if kind_name == "FUNCTION_TEMPLATE":
            logger.warning("Skipping function template '%s' (not supported by generator)", node.spelling)
            self.skipped += 1

    def _add(self, convert, node: Any) -> None:
        try:
            decl = convert(node)
        except UnsupportedClangType as e:
            logger.warning("Skipping '%s' at %s: unsupported type %s", node.spelling, _source_id(node), e)
            self.skipped += 1
            return
        self.db.add_item(decl, source_id=_source_id(node))


# --------------------------
# Public API
# --------------------------

def parse_headers(
    headers: Iterable[Path],
    clang_args: List[str],
    library_name: str = "",
    include_filters: Optional[List[str]] = None,
    dependencies: Iterable[DeclarationDatabase] = (),
    emit_diagnostics: bool = True,
) -> DeclarationDatabase:
    """
    Parse headers and return a database of their declarations.

    Parameters:
    - headers: header files to parse (directories must be expanded by the caller).
    - clang_args: command line arguments for clang (include paths, defines, -std, etc.).
    - library_name: name of the resulting database.
    - include_filters: if provided, only declarations whose file starts with one of these prefixes are kept.
    - dependencies: databases this library builds on.
    - emit_diagnostics: whether to log clang diagnostics.
    """
    db = DeclarationDatabase(name=library_name, dependencies=tuple(dependencies))
    filters = [str(Path(f).resolve()) for f in (include_filters or [])]
    collector = _DeclarationCollector(db, filters or None)

    for header in headers:
        tu = parse_translation_unit(header, clang_args)
        if emit_diagnostics:
            for diag in tu.diagnostics:
                logger.warning("[clang] %s", diag)
        collector.visit(tu.cursor)

    logger.info("Parsed %d declaration(s) from headers (%d skipped)", len(db), collector.skipped)
    return db


__all__ = [
    "UnsupportedClangType",
    "parse_translation_unit",
    "cursor_path",
    "cpp_type_from_clang",
    "parse_headers",
]
