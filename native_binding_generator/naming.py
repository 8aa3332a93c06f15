#!/usr/bin/env python3
"""
Native path -> target name mapping.

The name map is built once per processing run, after template instantiation has
reached its fixpoint. Rule:

    target = [library root] + [module from header] + [snake_case scopes] + [leaf]

Types get CamelCase leaves, free functions snake_case leaves. When the first
scope repeats the module name (`point.h` declaring `namespace point`), the
scope is collapsed so the result does not read `lib.point.point.Leaf`.

Entries exist for every sized class, every enum and every free function.
Classes with unknown size cannot be held by value and are left out with a
warning; generic declarations are left out because they are not translatable
until instantiated.

This module also synthesizes captions from type shapes; they disambiguate
overloads (`foo_args_int`) and name template instantiations (`ContainerOfInt`).
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional
import logging

from .database import DeclarationDatabase
from .errors import InvariantViolation
from .models import (
    CppBoolType,
    CppBuiltInNumericType,
    CppClassType,
    CppEnumType,
    CppFunction,
    CppFunctionPointerType,
    CppPath,
    CppPathItem,
    CppPointerLikeType,
    CppPointerSizedIntegerType,
    CppSpecificNumericType,
    CppTemplateParameterType,
    CppType,
    CppTypeDeclaration,
    CppVoidType,
    PointerLikeKind,
)
from .type_mapping import MappingConfig, TargetName
from .utils import camel_to_snake, to_class_case

logger = logging.getLogger(__name__)

_HEADER_SUFFIXES = (".h", ".hpp", ".hh", ".hxx")


def include_file_to_module_name(include_file: str) -> str:
    """
    'qpoint.h' -> 'qpoint', 'include/QtCore/QVector.hpp' -> 'q_vector'
    """
    name = Path(include_file).name if include_file else ""
    for suffix in _HEADER_SUFFIXES:
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            break
    return camel_to_snake(name) or "global"


# --------------------------
# Captions
# --------------------------

def type_caption(t: CppType) -> str:
    """
    Short snake_case description of a type's shape.
    """
    if isinstance(t, CppVoidType):
        return "void"
    if isinstance(t, CppBoolType):
        return "bool"
    if isinstance(t, CppBuiltInNumericType):
        return t.kind.spelling.replace(" ", "_").strip("_")
    if isinstance(t, (CppSpecificNumericType, CppPointerSizedIntegerType)):
        return camel_to_snake(t.name)
    if isinstance(t, (CppEnumType, CppClassType)):
        return camel_to_snake(path_item_name(t.path.last()))
    if isinstance(t, CppTemplateParameterType):
        return camel_to_snake(t.name) or f"t{t.nested_level}_{t.index}"
    if isinstance(t, CppPointerLikeType):
        suffix = "ptr" if t.kind == PointerLikeKind.POINTER else "ref"
        prefix = "const_" if t.is_const else ""
        return f"{prefix}{type_caption(t.target)}_{suffix}"
    if isinstance(t, CppFunctionPointerType):
        return "func"
    raise InvariantViolation(f"unknown native type variant: {t!r}")


def args_caption(function: CppFunction) -> str:
    if not function.arguments:
        return "no_args"
    return "_".join(type_caption(a.argument_type) for a in function.arguments)


def path_item_name(item: CppPathItem) -> str:
    """
    Name of a path item including its template arguments: 'Container<int>' -> 'Container_of_int'.
    """
    if not item.template_arguments:
        return item.name
    return f"{item.name}_of_{'_and_'.join(type_caption(a) for a in item.template_arguments)}"


# --------------------------
# Name map
# --------------------------

def target_name_for(
    path: CppPath,
    include_file: str,
    library_name: str,
    is_function: bool,
) -> TargetName:
    parts: List[str] = [library_name, include_file_to_module_name(include_file)]
    for item in path.items[:-1]:
        parts.append(camel_to_snake(path_item_name(item)))
    if len(parts) > 2 and parts[1] == parts[2]:
        del parts[2]
    leaf = path_item_name(path.last())
    parts.append(camel_to_snake(leaf) if is_function else to_class_case(leaf))
    return TargetName(parts=tuple(parts))


def _unique_type_name(name: TargetName, path: CppPath, taken: Dict[TargetName, CppPath]) -> TargetName:
    """
    Resolve a clash with an already named type by numbering the leaf, in
    first-seen order: FooBar, FooBar2, FooBar3...
    """
    if name not in taken:
        return name
    suffix = 2
    while name.with_last(f"{name.last_name}{suffix}") in taken:
        suffix += 1
    unique = name.with_last(f"{name.last_name}{suffix}")
    logger.warning("Target name conflict: %s and %s both map to %s; using %s", taken[name], path, name, unique)
    return unique


def _add_types(
    name_map: Dict[CppPath, TargetName],
    types: Iterable[CppTypeDeclaration],
    library_name: str,
    taken: Dict[TargetName, CppPath],
) -> None:
    for type_info in types:
        if type_info.is_generic:
            logger.debug("No target type for generic declaration %s", type_info.path)
            continue
        if type_info.is_class and not type_info.kind.size_known:
            logger.warning("Target type is not generated for a class with unknown size: %s", type_info.path)
            continue
        if type_info.path in name_map:
            continue
        name = target_name_for(type_info.path, type_info.include_file, library_name, is_function=False)
        name = _unique_type_name(name, type_info.path, taken)
        taken[name] = type_info.path
        name_map[type_info.path] = name


def build_name_map(db: DeclarationDatabase, config: Optional[MappingConfig] = None) -> Dict[CppPath, TargetName]:
    """
    Build the native path -> target name table for a stabilized database.
    Dependency declarations are rooted at the dependency database's name.
    """
    config = config or MappingConfig()
    name_map: Dict[CppPath, TargetName] = {}
    taken: Dict[TargetName, CppPath] = {}

    for dep in db.dependencies:
        _add_types(name_map, dep.type_declarations(include_dependencies=False), dep.name or config.library_name, taken)
    _add_types(name_map, db.type_declarations(include_dependencies=False), config.library_name, taken)

    for function in db.functions():
        if function.is_member or function.is_generic:
            continue
        name_map.setdefault(
            function.path,
            target_name_for(function.path, function.include_file, config.library_name, is_function=True),
        )

    logger.info("Name map: %d entr%s", len(name_map), "y" if len(name_map) == 1 else "ies")
    return name_map


__all__ = [
    "include_file_to_module_name",
    "type_caption",
    "args_caption",
    "path_item_name",
    "target_name_for",
    "build_name_map",
]
