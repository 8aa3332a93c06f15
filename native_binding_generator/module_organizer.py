#!/usr/bin/env python3
"""
Name & module organizer.

Consumes the stabilized database, the name map and the FFI methods, and
produces the module tree handed to the emitters:

- enums are deduplicated by value (first variant wins), padded to at least two
  variants and ordered by value
- every sized class and every enum becomes a type entry of its module
- every FFI method except destructors and operators becomes a target function,
  free or bound to its class, with argument-to-shim index mapping
- overloads sharing a name get an argument caption; anything still colliding
  gets a numeric suffix in first-seen order
- HEAP variants get the heap suffix and return a plain pointer

The tree is rebuilt from target names: a declaration lives in the module whose
name is its own name minus the last segment.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple, Union
import logging

from .database import DeclarationDatabase
from .errors import TranslationError, UnknownType
from .ffi_signatures import ArgumentMeaning, FfiMethod, ReturnValueAllocationPlace
from .models import ArgRole, CppPath, CppTypeDeclaration, EnumValue
from .naming import args_caption, include_file_to_module_name
from .type_mapping import (
    ApiToShimConversion,
    CompleteType,
    MappingConfig,
    TargetIndirection,
    TargetName,
    TargetType,
    TypeTranslator,
)
from .utils import camel_to_snake, sanitize_identifier

logger = logging.getLogger(__name__)

CONSTRUCTOR_NAME = "new"


# --------------------------
# Target records
# --------------------------

@dataclass(frozen=True)
class TargetEnumVariant:
    name: str
    value: int


@dataclass(frozen=True)
class TargetEnum:
    name: TargetName
    native_path: CppPath
    variants: Tuple[TargetEnumVariant, ...]

    def to_dict(self) -> Dict:
        return {
            "kind": "enum",
            "name": str(self.name),
            "native": self.native_path.to_cpp_code(),
            "variants": [{"name": v.name, "value": v.value} for v in self.variants],
        }


@dataclass(frozen=True)
class TargetClass:
    name: TargetName
    native_path: CppPath
    size: int

    def to_dict(self) -> Dict:
        return {
            "kind": "class",
            "name": str(self.name),
            "native": self.native_path.to_cpp_code(),
            "size": self.size,
        }


TargetTypeDeclaration = Union[TargetEnum, TargetClass]


class FunctionScope(Enum):
    FREE = auto()
    IMPL = auto()


@dataclass(frozen=True)
class TargetFunctionArgument:
    name: str
    argument_type: CompleteType
    ffi_index: int


@dataclass(frozen=True)
class TargetFunction:
    name: TargetName
    scope: FunctionScope
    arguments: Tuple[TargetFunctionArgument, ...]
    return_type: CompleteType
    # Shim argument receiving the return value, if it is returned through an output pointer
    return_type_ffi_index: Optional[int]
    shim_name: str
    native_name: str
    # Class the function is bound to (IMPL scope only)
    self_type: Optional[TargetName] = None

    @property
    def module_key(self) -> TargetName:
        """Name used for module placement: methods are placed with their class."""
        return self.self_type if self.self_type is not None else self.name

    def to_dict(self) -> Dict:
        return {
            "name": str(self.name),
            "scope": self.scope.name,
            "self_type": str(self.self_type) if self.self_type else None,
            "arguments": [
                {"name": a.name, "ffi_index": a.ffi_index, **a.argument_type.to_dict()}
                for a in self.arguments
            ],
            "return_type": self.return_type.to_dict(),
            "return_type_ffi_index": self.return_type_ffi_index,
            "shim_name": self.shim_name,
            "native_name": self.native_name,
        }


@dataclass
class TargetModule:
    name: TargetName
    types: List[TargetTypeDeclaration] = field(default_factory=list)
    functions: List[TargetFunction] = field(default_factory=list)
    submodules: List["TargetModule"] = field(default_factory=list)

    def walk(self) -> Iterator["TargetModule"]:
        yield self
        for sub in self.submodules:
            yield from sub.walk()

    def free_functions(self) -> List[TargetFunction]:
        return [f for f in self.functions if f.scope == FunctionScope.FREE]

    def methods_of(self, type_name: TargetName) -> List[TargetFunction]:
        return [f for f in self.functions if f.self_type == type_name]

    def to_dict(self) -> Dict:
        return {
            "name": str(self.name),
            "types": [t.to_dict() for t in self.types],
            "functions": [f.to_dict() for f in self.functions],
            "submodules": [m.to_dict() for m in self.submodules],
        }


# --------------------------
# Enums
# --------------------------

def process_enum_values(
    values: Tuple[EnumValue, ...],
    enum_name: str = "",
    placeholder: str = "_Invalid",
) -> Tuple[TargetEnumVariant, ...]:
    """
    Keep the first variant per numeric value, pad to two variants with a
    placeholder at an unused value, and order by value.
    """
    by_value: Dict[int, TargetEnumVariant] = OrderedDict()
    for value in values:
        if value.value in by_value:
            logger.warning(
                "Enum %s: dropping variant %s (duplicate value %d of %s)",
                enum_name, value.name, value.value, by_value[value.value].name,
            )
            continue
        by_value[value.value] = TargetEnumVariant(name=sanitize_identifier(value.name), value=value.value)

    taken_names = {v.name for v in by_value.values()}
    while len(by_value) < 2:
        unused = 0
        while unused in by_value:
            unused += 1
        name = placeholder
        suffix = 2
        while name in taken_names:
            name = f"{placeholder}{suffix}"
            suffix += 1
        taken_names.add(name)
        by_value[unused] = TargetEnumVariant(name=name, value=unused)

    return tuple(sorted(by_value.values(), key=lambda v: v.value))


def _target_type_declaration(
    type_info: CppTypeDeclaration,
    name: TargetName,
    config: MappingConfig,
) -> TargetTypeDeclaration:
    if type_info.is_enum:
        variants = process_enum_values(
            type_info.kind.values, enum_name=type_info.path.to_cpp_code(), placeholder=config.placeholder_variant,
        )
        return TargetEnum(name=name, native_path=type_info.path, variants=variants)
    return TargetClass(name=name, native_path=type_info.path, size=type_info.kind.size)


# --------------------------
# Functions
# --------------------------

def _raw_function_name(method: FfiMethod, name_map: Mapping[CppPath, TargetName]) -> Tuple[TargetName, Optional[TargetName]]:
    function = method.function
    if not function.is_member:
        name = name_map.get(function.path)
        if name is None:
            raise UnknownType(function.path)
        return name, None
    class_path = function.path.parent()
    class_name = name_map.get(class_path)
    if class_name is None:
        raise UnknownType(class_path)
    leaf = CONSTRUCTOR_NAME if function.is_constructor else camel_to_snake(function.name)
    return class_name.join(leaf), class_name


def _api_arguments(method: FfiMethod, translator: TypeTranslator) -> Tuple[TargetFunctionArgument, ...]:
    out: List[TargetFunctionArgument] = []
    used: Set[str] = set()
    for ffi_index, arg in enumerate(method.signature.arguments):
        if arg.meaning == ArgumentMeaning.RETURN_VALUE:
            continue
        if arg.meaning == ArgumentMeaning.THIS:
            name = "self"
        else:
            name = sanitize_identifier(camel_to_snake(arg.name))
            if name in used:
                name = f"{name}_{ffi_index}"
        used.add(name)
        out.append(TargetFunctionArgument(
            name=name,
            argument_type=translator.complete_type(arg.argument_type, arg.role),
            ffi_index=ffi_index,
        ))
    return tuple(out)


def _api_return_type(method: FfiMethod, translator: TypeTranslator) -> Tuple[CompleteType, Optional[int]]:
    signature = method.signature
    slot = signature.return_slot_index()
    if slot is not None:
        return translator.complete_type(signature.arguments[slot].argument_type, ArgRole.RETURN_VALUE), slot
    return_type = translator.complete_type(signature.return_type, ArgRole.RETURN_VALUE)
    if method.allocation_place == ReturnValueAllocationPlace.HEAP and isinstance(return_type.api_type, TargetType):
        # The heap pointer is the natural API shape, not a conversion
        return_type = replace(
            return_type,
            api_type=replace(return_type.api_type, indirection=TargetIndirection.PTR),
            api_to_shim_conversion=ApiToShimConversion.NONE,
        )
    return return_type, None


def generate_target_functions(
    methods: List[FfiMethod],
    name_map: Mapping[CppPath, TargetName],
    translator: TypeTranslator,
) -> List[TargetFunction]:
    """
    Turn FFI methods into named target functions. Destructors and operators are
    left to protocol bindings and produce nothing here.
    """
    config = translator.config
    prepared = []
    for method in methods:
        function = method.function
        if function.is_destructor or function.is_operator:
            continue
        try:
            raw_name, self_type = _raw_function_name(method, name_map)
            arguments = _api_arguments(method, translator)
            return_type, return_slot = _api_return_type(method, translator)
        except TranslationError as e:
            logger.warning("Skipping function %s: %s", function.short_text(), e)
            continue
        prepared.append((method, raw_name, self_type, arguments, return_type, return_slot))

    groups: Dict[TargetName, List] = OrderedDict()
    for method, raw_name, *_ in prepared:
        members = groups.setdefault(raw_name, [])
        if method.function not in members:
            members.append(method.function)

    used: Set[TargetName] = set()
    result: List[TargetFunction] = []
    for method, raw_name, self_type, arguments, return_type, return_slot in prepared:
        leaf = raw_name.last_name
        if len(groups[raw_name]) > 1:
            leaf = f"{leaf}_args_{args_caption(method.function)}"
        if method.allocation_place == ReturnValueAllocationPlace.HEAP:
            leaf += config.heap_suffix
        name = raw_name.with_last(leaf)
        if name in used:
            suffix = 2
            while raw_name.with_last(f"{leaf}{suffix}") in used:
                suffix += 1
            resolved = raw_name.with_last(f"{leaf}{suffix}")
            logger.warning("Name conflict: %s renamed to %s", name, resolved.last_name)
            name = resolved
        used.add(name)
        result.append(TargetFunction(
            name=name,
            scope=FunctionScope.IMPL if self_type is not None else FunctionScope.FREE,
            arguments=arguments,
            return_type=return_type,
            return_type_ffi_index=return_slot,
            shim_name=method.shim_name,
            native_name=method.function.path.to_cpp_code(),
            self_type=self_type,
        ))
    return result


# --------------------------
# Module tree
# --------------------------

def _build_module(
    module_name: TargetName,
    types: List[TargetTypeDeclaration],
    functions: List[TargetFunction],
    skipped: Set[TargetName],
) -> TargetModule:
    module = TargetModule(name=module_name)
    depth = len(module_name.parts)
    submodule_names: List[TargetName] = []

    def place(key: TargetName) -> bool:
        if not key.starts_with(module_name) or len(key.parts) <= depth:
            return False
        if len(key.parts) == depth + 1:
            return True
        sub = TargetName(parts=key.parts[: depth + 1])
        if sub not in submodule_names:
            submodule_names.append(sub)
        return False

    for t in types:
        if place(t.name):
            module.types.append(t)
    for f in functions:
        if place(f.module_key):
            module.functions.append(f)

    module.types.sort(key=lambda t: t.name.parts)
    module.functions.sort(key=lambda f: f.name.parts)

    for sub in sorted(submodule_names, key=lambda n: n.parts):
        if sub in skipped:
            logger.info("Skipping module %s", sub)
            continue
        module.submodules.append(_build_module(sub, types, functions, skipped))
    return module


def build_module_tree(
    db: DeclarationDatabase,
    methods: List[FfiMethod],
    name_map: Mapping[CppPath, TargetName],
    translator: TypeTranslator,
) -> TargetModule:
    """
    Organize the library's own declarations into a module tree rooted at the
    library name.
    """
    config = translator.config
    types: List[TargetTypeDeclaration] = []
    seen: Set[TargetName] = set()
    for type_info in db.type_declarations(include_dependencies=False):
        name = name_map.get(type_info.path)
        if name is None or name in seen:
            continue
        seen.add(name)
        types.append(_target_type_declaration(type_info, name, config))

    functions = generate_target_functions(methods, name_map, translator)
    root = TargetName.of(config.library_name)
    skipped = {root.join(include_file_to_module_name(config.flags_header))}
    tree = _build_module(root, types, functions, skipped)
    logger.info("Module tree: %d module(s), %d type(s), %d function(s)",
                sum(1 for _ in tree.walk()), len(types), len(functions))
    return tree


__all__ = [
    "CONSTRUCTOR_NAME",
    "TargetEnumVariant",
    "TargetEnum",
    "TargetClass",
    "TargetTypeDeclaration",
    "FunctionScope",
    "TargetFunctionArgument",
    "TargetFunction",
    "TargetModule",
    "process_enum_values",
    "generate_target_functions",
    "build_module_tree",
]
