#!/usr/bin/env python3
"""
FFI signature generation.

For each accepted native function this module derives the flat, ABI-stable
shim signature: the receiver (if any) comes first, followed by the native
arguments in order. Every slot goes through the TypeTranslator; a function with
any untranslatable slot is dropped with a warning.

Functions returning a class by value (constructors included) get two shim
variants, distinguished by where the returned object lives:

- STACK: the caller provides storage through a trailing output pointer and the
  shim returns void.
- HEAP: the shim returns a pointer to a heap-allocated copy.

Shim names are `<library>_<path>`; overloads get an argument caption, HEAP
variants the heap suffix, and remaining collisions a numeric suffix.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Dict, Iterable, List, Optional, Set, Tuple
import logging
import re

from .database import DeclarationDatabase
from .errors import TranslationError, UnknownType
from .models import (
    ArgRole,
    CppClassType,
    CppFfiType,
    CppFunction,
    CppVoidType,
    IndirectionChange,
    ReceiverKind,
    pointer_to,
    type_to_cpp_code,
)
from .naming import args_caption, path_item_name
from .type_mapping import TargetTypeLike, TypeTranslator

logger = logging.getLogger(__name__)

_NON_C_IDENTIFIER = re.compile(r"\W+")


class ReturnValueAllocationPlace(Enum):
    STACK = auto()
    HEAP = auto()
    NOT_APPLICABLE = auto()


class ArgumentMeaning(Enum):
    THIS = auto()
    ARGUMENT = auto()
    RETURN_VALUE = auto()


_ROLE_BY_MEANING = {
    ArgumentMeaning.THIS: ArgRole.RECEIVER,
    ArgumentMeaning.ARGUMENT: ArgRole.ARGUMENT,
    ArgumentMeaning.RETURN_VALUE: ArgRole.RETURN_VALUE,
}


@dataclass(frozen=True)
class CppFfiArgument:
    name: str
    argument_type: CppFfiType
    meaning: ArgumentMeaning
    # Position of the native argument for ARGUMENT, otherwise None
    native_index: Optional[int] = None

    @property
    def role(self) -> ArgRole:
        return _ROLE_BY_MEANING[self.meaning]


@dataclass(frozen=True)
class CppFfiFunctionSignature:
    arguments: Tuple[CppFfiArgument, ...]
    return_type: CppFfiType

    def return_slot_index(self) -> Optional[int]:
        """Shim position of the output argument that receives the return value."""
        for i, arg in enumerate(self.arguments):
            if arg.meaning == ArgumentMeaning.RETURN_VALUE:
                return i
        return None


@dataclass(frozen=True)
class FfiMethod:
    function: CppFunction
    allocation_place: ReturnValueAllocationPlace
    signature: CppFfiFunctionSignature
    shim_name: str


@dataclass(frozen=True)
class ShimArgument:
    name: str
    cpp_type: str
    shim_type: TargetTypeLike


@dataclass(frozen=True)
class ShimFunction:
    """
    One entry of the flat shim table.
    """
    shim_name: str
    arguments: Tuple[ShimArgument, ...]
    return_type: TargetTypeLike
    cpp_return_type: str
    native_name: str

    @property
    def argument_types(self) -> Tuple[TargetTypeLike, ...]:
        return tuple(a.shim_type for a in self.arguments)

    def to_dict(self) -> Dict:
        return {
            "shim_name": self.shim_name,
            "native_name": self.native_name,
            "arguments": [
                {"name": a.name, "cpp_type": a.cpp_type, "shim_type": a.shim_type.to_code()}
                for a in self.arguments
            ],
            "return_type": self.return_type.to_code(),
            "cpp_return_type": self.cpp_return_type,
        }


# --------------------------
# Signatures
# --------------------------

def allocation_places(function: CppFunction, translator: TypeTranslator) -> List[ReturnValueAllocationPlace]:
    """
    Class-by-value returns get both variants; flags wrappers are integers at
    the shim boundary and need none.
    """
    return_type = function.effective_return_type()
    if isinstance(return_type, CppClassType) and not translator.is_flags_type(return_type):
        return [ReturnValueAllocationPlace.STACK, ReturnValueAllocationPlace.HEAP]
    return [ReturnValueAllocationPlace.NOT_APPLICABLE]


def build_signature(
    function: CppFunction,
    place: ReturnValueAllocationPlace,
    translator: TypeTranslator,
) -> CppFfiFunctionSignature:
    """
    Compute the shim signature of one variant. Raises TranslationError.
    """
    arguments: List[CppFfiArgument] = []

    if function.has_receiver:
        class_type = function.class_type
        ffi = translator.to_ffi_type(class_type, ArgRole.RECEIVER)
        if function.receiver == ReceiverKind.CONST:
            ffi = replace(ffi, ffi_type=pointer_to(class_type, is_const=True))
        arguments.append(CppFfiArgument(name="self", argument_type=ffi, meaning=ArgumentMeaning.THIS))

    for index, arg in enumerate(function.arguments):
        ffi = translator.to_ffi_type(arg.argument_type, ArgRole.ARGUMENT)
        arguments.append(CppFfiArgument(
            name=arg.name or f"arg{index + 1}",
            argument_type=ffi,
            meaning=ArgumentMeaning.ARGUMENT,
            native_index=index,
        ))

    native_return = function.effective_return_type()
    if place == ReturnValueAllocationPlace.STACK:
        output = CppFfiType(
            original_type=native_return,
            ffi_type=pointer_to(native_return),
            conversion=IndirectionChange.VALUE_TO_POINTER,
        )
        arguments.append(CppFfiArgument(name="output", argument_type=output, meaning=ArgumentMeaning.RETURN_VALUE))
        return_type = CppFfiType.void()
    elif isinstance(native_return, CppVoidType):
        return_type = CppFfiType.void()
    else:
        # HEAP returns come out as a mutable pointer to the copy
        return_type = translator.to_ffi_type(native_return, ArgRole.RETURN_VALUE)

    signature = CppFfiFunctionSignature(arguments=tuple(arguments), return_type=return_type)
    # A shim function must also be expressible in the API, flags enums included
    if function.is_member and function.path.parent() not in translator.name_map:
        raise UnknownType(function.path.parent())
    for arg in signature.arguments:
        translator.complete_type(arg.argument_type, arg.role)
    translator.complete_type(signature.return_type, ArgRole.RETURN_VALUE)
    return signature


# --------------------------
# Shim naming
# --------------------------

def _base_shim_name(function: CppFunction, library_name: str) -> str:
    parts = [library_name] + [path_item_name(item) for item in function.path.items]
    return _NON_C_IDENTIFIER.sub("_", "_".join(parts)).strip("_")


def _assign_shim_names(
    variants: List[Tuple[CppFunction, ReturnValueAllocationPlace, CppFfiFunctionSignature]],
    library_name: str,
    heap_suffix: str,
) -> List[FfiMethod]:
    groups: Dict[str, List[CppFunction]] = OrderedDict()
    for function, _, _ in variants:
        members = groups.setdefault(_base_shim_name(function, library_name), [])
        if function not in members:
            members.append(function)

    used: Set[str] = set()
    methods: List[FfiMethod] = []
    for function, place, signature in variants:
        name = _base_shim_name(function, library_name)
        if len(groups[name]) > 1:
            name = f"{name}_args_{args_caption(function)}"
        if place == ReturnValueAllocationPlace.HEAP:
            name += heap_suffix
        if name in used:
            suffix = 2
            while f"{name}{suffix}" in used:
                suffix += 1
            unique = f"{name}{suffix}"
            logger.warning("Shim name conflict for %s: using %s", function.short_text(), unique)
            name = unique
        used.add(name)
        methods.append(FfiMethod(function=function, allocation_place=place, signature=signature, shim_name=name))
    return methods


# --------------------------
# Pipeline entry points
# --------------------------

def generate_ffi_methods(db: DeclarationDatabase, translator: TypeTranslator) -> List[FfiMethod]:
    """
    Build FFI methods for every concrete function of the library. Functions that
    fail translation are skipped with a warning.
    """
    variants: List[Tuple[CppFunction, ReturnValueAllocationPlace, CppFfiFunctionSignature]] = []
    skipped = 0
    for function in db.functions():
        if function.is_generic:
            continue
        try:
            built = [(function, place, build_signature(function, place, translator))
                     for place in allocation_places(function, translator)]
        except TranslationError as e:
            logger.warning("Skipping function %s: %s", function.short_text(), e)
            skipped += 1
            continue
        variants.extend(built)

    config = translator.config
    methods = _assign_shim_names(variants, config.library_name, config.heap_suffix)
    logger.info("FFI signatures: %d shim function(s), %d function(s) skipped", len(methods), skipped)
    return methods


def _cpp_slot_code(ffi: CppFfiType) -> str:
    return type_to_cpp_code(ffi.ffi_type)


def shim_table(methods: Iterable[FfiMethod], translator: TypeTranslator) -> List[ShimFunction]:
    """
    Flat table of shim signatures, one per FFI method.
    """
    table: List[ShimFunction] = []
    for method in methods:
        sig = method.signature
        table.append(ShimFunction(
            shim_name=method.shim_name,
            arguments=tuple(
                ShimArgument(
                    name=a.name,
                    cpp_type=_cpp_slot_code(a.argument_type),
                    shim_type=translator.shim_type(a.argument_type),
                )
                for a in sig.arguments
            ),
            return_type=translator.shim_type(sig.return_type),
            cpp_return_type=_cpp_slot_code(sig.return_type),
            native_name=method.function.path.to_cpp_code(),
        ))
    return table


__all__ = [
    "ReturnValueAllocationPlace",
    "ArgumentMeaning",
    "CppFfiArgument",
    "CppFfiFunctionSignature",
    "FfiMethod",
    "ShimArgument",
    "ShimFunction",
    "allocation_places",
    "build_signature",
    "generate_ffi_methods",
    "shim_table",
]
