#!/usr/bin/env python3
"""
JSON serialization of declaration databases.

A database file looks like:

    {
      "name": "qt_core",
      "items": [
        {"item": "type", "path": "QPoint", "kind": "class", "size": 8,
         "include_file": "qpoint.h", "source_id": "qpoint.h:45"},
        {"item": "type", "path": "Qt::AlignmentFlag", "kind": "enum",
         "values": [{"name": "AlignLeft", "value": 1}]},
        {"item": "function", "path": "QPoint::x", "is_member": true,
         "receiver": "const", "return_type": {"kind": "builtin", "name": "int"}}
      ]
    }

Paths are either plain `::`-separated strings or lists of
`{"name": ..., "template_arguments": [<type>, ...]}` items. Types are tagged
objects keyed by "kind" (void, bool, builtin, specific, pointer_sized, enum,
class, function_pointer, template_parameter, pointer, reference).

Malformed input raises DatabaseFormatError.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from ..database import DeclarationDatabase
from ..errors import DatabaseFormatError, InvariantViolation
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
    Declaration,
    EnumValue,
    FunctionKind,
    PointerLikeKind,
    ReceiverKind,
    SpecificNumericKind,
)
from ..utils import write_text

logger = logging.getLogger(__name__)

_SPECIFIC_KINDS = {
    "signed": SpecificNumericKind.SIGNED_INTEGER,
    "unsigned": SpecificNumericKind.UNSIGNED_INTEGER,
    "float": SpecificNumericKind.FLOATING_POINT,
}
_SPECIFIC_NAMES = {v: k for k, v in _SPECIFIC_KINDS.items()}

_POINTER_KINDS = {"pointer": PointerLikeKind.POINTER, "reference": PointerLikeKind.REFERENCE}


def _require(data: Dict[str, Any], key: str, context: str) -> Any:
    if not isinstance(data, dict):
        raise DatabaseFormatError(f"{context}: expected an object, got {type(data).__name__}")
    if key not in data:
        raise DatabaseFormatError(f"{context}: missing '{key}'")
    return data[key]


def _enum_member(enum_cls, name: Any, context: str):
    try:
        return enum_cls[str(name).upper()]
    except KeyError:
        raise DatabaseFormatError(f"{context}: unknown {enum_cls.__name__} '{name}'") from None


# --------------------------
# Decoding
# --------------------------

def type_from_json(data: Any) -> CppType:
    kind = _require(data, "kind", "type")
    if kind == "void":
        return CppVoidType()
    if kind == "bool":
        return CppBoolType()
    if kind == "builtin":
        return CppBuiltInNumericType(kind=_enum_member(BuiltInNumericKind, _require(data, "name", "builtin type"), "builtin type"))
    if kind == "specific":
        numeric = data.get("numeric", "signed")
        if numeric not in _SPECIFIC_KINDS:
            raise DatabaseFormatError(f"specific numeric type: unknown numeric kind '{numeric}'")
        return CppSpecificNumericType(
            name=_require(data, "name", "specific numeric type"),
            bits=int(_require(data, "bits", "specific numeric type")),
            kind=_SPECIFIC_KINDS[numeric],
        )
    if kind == "pointer_sized":
        return CppPointerSizedIntegerType(
            name=_require(data, "name", "pointer-sized type"),
            is_signed=bool(data.get("signed", False)),
        )
    if kind == "enum":
        return CppEnumType(path=path_from_json(_require(data, "path", "enum type")))
    if kind == "class":
        return CppClassType(path=path_from_json(_require(data, "path", "class type")))
    if kind == "function_pointer":
        return CppFunctionPointerType(
            return_type=type_from_json(data.get("return_type", {"kind": "void"})),
            arguments=tuple(type_from_json(a) for a in data.get("arguments", [])),
            allows_variadic_arguments=bool(data.get("variadic", False)),
        )
    if kind == "template_parameter":
        return CppTemplateParameterType(
            nested_level=int(_require(data, "nested_level", "template parameter")),
            index=int(_require(data, "index", "template parameter")),
            name=data.get("name", ""),
        )
    if kind in _POINTER_KINDS:
        return CppPointerLikeType(
            kind=_POINTER_KINDS[kind],
            target=type_from_json(_require(data, "target", kind)),
            is_const=bool(data.get("const", False)),
        )
    raise DatabaseFormatError(f"unknown type kind '{kind}'")


def path_from_json(data: Any) -> CppPath:
    try:
        if isinstance(data, str):
            return CppPath.from_str(data)
        if isinstance(data, list):
            items = []
            for item in data:
                args = item.get("template_arguments") if isinstance(item, dict) else None
                items.append(CppPathItem(
                    name=_require(item, "name", "path item"),
                    template_arguments=tuple(type_from_json(a) for a in args) if args is not None else None,
                ))
            return CppPath.from_items(items)
    except InvariantViolation as e:
        raise DatabaseFormatError(f"invalid path {data!r}: {e}") from e
    raise DatabaseFormatError(f"invalid path {data!r}")


def declaration_from_json(data: Any) -> Declaration:
    item_kind = _require(data, "item", "item")
    path = path_from_json(_require(data, "path", "item"))
    include_file = data.get("include_file", "")

    if item_kind == "type":
        kind = _require(data, "kind", f"type {path}")
        if kind == "enum":
            values = tuple(
                EnumValue(name=_require(v, "name", f"enum {path}"), value=int(_require(v, "value", f"enum {path}")))
                for v in data.get("values", [])
            )
            return CppTypeDeclaration(path=path, kind=CppEnumKind(values=values), include_file=include_file)
        if kind == "class":
            size = data.get("size")
            return CppTypeDeclaration(
                path=path,
                kind=CppClassKind(size=int(size) if size is not None else None),
                include_file=include_file,
            )
        raise DatabaseFormatError(f"type {path}: unknown declaration kind '{kind}'")

    if item_kind == "function":
        operator = None
        if data.get("operator") is not None:
            op = data["operator"]
            conversion = op.get("conversion_type") if isinstance(op, dict) else None
            operator = CppOperator(
                name=_require(op, "name", f"operator of {path}"),
                conversion_type=type_from_json(conversion) if conversion is not None else None,
            )
        arguments = tuple(
            CppFunctionArgument(
                argument_type=type_from_json(_require(a, "type", f"argument of {path}")),
                name=a.get("name", ""),
                has_default_value=bool(a.get("has_default_value", False)),
            )
            for a in data.get("arguments", [])
        )
        return CppFunction(
            path=path,
            return_type=type_from_json(data.get("return_type", {"kind": "void"})),
            arguments=arguments,
            is_member=bool(data.get("is_member", False)),
            receiver=_enum_member(ReceiverKind, data.get("receiver", "none"), f"function {path}"),
            kind=_enum_member(FunctionKind, data.get("function_kind", "regular"), f"function {path}"),
            operator=operator,
            include_file=include_file,
        )

    raise DatabaseFormatError(f"unknown item kind '{item_kind}'")


def database_from_dict(
    data: Dict[str, Any],
    dependencies: Sequence[DeclarationDatabase] = (),
) -> DeclarationDatabase:
    items = _require(data, "items", "database")
    db = DeclarationDatabase(name=data.get("name", ""), dependencies=dependencies)
    if not isinstance(items, list):
        raise DatabaseFormatError("database: 'items' must be a list")
    duplicates = 0
    for entry in items:
        decl = declaration_from_json(entry)
        if db.add_item(decl, source_id=entry.get("source_id"), origin_id=entry.get("origin_id")) is None:
            duplicates += 1
    if duplicates:
        logger.debug("Database %s: %d duplicate item(s) ignored", db.name, duplicates)
    return db


def load_database(
    path: Union[str, Path],
    dependencies: Sequence[DeclarationDatabase] = (),
) -> DeclarationDatabase:
    """
    Read a database from a JSON file.
    """
    p = Path(path)
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise DatabaseFormatError(f"{p}: invalid JSON: {e}") from e
    db = database_from_dict(data, dependencies=dependencies)
    if not db.name:
        db.name = p.stem
    logger.info("Loaded %d declaration(s) from %s", len(db), p)
    return db


# --------------------------
# Encoding
# --------------------------

def type_to_json(t: CppType) -> Dict[str, Any]:
    if isinstance(t, CppVoidType):
        return {"kind": "void"}
    if isinstance(t, CppBoolType):
        return {"kind": "bool"}
    if isinstance(t, CppBuiltInNumericType):
        return {"kind": "builtin", "name": t.kind.name.lower()}
    if isinstance(t, CppSpecificNumericType):
        return {"kind": "specific", "name": t.name, "bits": t.bits, "numeric": _SPECIFIC_NAMES[t.kind]}
    if isinstance(t, CppPointerSizedIntegerType):
        return {"kind": "pointer_sized", "name": t.name, "signed": t.is_signed}
    if isinstance(t, CppEnumType):
        return {"kind": "enum", "path": path_to_json(t.path)}
    if isinstance(t, CppClassType):
        return {"kind": "class", "path": path_to_json(t.path)}
    if isinstance(t, CppFunctionPointerType):
        return {
            "kind": "function_pointer",
            "return_type": type_to_json(t.return_type),
            "arguments": [type_to_json(a) for a in t.arguments],
            "variadic": t.allows_variadic_arguments,
        }
    if isinstance(t, CppTemplateParameterType):
        return {"kind": "template_parameter", "nested_level": t.nested_level, "index": t.index, "name": t.name}
    if isinstance(t, CppPointerLikeType):
        kind = "pointer" if t.kind == PointerLikeKind.POINTER else "reference"
        return {"kind": kind, "target": type_to_json(t.target), "const": t.is_const}
    raise InvariantViolation(f"unknown native type variant: {t!r}")


def path_to_json(path: CppPath) -> Union[str, List[Dict[str, Any]]]:
    if all(item.template_arguments is None for item in path.items):
        return "::".join(path.names())
    out = []
    for item in path.items:
        entry: Dict[str, Any] = {"name": item.name}
        if item.template_arguments is not None:
            entry["template_arguments"] = [type_to_json(a) for a in item.template_arguments]
        out.append(entry)
    return out


def declaration_to_json(decl: Declaration) -> Dict[str, Any]:
    if isinstance(decl, CppTypeDeclaration):
        out: Dict[str, Any] = {"item": "type", "path": path_to_json(decl.path)}
        if decl.is_enum:
            out["kind"] = "enum"
            out["values"] = [{"name": v.name, "value": v.value} for v in decl.kind.values]
        else:
            out["kind"] = "class"
            out["size"] = decl.kind.size
    else:
        out = {
            "item": "function",
            "path": path_to_json(decl.path),
            "return_type": type_to_json(decl.return_type),
            "arguments": [
                {"name": a.name, "type": type_to_json(a.argument_type), "has_default_value": a.has_default_value}
                for a in decl.arguments
            ],
            "is_member": decl.is_member,
            "receiver": decl.receiver.name.lower(),
            "function_kind": decl.kind.name.lower(),
        }
        if decl.operator is not None:
            op: Dict[str, Any] = {"name": decl.operator.name}
            if decl.operator.conversion_type is not None:
                op["conversion_type"] = type_to_json(decl.operator.conversion_type)
            out["operator"] = op
    if decl.include_file:
        out["include_file"] = decl.include_file
    return out


def database_to_dict(db: DeclarationDatabase) -> Dict[str, Any]:
    items = []
    for db_item in db.items():
        entry = declaration_to_json(db_item.item)
        if db_item.source_id is not None:
            entry["source_id"] = db_item.source_id
        if db_item.origin_id is not None:
            entry["origin_id"] = db_item.origin_id
        items.append(entry)
    return {"name": db.name, "items": items}


def save_database(db: DeclarationDatabase, path: Union[str, Path], dry_run: bool = False) -> bool:
    """
    Write a database (own items only) as JSON. Returns True if the file changed.
    """
    content = json.dumps(database_to_dict(db), indent=2) + "\n"
    return write_text(Path(path), content, dry_run=dry_run)


__all__ = [
    "type_from_json",
    "path_from_json",
    "declaration_from_json",
    "database_from_dict",
    "load_database",
    "type_to_json",
    "path_to_json",
    "declaration_to_json",
    "database_to_dict",
    "save_database",
]
