#!/usr/bin/env python3
"""
Template instantiation engine.

Generic declarations (class templates and their methods, functions taking
generic classes) cannot be translated directly. This module turns them into
concrete declarations, driven by concrete usage found elsewhere in the database:

- find_template_instantiations: every concrete `Class<Args...>` referenced by
  a declaration but not yet declared gets a type declaration cloned from the
  generic head (`Class<T...>`).
- instantiate_templates: every function referencing a generic class is
  specialized for each concrete declaration of that class. Substitution is
  scoped by nesting level, so nested generic containers resolve correctly.
  Candidates that keep template parameters, or reference classes that are not
  declared, are rejected.
- run_to_fixpoint: the outer driver. New class declarations can unlock new
  method instantiations and vice versa, so passes repeat until a pass adds
  nothing (bounded by a pass limit).

Both passes only read the database. They return a ChangeSet which the driver
merges after the read phase, so the scan never observes its own output.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional
import logging

from .database import ChangeSet, DatabaseItem, DeclarationDatabase
from .errors import (
    ExtraTemplateParameters,
    InstantiationError,
    InvariantViolation,
    TypeNotAvailable,
)
from .models import (
    CppClassType,
    CppFunction,
    CppFunctionArgument,
    CppOperator,
    CppPath,
    CppPathItem,
    CppPointerLikeType,
    CppTemplateParameterType,
    CppType,
    CppTypeDeclaration,
    instantiate_type,
    is_or_contains_template_parameter,
    is_template_parameter,
    type_to_cpp_code,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASSES = 16


# --------------------------
# Type discovery
# --------------------------

def _collect_concrete_instantiations(
    t: CppType,
    db: DeclarationDatabase,
    result: List[CppPath],
) -> None:
    if isinstance(t, CppClassType):
        template_arguments = t.path.last().template_arguments
        if template_arguments is not None:
            if not any(is_or_contains_template_parameter(a) for a in template_arguments):
                if not db.has_type(t.path) and t.path not in result:
                    result.append(t.path)
            for arg in template_arguments:
                _collect_concrete_instantiations(arg, db, result)
    elif isinstance(t, CppPointerLikeType):
        _collect_concrete_instantiations(t.target, db, result)


def _find_generic_original(db: DeclarationDatabase, path: CppPath) -> Optional[DatabaseItem]:
    """
    The canonical template head for `path`: same parent and name, and every
    template argument a template parameter.
    """
    for item in db.all_items():
        type_decl = item.as_type_ref()
        if type_decl is None or not type_decl.path.same_template_head(path):
            continue
        args = type_decl.path.last().template_arguments
        if args is not None and all(is_template_parameter(a) for a in args):
            return item
    return None


def find_template_instantiations(db: DeclarationDatabase) -> ChangeSet:
    """
    Search this library's declarations for concrete template classes that are
    used but not declared (here or in a dependency), and synthesize their
    declarations from the generic originals.
    """
    candidates: List[CppPath] = []
    for item in db.snapshot():
        for t in item.item.all_involved_types():
            _collect_concrete_instantiations(t, db, candidates)

    changes = ChangeSet()
    for path in candidates:
        original = _find_generic_original(db, path)
        if original is None:
            logger.debug("Original type not found for instantiation: %s", path.to_cpp_code())
            continue
        generic = original.as_type_ref()
        new_type = replace(generic, path=path)
        # No source item: this is an instantiation product, not a parse product
        changes.add(new_type, source_id=None, origin_id=original.id if db.owns(original) else None)
        logger.debug("New template instantiation: %s", path.to_cpp_code())
    return changes


# --------------------------
# Method instantiation
# --------------------------

def check_template_type(db: DeclarationDatabase, t: CppType) -> None:
    """
    Raise TypeNotAvailable unless every class referenced by `t` (looking into
    template arguments and pointer targets) is declared in the database.
    """
    if isinstance(t, CppClassType):
        if not db.has_type(t.path):
            raise TypeNotAvailable(t.path)
        for arg in t.path.last().template_arguments or ():
            check_template_type(db, arg)
    elif isinstance(t, CppPointerLikeType):
        check_template_type(db, t.target)


def apply_instantiation_to_method(
    method: CppFunction,
    nested_level: int,
    template_instantiation: CppPath,
) -> CppFunction:
    """
    Substitute the template parameters of `nested_level` in every part of
    `method` with the template arguments of `template_instantiation`.
    Raises InstantiationError if the result is not fully concrete.
    """
    inst_args = template_instantiation.last().template_arguments
    if inst_args is None:
        raise InvariantViolation(f"template instantiation must have template arguments: {template_instantiation}")

    arguments = tuple(
        CppFunctionArgument(
            name=arg.name,
            argument_type=instantiate_type(arg.argument_type, nested_level, inst_args),
            has_default_value=arg.has_default_value,
        )
        for arg in method.arguments
    )
    return_type = instantiate_type(method.return_type, nested_level, inst_args)
    path = method.path.instantiate(nested_level, inst_args)

    last_args = path.last().template_arguments
    if last_args is not None:
        if any(is_or_contains_template_parameter(a) for a in last_args):
            raise ExtraTemplateParameters(replace(method, path=path))
        # Explicit template arguments are left for the target compiler to infer
        path = path.with_last(CppPathItem(name=path.last().name))

    operator = method.operator
    conversion_type: Optional[CppType] = None
    if operator is not None and operator.is_conversion:
        if operator.conversion_type is None:
            raise InvariantViolation(f"conversion operator without a target type: {method.short_text()}")
        conversion_type = instantiate_type(operator.conversion_type, nested_level, inst_args)
        operator = CppOperator(name=operator.name, conversion_type=conversion_type)

    new_method = replace(method, path=path, arguments=arguments, return_type=return_type, operator=operator)
    if any(is_or_contains_template_parameter(t) for t in new_method.all_involved_types()):
        raise ExtraTemplateParameters(new_method)

    if conversion_type is not None:
        # Operator declarations derive their exposed name from their target type
        new_method = replace(
            new_method,
            path=new_method.path.with_last(CppPathItem(name=f"operator {type_to_cpp_code(conversion_type)}")),
        )
    logger.debug("Instantiated: %s", new_method.short_text())
    return new_method


def _generic_class_paths(t: CppType, out: List[CppPath]) -> None:
    """
    Collect classes whose template arguments are all template parameters,
    looking through pointers, references and nested template arguments.
    """
    if isinstance(t, CppClassType):
        args = t.path.last().template_arguments
        if args:
            if all(is_template_parameter(a) for a in args):
                if t.path not in out:
                    out.append(t.path)
            else:
                for a in args:
                    _generic_class_paths(a, out)
    elif isinstance(t, CppPointerLikeType):
        _generic_class_paths(t.target, out)


def _is_concrete_instance_of(type_decl: CppTypeDeclaration, generic_path: CppPath) -> bool:
    if not type_decl.path.same_template_head(generic_path):
        return False
    args = type_decl.path.last().template_arguments
    return args is not None and not any(is_or_contains_template_parameter(a) for a in args)


def instantiate_templates(db: DeclarationDatabase) -> ChangeSet:
    """
    Generate methods as template instantiations of functions referencing
    template classes, for every concrete declaration of those classes.

    Generic functions are taken from this database and its dependencies;
    concrete declarations only from this database, since a dependency
    instantiates its own types. Instantiations of a dependency's function
    keep its source_id but get no origin_id, which only refers to own items.
    """
    changes = ChangeSet()
    type_items = db.type_declarations(include_dependencies=False)
    function_items = db.snapshot() + tuple(item for dep in db.dependencies for item in dep.all_items())

    for item in function_items:
        function = item.as_function_ref()
        if function is None:
            continue

        generic_paths: List[CppPath] = []
        for t in function.all_involved_types():
            _generic_class_paths(t, generic_paths)

        for generic_path in generic_paths:
            first_arg = generic_path.last().template_arguments[0]
            if not isinstance(first_arg, CppTemplateParameterType):
                raise InvariantViolation(f"only template parameters can be here: {generic_path}")
            nested_level = first_arg.nested_level

            for type_decl in type_items:
                if not _is_concrete_instance_of(type_decl, generic_path):
                    continue
                logger.debug("Method %s: found instantiation %s", function.short_text(), type_decl.path)
                try:
                    method = apply_instantiation_to_method(function, nested_level, type_decl.path)
                    for t in method.all_involved_types():
                        check_template_type(db, t)
                except InstantiationError as e:
                    logger.debug("Instantiation rejected: %s", e)
                    continue
                origin_id = item.id if db.owns(item) else None
                changes.add(method, source_id=item.source_id, origin_id=origin_id)
    return changes


# --------------------------
# Fixpoint driver
# --------------------------

@dataclass
class InstantiationReport:
    passes: int = 0
    new_types: int = 0
    new_functions: int = 0
    reached_fixpoint: bool = False


def run_to_fixpoint(db: DeclarationDatabase, max_passes: int = DEFAULT_MAX_PASSES) -> InstantiationReport:
    """
    Alternate type discovery and method instantiation until a pass adds
    nothing, or `max_passes` passes have run.
    """
    if max_passes < 1:
        raise ValueError("max_passes must be at least 1")

    report = InstantiationReport()
    while report.passes < max_passes:
        report.passes += 1
        added_types = db.apply(find_template_instantiations(db))
        added_functions = db.apply(instantiate_templates(db))
        report.new_types += added_types
        report.new_functions += added_functions
        logger.debug("Instantiation pass %d: %d type(s), %d function(s)", report.passes, added_types, added_functions)
        if added_types == 0 and added_functions == 0:
            report.reached_fixpoint = True
            break

    if report.reached_fixpoint:
        logger.info(
            "Template instantiation converged after %d pass(es): %d type(s), %d function(s) added",
            report.passes, report.new_types, report.new_functions,
        )
    else:
        logger.warning("Template instantiation stopped after %d pass(es) without reaching a fixpoint", report.passes)
    return report


__all__ = [
    "DEFAULT_MAX_PASSES",
    "find_template_instantiations",
    "check_template_type",
    "apply_instantiation_to_method",
    "instantiate_templates",
    "InstantiationReport",
    "run_to_fixpoint",
]
