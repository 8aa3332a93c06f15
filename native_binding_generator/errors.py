#!/usr/bin/env python3
"""
Error taxonomy for the native binding generator.

Two families of failures exist:

- Per-declaration failures (TranslationError, InstantiationError). They are local
  and recoverable: the pass that hits one logs a diagnostic, drops the offending
  declaration and carries on with the rest of the database.
- Structural failures (InvariantViolation, DatabaseFormatError). They mean an
  upstream invariant is already broken, so they propagate and abort the run.

Name conflicts are not represented here: they are always resolved and logged.
"""

from __future__ import annotations

from typing import Any


class BindingGeneratorError(Exception):
    """Base class for every error raised by the generator."""


# --------------------------
# Type translation
# --------------------------

class TranslationError(BindingGeneratorError):
    """A native type has no representation in the shim or API layer."""


class UnknownType(TranslationError):
    """An enum or class is not present in the name-mapping table."""

    def __init__(self, path: Any) -> None:
        self.path = path
        super().__init__(f"type has no target equivalent: {_display(path)}")


class UnsupportedNumeric(TranslationError):
    def __init__(self, kind: Any) -> None:
        self.kind = kind
        super().__init__(f"unsupported numeric type: {_display(kind)}")


class UnsupportedTemplate(TranslationError):
    def __init__(self, cpp_type: Any, reason: str = "template types are not supported here") -> None:
        self.cpp_type = cpp_type
        super().__init__(f"{reason}: {_display(cpp_type)}")


class UnsupportedIndirection(TranslationError):
    def __init__(self, cpp_type: Any) -> None:
        self.cpp_type = cpp_type
        super().__init__(f"unsupported level of indirection: {_display(cpp_type)}")


# --------------------------
# Template instantiation
# --------------------------

class InstantiationError(BindingGeneratorError):
    """A candidate template instantiation was rejected."""


class ExtraTemplateParameters(InstantiationError):
    def __init__(self, function: Any) -> None:
        self.function = function
        super().__init__(f"extra template parameters left: {_display(function)}")


class TypeNotAvailable(InstantiationError):
    def __init__(self, cpp_type: Any) -> None:
        self.cpp_type = cpp_type
        super().__init__(f"type is not available: {_display(cpp_type)}")


class TemplateArgumentMismatch(InstantiationError):
    """A template parameter index has no matching concrete argument."""


# --------------------------
# Structural errors (abort)
# --------------------------

class InvariantViolation(BindingGeneratorError):
    """A structural invariant of the declaration database does not hold."""


class DatabaseFormatError(BindingGeneratorError):
    """Serialized declaration data could not be decoded."""


class TemplateRenderError(BindingGeneratorError):
    """An output template could not be loaded or rendered."""

    def __init__(self, template_name: str, reason: str) -> None:
        self.template_name = template_name
        super().__init__(f"{template_name}: {reason}")


def _display(value: Any) -> str:
    for attr in ("short_text", "to_cpp_pseudo_code"):
        fn = getattr(value, attr, None)
        if callable(fn):
            return fn()
    if isinstance(value, str):
        return value
    from .models import type_to_cpp_code

    try:
        return type_to_cpp_code(value)
    except InvariantViolation:
        return str(value)


__all__ = [
    "BindingGeneratorError",
    "TranslationError",
    "UnknownType",
    "UnsupportedNumeric",
    "UnsupportedTemplate",
    "UnsupportedIndirection",
    "InstantiationError",
    "ExtraTemplateParameters",
    "TypeNotAvailable",
    "TemplateArgumentMismatch",
    "InvariantViolation",
    "DatabaseFormatError",
    "TemplateRenderError",
]
