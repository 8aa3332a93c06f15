#!/usr/bin/env python3
"""
Emitter for the generated Python API.

Renders the module tree into a Python package under `<output_dir>`:

- <library>/_ffi.py       ctypes argtypes/restype for every shim function
- <library>/_support.py   runtime helpers (NativeObject, resolve)
- <library>/flags.py      typed flags wrapper
- <library>/<module>/.../__init__.py, one per target module, with enums,
  class wrappers and functions calling through the shim
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..ffi_signatures import ShimFunction
from ..models import GenerationContext
from ..module_organizer import (
    FunctionScope,
    TargetClass,
    TargetEnum,
    TargetFunction,
    TargetFunctionArgument,
    TargetModule,
)
from ..type_mapping import (
    VOID_POINTEE,
    ApiToShimConversion,
    TargetIndirection,
    TargetType,
    TargetTypeLike,
    TargetVoidType,
)
from ..utils import TemplateRenderer, ensure_dir, sanitize_identifier, write_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiEmitterConfig:
    ffi_template: str = "ffi.py.j2"
    support_template: str = "support.py.j2"
    flags_template: str = "flags.py.j2"
    module_template: str = "module.py.j2"


# --------------------------
# Code helpers
# --------------------------

def ctypes_code(t: TargetTypeLike) -> str:
    """
    ctypes spelling of a shim type: generated classes travel as void pointers
    and enums as C ints.
    """
    if isinstance(t, TargetVoidType):
        return "None"
    is_ctypes = t.base.parts[0] == "ctypes" and t.base != VOID_POINTEE
    if t.indirection == TargetIndirection.PTR:
        return f"ctypes.POINTER({t.base})" if is_ctypes else "ctypes.c_void_p"
    return str(t.base) if is_ctypes else "ctypes.c_int"


def _annotation(t: TargetTypeLike) -> str:
    if isinstance(t, TargetType) and t.indirection == TargetIndirection.PTR and t.base.parts[0] != "ctypes":
        return "ctypes.c_void_p"
    return t.to_code()


def _argument_expression(arg: TargetFunctionArgument) -> str:
    conversion = arg.argument_type.api_to_shim_conversion
    if conversion in (ApiToShimConversion.REF_TO_PTR, ApiToShimConversion.VALUE_TO_PTR):
        return f"{arg.name}._ptr"
    if conversion == ApiToShimConversion.FLAGS_TO_INT:
        return f"int({arg.name})"
    return arg.name


def function_context(fn: TargetFunction) -> Dict:
    """
    Template context of one function: parameter list, call through the shim
    with arguments in shim order, and return handling.
    """
    slot_count = len(fn.arguments) + (1 if fn.return_type_ffi_index is not None else 0)
    call_args: List[str] = [""] * slot_count
    for arg in fn.arguments:
        call_args[arg.ffi_index] = _argument_expression(arg)

    body: List[str] = []
    call = f"_ffi.library().{fn.shim_name}({', '.join(call_args)})"
    return_type = fn.return_type.api_type
    if fn.return_type_ffi_index is not None:
        call_args[fn.return_type_ffi_index] = "output._ptr"
        call = f"_ffi.library().{fn.shim_name}({', '.join(call_args)})"
        body.append(f'output = _support.resolve("{return_type.base}")._allocate()')
        body.append(call)
        body.append("return output")
    elif isinstance(return_type, TargetVoidType):
        body.append(call)
    else:
        body.append(f"return {call}")

    params = []
    for arg in fn.arguments:
        if arg.name == "self":
            params.append("self")
        else:
            params.append(f"{arg.name}: {_annotation(arg.argument_type.api_type)}")

    return {
        "name": sanitize_identifier(fn.name.last_name),
        "has_self": any(a.name == "self" for a in fn.arguments),
        "params": params,
        "return_annotation": _annotation(return_type),
        "native_name": fn.native_name,
        "shim_name": fn.shim_name,
        "body": body,
    }


# --------------------------
# Emitter
# --------------------------

class ApiEmitter:
    """
    Usage:
        emitter = ApiEmitter(ctx, renderer)
        emitter.emit(tree, shim_table(methods, translator))
    """

    def __init__(self, ctx: GenerationContext, renderer: TemplateRenderer, config: Optional[ApiEmitterConfig] = None) -> None:
        self.ctx = ctx
        self.renderer = renderer
        self.config = config or ApiEmitterConfig()

    @property
    def package_dir(self) -> Path:
        return self.ctx.output_dir / self.ctx.library_name

    def module_path(self, module: TargetModule) -> Path:
        return self.ctx.output_dir.joinpath(*module.name.parts) / "__init__.py"

    def emit(self, tree: TargetModule, functions: Sequence[ShimFunction]) -> List[Path]:
        """
        Generate all outputs. Returns the paths that were (or would be) written.
        """
        if not self.ctx.dry_run:
            ensure_dir(self.package_dir)
        written: List[Path] = []
        base_context = {"library_name": self.ctx.library_name}

        ffi_context = dict(base_context, functions=[
            {
                "shim_name": fn.shim_name,
                "native_name": fn.native_name,
                "argtypes": [ctypes_code(t) for t in fn.argument_types],
                "restype": ctypes_code(fn.return_type),
            }
            for fn in functions
        ])
        written.append(self._write(self.config.ffi_template, ffi_context, self.package_dir / "_ffi.py"))
        written.append(self._write(self.config.support_template, base_context, self.package_dir / "_support.py"))
        written.append(self._write(self.config.flags_template, base_context, self.package_dir / "flags.py"))

        for module in tree.walk():
            written.append(self._write(self.config.module_template, self.module_context(module), self.module_path(module)))

        logger.info("Generation complete under: %s", self.ctx.output_dir)
        return written

    def module_context(self, module: TargetModule) -> Dict:
        enums = []
        classes = []
        for t in module.types:
            if isinstance(t, TargetEnum):
                enums.append({
                    "name": t.name.last_name,
                    "native": t.native_path.to_cpp_code(),
                    "variants": [{"name": v.name, "value": v.value} for v in t.variants],
                })
            elif isinstance(t, TargetClass):
                methods = [function_context(f) for f in module.methods_of(t.name)]
                if not methods:
                    logger.debug("Class %s has no methods", t.name)
                classes.append({
                    "name": t.name.last_name,
                    "native": t.native_path.to_cpp_code(),
                    "size": t.size,
                    "methods": methods,
                })
        return {
            "library_name": self.ctx.library_name,
            "module_name": str(module.name),
            "enums": enums,
            "classes": classes,
            "functions": [function_context(f) for f in module.functions if f.scope == FunctionScope.FREE],
        }

    def _write(self, template: str, context: Dict, path: Path) -> Path:
        try:
            content = self.renderer.render(template, context)
        except Exception:
            logger.exception("Failed to render %s; aborting generation", template)
            raise
        write_text(path, content, dry_run=self.ctx.dry_run)
        return path


__all__ = ["ApiEmitterConfig", "ApiEmitter", "ctypes_code", "function_context"]
