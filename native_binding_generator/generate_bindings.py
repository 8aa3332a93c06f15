#!/usr/bin/env python3
"""
Native library -> Python/ctypes binding generator.

This entrypoint wires together:
- Loading a declaration database (JSON, or libclang parsing of headers)
- Template instantiation up to a fixpoint
- Name mapping, FFI signatures and module organization
- Emitting (Jinja2-based) the shim header and the Python package

Outputs:
- <output_dir>/<library>_shim.h
- <output_dir>/<library>/_ffi.py, _support.py, flags.py
- <output_dir>/<library>/<module>/.../__init__.py
- <optional> <output_dir>/manifest.json (for introspection)

Usage (example):
  python -m native_binding_generator.generate_bindings \
    --database qt_core.json \
    --dependency qt_base.json \
    --library-name qt_core \
    --output-dir generated

  python -m native_binding_generator.generate_bindings \
    --headers path/to/include \
    --clang-args "-Ipath/to/include -std=c++17" \
    --library-name mylib

Notes:
- You need Jinja2 installed; header parsing additionally needs libclang.
"""

from __future__ import annotations

import argparse
import sys
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence
import logging

logger = logging.getLogger(__name__)

# Local modules
from .database import DeclarationDatabase
from .emitters.api_emitter import ApiEmitter
from .emitters.shim_emitter import ShimEmitter, ShimEmitterConfig
from .errors import BindingGeneratorError
from .ffi_signatures import FfiMethod, ShimFunction, generate_ffi_methods, shim_table
from .manifest import emit_manifest
from .models import CppPath, GenerationContext
from .module_organizer import TargetModule, build_module_tree
from .naming import build_name_map
from .parsing.json_loader import load_database
from .template_instantiation import DEFAULT_MAX_PASSES, InstantiationReport, run_to_fixpoint
from .type_mapping import MappingConfig, TargetName, TypeTranslator
from .utils import DEFAULT_LOG_FORMAT, TemplateRenderer, configure_logging, resolve_log_level

_HEADER_SUFFIXES = (".h", ".hpp", ".hh", ".hxx")


# --------------------------
# Pipeline
# --------------------------

@dataclass
class GenerationResult:
    instantiation: InstantiationReport
    name_map: Dict[CppPath, TargetName]
    methods: List[FfiMethod]
    shim_functions: List[ShimFunction]
    tree: TargetModule


def run_pipeline(
    db: DeclarationDatabase,
    config: MappingConfig,
    max_passes: int = DEFAULT_MAX_PASSES,
) -> GenerationResult:
    """
    Instantiate templates, then translate and organize the stabilized database.
    """
    report = run_to_fixpoint(db, max_passes=max_passes)
    name_map = build_name_map(db, config)
    translator = TypeTranslator(name_map, config=config)
    methods = generate_ffi_methods(db, translator)
    return GenerationResult(
        instantiation=report,
        name_map=name_map,
        methods=methods,
        shim_functions=shim_table(methods, translator),
        tree=build_module_tree(db, methods, name_map, translator),
    )


# --------------------------
# Helpers
# --------------------------

def discover_header_files(paths: List[str]) -> List[Path]:
    """
    Resolve header files from files and directories (searched recursively).
    Directory contents are sorted; duplicates keep their first position.
    """
    found: Dict[Path, None] = {}
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            candidates = sorted(c for c in path.rglob("*") if c.suffix.lower() in _HEADER_SUFFIXES)
        elif path.is_file() and path.suffix.lower() in _HEADER_SUFFIXES:
            candidates = [path]
        else:
            logger.warning("Skipping %s: not a header file or directory", raw)
            continue
        for c in candidates:
            found.setdefault(c.resolve(), None)
    return list(found)


def load_input(ns: argparse.Namespace) -> Optional[DeclarationDatabase]:
    """
    Load dependencies and the library database. Returns None if there is no input.
    """
    dependencies = [load_database(p) for p in ns.dependency]

    if ns.database:
        databases = [load_database(p, dependencies=dependencies) for p in ns.database]
        db = databases[0]
        for extra in databases[1:]:
            for item in extra.items():
                db.add_item(item.item, source_id=item.source_id)
        if ns.library_name:
            db.name = ns.library_name
        return db

    headers = discover_header_files(ns.headers)
    if not headers:
        return None

    from .parsing.clang_parser import parse_headers

    try:
        clang_args = shlex.split(ns.clang_args) if ns.clang_args else []
    except ValueError as ex:
        # Fallback if shlex fails due to platform-specific quoting
        logger.warning("Falling back to naive clang args split due to parsing error: %s", ex)
        clang_args = [a for a in ns.clang_args.split(" ") if a.strip()]

    return parse_headers(
        headers=headers,
        clang_args=clang_args,
        library_name=ns.library_name or "native",
        include_filters=ns.include_filter or None,
        dependencies=dependencies,
    )


# --------------------------
# CLI
# --------------------------

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Generate Python/ctypes bindings for a native C++ library")

    inputs = p.add_argument_group("input")
    inputs.add_argument("--database", action="append", default=[], metavar="JSON",
                        help="Declaration database of the library (repeatable; merged in order).")
    inputs.add_argument("--dependency", action="append", default=[], metavar="JSON",
                        help="Declaration database of a library this one builds on (repeatable).")
    inputs.add_argument("--headers", action="append", default=[], metavar="PATH",
                        help="Header file or directory parsed with libclang when no --database is given.")
    inputs.add_argument("--clang-args", default="",
                        help="Extra clang arguments for header parsing, e.g. \"-Iinclude -std=c++17\".")
    inputs.add_argument("--include-filter", action="append", default=[], metavar="PREFIX",
                        help="Keep only parsed declarations whose file path starts with PREFIX.")

    gen = p.add_argument_group("generation")
    gen.add_argument("--library-name", default="",
                     help="Root package of the generated bindings (defaults to the database name).")
    gen.add_argument("--max-passes", type=int, default=DEFAULT_MAX_PASSES,
                     help="Upper bound on template instantiation passes (default: %(default)s).")

    out = p.add_argument_group("output")
    out.add_argument("--output-dir", default="generated", help="Where the shim header and package are written.")
    out.add_argument("--templates-dir", default=None, help="Templates overriding the shipped ones.")
    out.add_argument("--no-manifest", action="store_true", help="Skip manifest.json.")
    out.add_argument("--dry-run", action="store_true", help="Run every stage but write nothing.")

    log = p.add_argument_group("logging")
    log.add_argument("-v", "--verbose", action="count", default=0, help="-v for DEBUG.")
    log.add_argument("-q", "--quiet", action="count", default=0, help="-q for WARNING, -qq for ERROR.")
    log.add_argument("--log-level", type=str.upper, default=None,
                     choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
                     help="Explicit log level (overrides -v/-q).")
    log.add_argument("--log-format", default=DEFAULT_LOG_FORMAT, help="Logging format string.")
    log.add_argument("--log-file", default=None, help="Also write logs to this file.")

    return p.parse_args(argv)


def shim_include_files(db: DeclarationDatabase) -> List[str]:
    """Headers of the library's own declarations, for the shim header to include."""
    return sorted({i.item.include_file for i in db.items() if i.item.include_file})


# --------------------------
# Main
# --------------------------

def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Exit codes: 0 success, 1 templating setup, 2 no input, 3 unreadable input,
    4 generation failure, 5 manifest failure.
    """
    ns = parse_args(argv)
    configure_logging(
        level=resolve_log_level(ns.log_level, ns.verbose, ns.quiet),
        to_file=ns.log_file,
        fmt=ns.log_format,
    )

    try:
        renderer = TemplateRenderer(Path(ns.templates_dir).resolve() if ns.templates_dir else None)
    except Exception:
        logger.exception("Failed to initialize templating")
        return 1

    if not ns.database and not ns.headers:
        logger.error("No input given. Provide --database or --headers.")
        return 2

    try:
        db = load_input(ns)
    except (BindingGeneratorError, OSError):
        logger.exception("Failed to load declarations")
        return 3
    if db is None:
        logger.error("No headers found to parse.")
        return 2

    library_name = ns.library_name or db.name or "native"
    ctx = GenerationContext(
        output_dir=Path(ns.output_dir).resolve(),
        templates_dir=Path(ns.templates_dir).resolve() if ns.templates_dir else None,
        library_name=library_name,
        max_instantiation_passes=ns.max_passes,
        dry_run=ns.dry_run,
    )

    try:
        result = run_pipeline(db, MappingConfig(library_name=library_name), max_passes=ctx.max_instantiation_passes)
        shim_config = ShimEmitterConfig(include_files=tuple(shim_include_files(db)))
        ShimEmitter(ctx, renderer, shim_config).emit(result.shim_functions)
        ApiEmitter(ctx, renderer).emit(result.tree, result.shim_functions)
    except (BindingGeneratorError, OSError):
        logger.exception("Failed to generate files")
        return 4

    if ctx.dry_run:
        logger.info("Dry-run complete (no files written).")

    if not ns.no_manifest:
        try:
            emit_manifest(ctx, result.tree, result.shim_functions, result.instantiation)
        except (TypeError, ValueError):
            logger.exception("Failed to emit generation manifest")
            return 5

    return 0


if __name__ == "__main__":
    sys.exit(main())
