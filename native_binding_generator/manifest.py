#!/usr/bin/env python3
"""
JSON manifest of a generation run: generator metadata, invocation, environment,
the module tree and the shim table. Useful for debugging and testing.
"""

import sys
import os
import platform
import shlex
from datetime import datetime, timezone
from importlib import metadata as importlib_metadata

import json
from typing import Dict, Optional, Sequence
from .ffi_signatures import ShimFunction
from .models import GenerationContext
from .module_organizer import TargetModule
from .template_instantiation import InstantiationReport
from .utils import write_text

import logging
logger = logging.getLogger(__name__)

DIST_NAME = "native-binding-generator"


def generator_version() -> str:
    try:
        return importlib_metadata.version(DIST_NAME)
    except importlib_metadata.PackageNotFoundError:
        return "unknown"


def build_manifest(
    ctx: GenerationContext,
    tree: TargetModule,
    shim_functions: Sequence[ShimFunction],
    instantiation: Optional[InstantiationReport] = None,
) -> Dict:
    # Command line info
    argv = list(getattr(sys, "argv", []) or [])
    command_line = " ".join(shlex.quote(a) for a in argv) if argv else ""

    # Environment / runtime info
    env_info = {
        "python_version": sys.version,
        "python_executable": sys.executable,
        "platform": platform.platform(),
        "system": platform.system(),
        "machine": platform.machine(),
        "cwd": os.getcwd(),
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
    }

    manifest = {
        "generator": {
            "name": DIST_NAME,
            "version": generator_version(),
        },
        "invocation": {
            "argv": argv,
            "command_line": command_line,
        },
        "environment": env_info,

        # Main configuration snapshot
        "context": ctx.to_dict(),
        "module_count": sum(1 for _ in tree.walk()),
        "shim_function_count": len(shim_functions),
        "modules": tree.to_dict(),
        "shim_functions": [f.to_dict() for f in shim_functions],
    }
    if instantiation is not None:
        manifest["template_instantiation"] = {
            "passes": instantiation.passes,
            "new_types": instantiation.new_types,
            "new_functions": instantiation.new_functions,
            "reached_fixpoint": instantiation.reached_fixpoint,
        }
    return manifest


def emit_manifest(
    ctx: GenerationContext,
    tree: TargetModule,
    shim_functions: Sequence[ShimFunction],
    instantiation: Optional[InstantiationReport] = None,
) -> None:
    """
    Write <output_dir>/manifest.json.
    """
    manifest = build_manifest(ctx, tree, shim_functions, instantiation)
    manifest_path = ctx.output_dir / "manifest.json"
    content = json.dumps(manifest, indent=2)
    try:
        write_text(manifest_path, content, dry_run=ctx.dry_run)
    except OSError:
        logger.exception("Failed to write manifest to %s; continuing without manifest", manifest_path)
