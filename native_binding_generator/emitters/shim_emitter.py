#!/usr/bin/env python3
"""
Emitter for the C-ABI shim header.

Renders the flat shim table (see ffi_signatures.shim_table) into
`<output_dir>/<library>_shim.h`: one `extern "C"` declaration per shim
function, using the FFI-level native spelling of every slot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..ffi_signatures import ShimFunction
from ..models import GenerationContext
from ..utils import TemplateRenderer, ensure_dir, write_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShimEmitterConfig:
    header_template: str = "shim_header.h.j2"
    # Extra headers included by the shim header (the library's own headers)
    include_files: Sequence[str] = ()


class ShimEmitter:
    """
    Usage:
        emitter = ShimEmitter(ctx, renderer)
        emitter.emit(shim_table(methods, translator))
    """

    def __init__(self, ctx: GenerationContext, renderer: TemplateRenderer, config: Optional[ShimEmitterConfig] = None) -> None:
        self.ctx = ctx
        self.renderer = renderer
        self.config = config or ShimEmitterConfig()

    @property
    def header_path(self) -> Path:
        return self.ctx.output_dir / f"{self.ctx.library_name}_shim.h"

    def build_context(self, functions: Sequence[ShimFunction]) -> Dict:
        rendered: List[Dict] = []
        for fn in functions:
            rendered.append({
                "shim_name": fn.shim_name,
                "native_name": fn.native_name,
                "return_type": fn.cpp_return_type,
                "arguments": [{"name": a.name, "cpp_type": a.cpp_type} for a in fn.arguments],
            })
        return {
            "library_name": self.ctx.library_name,
            "include_files": list(self.config.include_files),
            "functions": rendered,
        }

    def emit(self, functions: Sequence[ShimFunction]) -> bool:
        """
        Render and write the shim header. Returns True if the file changed.
        """
        if not self.ctx.dry_run:
            ensure_dir(self.ctx.output_dir)
        try:
            content = self.renderer.render(self.config.header_template, self.build_context(functions))
        except Exception:
            logger.exception("Failed to render shim header template; aborting generation")
            raise
        changed = write_text(self.header_path, content, dry_run=self.ctx.dry_run)
        logger.info("Shim header: %d function(s) -> %s", len(functions), self.header_path)
        return changed


__all__ = ["ShimEmitterConfig", "ShimEmitter"]
