#!/usr/bin/env python3
"""
Shared helpers: logging setup, identifier casing for the Python target,
the Jinja2 template renderer and idempotent file output.
"""

from __future__ import annotations

import keyword
import os
import re
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union
import logging

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
)

from .errors import TemplateRenderError

logger = logging.getLogger(__name__)

PACKAGE_NAME = "native_binding_generator"
DEFAULT_LOG_FORMAT = "%(levelname)s: %(message)s"


# ----------------------------------------
# Logging
# ----------------------------------------

def resolve_log_level(explicit: Optional[str] = None, verbose: int = 0, quiet: int = 0) -> int:
    """
    Map command line verbosity to a logging level. An explicit level name wins;
    otherwise -v selects DEBUG, -q WARNING and -qq (or more) ERROR.
    """
    if explicit:
        return getattr(logging, explicit.upper(), logging.INFO)
    if verbose:
        return logging.DEBUG
    return {0: logging.INFO, 1: logging.WARNING}.get(quiet, logging.ERROR)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    to_file: Optional[Union[str, Path]] = None,
    fmt: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Install a fresh set of root handlers (console, plus a log file when
    `to_file` is given) and set the generator's package logger to `level`.
    Calling it again replaces the previous handlers.
    """
    if isinstance(level, str):
        level = resolve_log_level(level)
    formatter = logging.Formatter(fmt or DEFAULT_LOG_FORMAT)

    handlers: List[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if to_file:
        handlers.append(logging.FileHandler(str(to_file), mode="w", encoding="utf-8"))

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setLevel(level)
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(level)

    logging.getLogger(PACKAGE_NAME).setLevel(level)


# ----------------------------------------
# Identifiers
# ----------------------------------------

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_IDENTIFIER = re.compile(r"[^0-9A-Za-z]+")


def camel_to_snake(name: str) -> str:
    """
    'QPoint' -> 'q_point', 'toString' -> 'to_string', 'HTTPServer' -> 'http_server'
    """
    s = _WORD_BOUNDARY.sub(r"\1_\2", _ACRONYM_BOUNDARY.sub(r"\1_\2", name))
    return _NON_IDENTIFIER.sub("_", s).strip("_").lower()


def to_class_case(name: str) -> str:
    """
    'q_point' -> 'QPoint', 'value_a' -> 'ValueA'. Inner capitals are kept.
    """
    return "".join(p[0].upper() + p[1:] for p in _NON_IDENTIFIER.split(name) if p)


def sanitize_identifier(name: str) -> str:
    """
    Make a name usable as a Python identifier: keywords and `self` get a trailing
    underscore, a leading digit gets a leading underscore.
    """
    if not name:
        return "arg"
    if name[0].isdigit():
        name = f"_{name}"
    if keyword.iskeyword(name) or keyword.issoftkeyword(name) or name == "self":
        return f"{name}_"
    return name


def header_guard(library_name: str) -> str:
    """'qt_core' -> 'QT_CORE_SHIM_H'"""
    return f"{_NON_IDENTIFIER.sub('_', library_name).upper()}_SHIM_H"


def docstring_text(text: str) -> str:
    # Native spellings may contain backslashes or quotes (operator"", char literals)
    return text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"')


# ----------------------------------------
# Templates
# ----------------------------------------

class TemplateRenderer:
    """
    Jinja2 environment over a user templates directory (if any) layered on top of
    the templates shipped in native_binding_generator/templates.
    """

    def __init__(self, templates_dir: Optional[Path]) -> None:
        loaders: List[Any] = []
        if templates_dir:
            p = Path(templates_dir)
            if p.is_dir():
                loaders.append(FileSystemLoader(str(p)))
            else:
                logger.warning("Templates directory %s does not exist; using package templates", p)

        shipped = Path(__file__).parent / "templates"
        loaders.append(FileSystemLoader(str(shipped)) if shipped.is_dir() else PackageLoader(PACKAGE_NAME, "templates"))

        self.env = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self.env.filters.update(
            to_snake=camel_to_snake,
            to_class_case=to_class_case,
            sanitize=sanitize_identifier,
            header_guard=header_guard,
            docstring=docstring_text,
        )

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound as e:
            raise TemplateRenderError(template_name, "template not found") from e
        except TemplateSyntaxError as e:
            raise TemplateRenderError(template_name, f"line {e.lineno}: {e.message}") from e
        try:
            return template.render(**context)
        except TemplateError as e:
            raise TemplateRenderError(template_name, str(e)) from e


# ----------------------------------------
# File output
# ----------------------------------------

def ensure_dir(p: Path) -> None:
    Path(p).mkdir(parents=True, exist_ok=True)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8", mode: Optional[int] = 0o644) -> bool:
    """
    Replace `path` with `content` through a temporary file in the same directory.
    Returns False without touching the file when it already holds `content`.
    """
    content = normalize_newlines(content)
    ensure_dir(path.parent)
    try:
        if normalize_newlines(path.read_text(encoding=encoding)) == content:
            logger.debug("[skip] %s (unchanged)", path)
            return False
    except FileNotFoundError:
        pass

    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="\n") as f:
            f.write(content)
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        os.remove(tmp_path)
        raise
    logger.info("[write] %s", path)
    return True


def write_text(path: Path, content: str, encoding: str = "utf-8", dry_run: bool = False) -> bool:
    """
    atomic_write_text, or only a log line in dry-run mode. Returns True if the file changed.
    """
    if dry_run:
        logger.info("[dry-run] write %s (%d bytes)", path, len(content.encode(encoding)))
        return False
    return atomic_write_text(path, content, encoding=encoding)


__all__ = [
    "PACKAGE_NAME",
    "TemplateRenderer",
    "resolve_log_level",
    "configure_logging",
    "camel_to_snake",
    "to_class_case",
    "sanitize_identifier",
    "header_guard",
    "docstring_text",
    "ensure_dir",
    "normalize_newlines",
    "atomic_write_text",
    "write_text",
]
