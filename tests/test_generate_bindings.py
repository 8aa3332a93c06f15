"""End-to-end tests of the pipeline and the command line entrypoint."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterator

import pytest

from conftest import CONTAINER_INT, INT
from native_binding_generator.database import DeclarationDatabase
from native_binding_generator.generate_bindings import discover_header_files, main, run_pipeline
from native_binding_generator.models import (
    CppClassType,
    CppEnumType,
    CppFunction,
    CppFunctionArgument,
    CppPath,
    CppPathItem,
    ReceiverKind,
)
from native_binding_generator.parsing.json_loader import database_to_dict
from native_binding_generator.type_mapping import MappingConfig, TargetName
from native_binding_generator.utils import PACKAGE_NAME


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    """main() reconfigures logging; put the previous setup back afterwards."""
    root = logging.getLogger()
    pkg = logging.getLogger(PACKAGE_NAME)
    handlers, level = list(root.handlers), root.level
    pkg_level, pkg_propagate = pkg.level, pkg.propagate
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    pkg.setLevel(pkg_level)
    pkg.propagate = pkg_propagate


@pytest.fixture
def point_json(point_db: DeclarationDatabase, tmp_path: Path) -> Path:
    p = tmp_path / "qt_core.json"
    p.write_text(json.dumps(database_to_dict(point_db)), encoding="utf-8")
    return p


class TestRunPipeline:
    """Tests for run_pipeline."""

    def test_instantiates_before_naming(self, container_db: DeclarationDatabase) -> None:
        container_db.add_item(CppFunction(path=CppPath.from_str("make"), return_type=CppClassType(CONTAINER_INT), include_file="user.h"))
        result = run_pipeline(container_db, MappingConfig(library_name="containers"))
        assert result.instantiation.reached_fixpoint
        assert result.name_map[CONTAINER_INT] == TargetName.of("containers", "container", "ContainerOfInt")
        shim_names = {f.shim_name for f in result.shim_functions}
        assert shim_names == {"containers_get", "containers_make", "containers_make_as_ptr"}
        get = result.name_map[CppPath.from_str("get")]
        (container_module,) = [m for m in result.tree.walk() if m.name == get.parent()]
        assert [f.name for f in container_module.free_functions()] == [get]
        (get_fn,) = container_module.free_functions()
        assert get_fn.return_type.native_type == INT


    def test_shim_and_api_agree(self, point_db: DeclarationDatabase, config: MappingConfig) -> None:
        """Every shim function reaches the API, and nothing else does."""
        unknown_flags = CppPath.from_items([CppPathItem("QFlags", (CppEnumType(CppPath.from_str("Qt::Orientation")),))])
        point_db.add_item(CppFunction(
            path=CppPath.from_str("QPoint::setOrientations"),
            arguments=(CppFunctionArgument("o", CppClassType(unknown_flags)),),
            is_member=True,
            receiver=ReceiverKind.MUTABLE,
            include_file="qpoint.h",
        ))
        result = run_pipeline(point_db, config)
        api_names = {f.shim_name for m in result.tree.walk() for f in m.functions}
        assert {f.shim_name for f in result.shim_functions} == api_names
        assert "qt_core_QPoint_setOrientations" not in api_names

class TestMain:
    """Tests for the command line entrypoint."""

    def test_generates_files(self, point_json: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        assert main(["--database", str(point_json), "--output-dir", str(out), "-q"]) == 0
        assert (out / "qt_core_shim.h").is_file()
        assert (out / "qt_core" / "_ffi.py").is_file()
        assert (out / "qt_core" / "qpoint" / "__init__.py").is_file()
        manifest = json.loads((out / "manifest.json").read_text(encoding="utf-8"))
        assert manifest["generator"]["name"] == "native-binding-generator"
        assert manifest["shim_function_count"] == 4
        assert manifest["template_instantiation"]["reached_fixpoint"] is True
        assert manifest["context"]["library_name"] == "qt_core"

    def test_library_name_override(self, point_json: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        assert main(["--database", str(point_json), "--output-dir", str(out), "--library-name", "qtc", "--no-manifest", "-q"]) == 0
        assert (out / "qtc_shim.h").is_file()
        assert not (out / "manifest.json").exists()

    def test_dry_run_writes_nothing(self, point_json: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        assert main(["--database", str(point_json), "--output-dir", str(out), "--dry-run", "-q"]) == 0
        assert not out.exists()

    def test_merges_databases(self, point_json: Path, tmp_path: Path) -> None:
        extra = tmp_path / "extra.json"
        extra.write_text(json.dumps({"name": "extra", "items": [
            {"item": "function", "path": "qRound", "include_file": "qglobal.h",
             "return_type": {"kind": "builtin", "name": "int"},
             "arguments": [{"name": "d", "type": {"kind": "builtin", "name": "double"}}]},
        ]}), encoding="utf-8")
        out = tmp_path / "out"
        assert main(["--database", str(point_json), "--database", str(extra), "--output-dir", str(out), "-q"]) == 0
        assert (out / "qt_core" / "qglobal" / "__init__.py").is_file()

    def test_dependency_types_are_usable(self, point_json: Path, tmp_path: Path) -> None:
        gui = tmp_path / "qt_gui.json"
        gui.write_text(json.dumps({"name": "qt_gui", "items": [
            {"item": "function", "path": "qMousePos", "include_file": "qcursor.h",
             "return_type": {"kind": "class", "path": "QPoint"}},
        ]}), encoding="utf-8")
        out = tmp_path / "out"
        assert main(["--database", str(gui), "--dependency", str(point_json), "--output-dir", str(out), "-q"]) == 0
        header = (out / "qt_gui_shim.h").read_text(encoding="utf-8")
        assert "void qt_gui_qMousePos(::QPoint* output);" in header
        assert not (out / "qt_gui" / "qpoint").exists()

    def test_no_input(self, tmp_path: Path) -> None:
        assert main(["--output-dir", str(tmp_path), "-q"]) == 2

    def test_empty_header_directory(self, tmp_path: Path) -> None:
        (tmp_path / "include").mkdir()
        assert main(["--headers", str(tmp_path / "include"), "--output-dir", str(tmp_path / "out"), "-qq"]) == 2

    def test_invalid_database(self, tmp_path: Path) -> None:
        p = tmp_path / "broken.json"
        p.write_text(json.dumps({"items": [{"item": "type", "path": "X", "kind": "union"}]}), encoding="utf-8")
        assert main(["--database", str(p), "--output-dir", str(tmp_path / "out"), "-qq"]) == 3

    def test_missing_database_file(self, tmp_path: Path) -> None:
        assert main(["--database", str(tmp_path / "missing.json"), "-qq"]) == 3


def test_discover_header_files(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.h").write_text("", encoding="utf-8")
    (tmp_path / "sub" / "b.hpp").write_text("", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("", encoding="utf-8")
    found = discover_header_files([str(tmp_path), str(tmp_path / "a.h"), str(tmp_path / "missing.h")])
    assert sorted(p.name for p in found) == ["a.h", "b.hpp"]
