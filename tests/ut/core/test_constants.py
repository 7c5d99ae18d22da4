"""特殊常量编译单元测试"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pkgrun.core.constants import (
    compile_constants,
    compile_package_constants,
    runtime_constants,
)
from pkgrun.core.models import ExitHandle, ExitHandlers, InstallationPaths


class TestCompileConstants:
    def test_replaces_all_occurrences(self) -> None:
        refs = {"%A%": "x"}
        assert compile_constants("%A%/%A%", refs) == "x/x"

    def test_none_passthrough(self) -> None:
        assert compile_constants(None, {"%A%": "x"}) is None

    def test_runtime_date_constants(self) -> None:
        refs = runtime_constants(datetime(2024, 3, 9, 7, 5, 1))
        assert compile_constants("%Y%-%m%-%d% %H%:%i%:%s%", refs) == "2024-03-09 07:05:01"
        assert refs["%PID%"].isdigit()
        assert refs["%USER_HOME_PATH%"] == str(Path.home())


class TestCompilePackageConstants:
    def test_install_and_assembly_constants(self, tmp_path, make_package, make_unit) -> None:
        unit = make_unit(
            "main",
            options=["--root=%INSTALL_PATH%", "--src=%INSTALL_PATH.SRC%"],
            working_directory="%INSTALL_PATH.DATA%",
            exit_handlers=ExitHandlers(error=ExitHandle(message="%ASSEMBLY.PACKAGE% 失败")),
        )
        unit.policy.message = "启动 %ASSEMBLY.NAME% %ASSEMBLY.VERSION%"
        pkg = make_package(
            "com.example.foo", "1.2.0",
            execution_units=[unit],
            runtime_constants={"HOME": "%INSTALL_PATH.BIN%"},
        )
        pkg.assembly.description = "installed at %INSTALL_PATH%"
        paths = InstallationPaths(tmp_path / "foo")

        compiled = compile_package_constants(pkg, paths)

        policy = compiled.execution_units[0].policy
        assert policy.execute.options == [f"--root={paths.root}", f"--src={paths.source_path}"]
        assert policy.execute.working_directory == str(paths.data_path)
        assert policy.message == "启动 foo 1.2.0"
        assert policy.exit_handlers.error.message == "com.example.foo 失败"
        assert compiled.runtime_constants == {"HOME": str(paths.bin_path)}
        assert compiled.assembly.description == f"installed at {paths.root}"

    def test_original_unchanged(self, tmp_path, make_package, make_unit) -> None:
        pkg = make_package(execution_units=[make_unit(options=["%INSTALL_PATH%"])])
        compile_package_constants(pkg, InstallationPaths(tmp_path))
        assert pkg.execution_units[0].policy.execute.options == ["%INSTALL_PATH%"]

    def test_runtime_constants_left_for_execution(self, tmp_path, make_package, make_unit) -> None:
        pkg = make_package(execution_units=[make_unit(options=["%PID%"])])
        compiled = compile_package_constants(pkg, InstallationPaths(tmp_path))
        assert compiled.execution_units[0].policy.execute.options == ["%PID%"]
