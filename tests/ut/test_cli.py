"""CLI 单元测试（click CliRunner）"""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from pkgrun.cli import main
from pkgrun.utils.logger import reset_logging

FOO = "com.example.foo"


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.delenv("PKGRUN_CONFIG", raising=False)
    monkeypatch.setenv("PKGRUN_LOG_LEVEL", "WARNING")
    yield
    reset_logging()


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


class TestPackageCommands:
    def test_install_list_uninstall(self, runner, write_package) -> None:
        path = write_package()
        result = runner.invoke(main, ["install", str(path)])
        assert result.exit_code == 0, result.output
        assert "[4/4]" in result.output
        assert f"已安装: {FOO}" in result.output

        result = runner.invoke(main, ["list"])
        assert FOO in result.output
        assert "latest=1.0.0" in result.output

        result = runner.invoke(main, ["uninstall", f"{FOO}=1.0.0"])
        assert result.exit_code == 0, result.output
        assert "没有已安装的包" in runner.invoke(main, ["list"]).output

    def test_install_twice_reports_error(self, runner, write_package) -> None:
        path = write_package()
        runner.invoke(main, ["install", str(path)])
        result = runner.invoke(main, ["install", str(path)])
        assert result.exit_code == 1
        assert "ALREADY_INSTALLED" in result.output

        result = runner.invoke(main, ["install", "--reinstall", str(path)])
        assert result.exit_code == 0, result.output

    def test_missing_file(self, runner, tmp_path) -> None:
        result = runner.invoke(main, ["install", str(tmp_path / "none.pkg")])
        assert result.exit_code == 1
        assert "PATH_NOT_FOUND" in result.output

    def test_undefined_remote_source(self, runner) -> None:
        result = runner.invoke(main, ["install", "acme/bar@nowhere"])
        assert result.exit_code == 1
        assert "SOURCE_NOT_FOUND" in result.output

    def test_tree_and_missing(self, runner, write_package) -> None:
        from pkgrun.core.models import Dependency, DependencySourceType
        remote = Dependency("com.example.bar", "", DependencySourceType.REMOTE, "acme/bar@index")
        path = write_package(dependencies=[remote])
        result = runner.invoke(main, ["install", "--skip-dependencies", str(path)])
        assert result.exit_code == 0, result.output

        result = runner.invoke(main, ["tree", "--json"])
        assert json.loads(result.output) == {f"{FOO}=1.0.0": {}}

        result = runner.invoke(main, ["missing"])
        assert "com.example.bar=latest [remote]" in result.output

    def test_empty_tree(self, runner) -> None:
        assert "依赖树为空" in runner.invoke(main, ["tree"]).output


class TestExecCommands:
    def test_exec_exit_code_and_args(self, runner, write_package, make_unit, tmp_path) -> None:
        out = tmp_path / "args.txt"
        unit = make_unit("main", f'echo "$@" > "{out}"\nexit 3\n')
        runner.invoke(main, ["install", str(write_package(execution_units=[unit]))])

        result = runner.invoke(main, ["exec", f"--package={FOO}", "--unit=main", "--", "a", "--b"])
        assert result.exit_code == 3
        assert out.read_text().strip() == "a --b"

    def test_exec_unknown_package(self, runner) -> None:
        result = runner.invoke(main, ["exec", "--package=none", "--unit=main"])
        assert result.exit_code == 1
        assert "PACKAGE_NOT_FOUND" in result.output

    def test_run_file(self, runner, write_package, make_unit) -> None:
        path = write_package(execution_units=[make_unit("main", "exit 4\n")])
        result = runner.invoke(main, ["run", str(path), "--unit", "main"])
        assert result.exit_code == 4


class TestSourceCommands:
    def test_add_list_remove(self, runner) -> None:
        result = runner.invoke(main, ["source", "add", "main", "pkgs.example.com"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(main, ["source", "list"])
        assert "https://pkgs.example.com" in result.output

        assert "已删除" in runner.invoke(main, ["source", "remove", "main"]).output
        assert "不存在" in runner.invoke(main, ["source", "remove", "main"]).output

    def test_invalid_type(self, runner) -> None:
        result = runner.invoke(main, ["source", "add", "gh", "github.com", "--type", "github"])
        assert result.exit_code == 1
        assert "VALIDATION_ERROR" in result.output
