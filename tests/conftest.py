"""测试公共夹具

每个测试使用独立的根目录（tmp_path/root）和 system 作用域，
全局容器与锁文件缓存在前后都会重置。
"""

from __future__ import annotations

from pathlib import Path

import pytest

import pkgrun.core.config as cfgmod
from pkgrun.core.models import (
    Assembly,
    Execute,
    ExecutionPolicy,
    ExecutionUnit,
    ExitHandlers,
    Package,
)
from pkgrun.core.package_file import PackageFile
from pkgrun.services.container import reset_container
from pkgrun.services.lock_store import get_lock_cache


@pytest.fixture(autouse=True)
def cfg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    config = cfgmod.Config.rooted(tmp_path / "root", scope="system")
    monkeypatch.setattr(cfgmod, "_current", config)
    get_lock_cache().clear()
    reset_container()
    yield config
    reset_container()
    get_lock_cache().clear()


@pytest.fixture()
def make_unit():
    """构造 bash 执行单元"""

    def _make(
        name: str = "main",
        script: str = "exit 0\n",
        *,
        runner: str = "bash",
        options: list[str] | None = None,
        working_directory: str | None = None,
        exit_handlers: ExitHandlers | None = None,
        silent: bool = True,
    ) -> ExecutionUnit:
        return ExecutionUnit(
            policy=ExecutionPolicy(
                name=name,
                runner=runner,
                execute=Execute(
                    options=list(options or []),
                    working_directory=working_directory,
                    silent=silent,
                ),
                exit_handlers=exit_handlers,
            ),
            data=script.encode(),
        )

    return _make


@pytest.fixture()
def make_package():
    """构造内存中的包"""

    def _make(name: str = "com.example.foo", version: str = "1.0.0", **kwargs) -> Package:
        assembly = Assembly(name=name.rsplit(".", 1)[-1], package=name, version=version)
        return Package(assembly=assembly, **kwargs)

    return _make


@pytest.fixture()
def write_package(tmp_path: Path, make_package):
    """构造包并写入 tmp_path/pkgs/<file>，返回文件路径"""
    pkg_dir = tmp_path / "pkgs"

    def _write(name: str = "com.example.foo", version: str = "1.0.0", *,
               filename: str = "", **kwargs) -> Path:
        package = make_package(name, version, **kwargs)
        path = pkg_dir / (filename or f"{name}={version}.pkg")
        return PackageFile.save(package, path)

    return _write

