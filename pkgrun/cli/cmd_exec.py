"""CLI：执行单元命令

exec 是入口脚本调用的目标:
    pkgrun exec --package=P --version=V --unit=U -- ARGS...
"""

from __future__ import annotations

import sys

import click

from pkgrun.cli import _svc


def register(group: click.Group) -> None:
    group.add_command(exec_unit)
    group.add_command(run_file)


@click.command(name="exec", context_settings={"ignore_unknown_options": True})
@click.option("--package", required=True, help="包名")
@click.option("--version", default="latest", help="包版本（默认 latest）")
@click.option("--unit", required=True, help="执行单元名")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def exec_unit(package: str, version: str, unit: str, args: tuple[str, ...]) -> None:
    """执行已安装包的执行单元，以子进程退出码退出"""
    svc = _svc()
    if version == "latest":
        entry = svc.installer.get_latest_version(package)
        if entry is None:
            from pkgrun.core.exceptions import PackageNotFoundError
            raise PackageNotFoundError(f"软件包未安装: {package}")
        version = entry.version
    code = svc.units.execute_unit(package, version, unit, list(args))
    sys.exit(code if code >= 0 else 1)


@click.command(name="run")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--unit", required=True, help="执行单元名")
def run_file(path: str, unit: str) -> None:
    """不安装，直接临时执行包文件中的执行单元"""
    from pkgrun.core.package_file import PackageFile
    package = PackageFile.load(path)
    with _svc().units as units:
        code = units.temporary_execute(package, unit)
    sys.exit(code if code >= 0 else 1)
