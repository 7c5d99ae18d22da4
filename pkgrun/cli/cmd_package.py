"""CLI：软件包安装 / 卸载 / 查询命令"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from pkgrun.cli import _svc
from pkgrun.core.models import Credential, InstallOption


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(uninstall)
    group.add_command(list_packages)
    group.add_command(tree)
    group.add_command(missing)


def _split_target(target: str) -> tuple[str, str]:
    """name 或 name=version"""
    name, _, version = target.partition("=")
    return name.strip(), version.strip()


@click.command()
@click.argument("target")
@click.option("--reinstall", is_flag=True, help="已安装时重新安装")
@click.option("--skip-dependencies", is_flag=True, help="跳过依赖安装（static 依赖仍会检查）")
@click.option("--skip-repositories", is_flag=True, help="不登记包声明的远程源")
@click.option("--static", "static", is_flag=True, help="请求静态构建的远程包")
@click.option("--build-source", is_flag=True, help="远程获取时跳过预编译包，直接从源码构建")
@click.option("--username", default="", help="远程源用户名")
@click.option("--password", default="", help="远程源密码")
@click.option("--token", default="", help="远程源访问令牌")
def install(target: str, username: str, password: str, token: str, **flags: Any) -> None:
    """安装包文件，或通过远程定位串 vendor/package[=version][:branch]@source 安装"""
    options = [InstallOption(name.replace("_", "-")) for name, on in flags.items() if on]
    credential = None
    if username or token:
        credential = Credential(username=username, password=password, token=token)

    installer = _svc().installer
    if Path(target).is_file() or "@" not in target:
        name = installer.install(target, credential, options, progress=_echo_progress)
    else:
        name = installer.install_from_source(target, credential, options)
    click.echo(f"已安装: {name}")


def _echo_progress(current: int, total: int) -> None:
    click.echo(f"  [{current}/{total}]")


@click.command()
@click.argument("target")
def uninstall(target: str) -> None:
    """卸载 name（全部版本）或 name=version"""
    name, version = _split_target(target)
    installer = _svc().installer
    if version:
        installer.uninstall_package_version(name, version)
    else:
        installer.uninstall_package(name)
    click.echo(f"已卸载: {target}")


@click.command(name="list")
def list_packages() -> None:
    """列出已安装的包及版本"""
    installed = _svc().installer.get_installed_packages()
    if not installed:
        click.echo("没有已安装的包。")
        return
    for name, versions in installed.items():
        latest = _svc().installer.get_latest_version(name)
        marker = f" (latest={latest.version})" if latest else ""
        click.echo(f"  {name:30s} {', '.join(versions)}{marker}")


@click.command()
@click.argument("target", required=False)
@click.option("--json", "as_json", is_flag=True, help="以 JSON 输出")
def tree(target: str | None, as_json: bool) -> None:
    """显示依赖树（可指定 name 或 name=version）"""
    result = _svc().installer.get_package_tree(target)
    if as_json:
        click.echo(json.dumps(result, indent=2, ensure_ascii=False))
        return
    if not result:
        click.echo("依赖树为空。")
        return
    _echo_tree(result, 0)


def _echo_tree(nodes: dict[str, dict], depth: int) -> None:
    for key, children in nodes.items():
        click.echo(f"{'  ' * depth}- {key}")
        _echo_tree(children, depth + 1)


@click.command()
def missing() -> None:
    """列出被已安装包依赖但未安装的包"""
    entries = _svc().installer.get_missing_packages()
    if not entries:
        click.echo("没有缺失的依赖。")
        return
    for e in entries:
        version = e["version"] or "latest"
        click.echo(
            f"  {e['package']}={version} [{e['source_type']}] "
            f"<- {e['required_by']}  {e['source']}"
        )
